from __future__ import annotations

from flask import Blueprint, g, request

from ..auth import approved_seller_required, current_seller, roles_required
from ..responses import json_payload, paginated, pagination_args, success
from ..services import catalog, sellers
from ..validators import parse_bool

bp = Blueprint("sellers", __name__)


@bp.post("/register")
@roles_required("seller")
def register_seller() -> tuple[dict[str, object], int]:
    """Create the shop profile of a seller account.
    ---
    tags:
      - Sellers
    responses:
      201:
        description: Seller profile created and awaiting approval
      400:
        description: Invalid payload, duplicate shop name in the city or profile already exists
    """
    seller = sellers.register_seller(g.current_user, json_payload())
    return success(seller.to_dict(), 201, message="Seller profile created and pending approval")


@bp.get("/profile")
@roles_required("seller")
def get_profile() -> tuple[dict[str, object], int]:
    return success(sellers.get_seller_by_user(g.current_user.user_id).to_dict())


@bp.put("/profile")
@roles_required("seller")
def update_profile() -> tuple[dict[str, object], int]:
    seller = sellers.update_seller_profile(g.current_user, json_payload())
    return success(seller.to_dict(), message="Seller profile updated successfully")


@bp.get("/dashboard")
@approved_seller_required
def dashboard() -> tuple[dict[str, object], int]:
    return success(sellers.get_seller_dashboard(g.current_user))


@bp.get("/earnings")
@approved_seller_required
def earnings() -> tuple[dict[str, object], int]:
    period = request.args.get("period", "month")
    return success(sellers.get_seller_earnings(g.current_user, period))


@bp.get("/search")
def search_sellers() -> tuple[dict[str, object], int]:
    """Search approved shops by name or description, optionally within a city and area."""
    page, limit = pagination_args()
    items, total = sellers.search_sellers(
        search=(request.args.get("search") or "").strip() or None,
        city=(request.args.get("city") or "").strip() or None,
        area=(request.args.get("area") or "").strip() or None,
        page=page,
        limit=limit,
    )
    return paginated(items, total, page, limit)


@bp.get("/cities")
def seller_cities() -> tuple[dict[str, object], int]:
    return success(sellers.get_seller_cities())


@bp.get("/cities/<string:city>/areas")
def seller_areas(city: str) -> tuple[dict[str, object], int]:
    return success(sellers.get_seller_areas(city))


def _include_inactive() -> bool:
    raw = request.args.get("include_inactive")
    return parse_bool(raw, "include_inactive") if raw else True


@bp.get("/products")
@roles_required("seller")
def my_products() -> tuple[dict[str, object], int]:
    seller = current_seller()
    items = catalog.list_seller_products(seller.seller_id, include_inactive=_include_inactive())
    return success([product.to_dict() for product in items])


@bp.get("/services")
@roles_required("seller")
def my_services() -> tuple[dict[str, object], int]:
    seller = current_seller()
    items = catalog.list_seller_services(seller.seller_id, include_inactive=_include_inactive())
    return success([service.to_dict() for service in items])
