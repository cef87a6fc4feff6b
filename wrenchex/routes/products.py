from __future__ import annotations

from flask import Blueprint, request

from ..auth import approved_seller_required, current_seller
from ..cache import cached
from ..responses import json_payload, paginated, pagination_args, success
from ..services import catalog

bp = Blueprint("products", __name__)


@bp.get("")
@cached(ttl_minutes=5)
def list_products() -> tuple[dict[str, object], int]:
    """List active products of approved sellers.
    ---
    tags:
      - Products
    parameters:
      - name: category_id
        in: query
        type: integer
      - name: seller_id
        in: query
        type: integer
      - name: city
        in: query
        type: string
      - name: area
        in: query
        type: string
      - name: min_price
        in: query
        type: number
      - name: max_price
        in: query
        type: number
      - name: search
        in: query
        type: string
      - name: page
        in: query
        type: integer
      - name: limit
        in: query
        type: integer
    responses:
      200:
        description: Page of products
    """
    page, limit = pagination_args()
    items, total = catalog.list_products(catalog.parse_listing_filters(request.args), page, limit)
    return paginated([product.to_dict() for product in items], total, page, limit)


@bp.get("/featured")
@cached(ttl_minutes=10)
def featured_products() -> tuple[dict[str, object], int]:
    _, limit = pagination_args(default_limit=8, max_limit=50)
    return success([product.to_dict() for product in catalog.list_featured_products(limit)])


@bp.get("/<int:product_id>")
@cached(ttl_minutes=5)
def get_product(product_id: int) -> tuple[dict[str, object], int]:
    return success(catalog.get_product(product_id).to_dict())


@bp.get("/seller/<int:seller_id>")
@cached(ttl_minutes=5)
def seller_products(seller_id: int) -> tuple[dict[str, object], int]:
    return success([product.to_dict() for product in catalog.list_seller_products(seller_id)])


@bp.post("")
@approved_seller_required
def create_product() -> tuple[dict[str, object], int]:
    product = catalog.create_product(current_seller(), json_payload())
    return success(product.to_dict(), 201, message="Product created successfully")


@bp.put("/<int:product_id>")
@approved_seller_required
def update_product(product_id: int) -> tuple[dict[str, object], int]:
    product = catalog.update_product(product_id, current_seller(), json_payload())
    return success(product.to_dict(), message="Product updated successfully")


@bp.patch("/<int:product_id>/toggle-status")
@approved_seller_required
def toggle_product(product_id: int) -> tuple[dict[str, object], int]:
    product = catalog.toggle_product_status(product_id, current_seller())
    state = "activated" if product.is_active else "deactivated"
    return success(product.to_dict(), message=f"Product {state} successfully")


@bp.delete("/<int:product_id>")
@approved_seller_required
def delete_product(product_id: int) -> tuple[dict[str, object], int]:
    catalog.delete_product(product_id, current_seller())
    return success(None, message="Product deleted successfully")
