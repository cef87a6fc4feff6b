"""Admin panel endpoints."""
from __future__ import annotations

from flask import Blueprint, request

from ..auth import roles_required
from ..errors import ValidationError
from ..models import APPOINTMENT_STATUSES, USER_ROLES
from ..responses import json_payload, paginated, pagination_args, success
from ..services import admin, catalog
from ..validators import parse_bool, parse_date

bp = Blueprint("admin", __name__)


@bp.before_request
@roles_required("admin")
def require_admin() -> None:
    return None


def _date_args() -> tuple:
    start = parse_date(request.args["start_date"], "start_date") if request.args.get("start_date") else None
    end = parse_date(request.args["end_date"], "end_date") if request.args.get("end_date") else None
    return start, end


@bp.get("/stats")
def platform_stats() -> tuple[dict[str, object], int]:
    """Platform-wide counters.
    ---
    tags:
      - Admin
    responses:
      200:
        description: Totals of users, sellers, listings, appointments and chats
      403:
        description: Caller is not an admin
    """
    return success(admin.get_platform_stats())


@bp.get("/users")
def list_users() -> tuple[dict[str, object], int]:
    page, limit = pagination_args()
    role = request.args.get("role") or None
    if role is not None and role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    items, total = admin.list_users(role, request.args.get("search"), page, limit)
    return paginated([user.to_dict() for user in items], total, page, limit)


@bp.get("/sellers")
def list_sellers() -> tuple[dict[str, object], int]:
    page, limit = pagination_args()
    raw = request.args.get("is_approved")
    is_approved = parse_bool(raw, "is_approved") if raw else None
    items, total = admin.list_sellers(is_approved, request.args.get("search"), page, limit)
    return paginated([seller.to_dict() for seller in items], total, page, limit)


@bp.put("/sellers/<int:seller_id>/approval")
def update_seller_approval(seller_id: int) -> tuple[dict[str, object], int]:
    is_approved = json_payload().get("is_approved")
    if not isinstance(is_approved, bool):
        raise ValidationError("is_approved must be a boolean")
    seller = admin.update_seller_approval(seller_id, is_approved)
    state = "approved" if is_approved else "unapproved"
    return success(seller.to_dict(), message=f"Seller {state} successfully")


@bp.put("/products/<int:product_id>/flag")
def flag_product(product_id: int) -> tuple[dict[str, object], int]:
    is_flagged = json_payload().get("is_flagged")
    if not isinstance(is_flagged, bool):
        raise ValidationError("is_flagged must be a boolean")
    return success(catalog.flag_product(product_id, is_flagged).to_dict())


@bp.get("/chats")
def list_chats() -> tuple[dict[str, object], int]:
    page, limit = pagination_args()
    start, end = _date_args()
    items, total = admin.list_chats(start, end, page, limit)
    return paginated(items, total, page, limit)


@bp.delete("/chats/<int:chat_id>")
def delete_chat(chat_id: int) -> tuple[dict[str, object], int]:
    admin.delete_chat(chat_id)
    return success(None, message="Chat deleted successfully")


@bp.get("/appointments")
def list_appointments() -> tuple[dict[str, object], int]:
    page, limit = pagination_args()
    status = request.args.get("status") or None
    if status is not None and status not in APPOINTMENT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(APPOINTMENT_STATUSES)}")
    start, end = _date_args()
    items, total = admin.list_appointments(status, start, end, page, limit)
    return paginated([appointment.to_dict() for appointment in items], total, page, limit)
