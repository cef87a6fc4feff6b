from __future__ import annotations

from flask import Blueprint, request

from ..auth import roles_required
from ..cache import cached
from ..responses import json_payload, success
from ..services import catalog
from ..validators import parse_bool

bp = Blueprint("categories", __name__)


@bp.get("")
@cached(ttl_minutes=10)
def list_categories() -> tuple[dict[str, object], int]:
    raw = request.args.get("include_inactive")
    include_inactive = parse_bool(raw, "include_inactive") if raw else False
    return success([category.to_dict() for category in catalog.list_categories(include_inactive)])


@bp.get("/tree")
@cached(ttl_minutes=10)
def category_tree() -> tuple[dict[str, object], int]:
    return success(catalog.get_category_tree())


@bp.get("/<int:category_id>")
@cached(ttl_minutes=10)
def get_category(category_id: int) -> tuple[dict[str, object], int]:
    category = catalog.get_category(category_id)
    data = category.to_dict()
    data["children"] = [child.to_dict() for child in category.children if child.is_active]
    return success(data)


@bp.get("/<int:category_id>/subcategories")
@cached(ttl_minutes=10)
def subcategories(category_id: int) -> tuple[dict[str, object], int]:
    return success([child.to_dict() for child in catalog.get_subcategories(category_id)])


@bp.post("")
@roles_required("admin")
def create_category() -> tuple[dict[str, object], int]:
    """Create a category, optionally under a parent.
    ---
    tags:
      - Categories
    responses:
      201:
        description: Category created
      400:
        description: Invalid payload or duplicate name among siblings
      404:
        description: Parent category not found
    """
    category = catalog.create_category(json_payload())
    return success(category.to_dict(), 201, message="Category created successfully")


@bp.put("/<int:category_id>")
@roles_required("admin")
def update_category(category_id: int) -> tuple[dict[str, object], int]:
    category = catalog.update_category(category_id, json_payload())
    return success(category.to_dict(), message="Category updated successfully")


@bp.delete("/<int:category_id>")
@roles_required("admin")
def delete_category(category_id: int) -> tuple[dict[str, object], int]:
    catalog.delete_category(category_id)
    return success(None, message="Category deleted successfully")
