from __future__ import annotations

from flask import Blueprint, request

from ..auth import approved_seller_required, current_seller
from ..cache import cached
from ..responses import json_payload, paginated, pagination_args, success
from ..services import catalog

bp = Blueprint("services", __name__)


@bp.get("")
@cached(ttl_minutes=5)
def list_services() -> tuple[dict[str, object], int]:
    page, limit = pagination_args()
    items, total = catalog.list_services(catalog.parse_listing_filters(request.args), page, limit)
    return paginated([service.to_dict() for service in items], total, page, limit)


@bp.get("/mobile")
@cached(ttl_minutes=5)
def list_mobile_services() -> tuple[dict[str, object], int]:
    page, limit = pagination_args()
    filters = catalog.parse_listing_filters(request.args)
    filters["is_mobile_service"] = True
    items, total = catalog.list_services(filters, page, limit)
    return paginated([service.to_dict() for service in items], total, page, limit)


@bp.get("/featured")
@cached(ttl_minutes=10)
def featured_services() -> tuple[dict[str, object], int]:
    _, limit = pagination_args(default_limit=8, max_limit=50)
    return success([service.to_dict() for service in catalog.list_featured_services(limit)])


@bp.get("/categories")
@cached(ttl_minutes=10)
def service_categories() -> tuple[dict[str, object], int]:
    return success(catalog.list_service_categories())


@bp.get("/near")
@cached(ttl_minutes=5)
def services_near() -> tuple[dict[str, object], int]:
    """List mobile services whose seller is within a radius of a point.
    ---
    tags:
      - Services
    parameters:
      - name: latitude
        in: query
        type: number
        required: true
      - name: longitude
        in: query
        type: number
        required: true
      - name: radius_km
        in: query
        type: number
        default: 10
    responses:
      200:
        description: Page of nearby mobile services, nearest first
      400:
        description: Missing or out-of-range coordinates
    """
    latitude, longitude, radius_km = catalog.parse_location_args(request.args)
    page, limit = pagination_args()
    filters = catalog.parse_listing_filters(request.args)
    items, total = catalog.list_services_near(latitude, longitude, radius_km, filters, page, limit)
    data = [{**service.to_dict(), "distance_km": round(distance, 2)} for service, distance in items]
    return paginated(data, total, page, limit)


@bp.get("/<int:service_id>")
@cached(ttl_minutes=5)
def get_service(service_id: int) -> tuple[dict[str, object], int]:
    return success(catalog.get_service(service_id).to_dict())


@bp.get("/seller/<int:seller_id>")
@cached(ttl_minutes=5)
def seller_services(seller_id: int) -> tuple[dict[str, object], int]:
    return success([service.to_dict() for service in catalog.list_seller_services(seller_id)])


@bp.post("")
@approved_seller_required
def create_service() -> tuple[dict[str, object], int]:
    """Create a bookable service.
    ---
    tags:
      - Services
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            title:
              type: string
            description:
              type: string
            category_id:
              type: integer
            price:
              type: number
            duration_minutes:
              type: integer
            is_mobile_service:
              type: boolean
          required:
            - title
            - description
            - category_id
            - price
            - duration_minutes
            - is_mobile_service
    responses:
      201:
        description: Service created
      400:
        description: Invalid payload
      403:
        description: Seller not approved
    """
    service = catalog.create_service(current_seller(), json_payload())
    return success(service.to_dict(), 201, message="Service created successfully")


@bp.put("/<int:service_id>")
@approved_seller_required
def update_service(service_id: int) -> tuple[dict[str, object], int]:
    service = catalog.update_service(service_id, current_seller(), json_payload())
    return success(service.to_dict(), message="Service updated successfully")


@bp.patch("/<int:service_id>/toggle-status")
@approved_seller_required
def toggle_service(service_id: int) -> tuple[dict[str, object], int]:
    service = catalog.toggle_service_status(service_id, current_seller())
    state = "activated" if service.is_active else "deactivated"
    return success(service.to_dict(), message=f"Service {state} successfully")


@bp.delete("/<int:service_id>")
@approved_seller_required
def delete_service(service_id: int) -> tuple[dict[str, object], int]:
    catalog.delete_service(service_id, current_seller())
    return success(None, message="Service deleted successfully")
