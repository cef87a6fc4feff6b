"""Categories, products and services."""
from __future__ import annotations

import logging
import math

from sqlalchemy import case, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ACTIVE_APPOINTMENT_STATUSES, Appointment, Category, Product, Seller, Service
from ..validators import parse_bool, validate_category, validate_product, validate_service

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ("title", "description", "specifications", "price", "category_id", "images")
SERVICE_FIELDS = (
    "title",
    "description",
    "price",
    "category_id",
    "duration_minutes",
    "is_mobile_service",
    "images",
)


def _commit(action: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Failed to %s", action, exc_info=exc)
        raise ConflictError(f"Cannot {action}: it is still referenced by other records") from exc
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to %s", action)
        raise


def _assign(target, payload: dict, fields: tuple[str, ...]) -> None:
    for field in fields:
        if field in payload:
            value = payload[field]
            setattr(target, field, value.strip() if isinstance(value, str) else value)


# --- Categories ---


def _sibling_named(name: str, parent_id: int | None, exclude_id: int | None = None) -> Category | None:
    query = Category.query.filter(
        func.lower(Category.name) == name.strip().lower(),
        Category.parent_id.is_(None) if parent_id is None else Category.parent_id == parent_id,
    )
    if exclude_id is not None:
        query = query.filter(Category.category_id != exclude_id)
    return query.first()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def _active_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None or not category.is_active:
        raise NotFoundError("Category not found or is inactive")
    return category


def create_category(payload: dict) -> Category:
    validate_category(payload)
    parent_id = payload.get("parent_id")
    if parent_id is not None:
        get_category(parent_id)
    if _sibling_named(payload["name"], parent_id) is not None:
        raise ConflictError("Category with this name already exists at this level")

    category = Category(is_active=True)
    _assign(category, payload, ("name", "description", "parent_id", "image_url"))
    db.session.add(category)
    _commit("create category")
    return category


def list_categories(include_inactive: bool = False) -> list[Category]:
    query = Category.query
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.name).all()


def get_subcategories(parent_id: int) -> list[Category]:
    get_category(parent_id)
    return (
        Category.query.filter(Category.parent_id == parent_id, Category.is_active.is_(True))
        .order_by(Category.name)
        .all()
    )


def get_category_tree() -> list[dict[str, object]]:
    """Active categories nested under their parents."""
    categories = list_categories()
    nodes = {category.category_id: {**category.to_dict(), "children": []} for category in categories}
    roots = []
    for category in categories:
        node = nodes[category.category_id]
        parent = nodes.get(category.parent_id) if category.parent_id is not None else None
        if parent is not None:
            parent["children"].append(node)
        elif category.parent_id is None:
            roots.append(node)
    return roots


def update_category(category_id: int, payload: dict) -> Category:
    category = get_category(category_id)
    validate_category(payload, partial=True)

    parent_id = payload.get("parent_id", category.parent_id)
    if "parent_id" in payload and parent_id is not None:
        if parent_id == category_id:
            raise ConflictError("Category cannot be its own parent")
        get_category(parent_id)
    name = payload.get("name", category.name)
    if ("name" in payload or "parent_id" in payload) and _sibling_named(
        name, parent_id, exclude_id=category_id
    ):
        raise ConflictError("Category with this name already exists at this level")

    _assign(category, payload, ("name", "description", "parent_id", "image_url"))
    _commit(f"update category {category_id}")
    return category


def delete_category(category_id: int) -> None:
    """Deactivate a category that nothing active still uses."""
    category = get_category(category_id)
    in_use = (
        Category.query.filter_by(parent_id=category_id, is_active=True).count()
        or Product.query.filter_by(category_id=category_id, is_active=True).count()
        or Service.query.filter_by(category_id=category_id, is_active=True).count()
    )
    if in_use:
        raise ConflictError("Cannot delete category with active products, services, or subcategories")
    category.is_active = False
    _commit(f"delete category {category_id}")


# --- Listing filters shared by products and services ---


def _float_arg(args, name: str) -> float | None:
    value = args.get(name)
    if value in (None, ""):
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ValidationError(f"{name} must be a number") from exc


def _int_arg(args, name: str) -> int | None:
    value = args.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an integer") from exc


def parse_listing_filters(args) -> dict[str, object]:
    filters = {
        "category_id": _int_arg(args, "category_id"),
        "seller_id": _int_arg(args, "seller_id"),
        "min_price": _float_arg(args, "min_price"),
        "max_price": _float_arg(args, "max_price"),
        "city": (args.get("city") or "").strip() or None,
        "area": (args.get("area") or "").strip() or None,
        "search": (args.get("search") or "").strip() or None,
    }
    if args.get("is_mobile_service") not in (None, ""):
        filters["is_mobile_service"] = parse_bool(args["is_mobile_service"], "is_mobile_service")
    return filters


def _listing_query(model, filters: dict[str, object]):
    """Public listing of ``model``: active rows of approved sellers."""
    query = model.query.join(Seller, model.seller_id == Seller.seller_id).filter(
        model.is_active.is_(True), Seller.is_approved.is_(True)
    )
    if model is Product:
        query = query.filter(Product.is_flagged.is_(False))
    if filters.get("category_id") is not None:
        query = query.filter(model.category_id == filters["category_id"])
    if filters.get("seller_id") is not None:
        query = query.filter(model.seller_id == filters["seller_id"])
    if filters.get("min_price") is not None:
        query = query.filter(model.price >= filters["min_price"])
    if filters.get("max_price") is not None:
        query = query.filter(model.price <= filters["max_price"])
    if filters.get("city"):
        query = query.filter(Seller.city.ilike(f"%{filters['city']}%"))
    if filters.get("area"):
        query = query.filter(Seller.area.ilike(f"%{filters['area']}%"))
    if filters.get("search"):
        pattern = f"%{filters['search']}%"
        query = query.filter(
            or_(model.title.ilike(pattern), model.description.ilike(pattern), Seller.shop_name.ilike(pattern))
        )
    if model is Service and filters.get("is_mobile_service") is not None:
        query = query.filter(Service.is_mobile_service.is_(filters["is_mobile_service"]))
    return query


def _paginate(query, order_by, page: int, limit: int) -> tuple[list, int]:
    total = query.count()
    items = query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()
    return items, total


def _approved_seller(seller: Seller, noun: str) -> None:
    if not seller.is_approved:
        raise AuthorizationError(f"Seller account must be approved to create {noun}")


# --- Products ---


def create_product(seller: Seller, payload: dict) -> Product:
    _approved_seller(seller, "products")
    validate_product(payload)
    _active_category(payload["category_id"])

    product = Product(seller_id=seller.seller_id, is_active=True, is_flagged=False)
    _assign(product, payload, PRODUCT_FIELDS)
    product.images = payload.get("images") or []
    db.session.add(product)
    _commit("create product")
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    if not product.is_active:
        raise NotFoundError("Product is not available")
    return product


def list_products(filters: dict[str, object], page: int, limit: int) -> tuple[list[Product], int]:
    return _paginate(_listing_query(Product, filters), (Product.created_at.desc(), Product.product_id.desc()), page, limit)


def list_seller_products(seller_id: int, include_inactive: bool = False) -> list[Product]:
    query = Product.query.filter_by(seller_id=seller_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.created_at.desc(), Product.product_id.desc()).all()


def _owned_product(product_id: int, seller: Seller, action: str) -> Product:
    product = Product.query.filter_by(product_id=product_id, seller_id=seller.seller_id).first()
    if product is None:
        raise NotFoundError(f"Product not found or you do not have permission to {action} it")
    return product


def update_product(product_id: int, seller: Seller, payload: dict) -> Product:
    product = _owned_product(product_id, seller, "update")
    validate_product(payload, partial=True)
    if "category_id" in payload:
        _active_category(payload["category_id"])
    _assign(product, payload, PRODUCT_FIELDS)
    _commit(f"update product {product_id}")
    return product


def toggle_product_status(product_id: int, seller: Seller) -> Product:
    product = _owned_product(product_id, seller, "modify")
    product.is_active = not product.is_active
    _commit(f"toggle product {product_id}")
    return product


def delete_product(product_id: int, seller: Seller) -> None:
    product = _owned_product(product_id, seller, "delete")
    db.session.delete(product)
    _commit(f"delete product {product_id}")


def flag_product(product_id: int, is_flagged: bool) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    product.is_flagged = is_flagged
    _commit(f"flag product {product_id}")
    return product


# --- Services ---


def create_service(seller: Seller, payload: dict) -> Service:
    _approved_seller(seller, "services")
    validate_service(payload)
    _active_category(payload["category_id"])

    service = Service(seller_id=seller.seller_id, is_active=True)
    _assign(service, payload, SERVICE_FIELDS)
    service.images = payload.get("images") or []
    db.session.add(service)
    _commit("create service")
    return service


def get_service(service_id: int) -> Service:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found")
    return service


def list_services(filters: dict[str, object], page: int, limit: int) -> tuple[list[Service], int]:
    return _paginate(
        _listing_query(Service, filters),
        (Seller.rating_average.desc(), Service.created_at.desc(), Service.service_id.desc()),
        page,
        limit,
    )


def list_seller_services(seller_id: int, include_inactive: bool = False) -> list[Service]:
    query = Service.query.filter_by(seller_id=seller_id)
    if not include_inactive:
        query = query.filter(Service.is_active.is_(True))
    return query.order_by(Service.created_at.desc(), Service.service_id.desc()).all()


def _owned_service(service_id: int, seller: Seller, action: str) -> Service:
    service = Service.query.filter_by(service_id=service_id, seller_id=seller.seller_id).first()
    if service is None:
        raise NotFoundError(f"Service not found or you do not have permission to {action} it")
    return service


def update_service(service_id: int, seller: Seller, payload: dict) -> Service:
    service = _owned_service(service_id, seller, "update")
    validate_service(payload, partial=True)
    if "category_id" in payload:
        _active_category(payload["category_id"])
    _assign(service, payload, SERVICE_FIELDS)
    _commit(f"update service {service_id}")
    return service


def toggle_service_status(service_id: int, seller: Seller) -> Service:
    service = _owned_service(service_id, seller, "modify")
    service.is_active = not service.is_active
    _commit(f"toggle service {service_id}")
    return service


def delete_service(service_id: int, seller: Seller) -> None:
    service = _owned_service(service_id, seller, "delete")
    live = Appointment.query.filter(
        Appointment.service_id == service_id,
        Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
    ).count()
    if live:
        raise ConflictError("Cannot delete service with pending or active appointments")
    db.session.delete(service)
    _commit(f"delete service {service_id}")


# --- Featured and discovery listings ---

EARTH_RADIUS_KM = 6371.0


def list_featured_products(limit: int = 8) -> list[Product]:
    return (
        _listing_query(Product, {})
        .order_by(Product.rating_average.desc(), Product.created_at.desc(), Product.product_id.desc())
        .limit(limit)
        .all()
    )


def list_featured_services(limit: int = 8) -> list[Service]:
    return (
        _listing_query(Service, {})
        .order_by(Service.rating_average.desc(), Service.created_at.desc(), Service.service_id.desc())
        .limit(limit)
        .all()
    )


def list_service_categories() -> list[dict[str, object]]:
    """Active categories that hold at least one service, with their active service count."""
    active_count = func.sum(case((Service.is_active.is_(True), 1), else_=0))
    rows = (
        db.session.query(Category, active_count)
        .join(Service, Service.category_id == Category.category_id)
        .filter(Category.is_active.is_(True))
        .group_by(Category.category_id)
        .order_by(Category.name)
        .all()
    )
    return [{**category.to_dict(), "service_count": int(count or 0)} for category, count in rows]


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def parse_location_args(args) -> tuple[float, float, float]:
    latitude = _float_arg(args, "latitude")
    longitude = _float_arg(args, "longitude")
    radius_km = _float_arg(args, "radius_km")
    errors = []
    if latitude is None or longitude is None:
        errors.append("latitude and longitude are required")
    else:
        if not -90 <= latitude <= 90:
            errors.append("latitude must be between -90 and 90")
        if not -180 <= longitude <= 180:
            errors.append("longitude must be between -180 and 180")
    if radius_km is None:
        radius_km = 10.0
    elif not 0 < radius_km <= 500:
        errors.append("radius_km must be between 0 and 500")
    if errors:
        raise ValidationError(errors)
    return latitude, longitude, radius_km


def list_services_near(
    latitude: float,
    longitude: float,
    radius_km: float,
    filters: dict[str, object],
    page: int,
    limit: int,
) -> tuple[list[tuple[Service, float]], int]:
    """Mobile services whose seller is within ``radius_km``, nearest first."""
    query = _listing_query(Service, {**filters, "is_mobile_service": True}).filter(
        Seller.latitude.isnot(None), Seller.longitude.isnot(None)
    )
    nearby = []
    for service in query.all():
        distance = distance_km(latitude, longitude, service.seller.latitude, service.seller.longitude)
        if distance <= radius_km:
            nearby.append((service, distance))
    nearby.sort(key=lambda item: (item[1], item[0].service_id))
    start = (page - 1) * limit
    return nearby[start:start + limit], len(nearby)
