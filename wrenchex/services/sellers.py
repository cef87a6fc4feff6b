"""Seller shop profiles and the seller dashboard."""
from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Appointment,
    Product,
    ProductChat,
    ProductMessage,
    Seller,
    SellerChatSettings,
    Service,
    User,
    utc_now,
)
from ..validators import validate_profile_update, validate_seller_profile
from .accounts import shop_name_taken
from .appointments import period_start

logger = logging.getLogger(__name__)

SHOP_FIELDS = ("shop_name", "shop_description", "shop_address", "city", "area", "latitude", "longitude")
USER_FIELDS = ("first_name", "last_name", "phone")


def _clean(value):
    return value.strip() if isinstance(value, str) else value


def register_seller(user: User, payload: dict) -> Seller:
    if user.role != "seller":
        raise AuthorizationError("User must have seller role to register as seller")
    if Seller.query.filter_by(user_id=user.user_id).first() is not None:
        raise ConflictError("Seller profile already exists for this user")

    validate_seller_profile(payload)
    if shop_name_taken(payload["shop_name"], payload["city"]):
        raise ConflictError("A shop with this name already exists in this city")

    seller = Seller(user_id=user.user_id, is_approved=False)
    for field in SHOP_FIELDS:
        if field in payload:
            setattr(seller, field, _clean(payload[field]))
    try:
        db.session.add(seller)
        db.session.flush()
        db.session.add(SellerChatSettings(seller_id=seller.seller_id))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to register seller profile for user %s", user.user_id)
        raise
    return seller


def get_seller_by_user(user_id: int) -> Seller:
    seller = Seller.query.filter_by(user_id=user_id).first()
    if seller is None:
        raise NotFoundError("Seller profile not found")
    return seller


def update_seller_profile(user: User, payload: dict) -> Seller:
    seller = get_seller_by_user(user.user_id)
    validate_seller_profile(payload, partial=True)
    validate_profile_update(payload)

    shop_name = payload.get("shop_name", seller.shop_name)
    city = payload.get("city", seller.city)
    if ("shop_name" in payload or "city" in payload) and shop_name_taken(
        shop_name, city, exclude_seller_id=seller.seller_id
    ):
        raise ConflictError("A shop with this name already exists in this city")

    try:
        for field in SHOP_FIELDS:
            if field in payload:
                setattr(seller, field, _clean(payload[field]))
        for field in USER_FIELDS:
            if field in payload:
                setattr(user, field, _clean(payload[field]))
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update seller profile %s", seller.seller_id)
        raise
    return seller


def get_seller_dashboard(user: User) -> dict[str, object]:
    seller = get_seller_by_user(user.user_id)
    if not seller.is_approved:
        raise AuthorizationError("Seller account is not approved yet")

    products = Product.query.filter_by(seller_id=seller.seller_id).count()
    services = Service.query.filter_by(seller_id=seller.seller_id).count()
    appointments = Appointment.query.filter_by(seller_id=seller.seller_id).count()
    chats = ProductChat.query.filter_by(seller_id=seller.seller_id).count()

    since = utc_now() - timedelta(hours=24)
    active_chats = (
        ProductChat.query.filter(
            ProductChat.seller_id == seller.seller_id,
            ProductChat.is_active.is_(True),
            ProductChat.messages.any(ProductMessage.created_at >= since),
        ).count()
    )
    unread_messages = (
        ProductMessage.query.join(ProductChat, ProductMessage.chat_id == ProductChat.chat_id)
        .filter(
            ProductChat.seller_id == seller.seller_id,
            ProductMessage.sender_id != user.user_id,
            ProductMessage.is_read.is_(False),
        )
        .count()
    )

    recent_appointments = (
        Appointment.query.filter_by(seller_id=seller.seller_id)
        .order_by(Appointment.created_at.desc())
        .limit(5)
        .all()
    )
    recent_chats = (
        ProductChat.query.filter_by(seller_id=seller.seller_id)
        .order_by(ProductChat.updated_at.desc())
        .limit(5)
        .all()
    )

    now = utc_now()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    monthly_earnings = (
        db.session.query(func.coalesce(func.sum(Appointment.total_amount), 0))
        .filter(
            Appointment.seller_id == seller.seller_id,
            Appointment.status == "completed",
            Appointment.created_at >= month_start,
        )
        .scalar()
    )

    return {
        "seller": seller.to_dict(),
        "stats": {
            "products": products,
            "services": services,
            "appointments": appointments,
            "chats": chats,
            "active_chats": active_chats,
            "unread_messages": unread_messages,
        },
        "recent_appointments": [appointment.to_dict() for appointment in recent_appointments],
        "recent_chats": [
            {
                "id": chat.chat_id,
                "product": {"id": chat.product_id, "title": chat.product.title if chat.product else None},
                "buyer": {
                    "id": chat.buyer_id,
                    "first_name": chat.buyer.first_name if chat.buyer else None,
                    "last_name": chat.buyer.last_name if chat.buyer else None,
                },
                "last_message": chat.messages[-1].message if chat.messages else None,
                "unread_count": sum(
                    1 for m in chat.messages if m.sender_id != user.user_id and not m.is_read
                ),
                "updated_at": chat.updated_at.isoformat() if chat.updated_at else None,
            }
            for chat in recent_chats
        ],
        "monthly_earnings": float(monthly_earnings or 0),
    }


EARNINGS_PERIODS = ("week", "month", "year")


def get_seller_earnings(user: User, period: str = "month") -> dict[str, object]:
    """Revenue of completed appointments booked since the start of ``period``."""
    if period not in EARNINGS_PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(EARNINGS_PERIODS)}")
    seller = get_seller_by_user(user.user_id)
    if not seller.is_approved:
        raise AuthorizationError("Seller account is not approved yet")

    since = period_start(period, utc_now())
    earnings, count = (
        db.session.query(
            func.coalesce(func.sum(Appointment.total_amount), 0),
            func.count(Appointment.appointment_id),
        )
        .filter(
            Appointment.seller_id == seller.seller_id,
            Appointment.status == "completed",
            Appointment.created_at >= since,
        )
        .one()
    )
    earnings = float(earnings or 0)
    return {
        "period": period,
        "total_earnings": earnings,
        "total_appointments": count,
        "breakdown": {"appointments": {"earnings": earnings, "count": count}},
    }


def search_sellers(
    search: str | None = None,
    city: str | None = None,
    area: str | None = None,
    is_approved: bool = True,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[dict[str, object]], int]:
    query = Seller.query.filter(Seller.is_approved.is_(is_approved))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Seller.shop_name.ilike(pattern), Seller.shop_description.ilike(pattern)))
    if city:
        query = query.filter(func.lower(Seller.city) == city.lower())
    if area:
        query = query.filter(func.lower(Seller.area) == area.lower())

    total = query.count()
    page_items = (
        query.order_by(Seller.rating_average.desc(), Seller.created_at.desc(), Seller.seller_id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    results = []
    for seller in page_items:
        data = seller.to_dict()
        data["counts"] = {
            "products": Product.query.filter_by(seller_id=seller.seller_id).count(),
            "services": Service.query.filter_by(seller_id=seller.seller_id).count(),
            "appointments": Appointment.query.filter_by(seller_id=seller.seller_id).count(),
        }
        results.append(data)
    return results, total


def get_seller_cities() -> list[dict[str, object]]:
    rows = (
        db.session.query(Seller.city, func.count(Seller.seller_id))
        .filter(Seller.is_approved.is_(True))
        .group_by(Seller.city)
        .order_by(Seller.city)
        .all()
    )
    return [{"name": city, "sellers_count": count} for city, count in rows]


def get_seller_areas(city: str) -> list[dict[str, object]]:
    rows = (
        db.session.query(Seller.area, func.count(Seller.seller_id))
        .filter(Seller.is_approved.is_(True), func.lower(Seller.city) == city.strip().lower())
        .group_by(Seller.area)
        .order_by(Seller.area)
        .all()
    )
    return [{"name": area, "sellers_count": count} for area, count in rows]
