"""Platform statistics and moderation."""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError
from ..extensions import db
from ..models import (
    Appointment,
    Product,
    ProductChat,
    ProductMessage,
    Seller,
    Service,
    User,
    utc_now,
)

logger = logging.getLogger(__name__)


def _active_chat_filter(since: datetime):
    return (
        ProductChat.is_active.is_(True),
        ProductChat.messages.any(ProductMessage.created_at >= since),
    )


def get_platform_stats() -> dict[str, object]:
    since = utc_now() - timedelta(hours=24)
    return {
        "users": {"total": User.query.count()},
        "sellers": {
            "total": Seller.query.count(),
            "pending_approval": Seller.query.filter(Seller.is_approved.is_(False)).count(),
        },
        "products": {"total": Product.query.count()},
        "services": {"total": Service.query.count()},
        "appointments": {"total": Appointment.query.count()},
        "chats": {
            "total": ProductChat.query.count(),
            "active": ProductChat.query.filter(*_active_chat_filter(since)).count(),
        },
    }


def _page(query, order_by, page: int, limit: int) -> tuple[list, int]:
    total = query.count()
    return query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all(), total


def list_users(role: str | None, search: str | None, page: int, limit: int) -> tuple[list[User], int]:
    query = User.query
    if role:
        query = query.filter(User.role == role)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(User.first_name.ilike(pattern), User.last_name.ilike(pattern), User.email.ilike(pattern))
        )
    return _page(query, (User.created_at.desc(), User.user_id.desc()), page, limit)


def list_sellers(
    is_approved: bool | None, search: str | None, page: int, limit: int
) -> tuple[list[Seller], int]:
    query = Seller.query.join(User, Seller.user_id == User.user_id)
    if is_approved is not None:
        query = query.filter(Seller.is_approved.is_(is_approved))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Seller.shop_name.ilike(pattern),
                Seller.city.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
            )
        )
    return _page(query, (Seller.created_at.desc(), Seller.seller_id.desc()), page, limit)


def update_seller_approval(seller_id: int, is_approved: bool) -> Seller:
    seller = db.session.get(Seller, seller_id)
    if seller is None:
        raise NotFoundError("Seller not found")
    try:
        seller.is_approved = is_approved
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update approval for seller %s", seller_id)
        raise
    logger.info("Seller %s approval set to %s", seller_id, is_approved)
    return seller


def _date_range(query, column, start_date: date | None, end_date: date | None):
    if start_date is not None:
        query = query.filter(column >= datetime.combine(start_date, time.min))
    if end_date is not None:
        query = query.filter(column <= datetime.combine(end_date, time.max))
    return query


def list_chats(
    start_date: date | None, end_date: date | None, page: int, limit: int
) -> tuple[list[dict[str, object]], int]:
    query = _date_range(ProductChat.query, ProductChat.created_at, start_date, end_date)
    chats, total = _page(query, (ProductChat.created_at.desc(), ProductChat.chat_id.desc()), page, limit)
    items = []
    for chat in chats:
        data = chat.to_dict()
        data["message_count"] = len(chat.messages)
        items.append(data)
    return items, total


def delete_chat(chat_id: int) -> None:
    chat = db.session.get(ProductChat, chat_id)
    if chat is None:
        raise NotFoundError("Chat not found")
    try:
        db.session.delete(chat)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to delete chat %s", chat_id)
        raise
    logger.info("Deleted chat %s", chat_id)


def list_appointments(
    status: str | None,
    start_date: date | None,
    end_date: date | None,
    page: int,
    limit: int,
) -> tuple[list[Appointment], int]:
    query = Appointment.query
    if status:
        query = query.filter(Appointment.status == status)
    query = _date_range(query, Appointment.created_at, start_date, end_date)
    return _page(query, (Appointment.created_at.desc(), Appointment.appointment_id.desc()), page, limit)
