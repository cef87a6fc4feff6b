"""User registration, sign-in and profile management."""
from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from ..auth import build_token
from ..errors import AuthenticationError, ConflictError, NotFoundError
from ..extensions import db
from ..models import (
    ACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    Product,
    Seller,
    SellerChatSettings,
    Service,
    User,
)
from ..validators import validate_login, validate_profile_update, validate_registration

logger = logging.getLogger(__name__)

UNSPECIFIED_LOCATION = "Not specified"


def shop_name_taken(shop_name: str, city: str, exclude_seller_id: int | None = None) -> bool:
    query = Seller.query.filter(
        func.lower(Seller.shop_name) == shop_name.strip().lower(),
        func.lower(Seller.city) == city.strip().lower(),
    )
    if exclude_seller_id is not None:
        query = query.filter(Seller.seller_id != exclude_seller_id)
    return db.session.query(query.exists()).scalar()


def register_user(payload: dict) -> tuple[User, str]:
    """Create a user; a seller also gets a shop profile and chat settings.

    All rows are written in one transaction.
    """
    validate_registration(payload)
    email = payload["email"].strip().lower()
    role = payload.get("role", "buyer")

    if User.query.filter(func.lower(User.email) == email).first() is not None:
        raise ConflictError("User with this email already exists")

    city = (payload.get("city") or UNSPECIFIED_LOCATION).strip()
    if role == "seller" and shop_name_taken(payload["shop_name"], city):
        raise ConflictError("A shop with this name already exists in this city")

    user = User(
        email=email,
        password_hash=generate_password_hash(payload["password"]),
        first_name=payload["first_name"].strip(),
        last_name=payload["last_name"].strip(),
        phone=(payload.get("phone") or "").strip() or None,
        role=role,
        # No email verification flow; accounts are usable immediately.
        is_verified=True,
    )
    try:
        db.session.add(user)
        db.session.flush()
        if role == "seller":
            seller = Seller(
                user_id=user.user_id,
                shop_name=payload["shop_name"].strip(),
                shop_description=(payload.get("description") or "").strip() or None,
                shop_address=payload["shop_address"].strip(),
                city=city,
                area=(payload.get("area") or UNSPECIFIED_LOCATION).strip(),
                business_type=payload["business_type"].strip(),
                is_approved=False,
            )
            db.session.add(seller)
            db.session.flush()
            db.session.add(SellerChatSettings(seller_id=seller.seller_id))
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("User with this email already exists") from exc
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to register user %s", email)
        raise

    logger.info("Registered %s account %s", role, user.user_id)
    return user, build_token(user)


def login_user(payload: dict) -> tuple[User, str]:
    validate_login(payload)
    email = payload["email"].strip().lower()
    user = User.query.filter(func.lower(User.email) == email).first()
    if user is None:
        raise AuthenticationError("Invalid email or password")
    if user.password_hash is None:
        raise AuthenticationError("Please sign in with Google or reset your password")
    if not check_password_hash(user.password_hash, payload["password"]):
        raise AuthenticationError("Invalid email or password")
    if not user.is_verified:
        raise AuthenticationError("Please verify your email before signing in")
    return user, build_token(user)


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def update_profile(user: User, payload: dict) -> User:
    validate_profile_update(payload)
    try:
        for field in ("first_name", "last_name", "phone"):
            if field in payload:
                value = payload[field]
                setattr(user, field, value.strip() if isinstance(value, str) else value)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update profile for user %s", user.user_id)
        raise
    return user


def delete_account(user: User) -> None:
    """Delete a user who holds no active listings and no live appointments."""
    seller = Seller.query.filter_by(user_id=user.user_id).first()
    if seller is not None:
        active_products = Product.query.filter_by(seller_id=seller.seller_id, is_active=True).count()
        active_services = Service.query.filter_by(seller_id=seller.seller_id, is_active=True).count()
        if active_products or active_services:
            raise ConflictError(
                "Cannot delete account with active products or services. "
                "Please deactivate them first."
            )

    live = Appointment.query.filter(Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES))
    if seller is not None:
        live = live.filter(
            (Appointment.buyer_id == user.user_id) | (Appointment.seller_id == seller.seller_id)
        )
    else:
        live = live.filter(Appointment.buyer_id == user.user_id)
    if live.count():
        raise ConflictError("Cannot delete account with pending or active appointments")

    try:
        db.session.delete(user)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Account still has records that reference it") from exc
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to delete account %s", user.user_id)
        raise
    logger.info("Deleted account %s", user.user_id)
