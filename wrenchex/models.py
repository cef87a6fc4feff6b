"""Database models for the WrenchEX backend."""
from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


USER_ROLES = ("admin", "seller", "buyer")

APPOINTMENT_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")
# Statuses that hold a seller's time; terminal ones never conflict.
ACTIVE_APPOINTMENT_STATUSES = ("pending", "confirmed", "in_progress")

MESSAGE_TYPES = ("text", "image", "price_offer")

_ACTIVE_STATUS_SQL = "status IN ('pending', 'confirmed', 'in_progress')"


class User(db.Model):
    __tablename__ = "users"
    __table_args__ = (
        # A user signs in with a password or an external identity, never both.
        db.CheckConstraint(
            "(password_hash IS NULL) <> (google_id IS NULL)",
            name="ck_users_single_credential",
        ),
    )

    user_id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255))
    google_id = db.Column(db.String(255), unique=True)
    role = db.Column(
        db.Enum(
            *USER_ROLES,
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="buyer",
    )
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(30))
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    seller = db.relationship(
        "Seller", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
        }

    def to_dict(self) -> dict[str, object]:
        data = self.to_dict_basic()
        data.update(
            {
                "phone": self.phone,
                "is_verified": bool(self.is_verified),
                "has_password": self.password_hash is not None,
                "seller": self.seller.to_dict_basic() if self.seller else None,
                "created_at": _iso(self.created_at),
            }
        )
        return data


class Seller(db.Model):
    """Shop profile attached to a user with the seller role."""

    __tablename__ = "sellers"

    seller_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.user_id", ondelete="CASCADE"), unique=True, nullable=False
    )
    shop_name = db.Column(db.String(150), nullable=False)
    shop_description = db.Column(db.Text)
    shop_address = db.Column(db.String(255), nullable=False)
    city = db.Column(db.String(100), nullable=False)
    area = db.Column(db.String(100), nullable=False)
    business_type = db.Column(db.String(100))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    is_approved = db.Column(db.Boolean, nullable=False, default=False)
    rating_average = db.Column(db.Float, default=0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="seller")
    chat_settings = db.relationship(
        "SellerChatSettings", back_populates="seller", uselist=False, cascade="all, delete-orphan"
    )

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.seller_id,
            "user_id": self.user_id,
            "shop_name": self.shop_name,
            "city": self.city,
            "area": self.area,
            "is_approved": bool(self.is_approved),
        }

    def to_dict(self) -> dict[str, object]:
        data = self.to_dict_basic()
        data.update(
            {
                "shop_description": self.shop_description,
                "shop_address": self.shop_address,
                "business_type": self.business_type,
                "latitude": self.latitude,
                "longitude": self.longitude,
                "rating_average": self.rating_average or 0,
                "rating_count": self.rating_count,
                "user": self.user.to_dict_basic() if self.user else None,
                "created_at": _iso(self.created_at),
                "updated_at": _iso(self.updated_at),
            }
        )
        return data


class Category(db.Model):
    __tablename__ = "categories"

    category_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    parent_id = db.Column(
        db.Integer, db.ForeignKey("categories.category_id", ondelete="SET NULL"), nullable=True
    )
    image_url = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    parent = db.relationship("Category", remote_side=[category_id], back_populates="children")
    children = db.relationship("Category", back_populates="parent")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.category_id,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "image_url": self.image_url,
            "is_active": bool(self.is_active),
            "created_at": _iso(self.created_at),
        }


class Product(db.Model):
    __tablename__ = "products"

    product_id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(
        db.Integer, db.ForeignKey("sellers.seller_id", ondelete="CASCADE"), nullable=False
    )
    category_id = db.Column(db.Integer, db.ForeignKey("categories.category_id"), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    specifications = db.Column(db.JSON, nullable=True)
    price = db.Column(db.Float, nullable=False)
    images = db.Column(db.JSON, nullable=True, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_flagged = db.Column(db.Boolean, nullable=False, default=False)
    rating_average = db.Column(db.Float, default=0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    seller = db.relationship("Seller")
    category = db.relationship("Category")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.product_id,
            "seller_id": self.seller_id,
            "category_id": self.category_id,
            "title": self.title,
            "description": self.description,
            "specifications": self.specifications,
            "price": self.price,
            "images": self.images or [],
            "is_active": bool(self.is_active),
            "is_flagged": bool(self.is_flagged),
            "seller": self.seller.to_dict_basic() if self.seller else None,
            "category": {"id": self.category.category_id, "name": self.category.name}
            if self.category
            else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Service(db.Model):
    """Bookable service; its duration drives scheduling."""

    __tablename__ = "services"
    __table_args__ = (
        db.CheckConstraint("duration_minutes > 0", name="ck_services_positive_duration"),
    )

    service_id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(
        db.Integer, db.ForeignKey("sellers.seller_id", ondelete="CASCADE"), nullable=False
    )
    category_id = db.Column(db.Integer, db.ForeignKey("categories.category_id"), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    price = db.Column(db.Float, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    is_mobile_service = db.Column(db.Boolean, nullable=False, default=False)
    images = db.Column(db.JSON, nullable=True, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    rating_average = db.Column(db.Float, default=0)
    rating_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    seller = db.relationship("Seller")
    category = db.relationship("Category")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "seller_id": self.seller_id,
            "category_id": self.category_id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "duration_minutes": self.duration_minutes,
            "is_mobile_service": bool(self.is_mobile_service),
            "images": self.images or [],
            "is_active": bool(self.is_active),
            "seller": self.seller.to_dict_basic() if self.seller else None,
            "category": {"id": self.category.category_id, "name": self.category.name}
            if self.category
            else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class SellerAvailability(db.Model):
    """Recurring weekly open hours, one row per seller and weekday."""

    __tablename__ = "seller_availability"
    __table_args__ = (
        db.UniqueConstraint("seller_id", "day_of_week", name="uq_seller_availability_day"),
    )

    availability_id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(
        db.Integer, db.ForeignKey("sellers.seller_id", ondelete="CASCADE"), nullable=False
    )
    day_of_week = db.Column(db.Integer, nullable=False)  # 0=Sunday, 1=Monday, etc.
    start_time = db.Column(db.String(5), nullable=False)  # "HH:MM"
    end_time = db.Column(db.String(5), nullable=False)
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    seller = db.relationship("Seller")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.availability_id,
            "seller_id": self.seller_id,
            "day_of_week": self.day_of_week,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "is_available": bool(self.is_available),
        }


class SellerTimeOff(db.Model):
    """Inclusive date range during which a seller takes no bookings."""

    __tablename__ = "seller_time_off"

    time_off_id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(
        db.Integer, db.ForeignKey("sellers.seller_id", ondelete="CASCADE"), nullable=False
    )
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    reason = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    seller = db.relationship("Seller")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.time_off_id,
            "seller_id": self.seller_id,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "reason": self.reason,
            "is_active": bool(self.is_active),
        }


class Appointment(db.Model):
    __tablename__ = "appointments"
    __table_args__ = (
        # Storage-level guard: two live bookings of one seller cannot share a start.
        db.Index(
            "uq_appointments_seller_active_start",
            "seller_id",
            "scheduled_time_start",
            unique=True,
            postgresql_where=db.text(_ACTIVE_STATUS_SQL),
            sqlite_where=db.text(_ACTIVE_STATUS_SQL),
        ),
        db.CheckConstraint(
            "scheduled_time_end > scheduled_time_start", name="ck_appointments_window"
        ),
    )

    appointment_id = db.Column(db.Integer, primary_key=True)
    appointment_number = db.Column(db.String(40), unique=True, nullable=False)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.seller_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    status = db.Column(
        db.Enum(
            *APPOINTMENT_STATUSES,
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    scheduled_date = db.Column(db.Date, nullable=False)
    scheduled_time_start = db.Column(db.DateTime, nullable=False, index=True)
    scheduled_time_end = db.Column(db.DateTime, nullable=False)
    total_amount = db.Column(db.Float, nullable=False)
    service_location = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    buyer = db.relationship("User")
    seller = db.relationship("Seller")
    service = db.relationship("Service")
    status_history = db.relationship(
        "AppointmentStatusHistory",
        back_populates="appointment",
        order_by=lambda: [
            AppointmentStatusHistory.changed_at.desc(),
            AppointmentStatusHistory.history_id.desc(),
        ],
        cascade="all, delete-orphan",
    )
    messages = db.relationship(
        "AppointmentMessage",
        back_populates="appointment",
        order_by=lambda: [
            AppointmentMessage.created_at.desc(),
            AppointmentMessage.message_id.desc(),
        ],
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.appointment_id,
            "appointment_number": self.appointment_number,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "service_id": self.service_id,
            "status": self.status,
            "scheduled_date": _iso(self.scheduled_date),
            "scheduled_time_start": _iso(self.scheduled_time_start),
            "scheduled_time_end": _iso(self.scheduled_time_end),
            "total_amount": self.total_amount,
            "service_location": self.service_location,
            "notes": self.notes,
            "buyer": {
                "id": self.buyer.user_id,
                "first_name": self.buyer.first_name,
                "last_name": self.buyer.last_name,
                "email": self.buyer.email,
            }
            if self.buyer
            else None,
            "seller": self.seller.to_dict_basic() if self.seller else None,
            "service": {
                "id": self.service.service_id,
                "title": self.service.title,
                "duration_minutes": self.service.duration_minutes,
                "is_mobile_service": bool(self.service.is_mobile_service),
            }
            if self.service
            else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def to_dict_detailed(self) -> dict[str, object]:
        data = self.to_dict()
        data["status_history"] = [entry.to_dict() for entry in self.status_history]
        data["messages"] = [message.to_dict() for message in self.messages]
        return data


class AppointmentStatusHistory(db.Model):
    """Append-only audit row for every appointment status change."""

    __tablename__ = "appointment_status_history"

    history_id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(
        db.Integer,
        db.ForeignKey("appointments.appointment_id", ondelete="CASCADE"),
        nullable=False,
    )
    status = db.Column(
        db.Enum(
            *APPOINTMENT_STATUSES,
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    notes = db.Column(db.Text)
    changed_by = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    changed_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    appointment = db.relationship("Appointment", back_populates="status_history")
    changed_by_user = db.relationship("User")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.history_id,
            "status": self.status,
            "notes": self.notes,
            "changed_by": self.changed_by,
            "changed_by_name": self.changed_by_user.full_name if self.changed_by_user else None,
            "changed_at": _iso(self.changed_at),
        }


class AppointmentMessage(db.Model):
    __tablename__ = "appointment_messages"

    message_id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(
        db.Integer,
        db.ForeignKey("appointments.appointment_id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    receiver_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    appointment = db.relationship("Appointment", back_populates="messages")
    sender = db.relationship("User", foreign_keys=[sender_id])

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.message_id,
            "appointment_id": self.appointment_id,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "sender_name": self.sender.full_name if self.sender else None,
            "message": self.message,
            "is_read": bool(self.is_read),
            "created_at": _iso(self.created_at),
        }


class ProductChat(db.Model):
    """One conversation per (product, buyer) pair."""

    __tablename__ = "product_chats"
    __table_args__ = (
        db.UniqueConstraint("product_id", "buyer_id", name="uq_product_chats_product_buyer"),
    )

    chat_id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer, db.ForeignKey("products.product_id", ondelete="CASCADE"), nullable=False
    )
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.seller_id"), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    product = db.relationship("Product")
    buyer = db.relationship("User")
    seller = db.relationship("Seller")
    messages = db.relationship(
        "ProductMessage",
        back_populates="chat",
        order_by=lambda: [ProductMessage.created_at, ProductMessage.message_id],
        cascade="all, delete-orphan",
    )

    @property
    def seller_user_id(self) -> int | None:
        return self.seller.user_id if self.seller else None

    def participant_ids(self) -> tuple[int, int | None]:
        return self.buyer_id, self.seller_user_id

    def to_dict(self, include_messages: bool = False) -> dict[str, object]:
        data = {
            "id": self.chat_id,
            "product_id": self.product_id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "seller_user_id": self.seller_user_id,
            "is_active": bool(self.is_active),
            "product": {
                "id": self.product.product_id,
                "title": self.product.title,
                "price": self.product.price,
                "images": self.product.images or [],
            }
            if self.product
            else None,
            "buyer": {
                "id": self.buyer.user_id,
                "first_name": self.buyer.first_name,
                "last_name": self.buyer.last_name,
            }
            if self.buyer
            else None,
            "seller": self.seller.to_dict_basic() if self.seller else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_messages:
            data["messages"] = [message.to_dict() for message in self.messages]
        return data


class ProductMessage(db.Model):
    __tablename__ = "product_messages"

    message_id = db.Column(db.Integer, primary_key=True)
    chat_id = db.Column(
        db.Integer, db.ForeignKey("product_chats.chat_id", ondelete="CASCADE"), nullable=False
    )
    sender_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    message = db.Column(db.Text, nullable=False)
    message_type = db.Column(
        db.Enum(
            *MESSAGE_TYPES,
            name="message_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="text",
    )
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    chat = db.relationship("ProductChat", back_populates="messages")
    sender = db.relationship("User")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.message_id,
            "chat_id": self.chat_id,
            "sender_id": self.sender_id,
            "sender_name": self.sender.full_name if self.sender else None,
            "message": self.message,
            "message_type": self.message_type,
            "is_read": bool(self.is_read),
            "created_at": _iso(self.created_at),
        }


class SellerChatSettings(db.Model):
    __tablename__ = "seller_chat_settings"

    settings_id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey("sellers.seller_id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    show_phone = db.Column(db.Boolean, nullable=False, default=False)
    auto_reply_text = db.Column(db.Text)
    is_online = db.Column(db.Boolean, nullable=False, default=False)
    last_seen = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    seller = db.relationship("Seller", back_populates="chat_settings")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.settings_id,
            "seller_id": self.seller_id,
            "show_phone": bool(self.show_phone),
            "auto_reply_text": self.auto_reply_text,
            "is_online": bool(self.is_online),
            "last_seen": _iso(self.last_seen),
        }
