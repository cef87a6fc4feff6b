"""Appointment booking, status lifecycle and appointment-scoped messages."""
from __future__ import annotations

import logging
import secrets
import string
import time
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import joinedload

from ..errors import (
    AuthorizationError,
    ConflictError,
    InvalidStatusTransition,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    ACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    AppointmentMessage,
    AppointmentStatusHistory,
    Seller,
    SellerAvailability,
    Service,
    User,
    utc_now,
)
from ..validators import parse_date
from . import scheduling

logger = logging.getLogger(__name__)

# Forward-only lifecycle; completed and cancelled are terminal.
STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("confirmed", "cancelled"),
    "confirmed": ("in_progress", "cancelled"),
    "in_progress": ("completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}

ANALYTICS_PERIODS = ("today", "week", "month", "year")

_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


def generate_appointment_number() -> str:
    suffix = "".join(secrets.choice(_NUMBER_ALPHABET) for _ in range(5))
    return f"APT-{int(time.time() * 1000)}-{suffix}"


def can_transition(current: str, requested: str) -> bool:
    return requested in STATUS_TRANSITIONS.get(current, ())


def _check_recurring_hours(seller_id: int, start: datetime, end: datetime) -> None:
    """Recurring hours only bind bookings when enforcement is switched on.

    A weekday without any row stays open for booking either way, so sellers
    can take appointments before they have configured a schedule.
    """
    row = SellerAvailability.query.filter_by(
        seller_id=seller_id, day_of_week=scheduling.day_of_week_for(start.date())
    ).first()
    if row is None:
        return

    window_start, window_end = scheduling.window_bounds(row, start.date())
    inside = row.is_available and window_start <= start and end <= window_end
    if inside:
        return
    if current_app.config.get("ENFORCE_BOOKING_AVAILABILITY"):
        raise ConflictError("Seller is not available at the selected time")
    logger.info(
        "Booking for seller %s at %s falls outside recurring availability %s-%s",
        seller_id,
        start.isoformat(),
        row.start_time,
        row.end_time,
    )


def _lock_seller(seller_id: int) -> None:
    """Hold the seller's booking lock until the surrounding transaction ends.

    SQLite ignores ``FOR UPDATE``, so there the database write lock is taken
    up front with ``BEGIN IMMEDIATE``. A connection already inside a write
    transaction holds that lock.
    """
    connection = db.session.connection()
    if connection.dialect.name == "sqlite":
        if not connection.connection.driver_connection.in_transaction:
            connection.exec_driver_sql("BEGIN IMMEDIATE")
        return
    db.session.query(Seller).filter_by(seller_id=seller_id).with_for_update().one()


def create_appointment(
    buyer_id: int,
    service_id: int,
    start: datetime,
    end: datetime,
    location: dict | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Appointment:
    """Book ``[start, end)`` of a service for a buyer.

    The appointment and its first history row are written in one transaction.
    The seller is locked for the duration of the overlap check, and the
    partial unique index on active (seller, start) pairs rejects an identical
    window that slips past a concurrent check.
    """
    service = Service.query.filter_by(service_id=service_id, is_active=True).first()
    if service is None:
        raise NotFoundError("Service not found or is inactive")
    if not service.seller.is_approved:
        raise ConflictError("This seller is not approved to take appointments")

    if end - start != timedelta(minutes=service.duration_minutes):
        raise ValidationError(
            f"Appointment duration must be {service.duration_minutes} minutes for this service"
        )
    if start <= (now or datetime.now()):
        raise ValidationError("Appointment must be scheduled in the future")

    seller_id = service.seller_id
    if scheduling.get_time_off_on(seller_id, start.date()) is not None:
        raise ConflictError("Seller is on time off during this period")
    _check_recurring_hours(seller_id, start, end)

    try:
        _lock_seller(seller_id)
        if scheduling.find_conflicts(seller_id, start, end):
            raise ConflictError("The selected time slot is not available")

        appointment = Appointment(
            appointment_number=generate_appointment_number(),
            buyer_id=buyer_id,
            seller_id=seller_id,
            service_id=service.service_id,
            status="pending",
            scheduled_date=start.date(),
            scheduled_time_start=start,
            scheduled_time_end=end,
            total_amount=service.price,
            service_location=location,
            notes=(notes or "").strip() or None,
        )
        db.session.add(appointment)
        db.session.flush()
        db.session.add(
            AppointmentStatusHistory(
                appointment_id=appointment.appointment_id,
                status="pending",
                notes="Appointment created",
                changed_by=buyer_id,
            )
        )
        db.session.commit()
    except ConflictError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Concurrent booking rejected for seller %s at %s", seller_id, start, exc_info=exc)
        raise ConflictError("The selected time slot is not available") from exc
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to create appointment for service %s", service_id)
        raise

    logger.info("Created appointment %s for seller %s", appointment.appointment_number, seller_id)
    return appointment


def get_appointment(appointment_id: int) -> Appointment:
    appointment = (
        Appointment.query.options(
            joinedload(Appointment.buyer),
            joinedload(Appointment.seller),
            joinedload(Appointment.service),
        )
        .filter_by(appointment_id=appointment_id)
        .first()
    )
    if appointment is None:
        raise NotFoundError("Appointment not found")
    return appointment


def is_participant(appointment: Appointment, user: User) -> bool:
    if appointment.buyer_id == user.user_id:
        return True
    return appointment.seller is not None and appointment.seller.user_id == user.user_id


def ensure_can_view(appointment: Appointment, user: User) -> None:
    if user.role != "admin" and not is_participant(appointment, user):
        raise AuthorizationError("You are not authorized to view this appointment")


def ensure_can_update_status(appointment: Appointment, user: User) -> None:
    if user.role == "admin":
        return
    if appointment.seller is None or appointment.seller.user_id != user.user_id:
        raise AuthorizationError("You are not authorized to update this appointment")


def ensure_can_cancel(appointment: Appointment, user: User) -> None:
    if user.role != "admin" and not is_participant(appointment, user):
        raise AuthorizationError("You are not authorized to cancel this appointment")


def update_status(
    appointment_id: int,
    new_status: str,
    actor_id: int,
    notes: str | None = None,
) -> Appointment:
    """Move an appointment along its lifecycle and append one history row."""
    appointment = (
        db.session.query(Appointment)
        .filter_by(appointment_id=appointment_id)
        .with_for_update()
        .first()
    )
    if appointment is None:
        raise NotFoundError("Appointment not found")
    if not can_transition(appointment.status, new_status):
        raise InvalidStatusTransition(appointment.status, new_status)

    previous = appointment.status
    try:
        appointment.status = new_status
        db.session.add(
            AppointmentStatusHistory(
                appointment_id=appointment.appointment_id,
                status=new_status,
                notes=notes,
                changed_by=actor_id,
                changed_at=utc_now(),
            )
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update appointment %s status", appointment_id)
        raise

    logger.info("Appointment %s moved from %s to %s", appointment_id, previous, new_status)
    return appointment


def cancel_appointment(appointment_id: int, actor_id: int, reason: str | None = None) -> Appointment:
    reason = (reason or "").strip()
    note = f"Cancelled: {reason}" if reason else "Appointment cancelled"
    return update_status(appointment_id, "cancelled", actor_id, note)


def list_appointments(filters: dict[str, object], page: int = 1, limit: int = 10) -> tuple[list[Appointment], int]:
    query = Appointment.query.options(
        joinedload(Appointment.buyer),
        joinedload(Appointment.seller),
        joinedload(Appointment.service),
    )
    for field in ("status", "seller_id", "buyer_id", "service_id"):
        value = filters.get(field)
        if value is not None:
            query = query.filter(getattr(Appointment, field) == value)
    if filters.get("start_date") is not None:
        query = query.filter(Appointment.scheduled_date >= filters["start_date"])
    if filters.get("end_date") is not None:
        query = query.filter(Appointment.scheduled_date <= filters["end_date"])

    total = query.count()
    items = (
        query.order_by(Appointment.scheduled_time_start.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def get_upcoming_appointments(user: User, limit: int = 5, now: datetime | None = None) -> list[Appointment]:
    query = Appointment.query.filter(
        Appointment.scheduled_time_start >= (now or datetime.now()),
        Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
    )
    if user.role == "seller":
        seller = Seller.query.filter_by(user_id=user.user_id).first()
        if seller is None:
            return []
        query = query.filter(Appointment.seller_id == seller.seller_id)
    else:
        query = query.filter(Appointment.buyer_id == user.user_id)
    return query.order_by(Appointment.scheduled_time_start).limit(limit).all()


def period_start(period: str, now: datetime) -> datetime:
    if period == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)


def get_seller_analytics(seller_id: int, period: str = "month") -> dict[str, object]:
    if period not in ANALYTICS_PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(ANALYTICS_PERIODS)}")

    since = period_start(period, utc_now())
    base = Appointment.query.filter(
        Appointment.seller_id == seller_id,
        Appointment.created_at >= since,
    )
    total = base.count()
    revenue = (
        db.session.query(func.coalesce(func.sum(Appointment.total_amount), 0))
        .filter(
            Appointment.seller_id == seller_id,
            Appointment.status == "completed",
            Appointment.created_at >= since,
        )
        .scalar()
    )
    breakdown = dict(
        db.session.query(Appointment.status, func.count(Appointment.appointment_id))
        .filter(Appointment.seller_id == seller_id, Appointment.created_at >= since)
        .group_by(Appointment.status)
        .all()
    )
    recent = base.order_by(Appointment.scheduled_time_start.desc()).limit(5).all()
    return {
        "period": period,
        "total_appointments": total,
        "total_revenue": float(revenue or 0),
        "status_breakdown": breakdown,
        "recent_appointments": [appointment.to_dict() for appointment in recent],
    }


def send_appointment_message(appointment: Appointment, sender: User, text: str) -> AppointmentMessage:
    if not is_participant(appointment, sender):
        raise AuthorizationError("Only participants can message on this appointment")

    if sender.user_id == appointment.buyer_id:
        receiver_id = appointment.seller.user_id
    else:
        receiver_id = appointment.buyer_id

    message = AppointmentMessage(
        appointment_id=appointment.appointment_id,
        sender_id=sender.user_id,
        receiver_id=receiver_id,
        message=text.strip(),
    )
    try:
        db.session.add(message)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to save message on appointment %s", appointment.appointment_id)
        raise
    return message


def get_appointment_messages(appointment: Appointment, reader: User) -> list[AppointmentMessage]:
    """Messages oldest first; those addressed to ``reader`` are marked read."""
    messages = (
        AppointmentMessage.query.filter_by(appointment_id=appointment.appointment_id)
        .order_by(AppointmentMessage.created_at, AppointmentMessage.message_id)
        .all()
    )
    unread = [m for m in messages if m.receiver_id == reader.user_id and not m.is_read]
    if unread:
        try:
            for message in unread:
                message.is_read = True
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to mark messages read on appointment %s", appointment.appointment_id)
            raise
    return messages


def parse_filters(args, user: User) -> dict[str, object]:
    """Listing filters from query args, narrowed to what ``user`` may see."""
    filters: dict[str, object] = {}
    status = args.get("status")
    if status:
        if status not in STATUS_TRANSITIONS:
            raise ValidationError(f"status must be one of: {', '.join(STATUS_TRANSITIONS)}")
        filters["status"] = status
    for field in ("seller_id", "buyer_id", "service_id"):
        value = args.get(field)
        if value:
            try:
                filters[field] = int(value)
            except ValueError as exc:
                raise ValidationError(f"{field} must be an integer") from exc
    for field in ("start_date", "end_date"):
        if args.get(field):
            filters[field] = parse_date(args[field], field)

    if user.role == "buyer":
        filters["buyer_id"] = user.user_id
    elif user.role == "seller":
        seller = Seller.query.filter_by(user_id=user.user_id).first()
        if seller is None:
            raise AuthorizationError("Seller profile not found")
        filters["seller_id"] = seller.seller_id
    return filters

