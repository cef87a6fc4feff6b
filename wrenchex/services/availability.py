"""Seller weekly hours and time-off ranges."""
from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    ACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    SellerAvailability,
    SellerTimeOff,
)
from ..validators import format_hhmm, parse_hhmm, validate_availability_row

logger = logging.getLogger(__name__)


def _upsert_day(seller_id: int, row: dict) -> SellerAvailability:
    day = row["day_of_week"]
    start_time = format_hhmm(parse_hhmm(row["start_time"], "start_time"))
    end_time = format_hhmm(parse_hhmm(row["end_time"], "end_time"))
    is_available = row.get("is_available", True)

    availability = SellerAvailability.query.filter_by(seller_id=seller_id, day_of_week=day).first()
    if availability is None:
        availability = SellerAvailability(seller_id=seller_id, day_of_week=day)
        db.session.add(availability)
    availability.start_time = start_time
    availability.end_time = end_time
    availability.is_available = is_available
    return availability


def set_day_availability(
    seller_id: int,
    day_of_week: int,
    start_time: str,
    end_time: str,
    is_available: bool = True,
) -> SellerAvailability:
    row = {
        "day_of_week": day_of_week,
        "start_time": start_time,
        "end_time": end_time,
        "is_available": is_available,
    }
    errors = validate_availability_row(row)
    if errors:
        raise ValidationError(errors)

    try:
        availability = _upsert_day(seller_id, row)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to set availability for seller %s", seller_id)
        raise
    return availability


def set_weekly_availability(seller_id: int, schedule: list[dict]) -> list[SellerAvailability]:
    """Validate every entry, then write all days in one transaction."""
    if not isinstance(schedule, list) or not schedule:
        raise ValidationError("schedule must be a non-empty list")

    errors: list[str] = []
    seen: set[int] = set()
    for index, row in enumerate(schedule):
        errors.extend(validate_availability_row(row, f"schedule[{index}]"))
        day = row.get("day_of_week") if isinstance(row, dict) else None
        if isinstance(day, int):
            if day in seen:
                errors.append(f"schedule[{index}]: day_of_week {day} appears more than once")
            seen.add(day)
    if errors:
        raise ValidationError(errors)

    try:
        rows = [_upsert_day(seller_id, row) for row in schedule]
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to set weekly availability for seller %s", seller_id)
        raise
    return sorted(rows, key=lambda availability: availability.day_of_week)


def get_seller_availability(seller_id: int) -> list[SellerAvailability]:
    return (
        SellerAvailability.query.filter_by(seller_id=seller_id)
        .order_by(SellerAvailability.day_of_week)
        .all()
    )


def add_time_off(
    seller_id: int,
    start_date: date,
    end_date: date,
    reason: str | None = None,
) -> SellerTimeOff:
    """Block out an inclusive date range.

    Refused when it overlaps another active range or when a non-terminal
    appointment is scheduled on any day inside it.
    """
    if end_date < start_date:
        raise ValidationError("end_date must be on or after start_date")

    overlapping = SellerTimeOff.query.filter(
        SellerTimeOff.seller_id == seller_id,
        SellerTimeOff.is_active.is_(True),
        SellerTimeOff.start_date <= end_date,
        SellerTimeOff.end_date >= start_date,
    ).first()
    if overlapping is not None:
        raise ConflictError("Time off period overlaps with existing time off")

    booked = Appointment.query.filter(
        Appointment.seller_id == seller_id,
        Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        Appointment.scheduled_date >= start_date,
        Appointment.scheduled_date <= end_date,
    ).count()
    if booked:
        raise ConflictError(
            "Cannot add time off when there are pending or confirmed appointments during this period"
        )

    time_off = SellerTimeOff(
        seller_id=seller_id,
        start_date=start_date,
        end_date=end_date,
        reason=(reason or "").strip() or None,
        is_active=True,
    )
    try:
        db.session.add(time_off)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to add time off for seller %s", seller_id)
        raise
    return time_off


def get_time_off(seller_id: int, include_inactive: bool = False) -> list[SellerTimeOff]:
    query = SellerTimeOff.query.filter_by(seller_id=seller_id)
    if not include_inactive:
        query = query.filter(SellerTimeOff.is_active.is_(True))
    return query.order_by(SellerTimeOff.start_date).all()


def remove_time_off(time_off_id: int, seller_id: int) -> None:
    time_off = SellerTimeOff.query.filter_by(time_off_id=time_off_id, seller_id=seller_id).first()
    if time_off is None:
        raise NotFoundError("Time off not found or you do not have permission to remove it")

    try:
        time_off.is_active = False
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to remove time off %s", time_off_id)
        raise


def get_seller_calendar(seller_id: int, start_date: date, end_date: date) -> dict[str, object]:
    if end_date < start_date:
        raise ValidationError("end_date must be on or after start_date")

    appointments = (
        Appointment.query.filter(
            Appointment.seller_id == seller_id,
            Appointment.scheduled_date >= start_date,
            Appointment.scheduled_date <= end_date,
        )
        .order_by(Appointment.scheduled_time_start)
        .all()
    )
    time_off = (
        SellerTimeOff.query.filter(
            SellerTimeOff.seller_id == seller_id,
            SellerTimeOff.is_active.is_(True),
            SellerTimeOff.start_date <= end_date,
            SellerTimeOff.end_date >= start_date,
        )
        .order_by(SellerTimeOff.start_date)
        .all()
    )
    return {
        "appointments": [appointment.to_dict() for appointment in appointments],
        "time_off": [entry.to_dict() for entry in time_off],
        "availability": [row.to_dict() for row in get_seller_availability(seller_id)],
        "date_range": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
    }
