"""Slot calculation and conflict checks for seller bookings.

All datetimes here are naive local wall-clock values; ``HH:MM`` availability
strings are combined with a calendar date to produce window bounds. Intervals
are half-open: ``[start, end)``.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import (
    ACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    SellerAvailability,
    SellerTimeOff,
    Service,
)
from ..validators import parse_hhmm

logger = logging.getLogger(__name__)

DEFAULT_STRIDE_MINUTES = 30


def _stride_minutes() -> int:
    return int(current_app.config.get("SLOT_STRIDE_MINUTES", DEFAULT_STRIDE_MINUTES))


def day_of_week_for(day: date) -> int:
    """Weekday index with 0=Sunday, matching ``SellerAvailability.day_of_week``."""
    return (day.weekday() + 1) % 7


def windows_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def round_up_to_stride(moment: datetime, stride_minutes: int) -> datetime:
    """Round ``moment`` up to the next multiple of ``stride_minutes`` past midnight."""
    rounded = moment.replace(second=0, microsecond=0)
    if rounded < moment:
        rounded += timedelta(minutes=1)
    remainder = (rounded.hour * 60 + rounded.minute) % stride_minutes
    if remainder:
        rounded += timedelta(minutes=stride_minutes - remainder)
    return rounded


def find_conflicts(
    seller_id: int,
    start: datetime,
    end: datetime,
    exclude_id: int | None = None,
) -> list[Appointment]:
    """Non-terminal appointments of ``seller_id`` overlapping ``[start, end)``."""
    query = Appointment.query.filter(
        Appointment.seller_id == seller_id,
        Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        Appointment.scheduled_time_start < end,
        Appointment.scheduled_time_end > start,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.appointment_id != exclude_id)
    return query.order_by(Appointment.scheduled_time_start).all()


def is_slot_free(seller_id: int, start: datetime, end: datetime) -> bool:
    return not find_conflicts(seller_id, start, end)


def get_day_availability(seller_id: int, day: date) -> SellerAvailability | None:
    """The seller's recurring row for ``day`` when it is marked available."""
    row = SellerAvailability.query.filter_by(
        seller_id=seller_id, day_of_week=day_of_week_for(day)
    ).first()
    if row is None or not row.is_available:
        return None
    return row


def get_time_off_on(seller_id: int, day: date) -> SellerTimeOff | None:
    return SellerTimeOff.query.filter(
        SellerTimeOff.seller_id == seller_id,
        SellerTimeOff.is_active.is_(True),
        SellerTimeOff.start_date <= day,
        SellerTimeOff.end_date >= day,
    ).first()


def window_bounds(row: SellerAvailability, day: date) -> tuple[datetime, datetime]:
    return (
        datetime.combine(day, parse_hhmm(row.start_time, "start_time")),
        datetime.combine(day, parse_hhmm(row.end_time, "end_time")),
    )


def _load_service(service_id: int) -> Service:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found")
    return service


def _booked_windows(seller_id: int, start: datetime, end: datetime) -> list[tuple[datetime, datetime]]:
    return [
        (appointment.scheduled_time_start, appointment.scheduled_time_end)
        for appointment in find_conflicts(seller_id, start, end)
    ]


def _is_clear(start: datetime, end: datetime, booked: list[tuple[datetime, datetime]]) -> bool:
    return not any(windows_overlap(start, end, b_start, b_end) for b_start, b_end in booked)


def get_next_available_slot(
    service_id: int,
    from_date: date | None = None,
    days_ahead: int | None = None,
    now: datetime | None = None,
) -> dict[str, object] | None:
    """Find the first bookable window for a service.

    Days are scanned in order from ``from_date`` through ``from_date +
    days_ahead``. Within a day, probes start at the window start and advance by
    a fixed stride regardless of the service duration; a probe whose end would
    pass the window end closes the day. Returns ``None`` when the horizon holds
    no free window.
    """
    service = _load_service(service_id)
    now = now or datetime.now()
    from_date = from_date or now.date()
    if days_ahead is None:
        days_ahead = int(current_app.config.get("NEXT_SLOT_DAYS_AHEAD", 30))
    stride = timedelta(minutes=_stride_minutes())
    duration = timedelta(minutes=service.duration_minutes)
    seller_id = service.seller_id

    for offset in range(days_ahead + 1):
        day = from_date + timedelta(days=offset)
        if day < now.date():
            continue
        row = get_day_availability(seller_id, day)
        if row is None or get_time_off_on(seller_id, day) is not None:
            continue

        window_start, window_end = window_bounds(row, day)
        probe = window_start
        if day == now.date():
            probe = max(probe, round_up_to_stride(now, _stride_minutes()))

        booked = _booked_windows(seller_id, window_start, window_end)
        while probe + duration <= window_end:
            if _is_clear(probe, probe + duration, booked):
                return {"date": day, "start": probe, "end": probe + duration}
            probe += stride

    logger.debug("No slot for service %s within %s days of %s", service_id, days_ahead, from_date)
    return None


def get_available_windows(
    service_id: int,
    day: date,
    interval_minutes: int | None = None,
) -> list[dict[str, object]]:
    """Every probe window of ``day`` flagged with whether it can be booked.

    A weekday without an available recurring row has no windows at all. When
    active time-off covers the day every window is flagged unavailable.
    """
    service = _load_service(service_id)
    row = get_day_availability(service.seller_id, day)
    if row is None:
        return []

    stride = timedelta(minutes=interval_minutes or _stride_minutes())
    duration = timedelta(minutes=service.duration_minutes)
    window_start, window_end = window_bounds(row, day)
    on_time_off = get_time_off_on(service.seller_id, day) is not None
    booked = _booked_windows(service.seller_id, window_start, window_end)

    windows = []
    probe = window_start
    while probe + duration <= window_end:
        windows.append(
            {
                "start": probe,
                "end": probe + duration,
                "is_available": not on_time_off and _is_clear(probe, probe + duration, booked),
            }
        )
        probe += stride
    return windows


def check_availability(seller_id: int, start: datetime, end: datetime) -> dict[str, object]:
    """Direct check of one window against hours, time-off and bookings."""
    day = start.date()
    row = get_day_availability(seller_id, day)
    if row is None:
        return {"available": False, "reason": "Seller not available on this day"}

    window_start, window_end = window_bounds(row, day)
    if start < window_start or end > window_end:
        return {"available": False, "reason": "Time is outside seller's available hours"}

    if get_time_off_on(seller_id, day) is not None:
        return {"available": False, "reason": "Seller is on time off during this period"}

    if not is_slot_free(seller_id, start, end):
        return {"available": False, "reason": "Time slot is already booked"}

    return {"available": True, "reason": None}
