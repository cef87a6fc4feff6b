"""Seller working hours, time-off and slot lookups."""
from __future__ import annotations

from datetime import date, timedelta

from flask import Blueprint, request

from ..auth import current_seller, roles_required
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Seller
from ..responses import json_payload, success
from ..services import availability, scheduling
from ..validators import (
    parse_bool,
    parse_date,
    parse_datetime,
    validate_time_off,
)

bp = Blueprint("availability", __name__)


def _seller_or_404(seller_id: int) -> Seller:
    seller = db.session.get(Seller, seller_id)
    if seller is None:
        raise NotFoundError("Seller not found")
    return seller


def _date_range_args(default_days: int = 30) -> tuple[date, date]:
    start = parse_date(request.args["start_date"], "start_date") if request.args.get("start_date") else date.today()
    if request.args.get("end_date"):
        end = parse_date(request.args["end_date"], "end_date")
    else:
        end = start + timedelta(days=default_days)
    return start, end


def _slot_to_dict(slot: dict | None) -> dict | None:
    if slot is None:
        return None
    return {
        "date": slot["date"].isoformat(),
        "start_time": slot["start"].isoformat(),
        "end_time": slot["end"].isoformat(),
    }


@bp.get("/seller/<int:seller_id>")
def seller_availability(seller_id: int) -> tuple[dict[str, object], int]:
    _seller_or_404(seller_id)
    return success([row.to_dict() for row in availability.get_seller_availability(seller_id)])


@bp.get("/seller/<int:seller_id>/check")
def check_seller_availability(seller_id: int) -> tuple[dict[str, object], int]:
    """Check whether one window can be booked.
    ---
    tags:
      - Availability
    parameters:
      - name: start_time
        in: query
        type: string
        format: date-time
        required: true
      - name: end_time
        in: query
        type: string
        format: date-time
        required: true
    responses:
      200:
        description: Availability verdict with the reason when unavailable
      400:
        description: Missing or malformed times
    """
    _seller_or_404(seller_id)
    errors = [field for field in ("start_time", "end_time") if not request.args.get(field)]
    if errors:
        raise ValidationError([f"{field} is required" for field in errors])
    start = parse_datetime(request.args["start_time"], "start_time")
    end = parse_datetime(request.args["end_time"], "end_time")
    if end <= start:
        raise ValidationError("End time must be after start time")
    return success(scheduling.check_availability(seller_id, start, end))


@bp.get("/seller/<int:seller_id>/calendar")
def seller_calendar(seller_id: int) -> tuple[dict[str, object], int]:
    _seller_or_404(seller_id)
    start, end = _date_range_args()
    return success(availability.get_seller_calendar(seller_id, start, end))


@bp.get("/seller/<int:seller_id>/timeoff")
def seller_time_off(seller_id: int) -> tuple[dict[str, object], int]:
    _seller_or_404(seller_id)
    return success([entry.to_dict() for entry in availability.get_time_off(seller_id)])


@bp.get("/service/<int:service_id>/next-slot")
def next_slot(service_id: int) -> tuple[dict[str, object], int]:
    """First free window for a service within the look-ahead horizon.
    ---
    tags:
      - Availability
    parameters:
      - name: from_date
        in: query
        type: string
        format: date
      - name: days_ahead
        in: query
        type: integer
    responses:
      200:
        description: The slot, or null with a message when none is free
      404:
        description: Service not found
    """
    from_date = parse_date(request.args["from_date"], "from_date") if request.args.get("from_date") else None
    days_ahead = None
    if request.args.get("days_ahead"):
        try:
            days_ahead = int(request.args["days_ahead"])
        except ValueError as exc:
            raise ValidationError("days_ahead must be an integer") from exc
        if not 1 <= days_ahead <= 90:
            raise ValidationError("days_ahead must be between 1 and 90")

    slot = scheduling.get_next_available_slot(service_id, from_date=from_date, days_ahead=days_ahead)
    if slot is None:
        return success(None, message="No available slots found in the specified time range")
    return success(_slot_to_dict(slot))


@bp.post("/day")
@roles_required("seller")
def set_day() -> tuple[dict[str, object], int]:
    payload = json_payload()
    seller = current_seller()
    row = availability.set_day_availability(
        seller.seller_id,
        payload.get("day_of_week"),
        payload.get("start_time"),
        payload.get("end_time"),
        payload.get("is_available", True),
    )
    return success(row.to_dict(), message="Availability updated successfully")


@bp.post("/weekly")
@roles_required("seller")
def set_weekly() -> tuple[dict[str, object], int]:
    """Replace several weekdays at once; nothing is written unless every row is valid.
    ---
    tags:
      - Availability
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            schedule:
              type: array
              items:
                type: object
                properties:
                  day_of_week:
                    type: integer
                  start_time:
                    type: string
                    example: "09:00"
                  end_time:
                    type: string
                    example: "17:00"
                  is_available:
                    type: boolean
    responses:
      200:
        description: Weekly availability saved
      400:
        description: One or more rows are invalid
    """
    seller = current_seller()
    rows = availability.set_weekly_availability(seller.seller_id, json_payload().get("schedule"))
    return success([row.to_dict() for row in rows], message="Weekly availability updated successfully")


@bp.post("/timeoff")
@roles_required("seller")
def add_time_off() -> tuple[dict[str, object], int]:
    payload = json_payload()
    validate_time_off(payload)
    seller = current_seller()
    time_off = availability.add_time_off(
        seller.seller_id,
        parse_date(payload["start_date"], "start_date"),
        parse_date(payload["end_date"], "end_date"),
        payload.get("reason"),
    )
    return success(time_off.to_dict(), 201, message="Time off added successfully")


@bp.delete("/timeoff/<int:time_off_id>")
@roles_required("seller")
def remove_time_off(time_off_id: int) -> tuple[dict[str, object], int]:
    availability.remove_time_off(time_off_id, current_seller().seller_id)
    return success(None, message="Time off removed successfully")


@bp.get("/my-schedule")
@roles_required("seller")
def my_schedule() -> tuple[dict[str, object], int]:
    seller = current_seller()
    return success([row.to_dict() for row in availability.get_seller_availability(seller.seller_id)])


@bp.get("/my-timeoff")
@roles_required("seller")
def my_time_off() -> tuple[dict[str, object], int]:
    raw = request.args.get("include_inactive")
    include_inactive = parse_bool(raw, "include_inactive") if raw else False
    entries = availability.get_time_off(current_seller().seller_id, include_inactive=include_inactive)
    return success([entry.to_dict() for entry in entries])


@bp.get("/my-calendar")
@roles_required("seller")
def my_calendar() -> tuple[dict[str, object], int]:
    start, end = _date_range_args()
    return success(availability.get_seller_calendar(current_seller().seller_id, start, end))
