"""Appointment booking and lifecycle."""
from __future__ import annotations

from flask import Blueprint, g, request

from ..auth import current_seller, login_required, roles_required
from ..errors import ValidationError
from ..responses import json_payload, paginated, pagination_args, success
from ..services import appointments, scheduling
from ..validators import (
    parse_date,
    parse_datetime,
    validate_appointment,
    validate_message,
    validate_status_update,
)

bp = Blueprint("appointments", __name__)


@bp.post("")
@roles_required("buyer")
def create_appointment() -> tuple[dict[str, object], int]:
    """Book a service window.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            service_id:
              type: integer
            scheduled_time_start:
              type: string
              format: date-time
            scheduled_time_end:
              type: string
              format: date-time
            service_location:
              type: object
            notes:
              type: string
          required:
            - service_id
            - scheduled_time_start
            - scheduled_time_end
    responses:
      201:
        description: Appointment created in pending status
      400:
        description: Invalid payload, wrong duration or the window is taken
      404:
        description: Service not found or inactive
    """
    payload = json_payload()
    validate_appointment(payload)
    appointment = appointments.create_appointment(
        g.current_user.user_id,
        payload["service_id"],
        parse_datetime(payload["scheduled_time_start"], "scheduled_time_start"),
        parse_datetime(payload["scheduled_time_end"], "scheduled_time_end"),
        location=payload.get("service_location"),
        notes=payload.get("notes"),
    )
    return success(
        appointments.get_appointment(appointment.appointment_id).to_dict_detailed(),
        201,
        message="Appointment created successfully",
    )


@bp.get("")
@login_required
def list_appointments() -> tuple[dict[str, object], int]:
    page, limit = pagination_args()
    filters = appointments.parse_filters(request.args, g.current_user)
    items, total = appointments.list_appointments(filters, page, limit)
    return paginated([appointment.to_dict() for appointment in items], total, page, limit)


@bp.get("/upcoming")
@login_required
def upcoming() -> tuple[dict[str, object], int]:
    try:
        limit = min(20, max(1, int(request.args.get("limit", 5))))
    except ValueError as exc:
        raise ValidationError("limit must be an integer") from exc
    items = appointments.get_upcoming_appointments(g.current_user, limit)
    return success([appointment.to_dict() for appointment in items])


@bp.get("/analytics/seller")
@roles_required("seller")
def seller_analytics() -> tuple[dict[str, object], int]:
    period = request.args.get("period", "month")
    return success(appointments.get_seller_analytics(current_seller().seller_id, period))


@bp.get("/service/<int:service_id>/slots")
def service_slots(service_id: int) -> tuple[dict[str, object], int]:
    """Every probe window of a day for a service.
    ---
    tags:
      - Appointments
    parameters:
      - name: date
        in: query
        type: string
        format: date
        required: true
      - name: interval
        in: query
        type: integer
    responses:
      200:
        description: Windows flagged with is_available; empty when the seller has no hours that day
    """
    if not request.args.get("date"):
        raise ValidationError("Date parameter is required")
    day = parse_date(request.args["date"], "date")
    interval = None
    if request.args.get("interval"):
        try:
            interval = int(request.args["interval"])
        except ValueError as exc:
            raise ValidationError("interval must be an integer") from exc
        if not 5 <= interval <= 240:
            raise ValidationError("interval must be between 5 and 240 minutes")

    windows = scheduling.get_available_windows(service_id, day, interval)
    return success(
        [
            {
                "start_time": window["start"].isoformat(),
                "end_time": window["end"].isoformat(),
                "is_available": window["is_available"],
            }
            for window in windows
        ],
        date=day.isoformat(),
    )


@bp.get("/<int:appointment_id>")
@login_required
def get_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    appointment = appointments.get_appointment(appointment_id)
    appointments.ensure_can_view(appointment, g.current_user)
    return success(appointment.to_dict_detailed())


@bp.put("/<int:appointment_id>/status")
@login_required
def update_status(appointment_id: int) -> tuple[dict[str, object], int]:
    payload = json_payload()
    validate_status_update(payload)
    appointment = appointments.get_appointment(appointment_id)
    appointments.ensure_can_update_status(appointment, g.current_user)
    appointments.update_status(
        appointment_id, payload["status"], g.current_user.user_id, payload.get("notes")
    )
    return success(
        appointments.get_appointment(appointment_id).to_dict_detailed(),
        message="Appointment status updated successfully",
    )


@bp.put("/<int:appointment_id>/cancel")
@login_required
def cancel_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    appointment = appointments.get_appointment(appointment_id)
    appointments.ensure_can_cancel(appointment, g.current_user)
    appointments.cancel_appointment(
        appointment_id, g.current_user.user_id, json_payload().get("reason")
    )
    return success(
        appointments.get_appointment(appointment_id).to_dict_detailed(),
        message="Appointment cancelled successfully",
    )


@bp.get("/<int:appointment_id>/messages")
@login_required
def appointment_messages(appointment_id: int) -> tuple[dict[str, object], int]:
    appointment = appointments.get_appointment(appointment_id)
    appointments.ensure_can_view(appointment, g.current_user)
    messages = appointments.get_appointment_messages(appointment, g.current_user)
    return success([message.to_dict() for message in messages])


@bp.post("/<int:appointment_id>/messages")
@login_required
def send_appointment_message(appointment_id: int) -> tuple[dict[str, object], int]:
    payload = json_payload()
    validate_message(payload)
    appointment = appointments.get_appointment(appointment_id)
    message = appointments.send_appointment_message(appointment, g.current_user, payload["message"])
    return success(message.to_dict(), 201, message="Message sent successfully")
