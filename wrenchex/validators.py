"""Request payload parsing.

Every ``validate_*`` helper collects all violations before raising a single
:class:`ValidationError`, so a client sees the full list in one response.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time

from .errors import ValidationError
from .models import APPOINTMENT_STATUSES, MESSAGE_TYPES, USER_ROLES

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")
HHMM_PATTERN = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*])")

LOCATION_TYPES = ("in_shop", "mobile", "customer_location")
# Admin accounts are provisioned out of band.
REGISTRATION_ROLES = tuple(role for role in USER_ROLES if role != "admin")


def parse_hhmm(value: object, field: str = "time") -> time:
    if not isinstance(value, str) or not HHMM_PATTERN.match(value.strip()):
        raise ValidationError(f"{field} must be in HH:MM format")
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def format_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def parse_date(value: object, field: str = "date") -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError as exc:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format") from exc


def parse_datetime(value: object, field: str = "datetime") -> datetime:
    """Parse an ISO 8601 string into a naive local datetime.

    Offsets are dropped after conversion to local time so that stored values
    compare directly with ``HH:MM`` availability windows.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError as exc:
            raise ValidationError(f"{field} must be a valid ISO format datetime") from exc
    else:
        raise ValidationError(f"{field} must be a valid ISO format datetime")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def parse_bool(value: object, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in {"true", "false", "1", "0"}:
        return value.lower() in {"true", "1"}
    raise ValidationError(f"{field} must be a boolean")


def _check_length(errors: list[str], payload: dict, field: str, low: int, high: int,
                  required: bool = True) -> None:
    value = payload.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            errors.append(f"{field} is required")
        return
    if not isinstance(value, str):
        errors.append(f"{field} must be a string")
        return
    if not low <= len(value.strip()) <= high:
        errors.append(f"{field} must be between {low} and {high} characters")


def _check_number(errors: list[str], payload: dict, field: str, low: float | None = None,
                  high: float | None = None, required: bool = True,
                  integer: bool = False) -> None:
    value = payload.get(field)
    if value is None:
        if required:
            errors.append(f"{field} is required")
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errors.append(f"{field} must be a number")
        return
    if integer and int(value) != value:
        errors.append(f"{field} must be an integer")
        return
    if low is not None and value < low:
        errors.append(f"{field} must be at least {low}")
    if high is not None and value > high:
        errors.append(f"{field} must be at most {high}")


def _check_images(errors: list[str], payload: dict, limit: int) -> None:
    images = payload.get("images")
    if images is None:
        return
    if not isinstance(images, list) or not all(isinstance(item, str) for item in images):
        errors.append("images must be a list of URLs")
    elif len(images) > limit:
        errors.append(f"images cannot contain more than {limit} entries")


def _raise(errors: list[str]) -> None:
    if errors:
        raise ValidationError(errors)


def validate_registration(payload: dict) -> None:
    errors: list[str] = []
    email = payload.get("email")
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
        errors.append("email must be a valid email address")
    password = payload.get("password")
    if not isinstance(password, str) or len(password) < 8:
        errors.append("password must be at least 8 characters")
    elif not PASSWORD_PATTERN.match(password):
        errors.append(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character"
        )
    _check_length(errors, payload, "first_name", 2, 50)
    _check_length(errors, payload, "last_name", 2, 50)
    phone = payload.get("phone")
    if phone is not None and (not isinstance(phone, str) or not PHONE_PATTERN.match(phone)):
        errors.append("phone must be a valid phone number")
    role = payload.get("role", "buyer")
    if role not in REGISTRATION_ROLES:
        errors.append(f"role must be one of: {', '.join(REGISTRATION_ROLES)}")
    if role == "seller":
        _check_length(errors, payload, "shop_name", 2, 100)
        _check_length(errors, payload, "shop_address", 10, 200)
        _check_length(errors, payload, "business_type", 2, 50)
        _check_length(errors, payload, "city", 2, 50, required=False)
        _check_length(errors, payload, "area", 2, 50, required=False)
    _raise(errors)


def validate_login(payload: dict) -> None:
    errors: list[str] = []
    if not isinstance(payload.get("email"), str) or not payload["email"].strip():
        errors.append("email is required")
    if not isinstance(payload.get("password"), str) or not payload["password"]:
        errors.append("password is required")
    _raise(errors)


def validate_profile_update(payload: dict) -> None:
    errors: list[str] = []
    _check_length(errors, payload, "first_name", 2, 50, required=False)
    _check_length(errors, payload, "last_name", 2, 50, required=False)
    phone = payload.get("phone")
    if phone is not None and (not isinstance(phone, str) or not PHONE_PATTERN.match(phone)):
        errors.append("phone must be a valid phone number")
    _raise(errors)


def validate_seller_profile(payload: dict, partial: bool = False) -> None:
    errors: list[str] = []
    required = not partial
    _check_length(errors, payload, "shop_name", 2, 100, required=required)
    _check_length(errors, payload, "shop_description", 0, 500, required=False)
    _check_length(errors, payload, "shop_address", 10, 200, required=required)
    _check_length(errors, payload, "city", 2, 50, required=required)
    _check_length(errors, payload, "area", 2, 50, required=required)
    _check_number(errors, payload, "latitude", -90, 90, required=False)
    _check_number(errors, payload, "longitude", -180, 180, required=False)
    _raise(errors)


def validate_category(payload: dict, partial: bool = False) -> None:
    errors: list[str] = []
    _check_length(errors, payload, "name", 2, 50, required=not partial)
    _check_length(errors, payload, "description", 0, 200, required=False)
    parent_id = payload.get("parent_id")
    if parent_id is not None and (isinstance(parent_id, bool) or not isinstance(parent_id, int)):
        errors.append("parent_id must be an integer")
    _raise(errors)


def validate_product(payload: dict, partial: bool = False) -> None:
    errors: list[str] = []
    required = not partial
    _check_length(errors, payload, "title", 3, 100, required=required)
    _check_length(errors, payload, "description", 10, 1000, required=required)
    _check_number(errors, payload, "price", 0, required=required)
    _check_number(errors, payload, "category_id", 1, required=required, integer=True)
    specifications = payload.get("specifications")
    if specifications is not None and not isinstance(specifications, dict):
        errors.append("specifications must be an object")
    _check_images(errors, payload, 10)
    _raise(errors)


def validate_service(payload: dict, partial: bool = False) -> None:
    errors: list[str] = []
    required = not partial
    _check_length(errors, payload, "title", 3, 100, required=required)
    _check_length(errors, payload, "description", 10, 1000, required=required)
    _check_number(errors, payload, "price", 0, required=required)
    _check_number(errors, payload, "category_id", 1, required=required, integer=True)
    # 15 minutes to 8 hours
    _check_number(errors, payload, "duration_minutes", 15, 480, required=required, integer=True)
    mobile = payload.get("is_mobile_service")
    if mobile is None and required:
        errors.append("is_mobile_service is required")
    elif mobile is not None and not isinstance(mobile, bool):
        errors.append("is_mobile_service must be a boolean")
    _check_images(errors, payload, 10)
    _raise(errors)


def validate_availability_row(row: object, label: str = "") -> list[str]:
    """Return the violations of one weekly availability entry."""
    prefix = f"{label}: " if label else ""
    if not isinstance(row, dict):
        return [f"{prefix}entry must be an object"]
    errors: list[str] = []
    day = row.get("day_of_week")
    if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
        errors.append(f"{prefix}day_of_week must be an integer between 0 and 6")
    start = row.get("start_time")
    end = row.get("end_time")
    for field, value in (("start_time", start), ("end_time", end)):
        if not isinstance(value, str) or not HHMM_PATTERN.match(value.strip()):
            errors.append(f"{prefix}{field} must be in HH:MM format")
    if not errors and parse_hhmm(end) <= parse_hhmm(start):
        errors.append(f"{prefix}End time must be after start time")
    available = row.get("is_available", True)
    if not isinstance(available, bool):
        errors.append(f"{prefix}is_available must be a boolean")
    return errors


def validate_time_off(payload: dict) -> None:
    errors: list[str] = []
    for field in ("start_date", "end_date"):
        try:
            parse_date(payload.get(field), field)
        except ValidationError as exc:
            errors.extend(exc.errors)
    _check_length(errors, payload, "reason", 0, 200, required=False)
    _raise(errors)


def validate_appointment(payload: dict) -> None:
    errors: list[str] = []
    _check_number(errors, payload, "service_id", 1, integer=True)
    parsed: dict[str, datetime] = {}
    for field in ("scheduled_time_start", "scheduled_time_end"):
        try:
            parsed[field] = parse_datetime(payload.get(field), field)
        except ValidationError as exc:
            errors.extend(exc.errors)
    if len(parsed) == 2 and parsed["scheduled_time_end"] <= parsed["scheduled_time_start"]:
        errors.append("End time must be after start time")
    location = payload.get("service_location")
    if location is not None:
        if not isinstance(location, dict):
            errors.append("service_location must be an object")
        else:
            _check_length(errors, location, "address", 10, 200)
            if location.get("type") not in LOCATION_TYPES:
                errors.append(f"service_location.type must be one of: {', '.join(LOCATION_TYPES)}")
            _check_number(errors, location, "latitude", -90, 90, required=False)
            _check_number(errors, location, "longitude", -180, 180, required=False)
    _check_length(errors, payload, "notes", 0, 500, required=False)
    _raise(errors)


def validate_status_update(payload: dict) -> None:
    errors: list[str] = []
    if payload.get("status") not in APPOINTMENT_STATUSES:
        errors.append(f"status must be one of: {', '.join(APPOINTMENT_STATUSES)}")
    _check_length(errors, payload, "notes", 0, 500, required=False)
    _raise(errors)


def validate_message(payload: dict) -> None:
    errors: list[str] = []
    _check_length(errors, payload, "message", 1, 1000)
    message_type = payload.get("message_type", "text")
    if message_type not in MESSAGE_TYPES:
        errors.append(f"message_type must be one of: {', '.join(MESSAGE_TYPES)}")
    _raise(errors)
