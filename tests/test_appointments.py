"""Tests for booking, the status lifecycle and appointment messages."""
from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta

import pytest

from wrenchex.errors import ConflictError, InvalidStatusTransition, NotFoundError, ValidationError
from wrenchex.extensions import db
from wrenchex.models import Appointment, AppointmentStatusHistory
from wrenchex.services import appointments, availability, scheduling

MONDAY = 1

ALLOWED = {
    ("pending", "confirmed"),
    ("pending", "cancelled"),
    ("confirmed", "in_progress"),
    ("confirmed", "cancelled"),
    ("in_progress", "completed"),
    ("in_progress", "cancelled"),
}
STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")


@pytest.fixture
def monday(next_weekday) -> date:
    return next_weekday(0)


@pytest.fixture
def shop(make_seller, make_service, set_hours):
    seller = make_seller()
    service = make_service(seller, duration_minutes=60, price=75.0)
    set_hours(seller, MONDAY, "09:00", "12:00")
    return seller, service


@pytest.fixture
def buyer(make_user):
    return make_user(first_name="Bea")


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


def _book(buyer, service, start: datetime) -> Appointment:
    end = start + timedelta(minutes=service.duration_minutes)
    return appointments.create_appointment(buyer.user_id, service.service_id, start, end)


def _payload(service, start: datetime, minutes: int = 60, **extra) -> dict:
    return {
        "service_id": service.service_id,
        "scheduled_time_start": start.isoformat(),
        "scheduled_time_end": (start + timedelta(minutes=minutes)).isoformat(),
        **extra,
    }


# --- Transition table ---


@pytest.mark.parametrize("current", STATUSES)
@pytest.mark.parametrize("requested", STATUSES)
def test_transition_table(current: str, requested: str) -> None:
    assert appointments.can_transition(current, requested) is ((current, requested) in ALLOWED)


def test_appointment_number_format() -> None:
    first = appointments.generate_appointment_number()

    assert re.fullmatch(r"APT-\d+-[A-Z0-9]{5}", first)
    assert first != appointments.generate_appointment_number()


# --- Booking ---


def test_create_records_single_history_entry(shop, buyer, monday) -> None:
    _, service = shop

    created = _book(buyer, service, _at(monday, 9))
    fetched = appointments.get_appointment(created.appointment_id)

    assert fetched.status == "pending"
    assert fetched.scheduled_date == monday
    assert fetched.total_amount == 75.0
    assert [(h.status, h.notes, h.changed_by) for h in fetched.status_history] == [
        ("pending", "Appointment created", buyer.user_id)
    ]


def test_overlapping_booking_is_rejected(shop, buyer, make_user, monday) -> None:
    _, service = shop
    _book(buyer, service, _at(monday, 9))

    with pytest.raises(ConflictError, match="The selected time slot is not available"):
        _book(make_user(), service, _at(monday, 9, 30))

    assert Appointment.query.count() == 1


def test_back_to_back_bookings_are_allowed(shop, buyer, monday) -> None:
    _, service = shop

    _book(buyer, service, _at(monday, 9))
    _book(buyer, service, _at(monday, 10))

    assert Appointment.query.count() == 2


def test_duration_must_match_service(shop, buyer, monday) -> None:
    _, service = shop

    with pytest.raises(ValidationError, match="Appointment duration must be 60 minutes for this service"):
        appointments.create_appointment(buyer.user_id, service.service_id, _at(monday, 9), _at(monday, 9, 45))


def test_booking_in_the_past_is_rejected(shop, buyer, monday) -> None:
    _, service = shop

    with pytest.raises(ValidationError, match="Appointment must be scheduled in the future"):
        appointments.create_appointment(
            buyer.user_id, service.service_id, _at(monday, 9), _at(monday, 10), now=_at(monday, 9, 30)
        )


def test_booking_during_time_off_is_rejected(shop, buyer, monday) -> None:
    seller, service = shop
    availability.add_time_off(seller.seller_id, monday, monday)

    with pytest.raises(ConflictError, match="Seller is on time off during this period"):
        _book(buyer, service, _at(monday, 9))


def test_unapproved_seller_and_inactive_service(make_seller, make_service, buyer, monday) -> None:
    pending_service = make_service(make_seller(approved=False))
    retired_service = make_service(make_seller())
    retired_service.is_active = False
    db.session.commit()

    with pytest.raises(ConflictError, match="This seller is not approved to take appointments"):
        _book(buyer, pending_service, _at(monday, 9))
    with pytest.raises(NotFoundError, match="Service not found or is inactive"):
        _book(buyer, retired_service, _at(monday, 9))


def test_day_without_hours_is_still_bookable(shop, buyer, next_weekday) -> None:
    _, service = shop
    tuesday = next_weekday(1)

    assert scheduling.get_available_windows(service.service_id, tuesday) == []
    appointment = _book(buyer, service, _at(tuesday, 10))
    assert appointment.status == "pending"


def test_hours_are_advisory_unless_enforced(app, shop, buyer, make_user, monday) -> None:
    _, service = shop

    outside = _book(buyer, service, _at(monday, 13))
    assert outside.appointment_id is not None

    app.config["ENFORCE_BOOKING_AVAILABILITY"] = True
    with pytest.raises(ConflictError, match="Seller is not available at the selected time"):
        _book(make_user(), service, _at(monday, 14))
    _book(make_user(), service, _at(monday, 11))


def test_identical_window_race_is_caught_by_storage(shop, buyer, make_user, monday, monkeypatch) -> None:
    _, service = shop
    _book(buyer, service, _at(monday, 10))
    # A second request whose overlap check ran before the first one committed.
    monkeypatch.setattr(scheduling, "find_conflicts", lambda *args, **kwargs: [])

    with pytest.raises(ConflictError, match="The selected time slot is not available"):
        _book(make_user(), service, _at(monday, 10))

    assert Appointment.query.count() == 1
    assert AppointmentStatusHistory.query.count() == 1


def test_cancelled_window_can_be_rebooked(shop, buyer, make_user, monday) -> None:
    seller, service = shop
    first = _book(buyer, service, _at(monday, 9))
    appointments.cancel_appointment(first.appointment_id, buyer.user_id)

    second = _book(make_user(), service, _at(monday, 9))

    assert second.appointment_id != first.appointment_id


# --- Status lifecycle ---


def test_full_lifecycle_appends_history(shop, buyer, monday) -> None:
    seller, service = shop
    appointment = _book(buyer, service, _at(monday, 9))

    for status in ("confirmed", "in_progress", "completed"):
        appointments.update_status(appointment.appointment_id, status, seller.user_id)

    history = appointments.get_appointment(appointment.appointment_id).status_history
    assert sorted(entry.status for entry in history) == sorted(
        ["pending", "confirmed", "in_progress", "completed"]
    )
    with pytest.raises(InvalidStatusTransition, match="Cannot change status from completed to cancelled"):
        appointments.cancel_appointment(appointment.appointment_id, seller.user_id)


def test_invalid_transition_leaves_state_untouched(shop, buyer, monday) -> None:
    seller, service = shop
    appointment = _book(buyer, service, _at(monday, 9))

    with pytest.raises(InvalidStatusTransition):
        appointments.update_status(appointment.appointment_id, "completed", seller.user_id)

    fetched = appointments.get_appointment(appointment.appointment_id)
    assert fetched.status == "pending"
    assert len(fetched.status_history) == 1


def test_cancel_note_includes_reason(shop, buyer, monday) -> None:
    _, service = shop
    appointment = _book(buyer, service, _at(monday, 9))

    appointments.cancel_appointment(appointment.appointment_id, buyer.user_id, "Car sold")

    notes = {entry.notes for entry in appointments.get_appointment(appointment.appointment_id).status_history}
    assert "Cancelled: Car sold" in notes


# --- HTTP ---


def test_book_and_fetch_over_http(client, shop, buyer, auth_header, monday) -> None:
    _, service = shop
    headers = auth_header(buyer)
    location = {"type": "mobile", "address": "12 Workshop Lane, Newark"}

    created = client.post(
        "/api/appointments", json=_payload(service, _at(monday, 9), service_location=location), headers=headers
    )
    appointment_id = created.get_json()["data"]["id"]
    fetched = client.get(f"/api/appointments/{appointment_id}", headers=headers)

    assert created.status_code == 201
    assert created.get_json()["message"] == "Appointment created successfully"
    data = fetched.get_json()["data"]
    assert data["status"] == "pending"
    assert data["service_location"] == location
    assert data["scheduled_time_start"] == f"{monday}T09:00:00"
    assert [entry["notes"] for entry in data["status_history"]] == ["Appointment created"]


def test_http_booking_errors(client, shop, buyer, auth_header, monday) -> None:
    seller, service = shop
    headers = auth_header(buyer)
    client.post("/api/appointments", json=_payload(service, _at(monday, 9)), headers=headers)

    taken = client.post("/api/appointments", json=_payload(service, _at(monday, 9, 30)), headers=headers)
    wrong_length = client.post("/api/appointments", json=_payload(service, _at(monday, 11), 30), headers=headers)
    by_seller = client.post(
        "/api/appointments", json=_payload(service, _at(monday, 11)), headers=auth_header(seller.user)
    )
    malformed = client.post(
        "/api/appointments",
        json={"service_id": service.service_id, "scheduled_time_start": "tomorrow"},
        headers=headers,
    )

    assert taken.status_code == 400
    assert taken.get_json()["error"]["message"] == "The selected time slot is not available"
    assert wrong_length.status_code == 400
    assert by_seller.status_code == 403
    assert malformed.status_code == 400
    assert "scheduled_time_start must be a valid ISO format datetime" in malformed.get_json()["error"]["details"]


def test_status_update_permissions(client, shop, buyer, make_user, auth_header, monday) -> None:
    seller, service = shop
    appointment = _book(buyer, service, _at(monday, 9))
    url = f"/api/appointments/{appointment.appointment_id}"

    by_buyer = client.put(f"{url}/status", json={"status": "confirmed"}, headers=auth_header(buyer))
    by_stranger = client.get(url, headers=auth_header(make_user()))
    by_seller = client.put(f"{url}/status", json={"status": "confirmed"}, headers=auth_header(seller.user))
    backwards = client.put(f"{url}/status", json={"status": "pending"}, headers=auth_header(seller.user))
    unknown = client.put(f"{url}/status", json={"status": "lost"}, headers=auth_header(seller.user))

    assert by_buyer.status_code == 403
    assert by_stranger.status_code == 403
    assert by_seller.status_code == 200
    assert by_seller.get_json()["data"]["status"] == "confirmed"
    assert backwards.status_code == 400
    assert backwards.get_json()["error"]["code"] == "invalid_transition"
    assert unknown.status_code == 400


def test_buyer_cancels_over_http(client, shop, buyer, auth_header, monday) -> None:
    _, service = shop
    appointment = _book(buyer, service, _at(monday, 9))

    response = client.put(
        f"/api/appointments/{appointment.appointment_id}/cancel", json={"reason": "Car sold"}, headers=auth_header(buyer)
    )

    assert response.status_code == 200
    assert response.get_json()["data"]["status"] == "cancelled"


def test_listing_is_scoped_by_role(client, shop, buyer, make_user, auth_header, monday) -> None:
    seller, service = shop
    other = make_user()
    _book(buyer, service, _at(monday, 9))
    _book(other, service, _at(monday, 10))
    admin = make_user(role="admin")

    mine = client.get("/api/appointments", headers=auth_header(buyer)).get_json()
    shop_view = client.get("/api/appointments", headers=auth_header(seller.user)).get_json()
    everything = client.get("/api/appointments?status=pending", headers=auth_header(admin)).get_json()
    bad_status = client.get("/api/appointments?status=lost", headers=auth_header(admin))

    assert mine["pagination"]["total"] == 1
    assert mine["data"][0]["buyer_id"] == buyer.user_id
    assert shop_view["pagination"]["total"] == 2
    assert everything["pagination"]["total"] == 2
    assert bad_status.status_code == 400


def test_upcoming_lists_live_future_bookings(shop, buyer, monday) -> None:
    seller, service = shop
    keep = _book(buyer, service, _at(monday, 10))
    dropped = _book(buyer, service, _at(monday, 9))
    appointments.cancel_appointment(dropped.appointment_id, buyer.user_id)

    upcoming = appointments.get_upcoming_appointments(buyer)
    shop_upcoming = appointments.get_upcoming_appointments(seller.user)

    assert [item.appointment_id for item in upcoming] == [keep.appointment_id]
    assert [item.appointment_id for item in shop_upcoming] == [keep.appointment_id]


def test_seller_analytics(client, shop, buyer, auth_header, monday) -> None:
    seller, service = shop
    done = _book(buyer, service, _at(monday, 9))
    _book(buyer, service, _at(monday, 10))
    for status in ("confirmed", "in_progress", "completed"):
        appointments.update_status(done.appointment_id, status, seller.user_id)

    response = client.get("/api/appointments/analytics/seller?period=week", headers=auth_header(seller.user))
    invalid = client.get("/api/appointments/analytics/seller?period=decade", headers=auth_header(seller.user))

    data = response.get_json()["data"]
    assert data["total_appointments"] == 2
    assert data["total_revenue"] == 75.0
    assert data["status_breakdown"] == {"completed": 1, "pending": 1}
    assert invalid.status_code == 400


def test_slots_endpoint(client, shop, buyer, monday) -> None:
    _, service = shop
    _book(buyer, service, _at(monday, 9))

    response = client.get(f"/api/appointments/service/{service.service_id}/slots?date={monday}&interval=60")
    missing = client.get(f"/api/appointments/service/{service.service_id}/slots")

    body = response.get_json()
    assert body["date"] == monday.isoformat()
    assert [(slot["start_time"], slot["is_available"]) for slot in body["data"]] == [
        (f"{monday}T09:00:00", False),
        (f"{monday}T10:00:00", True),
        (f"{monday}T11:00:00", True),
    ]
    assert missing.status_code == 400
    assert missing.get_json()["error"]["message"] == "Date parameter is required"


def test_appointment_messages(client, shop, buyer, make_user, auth_header, monday) -> None:
    seller, service = shop
    appointment = _book(buyer, service, _at(monday, 9))
    url = f"/api/appointments/{appointment.appointment_id}/messages"

    sent = client.post(url, json={"message": "Is parking available?"}, headers=auth_header(buyer))
    read = client.get(url, headers=auth_header(seller.user))
    stranger = client.post(url, json={"message": "Hello"}, headers=auth_header(make_user()))

    assert sent.status_code == 201
    assert sent.get_json()["data"]["message"] == "Is parking available?"
    messages = read.get_json()["data"]
    assert [(m["message"], m["is_read"]) for m in messages] == [("Is parking available?", True)]
    assert stranger.status_code == 403
