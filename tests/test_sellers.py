"""Tests for seller shop profiles and the dashboard."""
from __future__ import annotations

from datetime import datetime, time, timedelta

from wrenchex.services import appointments

SHOP = {
    "shop_name": "Bolt Brothers",
    "shop_address": "44 Ferry Street, Unit 2",
    "city": "Newark",
    "area": "Ironbound",
}


def test_register_seller_profile_once(client, make_user, auth_header) -> None:
    headers = auth_header(make_user(role="seller"))

    first = client.post("/api/sellers/register", json=SHOP, headers=headers)
    second = client.post("/api/sellers/register", json=SHOP, headers=headers)

    assert first.status_code == 201
    assert first.get_json()["data"]["is_approved"] is False
    assert second.status_code == 400
    assert second.get_json()["error"]["message"] == "Seller profile already exists for this user"


def test_buyer_cannot_register_shop(client, make_user, auth_header) -> None:
    response = client.post("/api/sellers/register", json=SHOP, headers=auth_header(make_user()))

    assert response.status_code == 403


def test_update_profile_changes_shop_and_user_fields(client, make_seller, auth_header) -> None:
    seller = make_seller()

    response = client.put(
        "/api/sellers/profile",
        json={"shop_description": "Brakes and tyres", "first_name": "Sammy"},
        headers=auth_header(seller.user),
    )

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["shop_description"] == "Brakes and tyres"
    assert data["user"]["first_name"] == "Sammy"


def test_update_profile_rejects_taken_shop_name(client, make_seller, auth_header) -> None:
    make_seller(shop_name="Bolt Brothers", city="Newark")
    seller = make_seller(city="Newark")

    response = client.put(
        "/api/sellers/profile", json={"shop_name": "BOLT BROTHERS"}, headers=auth_header(seller.user)
    )

    assert response.status_code == 400
    assert response.get_json()["error"]["message"] == "A shop with this name already exists in this city"


def test_dashboard_requires_approval(client, make_seller, auth_header) -> None:
    seller = make_seller(approved=False)

    response = client.get("/api/sellers/dashboard", headers=auth_header(seller.user))

    assert response.status_code == 403
    assert response.get_json()["error"]["message"] == "Your seller account is pending approval"


def test_dashboard_counts_listings_and_bookings(
    client, make_user, make_seller, make_service, make_product, auth_header, next_weekday
) -> None:
    seller = make_seller()
    service = make_service(seller)
    make_product(seller)
    start = datetime.combine(next_weekday(3), time(11, 0))
    appointments.create_appointment(make_user().user_id, service.service_id, start, start + timedelta(hours=1))

    response = client.get("/api/sellers/dashboard", headers=auth_header(seller.user))

    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["stats"]["services"] == 1
    assert data["stats"]["products"] == 1
    assert data["stats"]["appointments"] == 1
    assert len(data["recent_appointments"]) == 1
    assert data["monthly_earnings"] == 0


def test_own_listings_include_inactive(client, make_seller, make_product, auth_header) -> None:
    seller = make_seller()
    make_product(seller, title="Active oil")
    make_product(seller, title="Old oil", is_active=False)

    everything = client.get("/api/sellers/products", headers=auth_header(seller.user))
    active = client.get("/api/sellers/products?include_inactive=false", headers=auth_header(seller.user))

    assert len(everything.get_json()["data"]) == 2
    assert [item["title"] for item in active.get_json()["data"]] == ["Active oil"]


def test_earnings_sum_completed_appointments(client, make_user, make_seller, make_service, auth_header,
                                             next_weekday) -> None:
    seller = make_seller()
    service = make_service(seller, price=120.0)
    day = next_weekday(2)
    done = appointments.create_appointment(
        make_user().user_id, service.service_id, datetime.combine(day, time(9, 0)), datetime.combine(day, time(10, 0))
    )
    appointments.create_appointment(
        make_user().user_id, service.service_id, datetime.combine(day, time(11, 0)), datetime.combine(day, time(12, 0))
    )
    for status in ("confirmed", "in_progress", "completed"):
        appointments.update_status(done.appointment_id, status, seller.user_id)
    headers = auth_header(seller.user)

    weekly = client.get("/api/sellers/earnings?period=week", headers=headers)
    invalid = client.get("/api/sellers/earnings?period=decade", headers=headers)

    assert weekly.get_json()["data"] == {
        "period": "week",
        "total_earnings": 120.0,
        "total_appointments": 1,
        "breakdown": {"appointments": {"earnings": 120.0, "count": 1}},
    }
    assert invalid.status_code == 400


def test_earnings_require_approval(client, make_seller, auth_header) -> None:
    seller = make_seller(approved=False)

    response = client.get("/api/sellers/earnings", headers=auth_header(seller.user))

    assert response.status_code == 403


def test_search_sellers_by_name_and_city(client, make_seller, make_product) -> None:
    bolts = make_seller(shop_name="Bolt Brothers", city="Newark")
    make_product(bolts)
    make_seller(shop_name="Bolt Depot", city="Hoboken")
    make_seller(shop_name="Bolt Pending", city="Newark", approved=False)

    newark = client.get("/api/sellers/search?search=bolt&city=newark").get_json()
    everywhere = client.get("/api/sellers/search?search=BOLT").get_json()

    assert [item["shop_name"] for item in newark["data"]] == ["Bolt Brothers"]
    assert newark["data"][0]["counts"] == {"products": 1, "services": 0, "appointments": 0}
    assert everywhere["pagination"]["total"] == 2


def test_cities_and_areas_count_approved_sellers(client, make_seller) -> None:
    make_seller(city="Newark")
    make_seller(city="Newark")
    make_seller(city="Hoboken")
    make_seller(city="Jersey City", approved=False)

    cities = client.get("/api/sellers/cities").get_json()["data"]
    areas = client.get("/api/sellers/cities/newark/areas").get_json()["data"]

    assert cities == [{"name": "Hoboken", "sellers_count": 1}, {"name": "Newark", "sellers_count": 2}]
    assert areas == [{"name": "Ironbound", "sellers_count": 2}]
