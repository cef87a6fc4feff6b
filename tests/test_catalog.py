"""Tests for categories, products and services."""
from __future__ import annotations

from datetime import datetime, time, timedelta

import pytest

from wrenchex.errors import ConflictError
from wrenchex.extensions import db
from wrenchex.models import Category, Product
from wrenchex.services import appointments, catalog

SERVICE_PAYLOAD = {
    "title": "Oil change",
    "description": "Drain, filter and refill with synthetic oil",
    "price": 45.0,
    "duration_minutes": 45,
    "is_mobile_service": True,
}

PRODUCT_PAYLOAD = {
    "title": "Brake pads",
    "description": "Ceramic front brake pads, pair",
    "price": 39.99,
    "specifications": {"position": "front"},
}


@pytest.fixture
def admin_headers(make_user, auth_header):
    return auth_header(make_user(role="admin"))


# --- Categories ---


def test_admin_creates_nested_categories_and_tree(client, admin_headers) -> None:
    parent = client.post("/api/categories", json={"name": "Auto Repair"}, headers=admin_headers)
    parent_id = parent.get_json()["data"]["id"]
    child = client.post(
        "/api/categories", json={"name": "Brakes", "parent_id": parent_id}, headers=admin_headers
    )

    tree = client.get("/api/categories/tree")
    subcategories = client.get(f"/api/categories/{parent_id}/subcategories")

    assert parent.status_code == 201
    assert child.status_code == 201
    roots = tree.get_json()["data"]
    assert [node["name"] for node in roots] == ["Auto Repair"]
    assert [node["name"] for node in roots[0]["children"]] == ["Brakes"]
    assert [item["name"] for item in subcategories.get_json()["data"]] == ["Brakes"]


def test_duplicate_sibling_category_is_rejected(client, admin_headers) -> None:
    client.post("/api/categories", json={"name": "Electronics"}, headers=admin_headers)

    response = client.post("/api/categories", json={"name": "electronics"}, headers=admin_headers)

    assert response.status_code == 400
    assert response.get_json()["error"]["message"] == "Category with this name already exists at this level"


def test_category_cannot_be_its_own_parent(client, admin_headers, make_category) -> None:
    category = make_category()

    response = client.put(
        f"/api/categories/{category.category_id}",
        json={"parent_id": category.category_id},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.get_json()["error"]["message"] == "Category cannot be its own parent"


def test_only_admin_manages_categories(client, make_user, auth_header) -> None:
    response = client.post("/api/categories", json={"name": "Phones"}, headers=auth_header(make_user()))

    assert response.status_code == 403


def test_delete_category_is_soft_and_blocked_while_in_use(
    client, admin_headers, make_category, make_seller, make_product
) -> None:
    used = make_category(name="Tyres")
    make_product(make_seller(), category=used)
    unused = make_category(name="Paint")

    blocked = client.delete(f"/api/categories/{used.category_id}", headers=admin_headers)
    removed = client.delete(f"/api/categories/{unused.category_id}", headers=admin_headers)

    assert blocked.status_code == 400
    assert removed.status_code == 200
    assert db.session.get(Category, unused.category_id).is_active is False
    listed = client.get("/api/categories").get_json()["data"]
    assert "Paint" not in [item["name"] for item in listed]


# --- Products ---


def test_approved_seller_creates_product(client, make_seller, make_category, auth_header) -> None:
    seller = make_seller()
    category = make_category()

    response = client.post(
        "/api/products",
        json={**PRODUCT_PAYLOAD, "category_id": category.category_id},
        headers=auth_header(seller.user),
    )

    assert response.status_code == 201
    data = response.get_json()["data"]
    assert data["seller_id"] == seller.seller_id
    assert data["specifications"] == {"position": "front"}
    assert data["images"] == []


def test_unapproved_seller_cannot_create_product(client, make_seller, make_category, auth_header) -> None:
    seller = make_seller(approved=False)

    response = client.post(
        "/api/products",
        json={**PRODUCT_PAYLOAD, "category_id": make_category().category_id},
        headers=auth_header(seller.user),
    )

    assert response.status_code == 403


def test_product_in_inactive_category_is_rejected(client, make_seller, make_category, auth_header) -> None:
    category = make_category()
    category.is_active = False
    db.session.commit()

    response = client.post(
        "/api/products",
        json={**PRODUCT_PAYLOAD, "category_id": category.category_id},
        headers=auth_header(make_seller().user),
    )

    assert response.status_code == 404
    assert response.get_json()["error"]["message"] == "Category not found or is inactive"


def test_public_listing_hides_unapproved_flagged_and_inactive(client, make_seller, make_product) -> None:
    approved = make_seller(city="Newark")
    visible = make_product(approved, title="Visible pads", price=20.0)
    make_product(approved, title="Hidden pads", is_active=False)
    flagged = make_product(approved, title="Flagged pads")
    flagged.is_flagged = True
    db.session.commit()
    make_product(make_seller(approved=False), title="Pending pads")

    response = client.get("/api/products")

    assert response.status_code == 200
    body = response.get_json()
    assert [item["id"] for item in body["data"]] == [visible.product_id]
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}


def test_product_listing_filters(client, make_seller, make_product) -> None:
    newark = make_seller(city="Newark")
    hoboken = make_seller(city="Hoboken")
    make_product(newark, title="Cheap filter", price=5.0)
    make_product(newark, title="Premium filter", price=80.0)
    make_product(hoboken, title="Hoboken filter", price=4.0)

    by_price = client.get("/api/products?min_price=6&max_price=100").get_json()["data"]
    by_city = client.get("/api/products?city=hobo").get_json()["data"]
    by_search = client.get("/api/products?search=premium").get_json()["data"]
    bad = client.get("/api/products?min_price=cheap")

    assert [item["title"] for item in by_price] == ["Premium filter"]
    assert [item["title"] for item in by_city] == ["Hoboken filter"]
    assert [item["title"] for item in by_search] == ["Premium filter"]
    assert bad.status_code == 400


def test_seller_toggles_and_deletes_own_product_only(client, make_seller, make_product, auth_header) -> None:
    owner = make_seller()
    product = make_product(owner)
    other = make_seller()

    toggled = client.patch(f"/api/products/{product.product_id}/toggle-status", headers=auth_header(owner.user))
    foreign = client.delete(f"/api/products/{product.product_id}", headers=auth_header(other.user))
    deleted = client.delete(f"/api/products/{product.product_id}", headers=auth_header(owner.user))

    assert toggled.get_json()["data"]["is_active"] is False
    assert toggled.get_json()["message"] == "Product deactivated successfully"
    assert foreign.status_code == 404
    assert deleted.status_code == 200
    assert db.session.get(Product, product.product_id) is None


def test_get_inactive_product_is_not_found(client, make_seller, make_product) -> None:
    product = make_product(make_seller(), is_active=False)

    response = client.get(f"/api/products/{product.product_id}")

    assert response.status_code == 404
    assert response.get_json()["error"]["message"] == "Product is not available"


# --- Services ---


def test_create_service_validates_duration_and_mobile_flag(client, make_seller, make_category, auth_header) -> None:
    headers = auth_header(make_seller().user)
    category_id = make_category().category_id

    too_short = client.post(
        "/api/services", json={**SERVICE_PAYLOAD, "category_id": category_id, "duration_minutes": 10}, headers=headers
    )
    missing_flag = {key: value for key, value in SERVICE_PAYLOAD.items() if key != "is_mobile_service"}
    no_flag = client.post("/api/services", json={**missing_flag, "category_id": category_id}, headers=headers)
    created = client.post("/api/services", json={**SERVICE_PAYLOAD, "category_id": category_id}, headers=headers)

    assert too_short.status_code == 400
    assert "duration_minutes must be at least 15" in too_short.get_json()["error"]["details"]
    assert no_flag.status_code == 400
    assert "is_mobile_service is required" in no_flag.get_json()["error"]["details"]
    assert created.status_code == 201
    assert created.get_json()["data"]["duration_minutes"] == 45


def test_mobile_services_listing(client, make_seller, make_service) -> None:
    seller = make_seller()
    make_service(seller, title="Mobile tune-up", is_mobile_service=True)
    make_service(seller, title="Shop tune-up", is_mobile_service=False)

    response = client.get("/api/services/mobile")

    assert [item["title"] for item in response.get_json()["data"]] == ["Mobile tune-up"]


def test_delete_service_blocked_by_live_appointment(make_user, make_seller, make_service, next_weekday) -> None:
    seller = make_seller()
    service = make_service(seller)
    start = datetime.combine(next_weekday(4), time(9, 0))
    appointment = appointments.create_appointment(
        make_user().user_id, service.service_id, start, start + timedelta(hours=1)
    )

    with pytest.raises(ConflictError, match="Cannot delete service with pending or active appointments"):
        catalog.delete_service(service.service_id, seller)

    appointments.cancel_appointment(appointment.appointment_id, seller.user_id)
    catalog.toggle_service_status(service.service_id, seller)
    assert catalog.list_seller_services(seller.seller_id) == []


def test_featured_products_rank_by_rating(client, make_seller, make_product) -> None:
    seller = make_seller()
    plain = make_product(seller, title="Plain oil")
    favourite = make_product(seller, title="Favourite oil")
    flagged = make_product(seller, title="Flagged oil")
    make_product(make_seller(approved=False), title="Pending oil")
    favourite.rating_average = 4.8
    flagged.rating_average = 5.0
    flagged.is_flagged = True
    db.session.commit()

    response = client.get("/api/products/featured?limit=5")

    assert [item["title"] for item in response.get_json()["data"]] == ["Favourite oil", plain.title]


def test_featured_services_rank_by_rating(client, make_seller, make_service) -> None:
    seller = make_seller()
    make_service(seller, title="Tyre swap")
    top = make_service(seller, title="Engine diagnostics")
    top.rating_average = 4.5
    db.session.commit()

    response = client.get("/api/services/featured?limit=1")

    assert [item["title"] for item in response.get_json()["data"]] == ["Engine diagnostics"]


def test_service_categories_count_active_services(client, make_seller, make_service, make_category) -> None:
    seller = make_seller()
    brakes = make_category(name="Brakes")
    engines = make_category(name="Engines")
    make_category(name="Paint")
    make_service(seller, title="Pad swap", category=brakes)
    retired = make_service(seller, title="Drum skim", category=brakes)
    make_service(seller, title="Timing belt", category=engines)
    retired.is_active = False
    db.session.commit()

    response = client.get("/api/services/categories")

    data = response.get_json()["data"]
    assert [(item["name"], item["service_count"]) for item in data] == [("Brakes", 1), ("Engines", 1)]


def test_services_near_filter_by_radius(client, make_seller, make_service) -> None:
    newark = make_seller(city="Newark")
    hoboken = make_seller(city="Hoboken")
    philadelphia = make_seller(city="Philadelphia")
    unplaced = make_seller(city="Newark")
    for seller, (lat, lng) in (
        (newark, (40.7357, -74.1724)),
        (hoboken, (40.7440, -74.0324)),
        (philadelphia, (39.9526, -75.1652)),
    ):
        seller.latitude, seller.longitude = lat, lng
    db.session.commit()
    make_service(hoboken, title="Hoboken mobile", is_mobile_service=True)
    make_service(newark, title="Newark mobile", is_mobile_service=True)
    make_service(newark, title="Newark garage", is_mobile_service=False)
    make_service(philadelphia, title="Philly mobile", is_mobile_service=True)
    make_service(unplaced, title="Somewhere mobile", is_mobile_service=True)

    wide = client.get("/api/services/near?latitude=40.7357&longitude=-74.1724&radius_km=15").get_json()
    tight = client.get("/api/services/near?latitude=40.7357&longitude=-74.1724&radius_km=5").get_json()
    missing = client.get("/api/services/near?latitude=40.7")
    out_of_range = client.get("/api/services/near?latitude=95&longitude=0")

    assert [item["title"] for item in wide["data"]] == ["Newark mobile", "Hoboken mobile"]
    assert wide["data"][0]["distance_km"] == 0
    assert 10 < wide["data"][1]["distance_km"] < 15
    assert wide["pagination"]["total"] == 2
    assert [item["title"] for item in tight["data"]] == ["Newark mobile"]
    assert missing.status_code == 400
    assert out_of_range.status_code == 400


def test_distance_between_known_points() -> None:
    assert catalog.distance_km(0, 0, 0, 0) == 0
    assert catalog.distance_km(0, 0, 0, 1) == pytest.approx(111.19, abs=0.01)
