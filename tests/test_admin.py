"""Tests for the admin panel endpoints."""
from __future__ import annotations

from datetime import date, timedelta

import pytest

from wrenchex.extensions import db
from wrenchex.models import ProductChat
from wrenchex.services import chat


@pytest.fixture
def admin_headers(make_user, auth_header):
    return auth_header(make_user(role="admin"))


def test_non_admin_is_forbidden(client, make_user, auth_header) -> None:
    anonymous = client.get("/api/admin/stats")
    buyer = client.get("/api/admin/stats", headers=auth_header(make_user()))

    assert anonymous.status_code == 401
    assert buyer.status_code == 403


def test_platform_stats(client, admin_headers, make_seller, make_product) -> None:
    make_product(make_seller())
    make_seller(approved=False)

    response = client.get("/api/admin/stats", headers=admin_headers)

    data = response.get_json()["data"]
    assert data["users"]["total"] == 3
    assert data["sellers"] == {"total": 2, "pending_approval": 1}
    assert data["products"]["total"] == 1
    assert data["chats"] == {"total": 0, "active": 0}


def test_list_users_filters_by_role_and_search(client, admin_headers, make_user) -> None:
    make_user(first_name="Quinn")
    make_user(role="seller", first_name="Quincy")

    buyers = client.get("/api/admin/users?role=buyer", headers=admin_headers).get_json()
    quin = client.get("/api/admin/users?search=quin", headers=admin_headers).get_json()
    invalid = client.get("/api/admin/users?role=owner", headers=admin_headers)

    assert buyers["pagination"]["total"] == 1
    assert quin["pagination"]["total"] == 2
    assert invalid.status_code == 400


def test_approve_seller_unlocks_listings(client, admin_headers, make_seller, make_product) -> None:
    seller = make_seller(approved=False)
    make_product(seller)

    pending = client.get("/api/admin/sellers?is_approved=false", headers=admin_headers).get_json()
    before = client.get("/api/products").get_json()["data"]
    approved = client.put(
        f"/api/admin/sellers/{seller.seller_id}/approval", json={"is_approved": True}, headers=admin_headers
    )
    after = client.get("/api/products").get_json()["data"]
    invalid = client.put(
        f"/api/admin/sellers/{seller.seller_id}/approval", json={"is_approved": "yes"}, headers=admin_headers
    )

    assert [item["id"] for item in pending["data"]] == [seller.seller_id]
    assert before == []
    assert approved.get_json()["message"] == "Seller approved successfully"
    assert len(after) == 1
    assert invalid.status_code == 400


def test_flag_product_hides_it_from_listing(client, admin_headers, make_seller, make_product) -> None:
    product = make_product(make_seller())

    response = client.put(
        f"/api/admin/products/{product.product_id}/flag", json={"is_flagged": True}, headers=admin_headers
    )

    assert response.get_json()["data"]["is_flagged"] is True
    assert client.get("/api/products").get_json()["data"] == []


def test_list_and_delete_chats(client, admin_headers, make_seller, make_product, make_user, published) -> None:
    product = make_product(make_seller())
    conversation = chat.start_or_get_chat(make_user().user_id, product.product_id, "Hello")
    today = date.today()

    listed = client.get(
        "/api/admin/chats",
        query_string={"start_date": (today - timedelta(days=1)).isoformat(), "end_date": (today + timedelta(days=1)).isoformat()},
        headers=admin_headers,
    ).get_json()
    deleted = client.delete(f"/api/admin/chats/{conversation.chat_id}", headers=admin_headers)
    missing = client.delete(f"/api/admin/chats/{conversation.chat_id}", headers=admin_headers)

    assert listed["data"][0]["message_count"] == 1
    assert deleted.status_code == 200
    assert db.session.get(ProductChat, conversation.chat_id) is None
    assert missing.status_code == 404


def test_list_appointments_validates_status(client, admin_headers) -> None:
    ok = client.get("/api/admin/appointments?status=pending", headers=admin_headers)
    bad = client.get("/api/admin/appointments?status=lost", headers=admin_headers)

    assert ok.get_json()["pagination"]["total"] == 0
    assert bad.status_code == 400
