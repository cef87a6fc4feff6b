"""Shared pytest fixtures: an in-memory app plus small factories for marketplace rows."""
from __future__ import annotations

import itertools
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from wrenchex import create_app  # noqa: E402
from wrenchex.auth import build_token  # noqa: E402
from wrenchex.config import TestingConfig  # noqa: E402
from wrenchex.events import ChatEventDispatcher  # noqa: E402
from wrenchex.extensions import db  # noqa: E402
from wrenchex.models import (  # noqa: E402
    Category,
    Product,
    Seller,
    SellerAvailability,
    SellerChatSettings,
    Service,
    User,
)

DEFAULT_PASSWORD = "Secret123!"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make_user(role: str = "buyer", email: str | None = None, password: str | None = DEFAULT_PASSWORD,
                   **fields) -> User:
        number = next(counter)
        user = User(
            email=email or f"{role}{number}@example.com",
            first_name=fields.pop("first_name", "Test"),
            last_name=fields.pop("last_name", f"User{number}"),
            role=role,
            password_hash=generate_password_hash(password, method="pbkdf2:sha256:1000") if password else None,
            is_verified=fields.pop("is_verified", True),
            **fields,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def make_seller(make_user):
    counter = itertools.count(1)

    def _make_seller(approved: bool = True, shop_name: str | None = None, city: str = "Newark",
                     user: User | None = None) -> Seller:
        number = next(counter)
        user = user or make_user(role="seller")
        seller = Seller(
            user_id=user.user_id,
            shop_name=shop_name or f"Wrench Shop {number}",
            shop_address=f"{number} Workshop Lane, Unit 4",
            city=city,
            area="Ironbound",
            business_type="Repair shop",
            is_approved=approved,
        )
        db.session.add(seller)
        db.session.flush()
        db.session.add(SellerChatSettings(seller_id=seller.seller_id))
        db.session.commit()
        return seller

    return _make_seller


@pytest.fixture
def make_category(app):
    def _make_category(name: str = "Auto Repair", parent: Category | None = None) -> Category:
        category = Category(name=name, parent_id=parent.category_id if parent else None, is_active=True)
        db.session.add(category)
        db.session.commit()
        return category

    return _make_category


@pytest.fixture
def make_service(make_category):
    def _make_service(seller: Seller, duration_minutes: int = 60, price: float = 50.0,
                      is_mobile_service: bool = False, title: str = "Brake inspection",
                      category: Category | None = None) -> Service:
        category = category or make_category(name=f"Services {seller.seller_id}-{title}")
        service = Service(
            seller_id=seller.seller_id,
            category_id=category.category_id,
            title=title,
            description="Full inspection of pads, discs and fluid",
            price=price,
            duration_minutes=duration_minutes,
            is_mobile_service=is_mobile_service,
            images=[],
        )
        db.session.add(service)
        db.session.commit()
        return service

    return _make_service


@pytest.fixture
def make_product(make_category):
    def _make_product(seller: Seller, title: str = "Synthetic engine oil", price: float = 30.0,
                      category: Category | None = None, is_active: bool = True) -> Product:
        category = category or make_category(name=f"Products {seller.seller_id}-{title}")
        product = Product(
            seller_id=seller.seller_id,
            category_id=category.category_id,
            title=title,
            description="Five litre bottle of fully synthetic oil",
            price=price,
            images=[],
            is_active=is_active,
        )
        db.session.add(product)
        db.session.commit()
        return product

    return _make_product


@pytest.fixture
def set_hours(app):
    def _set_hours(seller: Seller, day_of_week: int, start: str = "09:00", end: str = "17:00",
                   is_available: bool = True) -> SellerAvailability:
        row = SellerAvailability(
            seller_id=seller.seller_id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            is_available=is_available,
        )
        db.session.add(row)
        db.session.commit()
        return row

    return _set_hours


@pytest.fixture
def auth_header(app):
    def _auth_header(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {build_token(user)}"}

    return _auth_header


@pytest.fixture
def next_weekday():
    """Next date strictly after today falling on ``weekday`` (Monday is 0)."""

    def _next_weekday(weekday: int) -> date:
        today = date.today()
        return today + timedelta(days=(weekday - today.weekday()) % 7 or 7)

    return _next_weekday


@pytest.fixture
def published(app):
    """Record chat events instead of pushing them to sockets."""
    events: list[tuple[str, dict, str]] = []

    def _emit(event, payload, to=None):
        events.append((event, payload, to))

    app.extensions["chat_dispatcher"] = ChatEventDispatcher(emit=_emit)
    return events
