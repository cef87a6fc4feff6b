#!/usr/bin/env python3
"""Create the schema and seed a small demo marketplace for local development."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Add the parent directory to the path so we can import the app
sys.path.insert(0, str(Path(__file__).parent.parent))

from wrenchex import create_app
from wrenchex.extensions import db
from wrenchex.models import (
    Category,
    Product,
    Seller,
    SellerAvailability,
    SellerChatSettings,
    Service,
    User,
)

DEMO_PASSWORD = "Password123!"

DEMO_USERS = [
    {"email": "admin@wrenchex.local", "first_name": "Ada", "last_name": "Admin", "role": "admin"},
    {"email": "seller@wrenchex.local", "first_name": "Sam", "last_name": "Spanner", "role": "seller"},
    {"email": "buyer@wrenchex.local", "first_name": "Bea", "last_name": "Buyer", "role": "buyer"},
]

DEMO_CATEGORIES = {
    "Auto Repair": ["Engine", "Brakes"],
    "Electronics": ["Phones", "Laptops"],
}

# Monday to Saturday, 09:00-17:00
DEMO_HOURS = [(day, "09:00", "17:00") for day in range(1, 7)]


def _get_or_create_user(data: dict) -> User:
    user = User.query.filter_by(email=data["email"]).first()
    if user is not None:
        print(f"⏭️  User {data['email']} already exists. Skipping...")
        return user
    user = User(
        email=data["email"],
        first_name=data["first_name"],
        last_name=data["last_name"],
        role=data["role"],
        password_hash=generate_password_hash(DEMO_PASSWORD),
        is_verified=True,
    )
    db.session.add(user)
    db.session.flush()
    print(f"  ✓ Created {data['role']}: {data['email']}")
    return user


def _seed_seller(user: User) -> Seller:
    seller = Seller.query.filter_by(user_id=user.user_id).first()
    if seller is not None:
        return seller
    seller = Seller(
        user_id=user.user_id,
        shop_name="Spanner & Sons",
        shop_description="Family-run workshop for cars and gadgets",
        shop_address="12 Workshop Lane, Unit 4",
        city="Newark",
        area="Ironbound",
        business_type="Repair shop",
        is_approved=True,
    )
    db.session.add(seller)
    db.session.flush()
    db.session.add(SellerChatSettings(seller_id=seller.seller_id))
    for day, start, end in DEMO_HOURS:
        db.session.add(
            SellerAvailability(seller_id=seller.seller_id, day_of_week=day, start_time=start, end_time=end)
        )
    print(f"  ✓ Created approved shop {seller.shop_name} with weekday hours")
    return seller


def _seed_categories() -> dict[str, Category]:
    created: dict[str, Category] = {}
    for parent_name, children in DEMO_CATEGORIES.items():
        parent = Category.query.filter_by(name=parent_name, parent_id=None).first()
        if parent is None:
            parent = Category(name=parent_name, is_active=True)
            db.session.add(parent)
            db.session.flush()
        created[parent_name] = parent
        for child_name in children:
            child = Category.query.filter_by(name=child_name, parent_id=parent.category_id).first()
            if child is None:
                child = Category(name=child_name, parent_id=parent.category_id, is_active=True)
                db.session.add(child)
                db.session.flush()
            created[child_name] = child
    print(f"  ✓ {len(created)} categories ready")
    return created


def _seed_listings(seller: Seller, categories: dict[str, Category]) -> None:
    if Service.query.filter_by(seller_id=seller.seller_id).count():
        print("⏭️  Demo listings already exist. Skipping...")
        return
    db.session.add_all(
        [
            Service(
                seller_id=seller.seller_id,
                category_id=categories["Brakes"].category_id,
                title="Brake pad replacement",
                description="Front or rear pads, parts not included",
                price=89.0,
                duration_minutes=60,
                is_mobile_service=False,
                images=[],
            ),
            Service(
                seller_id=seller.seller_id,
                category_id=categories["Phones"].category_id,
                title="Phone screen repair",
                description="Screen swap at your home or office",
                price=120.0,
                duration_minutes=90,
                is_mobile_service=True,
                images=[],
            ),
            Product(
                seller_id=seller.seller_id,
                category_id=categories["Engine"].category_id,
                title="Synthetic engine oil 5W-30",
                description="Five litre bottle of fully synthetic oil",
                price=34.5,
                specifications={"volume": "5L", "grade": "5W-30"},
                images=[],
            ),
        ]
    )
    print("  ✓ Added two services and one product")


def seed(reset: bool = False) -> None:
    app = create_app()

    with app.app_context():
        if reset:
            print("🗑️  Dropping existing tables...")
            db.drop_all()
        db.create_all()
        print("✅ Tables ready")

        users = {data["role"]: _get_or_create_user(data) for data in DEMO_USERS}
        seller = _seed_seller(users["seller"])
        categories = _seed_categories()
        _seed_listings(seller, categories)
        db.session.commit()

        print("\n✅ Demo data seeded successfully!")
        print(f"🔑 All demo accounts use the password {DEMO_PASSWORD}")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed WrenchEX demo data for local testing.")
    parser.add_argument("--reset", action="store_true", help="Drop all tables before seeding")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    seed(reset=args.reset)


if __name__ == "__main__":
    main()
