"""Create an admin account, or reset the password of an existing one."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``wrenchex`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from wrenchex import create_app
from wrenchex.extensions import db
from wrenchex.models import User


def create_admin(email: str, password: str, first_name: str, last_name: str) -> None:
    app = create_app()

    with app.app_context():
        email = email.strip().lower()
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(email=email, first_name=first_name, last_name=last_name, role="admin")
            db.session.add(user)
            print(f"Created new admin user: {email}")
        elif user.role != "admin":
            print(f"Error: {email} is registered as a {user.role}; refusing to promote it")
            return

        user.password_hash = generate_password_hash(password)
        user.google_id = None
        user.is_verified = True
        db.session.commit()

        print(f"Password for admin '{email}' has been set successfully.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision a WrenchEX admin account.")
    parser.add_argument("email", help="Admin email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument("--first-name", default="Platform")
    parser.add_argument("--last-name", default="Admin")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    create_admin(args.email, args.password, args.first_name, args.last_name)


if __name__ == "__main__":
    main()
