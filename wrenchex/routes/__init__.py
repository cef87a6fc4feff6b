"""HTTP blueprints."""
from __future__ import annotations

from flask import Flask

from . import (
    admin,
    appointments,
    auth,
    availability,
    categories,
    chat,
    health,
    products,
    sellers,
    services,
    users,
)

API_BLUEPRINTS = (
    (auth.bp, "/auth"),
    (users.bp, "/users"),
    (sellers.bp, "/sellers"),
    (categories.bp, "/categories"),
    (products.bp, "/products"),
    (services.bp, "/services"),
    (availability.bp, "/availability"),
    (appointments.bp, "/appointments"),
    (chat.bp, "/chat"),
    (admin.bp, "/admin"),
)


def register_blueprints(app: Flask) -> None:
    prefix = app.config.get("API_PREFIX", "/api").rstrip("/")
    app.register_blueprint(health.bp)
    for blueprint, path in API_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=f"{prefix}{path}")
