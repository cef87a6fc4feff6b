"""Liveness, database and runtime counters."""
from __future__ import annotations

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..cache import get_response_cache
from ..extensions import db

bp = Blueprint("health", __name__)


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
    """
    return jsonify({"status": "ok", "service": "wrenchex-backend"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


@bp.get("/metrics")
def runtime_metrics() -> tuple[dict[str, object], int]:
    started_at = current_app.extensions.get("started_at", time.time())
    cache = get_response_cache()
    presence = current_app.extensions.get("presence")
    return (
        jsonify(
            {
                "uptime_seconds": round(time.time() - started_at, 1),
                "cache": cache.stats() if cache is not None else {"enabled": False},
                "connected_users": len(presence.online_user_ids()) if presence else 0,
            }
        ),
        200,
    )
