"""WrenchEX marketplace backend."""
from __future__ import annotations

import logging
import time
from collections.abc import Mapping

from flask import Flask, g, jsonify, request
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .cache import ResponseCache
from .config import Config
from .errors import AppError
from .events import ChatEventDispatcher
from .extensions import db, socketio
from .realtime import PresenceRegistry
from .routes import register_blueprints


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_object(Config)
    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_envvar("APP_SETTINGS", silent=True)

    _configure_logging(app)

    db.init_app(app)

    # Allow the frontend to talk to the backend
    CORS(
        app,
        origins=app.config["CORS_ORIGINS"],
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    )
    origins = app.config["CORS_ORIGINS"]
    socketio.init_app(app, cors_allowed_origins="*" if origins == ["*"] else origins)

    # Per-app collaborators; none of them is needed for correctness.
    app.extensions["response_cache"] = ResponseCache()
    app.extensions["presence"] = PresenceRegistry()
    app.extensions["chat_dispatcher"] = ChatEventDispatcher()
    app.extensions["started_at"] = time.time()

    register_blueprints(app)
    _register_error_handlers(app)
    _register_request_timing(app)

    return app


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger(__package__).setLevel(level)
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s [%(name)s] %(message)s")


def _error_body(code: str, message: str) -> dict[str, object]:
    return {"success": False, "error": {"code": code, "message": message}}


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def handle_app_error(exc: AppError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        code = "not_found" if exc.code == 404 else (exc.name or "http_error").lower().replace(" ", "_")
        return jsonify(_error_body(code, exc.description or exc.name)), exc.code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception("Unhandled database error", exc_info=exc)
        return jsonify(_error_body("database_error", "A database error occurred")), 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        app.logger.exception("Unhandled error", exc_info=exc)
        return jsonify(_error_body("internal_error", "Internal server error")), 500


def _register_request_timing(app: Flask) -> None:
    @app.before_request
    def start_timer() -> None:
        g.request_started = time.perf_counter()

    @app.after_request
    def log_request(response):
        started = g.get("request_started")
        if started is None:
            return response
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"
        if elapsed_ms > app.config.get("SLOW_REQUEST_MS", 1000):
            app.logger.warning(
                "Slow request: %s %s took %.1fms", request.method, request.path, elapsed_ms
            )
        else:
            app.logger.debug(
                "%s %s %s %.1fms", request.method, request.path, response.status_code, elapsed_ms
            )
        return response
