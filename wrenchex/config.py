"""Application configuration loaded from the environment."""
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///wrenchex.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    API_PREFIX = os.getenv("API_PREFIX", "/api")
    # Bearer tokens expire after 7 days
    TOKEN_MAX_AGE = int(os.getenv("TOKEN_MAX_AGE", 7 * 24 * 3600))
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

    CACHE_ENABLED = _env_flag("CACHE_ENABLED", "1")

    # Scheduling
    ENFORCE_BOOKING_AVAILABILITY = _env_flag("ENFORCE_BOOKING_AVAILABILITY")
    SLOT_STRIDE_MINUTES = int(os.getenv("SLOT_STRIDE_MINUTES", 30))
    NEXT_SLOT_DAYS_AHEAD = int(os.getenv("NEXT_SLOT_DAYS_AHEAD", 30))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if _env_flag("FLASK_DEBUG") else "INFO")
    SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", 1000))


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    CACHE_ENABLED = False
    LOG_LEVEL = "DEBUG"
