"""Process-local response cache for read-heavy GET routes.

Entries expire after their TTL and are never invalidated on write, so a
cached listing may be stale for up to one TTL. Nothing relies on the cache
for correctness; an app can run with it disabled.
"""
from __future__ import annotations

import logging
import threading
import time
from functools import wraps
from typing import Any, Callable, Optional

from flask import current_app, jsonify, make_response, request

logger = logging.getLogger(__name__)


class ResponseCache:
    """TTL map of request path to JSON body."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            data, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return data

    def set(self, key: str, data: Any, ttl_seconds: float) -> None:
        with self._lock:
            self._entries[key] = (data, self._clock() + ttl_seconds)

    def clear(self, pattern: str | None = None) -> int:
        with self._lock:
            if pattern is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            keys = [key for key in self._entries if pattern in key]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def stats(self) -> dict[str, object]:
        with self._lock:
            return {"size": len(self._entries), "entries": sorted(self._entries)}


def get_response_cache() -> ResponseCache | None:
    if not current_app.config.get("CACHE_ENABLED", True):
        return None
    return current_app.extensions.get("response_cache")


def cached(ttl_minutes: float = 5) -> Callable:
    """Cache successful JSON responses of a GET view for ``ttl_minutes``."""

    def decorator(view: Callable) -> Callable:
        @wraps(view)
        def wrapper(*args, **kwargs):
            cache = get_response_cache()
            if cache is None or request.method != "GET":
                return view(*args, **kwargs)

            key = request.full_path
            hit = cache.get(key)
            if hit is not None:
                logger.debug("Cache hit for: %s", key)
                return jsonify(hit), 200

            response = make_response(view(*args, **kwargs))
            if 200 <= response.status_code < 300 and response.is_json:
                cache.set(key, response.get_json(), ttl_minutes * 60)
                logger.debug("Cache set for: %s", key)
            return response

        return wrapper

    return decorator
