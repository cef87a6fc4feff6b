"""Best-effort push of chat events to connected clients."""
from __future__ import annotations

import logging
from typing import Callable, Optional

from flask import current_app

from .extensions import socketio

logger = logging.getLogger(__name__)

Emitter = Callable[..., object]


def user_room(user_id: int) -> str:
    return f"user_{user_id}"


def product_room(product_id: int) -> str:
    return f"product_{product_id}"


class ChatEventDispatcher:
    """Publishes events after the data they describe has been committed.

    Delivery failures are logged and dropped; a caller never sees them.
    """

    def __init__(self, emit: Optional[Emitter] = None) -> None:
        self._emit = emit or socketio.emit

    def publish(self, event: str, payload: dict, room: str) -> bool:
        try:
            self._emit(event, payload, to=room)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to deliver %s to %s", event, room, exc_info=exc)
            return False
        return True


def get_dispatcher() -> ChatEventDispatcher:
    dispatcher = current_app.extensions.get("chat_dispatcher")
    if dispatcher is None:
        dispatcher = current_app.extensions["chat_dispatcher"] = ChatEventDispatcher()
    return dispatcher
