"""Socket.IO handlers mirroring the chat endpoints."""
from __future__ import annotations

import logging
import threading

from flask import current_app, request
from flask_socketio import disconnect, emit, join_room
from sqlalchemy.exc import SQLAlchemyError

from .auth import load_user_from_token
from .errors import AppError, AuthenticationError
from .events import product_room, user_room
from .extensions import db, socketio
from .models import ProductChat, Seller, User
from .services import chat

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Connected sockets keyed by session id. Lost on restart."""

    def __init__(self) -> None:
        self._sessions: dict[str, dict[str, object]] = {}
        self._lock = threading.Lock()

    def add(self, sid: str, user: User) -> None:
        with self._lock:
            self._sessions[sid] = {"user_id": user.user_id, "role": user.role}

    def remove(self, sid: str) -> dict[str, object] | None:
        with self._lock:
            return self._sessions.pop(sid, None)

    def get(self, sid: str) -> dict[str, object] | None:
        with self._lock:
            return self._sessions.get(sid)

    def is_connected(self, user_id: int) -> bool:
        with self._lock:
            return any(entry["user_id"] == user_id for entry in self._sessions.values())

    def online_user_ids(self) -> set[int]:
        with self._lock:
            return {entry["user_id"] for entry in self._sessions.values()}


def get_presence() -> PresenceRegistry:
    return current_app.extensions["presence"]


def _session_user() -> dict[str, object] | None:
    entry = get_presence().get(request.sid)
    if entry is None:
        emit("error", {"message": "Not authenticated"})
    return entry


def _seller_of(user_id: int) -> Seller | None:
    return Seller.query.filter_by(user_id=user_id).first()


def _set_seller_presence(user_id: int, is_online: bool) -> None:
    try:
        seller = _seller_of(user_id)
        if seller is not None:
            chat.set_seller_online_status(seller.seller_id, is_online)
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Could not mark seller user %s as %s", user_id, "online" if is_online else "offline",
                       exc_info=True)


@socketio.on("authenticate")
def handle_authenticate(data):
    token = data.get("token") if isinstance(data, dict) else data
    try:
        if not isinstance(token, str) or not token:
            raise AuthenticationError("Token is not valid")
        user = load_user_from_token(token)
    except AppError as exc:
        logger.info("Socket authentication failed for %s: %s", request.sid, exc.message)
        emit("authentication_error", {"message": "Invalid token"})
        disconnect()
        return

    get_presence().add(request.sid, user)
    join_room(user_room(user.user_id))

    if user.role == "seller":
        _set_seller_presence(user.user_id, True)

    emit("authenticated", {"success": True, "user": user.to_dict_basic()})
    logger.debug("Socket %s authenticated as user %s", request.sid, user.user_id)


@socketio.on("join_product_chat")
def handle_join_product_chat(data):
    if _session_user() is None:
        return
    product_id = data.get("product_id") if isinstance(data, dict) else None
    if product_id is None:
        emit("error", {"message": "product_id is required"})
        return
    join_room(product_room(product_id))


@socketio.on("send_message")
def handle_send_message(data):
    entry = _session_user()
    if entry is None:
        return
    if not isinstance(data, dict):
        emit("message_error", {"message": "Invalid message payload"})
        return
    try:
        chat.send_message(
            data.get("chat_id"),
            entry["user_id"],
            data.get("message") or "",
            data.get("message_type") or "text",
        )
    except AppError as exc:
        emit("message_error", {"message": exc.message})


def _emit_typing(data, is_typing: bool) -> None:
    entry = _session_user()
    if entry is None or not isinstance(data, dict) or data.get("product_id") is None:
        return
    emit(
        "user_typing",
        {"chat_id": data.get("chat_id"), "user_id": entry["user_id"], "is_typing": is_typing},
        to=product_room(data["product_id"]),
        include_self=False,
    )


@socketio.on("typing_start")
def handle_typing_start(data):
    _emit_typing(data, True)


@socketio.on("typing_stop")
def handle_typing_stop(data):
    _emit_typing(data, False)


@socketio.on("mark_as_read")
def handle_mark_as_read(data):
    entry = _session_user()
    if entry is None:
        return
    chat_id = data.get("chat_id") if isinstance(data, dict) else None
    try:
        chat.mark_chat_as_read(chat_id, entry["user_id"])
    except AppError as exc:
        emit("error", {"message": exc.message})
        return
    conversation = db.session.get(ProductChat, chat_id)
    emit(
        "messages_read",
        {"chat_id": chat_id, "user_id": entry["user_id"]},
        to=product_room(conversation.product_id),
        include_self=False,
    )


@socketio.on("disconnect")
def handle_disconnect(*args):
    presence = get_presence()
    entry = presence.remove(request.sid)
    if entry is None or entry["role"] != "seller":
        return
    if presence.is_connected(entry["user_id"]):
        return
    _set_seller_presence(entry["user_id"], False)
