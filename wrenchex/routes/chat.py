"""Product chat over HTTP; the socket layer offers the same operations live."""
from __future__ import annotations

from flask import Blueprint, g

from ..auth import current_seller, login_required, roles_required
from ..errors import ValidationError
from ..responses import json_payload, success
from ..services import chat

bp = Blueprint("chat", __name__)


@bp.post("/product/<int:product_id>/start")
@login_required
def start_chat(product_id: int) -> tuple[dict[str, object], int]:
    """Open (or reopen) the buyer's conversation about a product.
    ---
    tags:
      - Chat
    parameters:
      - name: body
        in: body
        schema:
          type: object
          properties:
            message:
              type: string
    responses:
      200:
        description: Conversation with its messages
      404:
        description: Product not found
    """
    conversation = chat.start_or_get_chat(
        g.current_user.user_id, product_id, json_payload().get("message")
    )
    return success(conversation.to_dict(include_messages=True), message="Chat started successfully")


@bp.get("/conversations")
@login_required
def conversations() -> tuple[dict[str, object], int]:
    return success(chat.get_user_chats(g.current_user.user_id))


@bp.get("/unread-count")
@login_required
def unread_count() -> tuple[dict[str, object], int]:
    return success({"unread_count": chat.get_unread_count(g.current_user.user_id)})


@bp.post("/<int:chat_id>/send")
@login_required
def send_message(chat_id: int) -> tuple[dict[str, object], int]:
    payload = json_payload()
    message = chat.send_message(
        chat_id,
        g.current_user.user_id,
        payload.get("message") or "",
        payload.get("message_type") or "text",
    )
    return success(message.to_dict(), 201, message="Message sent successfully")


@bp.get("/<int:chat_id>")
@login_required
def get_chat(chat_id: int) -> tuple[dict[str, object], int]:
    conversation = chat.get_chat(chat_id, g.current_user.user_id)
    return success(conversation.to_dict(include_messages=True))


@bp.put("/<int:chat_id>/read")
@login_required
def mark_read(chat_id: int) -> tuple[dict[str, object], int]:
    updated = chat.mark_chat_as_read(chat_id, g.current_user.user_id)
    return success({"updated": updated}, message="Messages marked as read")


@bp.get("/seller/settings")
@roles_required("seller")
def seller_settings() -> tuple[dict[str, object], int]:
    return success(chat.get_seller_chat_settings(current_seller().seller_id).to_dict())


@bp.put("/seller/settings")
@roles_required("seller")
def update_seller_settings() -> tuple[dict[str, object], int]:
    settings = chat.update_seller_chat_settings(current_seller().seller_id, json_payload())
    return success(settings.to_dict(), message="Chat settings updated successfully")


@bp.post("/seller/online-status")
@roles_required("seller")
def set_online_status() -> tuple[dict[str, object], int]:
    is_online = json_payload().get("is_online")
    if not isinstance(is_online, bool):
        raise ValidationError("is_online must be a boolean")
    settings = chat.set_seller_online_status(current_seller().seller_id, is_online)
    return success(settings.to_dict(), message="Online status updated")
