"""Buyer-seller conversations about a product."""
from __future__ import annotations

import logging

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..events import get_dispatcher, product_room, user_room
from ..extensions import db
from ..models import (
    MESSAGE_TYPES,
    Product,
    ProductChat,
    ProductMessage,
    Seller,
    SellerChatSettings,
    utc_now,
)

logger = logging.getLogger(__name__)


def _chats_of_user(user_id: int):
    """Filter matching chats where ``user_id`` is the buyer or the owning seller."""
    seller_ids = db.session.query(Seller.seller_id).filter(Seller.user_id == user_id)
    return or_(ProductChat.buyer_id == user_id, ProductChat.seller_id.in_(seller_ids))


def get_chat_for_participant(chat_id: int, user_id: int, action: str = "access") -> ProductChat:
    chat = db.session.get(ProductChat, chat_id)
    if chat is None:
        raise NotFoundError("Chat not found")
    if user_id not in chat.participant_ids():
        raise AuthorizationError(f"You are not authorized to {action} this chat")
    return chat


def start_or_get_chat(buyer_id: int, product_id: int, initial_message: str | None = None) -> ProductChat:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    if not product.is_active:
        raise ConflictError("Product is not available for chat")
    if product.seller.user_id == buyer_id:
        raise ConflictError("You cannot start a chat about your own product")

    chat = ProductChat.query.filter_by(product_id=product_id, buyer_id=buyer_id).first()
    try:
        if chat is None:
            chat = ProductChat(product_id=product_id, buyer_id=buyer_id, seller_id=product.seller_id)
            db.session.add(chat)
        elif not chat.is_active:
            chat.is_active = True
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to open chat on product %s for buyer %s", product_id, buyer_id)
        raise

    if initial_message and initial_message.strip():
        send_message(chat.chat_id, buyer_id, initial_message)
    return chat


def send_message(
    chat_id: int,
    sender_id: int,
    text: str,
    message_type: str = "text",
) -> ProductMessage:
    """Persist a message, then push it to the product room and the recipient."""
    if message_type not in MESSAGE_TYPES:
        raise ValidationError(f"message_type must be one of: {', '.join(MESSAGE_TYPES)}")
    if not text or not text.strip():
        raise ValidationError("message is required")

    chat = db.session.get(ProductChat, chat_id)
    if chat is None:
        raise NotFoundError("Chat not found")
    if not chat.is_active:
        raise ConflictError("Chat is no longer active")
    if sender_id not in chat.participant_ids():
        raise AuthorizationError("You are not authorized to send messages in this chat")

    message = ProductMessage(
        chat_id=chat_id,
        sender_id=sender_id,
        message=text.strip(),
        message_type=message_type,
    )
    try:
        db.session.add(message)
        chat.updated_at = utc_now()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to save message in chat %s", chat_id)
        raise

    _notify_new_message(chat, message)
    return message


def _notify_new_message(chat: ProductChat, message: ProductMessage) -> None:
    """Push a committed message. Failures are logged and dropped."""
    dispatcher = get_dispatcher()
    try:
        payload = {"chat_id": chat.chat_id, "message": message.to_dict()}
        recipients = [
            user_id for user_id in chat.participant_ids() if user_id is not None and user_id != message.sender_id
        ]
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Skipped notifications for message in chat %s", chat.chat_id, exc_info=True)
        return

    dispatcher.publish("new_message", payload, product_room(chat.product_id))
    for user_id in recipients:
        dispatcher.publish("new_message_notification", payload, user_room(user_id))
        try:
            unread_count = get_unread_count(user_id)
        except SQLAlchemyError:
            db.session.rollback()
            logger.warning("Could not count unread messages for user %s", user_id, exc_info=True)
            continue
        dispatcher.publish("unread_count_update", {"unread_count": unread_count}, user_room(user_id))


def get_chat(chat_id: int, user_id: int) -> ProductChat:
    """Fetch a chat with its messages and mark the other side's messages read."""
    chat = get_chat_for_participant(chat_id, user_id, "view")
    mark_chat_as_read(chat_id, user_id)
    return chat


def get_user_chats(user_id: int) -> list[dict[str, object]]:
    unread = (
        db.session.query(ProductMessage.chat_id, func.count(ProductMessage.message_id))
        .filter(ProductMessage.sender_id != user_id, ProductMessage.is_read.is_(False))
        .group_by(ProductMessage.chat_id)
    )
    unread_by_chat = dict(unread.all())

    chats = (
        ProductChat.query.filter(_chats_of_user(user_id), ProductChat.is_active.is_(True))
        .order_by(ProductChat.updated_at.desc())
        .all()
    )
    results = []
    for chat in chats:
        data = chat.to_dict()
        data["last_message"] = chat.messages[-1].to_dict() if chat.messages else None
        data["unread_count"] = unread_by_chat.get(chat.chat_id, 0)
        results.append(data)
    return results


def get_unread_count(user_id: int) -> int:
    return (
        ProductMessage.query.join(ProductChat, ProductMessage.chat_id == ProductChat.chat_id)
        .filter(
            _chats_of_user(user_id),
            ProductMessage.sender_id != user_id,
            ProductMessage.is_read.is_(False),
        )
        .count()
    )


def mark_chat_as_read(chat_id: int, user_id: int) -> int:
    get_chat_for_participant(chat_id, user_id)
    try:
        updated = (
            ProductMessage.query.filter(
                ProductMessage.chat_id == chat_id,
                ProductMessage.sender_id != user_id,
                ProductMessage.is_read.is_(False),
            )
            .update({ProductMessage.is_read: True}, synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to mark chat %s read", chat_id)
        raise
    if updated:
        db.session.expire_all()
    return updated


def get_seller_chat_settings(seller_id: int) -> SellerChatSettings:
    settings = SellerChatSettings.query.filter_by(seller_id=seller_id).first()
    if settings is not None:
        return settings
    settings = SellerChatSettings(seller_id=seller_id, show_phone=False, is_online=False)
    try:
        db.session.add(settings)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to create chat settings for seller %s", seller_id)
        raise
    return settings


def update_seller_chat_settings(seller_id: int, updates: dict) -> SellerChatSettings:
    errors = []
    if "show_phone" in updates and not isinstance(updates["show_phone"], bool):
        errors.append("show_phone must be a boolean")
    auto_reply = updates.get("auto_reply_text")
    if auto_reply is not None and (not isinstance(auto_reply, str) or len(auto_reply) > 500):
        errors.append("auto_reply_text must be a string of at most 500 characters")
    if errors:
        raise ValidationError(errors)

    settings = get_seller_chat_settings(seller_id)
    try:
        if "show_phone" in updates:
            settings.show_phone = updates["show_phone"]
        if "auto_reply_text" in updates:
            settings.auto_reply_text = (auto_reply or "").strip() or None
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update chat settings for seller %s", seller_id)
        raise
    return settings


def set_seller_online_status(seller_id: int, is_online: bool) -> SellerChatSettings:
    settings = get_seller_chat_settings(seller_id)
    try:
        settings.is_online = is_online
        settings.last_seen = None if is_online else utc_now()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to update online status for seller %s", seller_id)
        raise

    get_dispatcher().publish(
        "seller_status",
        {"seller_id": seller_id, "is_online": is_online},
        user_room(settings.seller.user_id),
    )
    return settings
