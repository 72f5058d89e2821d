"""
Normalize Telegram updates into dialogue events.

Only private chats are handled; group traffic (including the target chat the
bot posts into) is ignored. Button presses and typed button labels produce
the same event; the dialogue engine drops the label mapping again while a
free-text question is open, so such text is taken as the answer.
"""

import logging

from app.constants.statuses import SUBMISSION_KINDS
from app.schemas.telegram import TelegramCallbackQuery, TelegramMessage, TelegramUpdate
from app.services.dialogue import InboundEvent
from app.services.messaging.keyboards import (
    CALLBACK_ACTION_PREFIX,
    CALLBACK_KIND_PREFIX,
    CALLBACK_OPTION_PREFIX,
    action_for_label,
    kind_for_label,
)
from app.services.photos import pick_largest_photo

logger = logging.getLogger(__name__)

PRIVATE_CHAT = "private"


def _normalize_command(text: str) -> str:
    # "/start@my_bot payload" -> "/start"
    if text.startswith("/"):
        return text.split()[0].split("@")[0]
    return text


def _event_from_message(message: TelegramMessage) -> InboundEvent | None:
    if message.chat.type != PRIVATE_CHAT or message.from_user is None:
        return None

    text = (message.text or "").strip() or None
    action = kind = None
    if text:
        action = action_for_label(_normalize_command(text))
        kind = kind_for_label(text)

    return InboundEvent(
        user_id=message.from_user.id,
        chat_id=message.chat.id,
        text=text,
        action=action,
        kind=kind,
        photo=pick_largest_photo(message.photo),
        media_group_id=message.media_group_id,
    )


def _event_from_callback(callback: TelegramCallbackQuery) -> InboundEvent | None:
    message = callback.message
    if message is None or message.chat.type != PRIVATE_CHAT:
        return None

    data = callback.data or ""
    event = InboundEvent(
        user_id=callback.from_user.id,
        chat_id=message.chat.id,
        callback_query_id=callback.id,
    )
    if data.startswith(CALLBACK_KIND_PREFIX):
        kind = data[len(CALLBACK_KIND_PREFIX) :]
        event.kind = kind if kind in SUBMISSION_KINDS else None
    elif data.startswith(CALLBACK_OPTION_PREFIX):
        event.text = data[len(CALLBACK_OPTION_PREFIX) :]
    elif data.startswith(CALLBACK_ACTION_PREFIX):
        event.action = data[len(CALLBACK_ACTION_PREFIX) :]
    else:
        logger.info(f"Unknown callback data {data!r} from user {callback.from_user.id}")
    return event


def parse_update(update: TelegramUpdate) -> InboundEvent | None:
    """
    Build the dialogue event for an update.

    Returns:
        None for updates the bot does not act on (non-private chats, edits,
        messages without a sender, other update types)
    """
    if update.callback_query is not None:
        return _event_from_callback(update.callback_query)
    if update.message is not None:
        return _event_from_message(update.message)
    return None
