"""
Admin alerts - best-effort error reports to the admin chat.
"""

import logging

from app.core.config import settings
from app.services.messaging.message_composer import render_message
from app.services.messaging.telegram_client import send_message

logger = logging.getLogger(__name__)

MAX_ERROR_TEXT = 1000


async def notify_admin_error(error: BaseException | str) -> bool:
    """
    Report a processing error to the admin chat (falls back to the target chat).

    Never raises: a failed alert is only logged.

    Returns:
        True if the alert was sent
    """
    error_text = str(error)[:MAX_ERROR_TEXT]
    try:
        await send_message(settings.admin_chat_id, render_message("admin_error", error=error_text))
    except Exception as e:
        logger.error(f"Failed to notify admin about error '{error_text}': {e}", exc_info=True)
        return False
    return True
