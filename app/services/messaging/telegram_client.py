"""
Telegram Bot API client with dry-run mode for development.

Thin async wrapper over the four Bot API methods the bot needs
(sendMessage, sendMediaGroup, editMessageText, answerCallbackQuery).
Every failure is raised as TelegramApiError; a 429 carrying
parameters.retry_after is raised as TelegramRateLimitError so the delivery
pipeline can reschedule instead of failing.
"""

import logging
from typing import Any

import httpx

from app.core.config import settings
from app.services.integrations.http_client import create_httpx_client

logger = logging.getLogger(__name__)

# sendMediaGroup accepts 2-10 items; a single item is sent as a one-photo album
MEDIA_GROUP_MAX_ITEMS = 10


class TelegramApiError(Exception):
    """Raised when a Bot API call fails (network error, bad status, ok=false, bad body)."""

    def __init__(self, method: str, message: str, status_code: int | None = None):
        super().__init__(f"Telegram API error ({method}): {message}")
        self.method = method
        self.status_code = status_code


class TelegramRateLimitError(TelegramApiError):
    """Raised on HTTP 429 with a retry_after hint (seconds)."""

    def __init__(self, method: str, retry_after_seconds: int):
        super().__init__(
            method, f"rate limit, retry after {retry_after_seconds}s", status_code=429
        )
        self.retry_after_seconds = retry_after_seconds


def _api_base_url() -> str:
    return f"{settings.telegram_api_base_url.rstrip('/')}/bot{settings.telegram_bot_token}"


def _parse_error_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {"description": response.text}
    return body if isinstance(body, dict) else {"description": str(body)}


async def call_telegram(method: str, payload: dict) -> Any:
    """
    Call a Bot API method and return its "result" field.

    Args:
        method: Bot API method name (e.g. "sendMessage")
        payload: JSON body

    Returns:
        The "result" member of the API response (message dict, list, or True)

    Raises:
        TelegramRateLimitError: HTTP 429 with parameters.retry_after
        TelegramApiError: Any other failure
    """
    if settings.telegram_dry_run:
        logger.info(f"[DRY-RUN] Would call Telegram {method}: {payload}")
        if method == "sendMediaGroup":
            return [{"message_id": None} for _ in payload.get("media", [])]
        return {"message_id": None, "dry_run": True}

    try:
        async with create_httpx_client(_api_base_url()) as client:
            response = await client.post(f"/{method}", json=payload)
    except httpx.HTTPError as e:
        raise TelegramApiError(method, f"{type(e).__name__}: {e}") from e

    if response.is_success:
        try:
            body = response.json()
        except ValueError as e:
            raise TelegramApiError(
                method, f"malformed response body: {response.text[:200]}", response.status_code
            ) from e
        if not isinstance(body, dict):
            raise TelegramApiError(
                method, f"unexpected response body: {body!r}", response.status_code
            )
        if body.get("ok"):
            return body.get("result")
        raise TelegramApiError(method, str(body.get("description")), response.status_code)

    body = _parse_error_body(response)
    retry_after = (body.get("parameters") or {}).get("retry_after")
    if response.status_code == 429 and retry_after:
        logger.warning(f"Telegram rate limit on {method}: retry after {retry_after}s")
        raise TelegramRateLimitError(method, int(retry_after))

    raise TelegramApiError(method, str(body.get("description") or body), response.status_code)


async def send_message(
    chat_id: int | str,
    text: str,
    reply_markup: dict | None = None,
) -> dict:
    """Send a text message; returns the sent Message object."""
    payload: dict = {"chat_id": chat_id, "text": text}
    if reply_markup:
        payload["reply_markup"] = reply_markup
    return await call_telegram("sendMessage", payload)


async def send_media_group(chat_id: int | str, file_ids: list[str]) -> list:
    """
    Send up to MEDIA_GROUP_MAX_ITEMS photos as one album.

    Raises:
        ValueError: If file_ids is empty or exceeds the per-call limit
    """
    if not file_ids:
        raise ValueError("send_media_group requires at least one file_id")
    if len(file_ids) > MEDIA_GROUP_MAX_ITEMS:
        raise ValueError(
            f"send_media_group accepts at most {MEDIA_GROUP_MAX_ITEMS} items, got {len(file_ids)}"
        )
    media = [{"type": "photo", "media": file_id} for file_id in file_ids]
    return await call_telegram("sendMediaGroup", {"chat_id": chat_id, "media": media})


async def edit_message_text(
    chat_id: int | str,
    message_id: int,
    text: str,
    reply_markup: dict | None = None,
) -> dict:
    """Edit a previously sent text message. Fails if the message is gone or unchanged."""
    payload: dict = {"chat_id": chat_id, "message_id": message_id, "text": text}
    if reply_markup:
        payload["reply_markup"] = reply_markup
    return await call_telegram("editMessageText", payload)


async def answer_callback_query(callback_query_id: str, text: str | None = None) -> bool:
    """Acknowledge a button press so the client stops showing the spinner."""
    payload: dict = {"callback_query_id": callback_query_id}
    if text:
        payload["text"] = text
    return await call_telegram("answerCallbackQuery", payload)
