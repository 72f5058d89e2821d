"""
Test helpers for Telegram: a call recorder that stands in for call_telegram,
and builders for raw webhook update payloads.
"""

import itertools
from typing import Any

from app.services.messaging.telegram_client import TelegramApiError, TelegramRateLimitError

USER_ID = 555001
TARGET_CHAT_ID = "-100777"


class TelegramRecorder:
    """Records every Bot API call; failures can be queued per method."""

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self._failures: dict[str, list[Exception]] = {}
        self._message_ids = itertools.count(1000)

    async def __call__(self, method: str, payload: dict) -> Any:
        self.calls.append((method, payload))
        queued = self._failures.get(method)
        if queued:
            raise queued.pop(0)
        if method == "sendMediaGroup":
            return [{"message_id": next(self._message_ids)} for _ in payload["media"]]
        if method == "answerCallbackQuery":
            return True
        return {"message_id": next(self._message_ids), "chat": {"id": payload.get("chat_id")}}

    def fail_next(self, method: str, exc: Exception) -> None:
        self._failures.setdefault(method, []).append(exc)

    def rate_limit_next(self, method: str, retry_after: int) -> None:
        self.fail_next(method, TelegramRateLimitError(method, retry_after))

    def error_next(self, method: str, message: str = "Bad Request: chat not found") -> None:
        self.fail_next(method, TelegramApiError(method, message, status_code=400))

    def clear(self) -> None:
        self.calls.clear()

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def calls_for(self, method: str) -> list[dict]:
        return [payload for m, payload in self.calls if m == method]

    def texts_to(self, chat_id) -> list[str]:
        """Texts sent (or edited in) to a chat, in order."""
        return [
            payload["text"]
            for m, payload in self.calls
            if m in ("sendMessage", "editMessageText") and str(payload["chat_id"]) == str(chat_id)
        ]

    def last_markup(self) -> dict | None:
        for m, payload in reversed(self.calls):
            if m in ("sendMessage", "editMessageText"):
                return payload.get("reply_markup")
        return None


_update_ids = itertools.count(9000)


def next_update_id() -> int:
    return next(_update_ids)


def _private_message(user_id: int, **fields) -> dict:
    message = {
        "message_id": next_update_id(),
        "date": 1756700000,
        "chat": {"id": user_id, "type": "private"},
        "from": {"id": user_id, "is_bot": False, "first_name": "Test"},
    }
    message.update(fields)
    return message


def text_update(text: str, user_id: int = USER_ID, update_id: int | None = None) -> dict:
    return {
        "update_id": update_id or next_update_id(),
        "message": _private_message(user_id, text=text),
    }


def photo_update(
    file_unique_id: str,
    user_id: int = USER_ID,
    update_id: int | None = None,
    media_group_id: str | None = None,
) -> dict:
    """Photo message with three size variants; the largest is f"{file_unique_id}-large"."""
    sizes = [
        {"file_id": f"{file_unique_id}-small", "file_unique_id": f"{file_unique_id}s", "file_size": 1200},
        {"file_id": f"{file_unique_id}-large", "file_unique_id": file_unique_id, "file_size": 98000},
        {"file_id": f"{file_unique_id}-medium", "file_unique_id": f"{file_unique_id}m", "file_size": 15000},
    ]
    fields: dict = {"photo": sizes}
    if media_group_id:
        fields["media_group_id"] = media_group_id
    return {
        "update_id": update_id or next_update_id(),
        "message": _private_message(user_id, **fields),
    }


def callback_update(data: str, user_id: int = USER_ID, update_id: int | None = None) -> dict:
    return {
        "update_id": update_id or next_update_id(),
        "callback_query": {
            "id": f"cbq-{next_update_id()}",
            "from": {"id": user_id, "is_bot": False, "first_name": "Test"},
            "message": _private_message(user_id, text="prompt"),
            "data": data,
        },
    }


def group_text_update(text: str, chat_id: int = -100777, user_id: int = USER_ID) -> dict:
    return {
        "update_id": next_update_id(),
        "message": {
            "message_id": next_update_id(),
            "date": 1756700000,
            "chat": {"id": chat_id, "type": "supergroup"},
            "from": {"id": user_id, "is_bot": False, "first_name": "Test"},
            "text": text,
        },
    }
