"""
Pydantic schemas for API request/response validation.
"""

from app.schemas.telegram import (
    TelegramCallbackQuery,
    TelegramMessage,
    TelegramPhotoSize,
    TelegramUpdate,
)
from app.schemas.worker import DeliverySweepResponse

__all__ = [
    "TelegramUpdate",
    "TelegramMessage",
    "TelegramCallbackQuery",
    "TelegramPhotoSize",
    "DeliverySweepResponse",
]
