"""
Telegram Bot API update schemas (only the fields the bot reads).

Unknown fields are ignored so new Bot API additions never break parsing.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.constants.event_types import EVENT_TELEGRAM_CALLBACK_QUERY, EVENT_TELEGRAM_MESSAGE


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: Optional[str] = None
    username: Optional[str] = None


class TelegramChat(BaseModel):
    id: int
    type: str  # private, group, supergroup, channel


class TelegramPhotoSize(BaseModel):
    file_id: str
    file_unique_id: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    file_size: Optional[int] = None


class TelegramMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message_id: int
    date: int = 0
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")  # "from" is reserved
    text: Optional[str] = None
    caption: Optional[str] = None
    photo: Optional[list[TelegramPhotoSize]] = None
    media_group_id: Optional[str] = None


class TelegramCallbackQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_user: TelegramUser = Field(alias="from")
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None  # callback_data from button


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None
    edited_message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None

    @property
    def event_type(self) -> str:
        if self.callback_query is not None:
            return EVENT_TELEGRAM_CALLBACK_QUERY
        if self.message is not None:
            return EVENT_TELEGRAM_MESSAGE
        return "other"

