import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String, Text, Uuid, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.constants.statuses import ACTIVE_STATUSES, KIND_COMPETITION, STATUS_COLLECTING
from app.db.base import Base

JSONList = JSON().with_variant(JSONB(), "postgresql")

_ACTIVE_STATUS_SQL = "status IN ({})".format(", ".join(f"'{s}'" for s in ACTIVE_STATUSES))


class Submission(Base):
    """One user's intake flow: collected answers, photos and delivery bookkeeping."""

    __tablename__ = "bot_submissions"
    __table_args__ = (
        Index("ix_bot_submissions_user_status_created_at", "user_id", "status", "created_at"),
        Index("ix_bot_submissions_status_next_retry_at", "status", "next_retry_at"),
        # At most one active submission per user
        Index(
            "uq_bot_submissions_user_active",
            "user_id",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_SQL),
            sqlite_where=text(_ACTIVE_STATUS_SQL),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[int] = mapped_column(BigInteger, index=True)
    chat_id: Mapped[int] = mapped_column(BigInteger, index=True)
    kind: Mapped[str] = mapped_column(String(32), default=KIND_COMPETITION)

    # Competition answers
    event_date: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    event_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    custom_event_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sport: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # "-" when skipped
    gender: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    stage: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    phase: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Achievement answer
    achievement_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Parallel lists, insertion order; photo_unique_ids holds the dedup keys
    photo_file_ids: Mapped[list] = mapped_column(JSONList, default=list)
    photo_unique_ids: Mapped[list] = mapped_column(JSONList, default=list)

    status: Mapped[str] = mapped_column(String(32), default=STATUS_COLLECTING)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    # Delivery retry bookkeeping
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    next_retry_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Last "collect photos"/"confirm" prompt, edited in place when possible
    prompt_message_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def photo_count(self) -> int:
        return len(self.photo_file_ids or [])


class ProcessedUpdate(Base):
    """Idempotency table - stores processed Telegram update IDs to prevent duplicates."""

    __tablename__ = "processed_updates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    update_id: Mapped[int] = mapped_column(BigInteger, unique=True, index=True)
    event_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SystemEvent(Base):
    """Structured record of key failures and conflicts for later diagnosis."""

    __tablename__ = "system_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    level: Mapped[str] = mapped_column(String(10), index=True)  # INFO, WARN, ERROR
    event_type: Mapped[str] = mapped_column(String(64), index=True)
    submission_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    payload: Mapped[Optional[dict]] = mapped_column(JSONList, nullable=True)
