"""create_bot_tables

Revision ID: c4e1a7b2d9f0
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "c4e1a7b2d9f0"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ACTIVE_STATUS_SQL = "status IN ('collecting', 'confirming', 'sending', 'pending_send')"


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "bot_submissions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False, server_default="competition"),
        sa.Column("event_date", sa.String(length=16), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=True),
        sa.Column("custom_event_type", sa.String(length=255), nullable=True),
        sa.Column("sport", sa.String(length=64), nullable=True),
        sa.Column("gender", sa.String(length=64), nullable=True),
        sa.Column("stage", sa.String(length=64), nullable=True),
        sa.Column("phase", sa.String(length=64), nullable=True),
        sa.Column("achievement_text", sa.Text(), nullable=True),
        sa.Column(
            "photo_file_ids",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "photo_unique_ids",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="collecting"),
        sa.Column("failure_reason", sa.String(length=32), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("prompt_message_id", sa.BigInteger(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_bot_submissions_user_id"), "bot_submissions", ["user_id"], unique=False
    )
    op.create_index(
        op.f("ix_bot_submissions_chat_id"), "bot_submissions", ["chat_id"], unique=False
    )
    op.create_index(
        "ix_bot_submissions_user_status_created_at",
        "bot_submissions",
        ["user_id", "status", "created_at"],
        unique=False,
    )
    op.create_index(
        "ix_bot_submissions_status_next_retry_at",
        "bot_submissions",
        ["status", "next_retry_at"],
        unique=False,
    )
    # At most one active submission per user
    op.create_index(
        "uq_bot_submissions_user_active",
        "bot_submissions",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_STATUS_SQL),
    )

    op.create_table(
        "processed_updates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("update_id", sa.BigInteger(), nullable=False),
        sa.Column("event_type", sa.String(length=32), nullable=True),
        sa.Column(
            "processed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_processed_updates_update_id"), "processed_updates", ["update_id"], unique=True
    )

    op.create_table(
        "system_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("level", sa.String(length=10), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("submission_id", sa.Uuid(), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_system_events_created_at"), "system_events", ["created_at"], unique=False
    )
    op.create_index(op.f("ix_system_events_level"), "system_events", ["level"], unique=False)
    op.create_index(
        op.f("ix_system_events_event_type"), "system_events", ["event_type"], unique=False
    )
    op.create_index(
        op.f("ix_system_events_submission_id"), "system_events", ["submission_id"], unique=False
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_system_events_submission_id"), table_name="system_events")
    op.drop_index(op.f("ix_system_events_event_type"), table_name="system_events")
    op.drop_index(op.f("ix_system_events_level"), table_name="system_events")
    op.drop_index(op.f("ix_system_events_created_at"), table_name="system_events")
    op.drop_table("system_events")

    op.drop_index(op.f("ix_processed_updates_update_id"), table_name="processed_updates")
    op.drop_table("processed_updates")

    op.drop_index("uq_bot_submissions_user_active", table_name="bot_submissions")
    op.drop_index("ix_bot_submissions_status_next_retry_at", table_name="bot_submissions")
    op.drop_index("ix_bot_submissions_user_status_created_at", table_name="bot_submissions")
    op.drop_index(op.f("ix_bot_submissions_chat_id"), table_name="bot_submissions")
    op.drop_index(op.f("ix_bot_submissions_user_id"), table_name="bot_submissions")
    op.drop_table("bot_submissions")
