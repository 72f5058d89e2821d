"""
Delivery pipeline - relays a finished submission to the target chat.

A delivery is the header text followed by the photos in sendMediaGroup-sized
chunks, sent sequentially with a short random pause between chunks.

Two modes (settings.delivery_mode):
- inline: the webhook invocation that receives "send" delivers immediately;
  any send error (rate limit included) fails the submission and the user
  gets a retry button.
- worker: "send" queues the submission as pending_send; run_delivery_sweep
  claims due rows, reschedules rate-limited ones after retry_after and gives
  up after worker_max_attempts.
"""

import asyncio
import logging
import random
import time
import uuid

from sqlalchemy.orm import Session

from app.constants.event_types import (
    EVENT_DELIVERY_FAILURE,
    EVENT_DELIVERY_RATE_LIMITED,
    EVENT_DELIVERY_RETRY_BUDGET_EXHAUSTED,
    EVENT_DELIVERY_SWEEP_FAILURE,
)
from app.constants.statuses import (
    KIND_ACHIEVEMENT,
    REASON_DELIVERY_ERROR,
    REASON_RETRY_BUDGET_EXHAUSTED,
    STATUS_PENDING_SEND,
    STATUS_SENDING,
)
from app.core.config import settings
from app.db.models import Submission
from app.services.messaging.keyboards import menu_keyboard, retry_keyboard
from app.services.messaging.message_composer import render_message
from app.services.messaging.telegram_client import (
    TelegramApiError,
    TelegramRateLimitError,
    send_media_group,
    send_message,
)
from app.services.questions import OTHER_EVENT_TYPE, SKIPPED_VALUE
from app.services.state_machine import transition
from app.services.submissions import (
    claim_submission,
    find_due_submission_ids,
    mark_failed,
    mark_retry_after,
    mark_sent,
    release_claim,
)
from app.services.system_event_service import error as log_error_event
from app.services.system_event_service import warn as log_warn_event
from app.utils.datetime_utils import iso_or_none

logger = logging.getLogger(__name__)

DELIVERY_MODE_INLINE = "inline"
DELIVERY_MODE_WORKER = "worker"


def _answered(value: str | None) -> bool:
    return bool(value) and value != SKIPPED_VALUE


def format_header(submission: Submission) -> str:
    """
    Header text posted before the photos.

    Competition: "[date]", then type (custom text when "other" was chosen),
    discipline, gender, stage, phase; one per line, skipped/empty omitted.
    Achievement: label line followed by the free text.
    """
    if submission.kind == KIND_ACHIEVEMENT:
        return "\n".join(
            [render_message("header_achievement_label"), (submission.achievement_text or "").strip()]
        )

    lines = []
    if _answered(submission.event_date):
        lines.append(f"[{submission.event_date}]")

    event_type = submission.event_type
    if event_type == OTHER_EVENT_TYPE and _answered(submission.custom_event_type):
        event_type = submission.custom_event_type
    if _answered(event_type):
        lines.append(event_type.strip())

    for value in (submission.sport, submission.gender, submission.stage, submission.phase):
        if _answered(value):
            lines.append(value)
    return "\n".join(lines)


def chunk_photos(file_ids: list[str], size: int | None = None) -> list[list[str]]:
    """Split photos into consecutive chunks of at most `size`, order preserved."""
    size = size or settings.photo_chunk_size
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [file_ids[i : i + size] for i in range(0, len(file_ids), size)]


async def _pause_between_chunks() -> None:
    low = settings.photo_chunk_delay_min_ms
    high = max(low, settings.photo_chunk_delay_max_ms)
    if high <= 0:
        return
    await asyncio.sleep(random.uniform(low, high) / 1000)


async def send_submission(submission: Submission) -> None:
    """
    Post header + photo chunks to the target chat.

    Raises:
        TelegramRateLimitError / TelegramApiError: From the first failing call
    """
    target = settings.telegram_target_chat_id
    await send_message(target, format_header(submission))

    chunks = chunk_photos(list(submission.photo_file_ids or []))
    for index, chunk in enumerate(chunks):
        if index > 0:
            await _pause_between_chunks()
        await send_media_group(target, chunk)

    logger.info(
        f"Submission {submission.id} delivered: {submission.photo_count} photo(s) "
        f"in {len(chunks)} chunk(s)"
    )


async def _notify_user(chat_id: int, text: str, reply_markup: dict | None = None) -> None:
    try:
        await send_message(chat_id, text, reply_markup=reply_markup)
    except TelegramApiError as e:
        logger.warning(f"Failed to notify chat {chat_id} about delivery outcome: {e}")


async def deliver_inline(db: Session, submission: Submission) -> Submission:
    """
    Deliver right away from confirming/collecting/failed.

    Status is sending (committed) before the first outbound call; the outcome
    is recorded before the user is told about it.
    """
    submission = transition(
        db,
        submission,
        STATUS_SENDING,
        failure_reason=None,
        last_error=None,
        next_retry_at=None,
    )

    try:
        await send_submission(submission)
    except Exception as e:
        logger.error(f"Inline delivery failed for submission {submission.id}: {e}", exc_info=True)
        failed = mark_failed(db, submission.id, str(e), reason=REASON_DELIVERY_ERROR)
        log_error_event(
            db=db,
            event_type=EVENT_DELIVERY_FAILURE,
            submission_id=submission.id,
            payload={"mode": DELIVERY_MODE_INLINE, "method": getattr(e, "method", None)},
            exc=e,
        )
        await _notify_user(
            submission.chat_id,
            render_message("delivery_failed", user_id=submission.user_id),
            reply_markup=retry_keyboard(),
        )
        return failed or submission

    sent = mark_sent(db, submission.id)
    await send_message(
        submission.chat_id,
        render_message("delivery_success", user_id=submission.user_id),
        reply_markup=menu_keyboard(),
    )
    return sent or submission


async def queue_for_delivery(db: Session, submission: Submission) -> Submission:
    """Hand the submission to the worker sweep (pending_send, due now, fresh retry budget)."""
    submission = transition(
        db,
        submission,
        STATUS_PENDING_SEND,
        failure_reason=None,
        last_error=None,
        next_retry_at=None,
        attempts=0,
    )
    await send_message(
        submission.chat_id,
        render_message("delivery_queued", user_id=submission.user_id),
    )
    return submission


async def start_delivery(db: Session, submission: Submission) -> Submission:
    """Deliver according to settings.delivery_mode."""
    if settings.delivery_mode == DELIVERY_MODE_WORKER:
        return await queue_for_delivery(db, submission)
    return await deliver_inline(db, submission)


async def _deliver_claimed(db: Session, submission: Submission, errors: list[str]) -> bool:
    """Deliver one claimed submission; returns True when it was sent."""
    try:
        await send_submission(submission)
    except TelegramRateLimitError as e:
        attempts_after = (submission.attempts or 0) + 1
        if attempts_after >= settings.worker_max_attempts:
            logger.error(
                f"Submission {submission.id} rate limited {attempts_after} time(s), giving up"
            )
            mark_failed(db, submission.id, str(e), reason=REASON_RETRY_BUDGET_EXHAUSTED)
            log_error_event(
                db=db,
                event_type=EVENT_DELIVERY_RETRY_BUDGET_EXHAUSTED,
                submission_id=submission.id,
                payload={"attempts": attempts_after, "retry_after": e.retry_after_seconds},
            )
            errors.append(str(e))
            await _notify_user(
                submission.chat_id,
                render_message("delivery_failed", user_id=submission.user_id),
                reply_markup=retry_keyboard(),
            )
            return False

        rescheduled = mark_retry_after(db, submission.id, e.retry_after_seconds, str(e))
        log_warn_event(
            db=db,
            event_type=EVENT_DELIVERY_RATE_LIMITED,
            submission_id=submission.id,
            payload={
                "attempts": attempts_after,
                "retry_after": e.retry_after_seconds,
                "next_retry_at": iso_or_none(rescheduled.next_retry_at if rescheduled else None),
            },
        )
        logger.warning(
            f"Submission {submission.id} rescheduled in {e.retry_after_seconds}s "
            f"(attempt {attempts_after})"
        )
        return False
    except Exception as e:
        logger.error(f"Delivery failed for submission {submission.id}: {e}", exc_info=True)
        mark_failed(db, submission.id, str(e), reason=REASON_DELIVERY_ERROR)
        log_error_event(
            db=db,
            event_type=EVENT_DELIVERY_FAILURE,
            submission_id=submission.id,
            payload={"mode": DELIVERY_MODE_WORKER},
            exc=e,
        )
        errors.append(str(e))
        await _notify_user(
            submission.chat_id,
            render_message("delivery_failed", user_id=submission.user_id),
            reply_markup=retry_keyboard(),
        )
        return False

    mark_sent(db, submission.id)
    await _notify_user(
        submission.chat_id,
        render_message("delivery_success", user_id=submission.user_id),
        reply_markup=menu_keyboard(),
    )
    return True


async def run_delivery_sweep(db: Session, batch_limit: int | None = None) -> dict:
    """
    One worker pass over due pending_send submissions.

    Each candidate is claimed right before it is delivered. When recording an
    outcome fails, the claim is released back to pending_send and the sweep
    stops; candidates it never reached are still pending_send.

    Returns:
        {"processed": <sent count>, "errors": [<error text>...], "duration_ms": int}
    """
    started = time.monotonic()
    limit = batch_limit or settings.worker_batch_limit
    processed = 0
    errors: list[str] = []

    try:
        candidate_ids = find_due_submission_ids(db, limit)
    except Exception as e:
        candidate_ids = []
        _record_sweep_failure(db, e, errors)

    for submission_id in candidate_ids:
        claimed = None
        try:
            claimed = claim_submission(db, submission_id)
            if claimed is None:
                continue
            if await _deliver_claimed(db, claimed, errors):
                processed += 1
        except Exception as e:
            _record_sweep_failure(db, e, errors, submission_id if claimed is not None else None)
            break

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        f"Delivery sweep finished: processed={processed} errors={len(errors)} "
        f"duration_ms={duration_ms}"
    )
    return {"processed": processed, "errors": errors, "duration_ms": duration_ms}


def _record_sweep_failure(
    db: Session, exc: Exception, errors: list[str], claimed_id: uuid.UUID | None = None
) -> None:
    db.rollback()
    logger.error(f"Delivery sweep failed: {exc}", exc_info=True)
    errors.append(str(exc))
    try:
        if claimed_id is not None:
            release_claim(db, claimed_id)
        log_error_event(
            db=db, event_type=EVENT_DELIVERY_SWEEP_FAILURE, submission_id=claimed_id, exc=exc
        )
    except Exception:
        db.rollback()
        logger.error("Failed to record sweep failure", exc_info=True)
