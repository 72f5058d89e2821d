"""
Submission store - lookup, creation and status bookkeeping for bot submissions.

Policy:
- At most one active submission per user (collecting/confirming/sending/pending_send),
  backed by a partial unique index.
- A failed submission with a retryable reason stays the user's current one
  (one-tap retry) until the user cancels or restarts.
- Delivery outcomes (mark_sent/mark_failed/mark_retry_after) always write:
  a status that moved underneath a delivery (e.g. cancelled mid-send) is
  logged and overwritten, last write wins.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import desc, or_, select, update
from sqlalchemy.orm import Session

from app.constants.event_types import EVENT_LATE_STATUS_OVERWRITE
from app.constants.statuses import (
    ACTIVE_STATUSES,
    REASON_DELIVERY_ERROR,
    RETRYABLE_FAILURE_REASONS,
    STATUS_COLLECTING,
    STATUS_FAILED,
    STATUS_PENDING_SEND,
    STATUS_SENDING,
    STATUS_SENT,
)
from app.db.models import Submission
from app.services.photos import PhotoRef
from app.services.state_machine import update_status_if_matches
from app.utils.datetime_utils import seconds_from, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhotoAppendResult:
    photo_count: int
    added: bool  # False when the dedup key was already in the list


def get_submission_or_none(db: Session, submission_id: uuid.UUID) -> Submission | None:
    return db.get(Submission, submission_id)


def find_active_submission(db: Session, user_id: int) -> Submission | None:
    """The user's submission in an active status, if any."""
    stmt = (
        select(Submission)
        .where(Submission.user_id == user_id, Submission.status.in_(ACTIVE_STATUSES))
        .order_by(desc(Submission.created_at))
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def find_current_submission(db: Session, user_id: int) -> Submission | None:
    """
    The submission the user's next input applies to.

    Active submission first; otherwise the user's most recent submission when
    it failed with a retryable reason. Anything else means "no submission",
    and the user is shown the menu.
    """
    active = find_active_submission(db, user_id)
    if active is not None:
        return active

    stmt = (
        select(Submission)
        .where(Submission.user_id == user_id)
        .order_by(desc(Submission.created_at))
        .limit(1)
    )
    latest = db.execute(stmt).scalar_one_or_none()
    if (
        latest is not None
        and latest.status == STATUS_FAILED
        and latest.failure_reason in RETRYABLE_FAILURE_REASONS
    ):
        return latest
    return None


def create_submission(db: Session, user_id: int, chat_id: int, kind: str) -> Submission:
    """
    Create a new collecting submission.

    Raises:
        IntegrityError: If the user already has an active submission (unique index)
    """
    submission = Submission(
        user_id=user_id,
        chat_id=chat_id,
        kind=kind,
        status=STATUS_COLLECTING,
        photo_file_ids=[],
        photo_unique_ids=[],
        attempts=0,
        created_at=utc_now(),
    )
    db.add(submission)
    db.commit()
    db.refresh(submission)
    logger.info(f"Created {kind} submission {submission.id} for user {user_id}")
    return submission


def save_submission(db: Session, submission: Submission) -> Submission:
    """Persist pending attribute changes on a submission."""
    db.add(submission)
    db.commit()
    db.refresh(submission)
    return submission


def append_photo(db: Session, submission_id: uuid.UUID, photo: PhotoRef) -> PhotoAppendResult:
    """
    Append a photo under a row lock, unless its dedup key is already present.

    Concurrent appends for the same submission (album parts arriving as
    separate updates) serialize on SELECT FOR UPDATE, so no append is lost.
    """
    stmt = (
        select(Submission)
        .where(Submission.id == submission_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    submission = db.execute(stmt).scalar_one()

    unique_ids = list(submission.photo_unique_ids or [])
    if photo.dedup_key in unique_ids:
        db.rollback()  # Release the lock
        logger.info(f"Duplicate photo {photo.dedup_key} ignored for submission {submission_id}")
        return PhotoAppendResult(photo_count=len(unique_ids), added=False)

    # New list objects so the JSON columns are flagged dirty
    submission.photo_file_ids = [*(submission.photo_file_ids or []), photo.file_id]
    submission.photo_unique_ids = [*unique_ids, photo.dedup_key]
    db.commit()
    db.refresh(submission)
    return PhotoAppendResult(photo_count=submission.photo_count, added=True)


def close_open_submissions(db: Session, user_id: int, reason: str) -> int:
    """
    Abandon the user's current work: active submissions become failed with
    `reason`, and a retryable failed submission is re-tagged with it.

    In-flight deliveries are not interrupted; their outcome overwrites this.

    Returns:
        Number of submissions closed
    """
    closed = db.execute(
        update(Submission)
        .where(Submission.user_id == user_id, Submission.status.in_(ACTIVE_STATUSES))
        .values(status=STATUS_FAILED, failure_reason=reason, next_retry_at=None)
        .execution_options(synchronize_session="fetch")
    ).rowcount
    retagged = db.execute(
        update(Submission)
        .where(
            Submission.user_id == user_id,
            Submission.status == STATUS_FAILED,
            Submission.failure_reason.in_(RETRYABLE_FAILURE_REASONS),
        )
        .values(failure_reason=reason)
        .execution_options(synchronize_session="fetch")
    ).rowcount
    db.commit()

    total = (closed or 0) + (retagged or 0)
    if total:
        logger.info(f"Closed {total} submission(s) for user {user_id} ({reason})")
    return total


def find_due_submission_ids(
    db: Session, limit: int, now: datetime | None = None
) -> list[uuid.UUID]:
    """Ids of up to `limit` due pending_send submissions, oldest first.

    Due means next_retry_at is null or in the past.
    """
    now = now or utc_now()
    stmt = (
        select(Submission.id)
        .where(Submission.status == STATUS_PENDING_SEND)
        .where(or_(Submission.next_retry_at.is_(None), Submission.next_retry_at <= now))
        .order_by(Submission.created_at)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def claim_submission(db: Session, submission_id: uuid.UUID) -> Submission | None:
    """
    Claim one submission with a conditional pending_send -> sending update,
    so two sweeps never deliver the same submission. None when another run
    got there first.
    """
    success, submission = update_status_if_matches(
        db, submission_id, STATUS_PENDING_SEND, STATUS_SENDING
    )
    if success and submission is not None:
        return submission
    logger.info(f"Submission {submission_id} claimed by another run, skipping")
    return None


def release_claim(db: Session, submission_id: uuid.UUID) -> bool:
    """
    Put a claimed submission whose outcome was never recorded back to
    pending_send. A no-op when the row already left sending.
    """
    released = db.execute(
        update(Submission)
        .where(Submission.id == submission_id)
        .where(Submission.status == STATUS_SENDING)
        .values(status=STATUS_PENDING_SEND)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    if released:
        logger.warning(f"Submission {submission_id} returned to pending_send")
    return bool(released)


def claim_pending_submissions(
    db: Session, limit: int, now: datetime | None = None
) -> list[Submission]:
    """Claim up to `limit` due pending_send submissions at once (oldest first)."""
    claimed: list[Submission] = []
    for submission_id in find_due_submission_ids(db, limit, now):
        submission = claim_submission(db, submission_id)
        if submission is not None:
            claimed.append(submission)
    return claimed


def _record_outcome(
    db: Session, submission_id: uuid.UUID, to_status: str, **updates
) -> Submission | None:
    submission = get_submission_or_none(db, submission_id)
    if submission is None:
        logger.warning(f"Submission {submission_id} not found for delivery outcome {to_status}")
        return None
    db.refresh(submission)

    if submission.status != STATUS_SENDING and to_status in ACTIVE_STATUSES:
        # Never reactivate a closed submission; the user may already have a new one
        logger.warning(
            f"Submission {submission_id} is '{submission.status}', not rescheduling to '{to_status}'"
        )
        return submission

    if submission.status != STATUS_SENDING:
        logger.warning(
            f"Submission {submission_id} moved to '{submission.status}' during delivery; "
            f"overwriting with '{to_status}'"
        )
        from app.services.system_event_service import warn

        warn(
            db=db,
            event_type=EVENT_LATE_STATUS_OVERWRITE,
            submission_id=submission_id,
            payload={"actual_status": submission.status, "new_status": to_status},
        )

    submission.status = to_status
    submission.attempts = (submission.attempts or 0) + 1
    for key, value in updates.items():
        setattr(submission, key, value)
    db.commit()
    db.refresh(submission)
    return submission


def mark_sent(db: Session, submission_id: uuid.UUID) -> Submission | None:
    return _record_outcome(
        db,
        submission_id,
        STATUS_SENT,
        failure_reason=None,
        last_error=None,
        next_retry_at=None,
    )


def mark_failed(
    db: Session,
    submission_id: uuid.UUID,
    error: str,
    reason: str = REASON_DELIVERY_ERROR,
) -> Submission | None:
    """Terminal delivery failure; the error text is stored verbatim."""
    return _record_outcome(
        db,
        submission_id,
        STATUS_FAILED,
        failure_reason=reason,
        last_error=error,
        next_retry_at=None,
    )


def mark_retry_after(
    db: Session,
    submission_id: uuid.UUID,
    retry_after_seconds: int,
    error: str,
    now: datetime | None = None,
) -> Submission | None:
    """Reschedule a rate-limited delivery for the worker sweep."""
    return _record_outcome(
        db,
        submission_id,
        STATUS_PENDING_SEND,
        last_error=error,
        next_retry_at=seconds_from(now, retry_after_seconds),
    )
