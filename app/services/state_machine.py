"""
State machine service - defines allowed submission status transitions and transition helpers.

transition() locks the row (SELECT FOR UPDATE), checks the move against
ALLOWED_TRANSITIONS and commits it; callers send Telegram messages only after
it returns. update_status_if_matches() is the compare-and-swap used where two
writers can race, such as worker sweeps claiming pending_send rows.
"""

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.constants.event_types import EVENT_ATOMIC_UPDATE_CONFLICT
from app.constants.statuses import (
    STATUS_COLLECTING,
    STATUS_CONFIRMING,
    STATUS_FAILED,
    STATUS_PENDING_SEND,
    STATUS_SENDING,
    STATUS_SENT,
)
from app.db.models import Submission

logger = logging.getLogger(__name__)

# Format: {from_status: [allowed_to_statuses]}
ALLOWED_TRANSITIONS = {
    STATUS_COLLECTING: [
        STATUS_CONFIRMING,
        STATUS_SENDING,  # Inline send straight from photo collection
        STATUS_PENDING_SEND,
        STATUS_FAILED,  # Cancel / restart
    ],
    STATUS_CONFIRMING: [
        STATUS_COLLECTING,  # Add more photos
        STATUS_SENDING,
        STATUS_PENDING_SEND,
        STATUS_FAILED,
    ],
    STATUS_PENDING_SEND: [
        STATUS_SENDING,  # Claimed by a sweep run
        STATUS_FAILED,
    ],
    STATUS_SENDING: [
        STATUS_SENT,
        STATUS_FAILED,
        STATUS_PENDING_SEND,  # Rate limited, rescheduled by the worker
    ],
    STATUS_FAILED: [
        STATUS_COLLECTING,  # New photos after a failed send
        STATUS_SENDING,  # One-tap retry (inline)
        STATUS_PENDING_SEND,  # One-tap retry (worker)
        STATUS_FAILED,  # Cancel / restart records the abandon reason
    ],
    STATUS_SENT: [
        # Terminal state - no transitions allowed
    ],
}

TERMINAL_STATES = {STATUS_SENT, STATUS_FAILED}


def is_transition_allowed(from_status: str, to_status: str) -> bool:
    """Check if a status transition is allowed."""
    return to_status in ALLOWED_TRANSITIONS.get(from_status, [])


def get_allowed_transitions(from_status: str) -> list[str]:
    """Get list of allowed target statuses from a status."""
    return ALLOWED_TRANSITIONS.get(from_status, [])


def is_terminal_state(status: str) -> bool:
    """
    Check if a status is terminal.

    failed is terminal for routing (no automatic progress) but a retryable
    failure can still be resumed by the user.
    """
    return status in TERMINAL_STATES


def transition(
    db: Session,
    submission: Submission,
    to_status: str,
    lock_row: bool = True,
    **updates,
) -> Submission:
    """
    Transition a submission to a new status (with validation and concurrency control).

    The caller must not hold unsaved changes on the submission: the row is
    reloaded under SELECT FOR UPDATE. Extra column values go in **updates.

    Args:
        db: Database session
        submission: Submission object (reloaded with lock if lock_row=True)
        to_status: Target status
        lock_row: Whether to lock the row (SELECT FOR UPDATE)
        **updates: Additional fields to set in the same commit

    Returns:
        The refreshed submission

    Raises:
        ValueError: If transition is not allowed or status changed concurrently
    """
    submission_id = submission.id
    from_status = submission.status

    if not is_transition_allowed(from_status, to_status):
        logger.warning(
            f"Invalid status transition attempted: {from_status} -> {to_status} "
            f"for submission {submission_id}"
        )
        raise ValueError(
            f"Invalid status transition: {from_status} -> {to_status}. "
            f"Allowed transitions from {from_status}: {get_allowed_transitions(from_status)}"
        )

    if lock_row:
        stmt = (
            select(Submission)
            .where(Submission.id == submission_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        locked = db.execute(stmt).scalar_one_or_none()
        if not locked:
            raise ValueError(f"Submission {submission_id} not found")

        # Re-check status after locking (another request may have changed it)
        if locked.status != from_status:
            db.rollback()
            logger.warning(
                f"Submission {submission_id} status changed during transition: "
                f"expected '{from_status}', got '{locked.status}'"
            )
            raise ValueError(
                f"Submission status changed during transition. Expected '{from_status}', "
                f"but submission is now in '{locked.status}'"
            )
        submission = locked

    submission.status = to_status
    for key, value in updates.items():
        setattr(submission, key, value)

    # Commit the transition (side effects happen AFTER this)
    db.commit()
    db.refresh(submission)

    logger.info(f"Submission {submission_id} transitioned: {from_status} -> {to_status}")
    return submission


def update_status_if_matches(
    db: Session,
    submission_id: uuid.UUID,
    expected_status: str,
    new_status: str,
    **updates,
) -> tuple[bool, Submission | None]:
    """
    Atomically update status only if it matches expected status (compare-and-swap).

    Uses a conditional UPDATE (portable: SQLite + Postgres):
      UPDATE bot_submissions SET status = :new WHERE id = :id AND status = :expected
    rowcount == 1 => this caller owns the transition; 0 => someone else got there first.

    Returns:
        (success, submission) - submission is None when the row does not exist
    """
    stmt = (
        update(Submission)
        .where(Submission.id == submission_id)
        .where(Submission.status == expected_status)
        .values(status=new_status, **updates)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()

    submission = db.get(Submission, submission_id)
    if submission is None:
        logger.warning(f"Submission {submission_id} not found for status update")
        return False, None
    db.refresh(submission)

    if getattr(result, "rowcount", 0) == 0:
        logger.warning(
            f"Submission {submission_id} status mismatch: expected '{expected_status}', "
            f"got '{submission.status}'"
        )
        from app.services.system_event_service import warn

        warn(
            db=db,
            event_type=EVENT_ATOMIC_UPDATE_CONFLICT,
            submission_id=submission_id,
            payload={
                "operation": "update_status",
                "expected_status": expected_status,
                "actual_status": submission.status,
                "new_status": new_status,
            },
        )
        return False, submission

    return True, submission
