"""
Update dedup ledger - records Telegram update_ids so transport retries are ignored.

Insert-first: the unique constraint on update_id is the dedup signal, so two
concurrent deliveries of the same update cannot both pass.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.models import ProcessedUpdate

logger = logging.getLogger(__name__)


def is_unique_violation(exc: IntegrityError) -> bool:
    """
    Return True only for a unique-constraint violation.
    Other integrity errors (NOT NULL etc.) are real bugs and must propagate.
    """
    orig = exc.orig
    if orig is None:
        return False
    # Postgres: SQLSTATE 23505 = unique_violation
    if getattr(orig, "pgcode", None) == "23505":
        return True
    # SQLite: check error message
    return "unique constraint" in str(orig).lower()


def record_update_if_new(db: Session, update_id: int, event_type: str | None = None) -> bool:
    """
    Record an update as processed.

    Returns:
        True if the update_id was already recorded (duplicate), False if this
        call recorded it.

    Raises:
        IntegrityError: For integrity errors other than the duplicate update_id
    """
    db.add(ProcessedUpdate(update_id=update_id, event_type=event_type))
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if not is_unique_violation(e):
            raise
        logger.info(f"Update {update_id} already processed, skipping")
        return True
    return False
