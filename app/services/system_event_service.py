"""
Durable audit trail for things an operator should be able to look up later:
webhook failures, delivery failures, rate-limit reschedules, lost CAS races.

Rows go to system_events; the payload is a small JSON dict. Exceptions are
stored as {"error": {"type", "message"}} and the request correlation id is
attached automatically when one is active.
"""

import logging
import uuid

from sqlalchemy.orm import Session

from app.db.models import SystemEvent

logger = logging.getLogger(__name__)

LEVEL_INFO = "INFO"
LEVEL_WARN = "WARN"
LEVEL_ERROR = "ERROR"

MAX_ERROR_MESSAGE = 500


def _current_correlation_id() -> str | None:
    from app.middleware.correlation_id import get_correlation_id

    return get_correlation_id()


def _build_payload(
    payload: dict | None, exc: BaseException | None, correlation_id: str | None
) -> dict | None:
    data = dict(payload or {})
    if exc is not None:
        data["error"] = {"type": type(exc).__name__, "message": str(exc)[:MAX_ERROR_MESSAGE]}
    cid = correlation_id if correlation_id is not None else _current_correlation_id()
    if cid is not None:
        data["correlation_id"] = cid
    return data or None


def log_event(
    db: Session,
    level: str,
    event_type: str,
    submission_id: uuid.UUID | None = None,
    payload: dict | None = None,
    exc: BaseException | None = None,
    correlation_id: str | None = None,
) -> SystemEvent:
    """
    Write one system event and commit it.

    Args:
        level: INFO, WARN or ERROR (case-insensitive)
        event_type: Dotted name from app.constants.event_types
        submission_id: Submission the event is about, if any
        payload: Extra JSON data (copied, not mutated)
        exc: Exception to record under payload["error"]
        correlation_id: Overrides the request correlation id

    Returns:
        The stored SystemEvent
    """
    event = SystemEvent(
        level=level.upper(),
        event_type=event_type,
        submission_id=submission_id,
        payload=_build_payload(payload, exc, correlation_id),
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.debug(f"system_event level={event.level} type={event_type} submission={submission_id}")
    return event


def info(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, LEVEL_INFO, event_type, **kwargs)


def warn(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, LEVEL_WARN, event_type, **kwargs)


def error(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, LEVEL_ERROR, event_type, **kwargs)
