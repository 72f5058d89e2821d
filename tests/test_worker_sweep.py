"""
Tests for the worker delivery sweep (service, HTTP trigger and CLI).
"""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from app.constants.event_types import (
    EVENT_DELIVERY_RATE_LIMITED,
    EVENT_DELIVERY_RETRY_BUDGET_EXHAUSTED,
    EVENT_DELIVERY_SWEEP_FAILURE,
)
from app.constants.statuses import (
    REASON_DELIVERY_ERROR,
    REASON_RETRY_BUDGET_EXHAUSTED,
    STATUS_FAILED,
    STATUS_PENDING_SEND,
    STATUS_SENT,
)
from app.core.config import settings
from app.db.models import SystemEvent
from app.services import delivery
from app.services.delivery import run_delivery_sweep
from app.utils.datetime_utils import as_utc
from tests.helpers.submissions import make_submission
from tests.helpers.telegram import TARGET_CHAT_ID


@pytest.mark.asyncio
async def test_sweep_delivers_pending(db, telegram):
    submission = make_submission(db, status=STATUS_PENDING_SEND, photos=12)

    result = await run_delivery_sweep(db)

    assert result["processed"] == 1
    assert result["errors"] == []
    assert isinstance(result["duration_ms"], int)
    db.refresh(submission)
    assert submission.status == STATUS_SENT
    assert submission.attempts == 1
    assert [len(p["media"]) for p in telegram.calls_for("sendMediaGroup")] == [10, 2]
    assert str(telegram.calls_for("sendMessage")[0]["chat_id"]) == TARGET_CHAT_ID


@pytest.mark.asyncio
async def test_sweep_rate_limit_reschedules(db, telegram):
    """A 30s rate-limit hint keeps the submission pending with next_retry_at ~ now+30s."""
    submission = make_submission(db, status=STATUS_PENDING_SEND, photos=3)
    telegram.rate_limit_next("sendMediaGroup", 30)

    before = datetime.now(UTC)
    result = await run_delivery_sweep(db)
    after = datetime.now(UTC)

    assert result["processed"] == 0
    assert result["errors"] == []
    db.refresh(submission)
    assert submission.status == STATUS_PENDING_SEND
    assert submission.attempts == 1
    retry_at = as_utc(submission.next_retry_at)
    assert before + timedelta(seconds=30) <= retry_at <= after + timedelta(seconds=30)

    # No terminal failure message to the user yet
    assert telegram.texts_to(submission.chat_id) == []
    events = db.execute(
        select(SystemEvent).where(SystemEvent.event_type == EVENT_DELIVERY_RATE_LIMITED)
    ).scalars().all()
    assert len(events) == 1

    # Not due yet: the next sweep leaves it alone
    telegram.clear()
    result = await run_delivery_sweep(db)
    assert result["processed"] == 0
    assert telegram.calls == []


@pytest.mark.asyncio
async def test_sweep_gives_up_after_retry_budget(db, telegram):
    settings.worker_max_attempts = 3
    submission = make_submission(db, status=STATUS_PENDING_SEND, photos=1, attempts=2)
    telegram.rate_limit_next("sendMessage", 10)

    result = await run_delivery_sweep(db)

    db.refresh(submission)
    assert submission.status == STATUS_FAILED
    assert submission.failure_reason == REASON_RETRY_BUDGET_EXHAUSTED
    assert submission.attempts == 3
    assert len(result["errors"]) == 1

    markup = telegram.last_markup()
    assert markup["inline_keyboard"][0][0]["callback_data"] == "action:retry"
    assert db.execute(
        select(SystemEvent).where(
            SystemEvent.event_type == EVENT_DELIVERY_RETRY_BUDGET_EXHAUSTED
        )
    ).scalar_one()


@pytest.mark.asyncio
async def test_sweep_generic_error_fails_and_continues(db, telegram):
    broken = make_submission(db, user_id=1, status=STATUS_PENDING_SEND, photos=1)
    healthy = make_submission(db, user_id=2, status=STATUS_PENDING_SEND, photos=1)
    telegram.error_next("sendMessage", "Bad Request: chat not found")

    result = await run_delivery_sweep(db)

    db.refresh(broken)
    db.refresh(healthy)
    assert broken.status == STATUS_FAILED
    assert broken.failure_reason == REASON_DELIVERY_ERROR
    assert "chat not found" in broken.last_error
    assert healthy.status == STATUS_SENT
    assert result["processed"] == 1
    assert len(result["errors"]) == 1


@pytest.mark.asyncio
async def test_sweep_store_error_leaves_nothing_stuck_in_sending(db, telegram, monkeypatch):
    submissions = [
        make_submission(db, user_id=user_id, status=STATUS_PENDING_SEND, photos=1)
        for user_id in (1, 2, 3)
    ]
    real_mark_sent = delivery.mark_sent
    calls = []

    def flaky_mark_sent(db, submission_id):
        calls.append(submission_id)
        if len(calls) == 1:
            raise RuntimeError("db connection lost")
        return real_mark_sent(db, submission_id)

    monkeypatch.setattr("app.services.delivery.mark_sent", flaky_mark_sent)

    result = await run_delivery_sweep(db)

    assert result["processed"] == 0
    assert result["errors"] == ["db connection lost"]
    for submission in submissions:
        db.refresh(submission)
    assert [s.status for s in submissions] == [STATUS_PENDING_SEND] * 3
    event = db.execute(
        select(SystemEvent).where(SystemEvent.event_type == EVENT_DELIVERY_SWEEP_FAILURE)
    ).scalar_one()
    assert event.submission_id == calls[0]

    result = await run_delivery_sweep(db)

    assert result["processed"] == 3
    for submission in submissions:
        db.refresh(submission)
    assert [s.status for s in submissions] == [STATUS_SENT] * 3


@pytest.mark.asyncio
async def test_sweep_batch_limit(db, telegram):
    for user_id in range(1, 5):
        make_submission(db, user_id=user_id, status=STATUS_PENDING_SEND, photos=1)

    result = await run_delivery_sweep(db, batch_limit=3)
    assert result["processed"] == 3
    result = await run_delivery_sweep(db, batch_limit=3)
    assert result["processed"] == 1


def test_worker_endpoint_runs_sweep(client, db, telegram):
    make_submission(db, status=STATUS_PENDING_SEND, photos=2)

    response = client.post("/worker/deliver", params={"batch_size": 5})

    assert response.status_code == 200
    body = response.json()
    assert body["processed"] == 1
    assert body["errors"] == []


def test_worker_endpoint_returns_500_on_errors(client, db, telegram):
    make_submission(db, status=STATUS_PENDING_SEND, photos=2)
    telegram.error_next("sendMessage")

    response = client.post("/worker/deliver")

    assert response.status_code == 500
    assert len(response.json()["errors"]) == 1


def test_worker_endpoint_requires_key_when_configured(client, db, telegram):
    settings.worker_api_key = "sweep-key"

    assert client.post("/worker/deliver").status_code == 401
    assert (
        client.post("/worker/deliver", headers={"X-Worker-API-Key": "wrong"}).status_code == 403
    )
    response = client.post("/worker/deliver", headers={"X-Worker-API-Key": "sweep-key"})
    assert response.status_code == 200


def test_cli_sweep_exit_code(db, telegram, monkeypatch):
    from app.jobs import deliver_pending

    make_submission(db, status=STATUS_PENDING_SEND, photos=1)
    monkeypatch.setattr("sys.argv", ["deliver_pending", "--limit", "2"])

    deliver_pending.main()  # No errors -> returns normally

    telegram.error_next("sendMessage")
    make_submission(db, user_id=99, status=STATUS_PENDING_SEND, photos=1)
    with pytest.raises(SystemExit) as exc_info:
        deliver_pending.main()
    assert exc_info.value.code == 1
