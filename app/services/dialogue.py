"""
Dialogue engine - routes one inbound event for a user to the right step.

Flow:
  menu -> kind -> questions (per kind) -> photos -> confirming -> delivery

Rules:
- The step is derived from populated fields (questions.derive_step); only the
  status is stored.
- Every state-changing branch commits before any outbound message, so a
  failed send never leaves the DB behind what the user was told.
- The "collect photos"/"confirm" prompt is edited in place when possible; if
  the edit fails a new message is sent and its id remembered.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.constants.statuses import (
    REASON_CANCELLED_BY_USER,
    REASON_RESTART_BY_USER,
    STATUS_COLLECTING,
    STATUS_CONFIRMING,
    STATUS_FAILED,
    STATUS_PENDING_SEND,
    STATUS_SENDING,
)
from app.core.config import settings
from app.db.models import Submission
from app.services.delivery import start_delivery
from app.services.messaging.keyboards import (
    ACTION_ADD_MORE,
    ACTION_CANCEL,
    ACTION_DONE,
    ACTION_RETRY,
    ACTION_SEND,
    ACTION_START,
    confirm_keyboard,
    menu_keyboard,
    options_keyboard,
    photos_keyboard,
    retry_keyboard,
)
from app.services.messaging.message_composer import render_message
from app.services.messaging.telegram_client import (
    TelegramApiError,
    edit_message_text,
    send_message,
)
from app.services.photos import PhotoRef
from app.services.questions import (
    STEP_AWAIT_PHOTOS,
    Question,
    derive_step,
    get_question,
    get_questions,
    validate_answer,
)
from app.services.state_machine import transition
from app.services.submissions import (
    append_photo,
    close_open_submissions,
    create_submission,
    find_current_submission,
    save_submission,
)

logger = logging.getLogger(__name__)

STEP_MENU = "menu"
STEP_CONFIRM = "confirm"
STEP_DELIVERY = "delivery"
STEP_RETRY = "retry"


@dataclass
class InboundEvent:
    """One normalized user input (message or button press) from a private chat."""

    user_id: int
    chat_id: int
    text: str | None = None
    action: str | None = None  # start, cancel, done, send, add_more, retry
    kind: str | None = None  # Menu selection
    photo: PhotoRef | None = None  # Largest variant of an inbound photo
    callback_query_id: str | None = None
    media_group_id: str | None = None


def _result(submission: Submission | None, step: str, **extra) -> dict:
    result = {"status": submission.status if submission else None, "step": step}
    result.update(extra)
    return result


async def _reply(chat_id: int, text: str, reply_markup: dict | None = None) -> dict:
    return await send_message(chat_id, text, reply_markup=reply_markup)


def _remember_prompt(db: Session, submission: Submission, message: dict | None) -> None:
    message_id = message.get("message_id") if isinstance(message, dict) else None
    if submission.prompt_message_id != message_id:
        submission.prompt_message_id = message_id
        save_submission(db, submission)


async def _send_prompt(db: Session, submission: Submission, text: str, reply_markup: dict) -> None:
    """Send a fresh photos/confirm prompt and remember it for later edits."""
    message = await _reply(submission.chat_id, text, reply_markup)
    _remember_prompt(db, submission, message)


async def _upsert_prompt(db: Session, submission: Submission, text: str, reply_markup: dict) -> None:
    """Edit the remembered prompt in place; fall back to a new message."""
    if submission.prompt_message_id:
        try:
            await edit_message_text(
                submission.chat_id, submission.prompt_message_id, text, reply_markup=reply_markup
            )
            return
        except TelegramApiError as e:
            logger.info(
                f"Could not edit prompt {submission.prompt_message_id} for submission "
                f"{submission.id}, sending a new one: {e}"
            )
    await _send_prompt(db, submission, text, reply_markup)


def _question_text(question: Question, user_id: int, key: str | None = None) -> str:
    return render_message(key or question.prompt_key, user_id=user_id, max_length=question.max_length)


def _question_keyboard(question: Question) -> dict | None:
    return options_keyboard(question.options) if question.options else None


async def _prompt_step(db: Session, submission: Submission, step: str) -> None:
    """Ask for the given step: a question, or the photo collection prompt."""
    if step == STEP_AWAIT_PHOTOS:
        await _send_prompt(
            db,
            submission,
            render_message("ask_photos", user_id=submission.user_id),
            photos_keyboard(),
        )
        return
    question = get_question(submission.kind, step)
    await _reply(
        submission.chat_id,
        _question_text(question, submission.user_id),
        _question_keyboard(question),
    )


async def _prompt_confirmation(db: Session, submission: Submission, edit: bool = False) -> None:
    text = render_message("confirm_prompt", user_id=submission.user_id, count=submission.photo_count)
    if edit:
        await _upsert_prompt(db, submission, text, confirm_keyboard())
    else:
        await _send_prompt(db, submission, text, confirm_keyboard())


async def _reprompt_current(db: Session, submission: Submission) -> dict:
    """Repeat whatever the current submission is waiting for."""
    if submission.status == STATUS_COLLECTING:
        step = derive_step(submission)
        await _prompt_step(db, submission, step)
        return _result(submission, step)
    if submission.status == STATUS_CONFIRMING:
        await _reply(
            submission.chat_id,
            render_message("confirm_reprompt", user_id=submission.user_id),
            confirm_keyboard(),
        )
        return _result(submission, STEP_CONFIRM)
    if submission.status in (STATUS_SENDING, STATUS_PENDING_SEND):
        await _reply(
            submission.chat_id, render_message("delivery_in_progress", user_id=submission.user_id)
        )
        return _result(submission, STEP_DELIVERY)
    await _reply(
        submission.chat_id,
        render_message("retry_prompt", user_id=submission.user_id),
        retry_keyboard(),
    )
    return _result(submission, STEP_RETRY)


async def _handle_photos_step(db: Session, submission: Submission, event: InboundEvent) -> dict:
    if event.photo is not None:
        append = append_photo(db, submission.id, event.photo)
        if append.added:
            await _upsert_prompt(
                db,
                submission,
                render_message("photos_received", user_id=submission.user_id, count=append.photo_count),
                photos_keyboard(),
            )
        return _result(submission, STEP_AWAIT_PHOTOS, photo_count=append.photo_count, added=append.added)

    if event.action == ACTION_DONE:
        if submission.photo_count >= settings.min_photos:
            submission = transition(db, submission, STATUS_CONFIRMING)
            await _prompt_confirmation(db, submission)
            return _result(submission, STEP_CONFIRM, photo_count=submission.photo_count)
        await _reply(
            submission.chat_id,
            render_message(
                "photos_not_enough",
                user_id=submission.user_id,
                count=submission.photo_count,
                min_photos=settings.min_photos,
            ),
            photos_keyboard(),
        )
        return _result(submission, STEP_AWAIT_PHOTOS, photo_count=submission.photo_count)

    await _prompt_step(db, submission, STEP_AWAIT_PHOTOS)
    return _result(submission, STEP_AWAIT_PHOTOS, photo_count=submission.photo_count)


async def _handle_collecting(db: Session, submission: Submission, event: InboundEvent) -> dict:
    step = derive_step(submission)
    if step == STEP_AWAIT_PHOTOS:
        return await _handle_photos_step(db, submission, event)

    question = get_question(submission.kind, step)
    if event.photo is not None:
        await _reply(
            submission.chat_id,
            render_message(
                "photo_not_expected",
                user_id=submission.user_id,
                question=_question_text(question, submission.user_id),
            ),
            _question_keyboard(question),
        )
        return _result(submission, step, valid=False)

    ok, value = validate_answer(question, None if event.action else event.text)
    if not ok:
        logger.info(f"Invalid answer for {step} on submission {submission.id}")
        await _reply(
            submission.chat_id,
            _question_text(question, submission.user_id, key=question.error_key),
            _question_keyboard(question),
        )
        return _result(submission, step, valid=False)

    setattr(submission, question.field, value)
    save_submission(db, submission)

    next_step = derive_step(submission)
    await _prompt_step(db, submission, next_step)
    return _result(submission, next_step)


async def _handle_confirming(db: Session, submission: Submission, event: InboundEvent) -> dict:
    if event.action == ACTION_SEND:
        submission = await start_delivery(db, submission)
        return _result(submission, STEP_DELIVERY)

    if event.action == ACTION_ADD_MORE:
        submission = transition(db, submission, STATUS_COLLECTING)
        await _prompt_step(db, submission, STEP_AWAIT_PHOTOS)
        return _result(submission, STEP_AWAIT_PHOTOS)

    if event.photo is not None:
        # Late part of an album sent before "done"
        append = append_photo(db, submission.id, event.photo)
        if append.added:
            await _prompt_confirmation(db, submission, edit=True)
        return _result(submission, STEP_CONFIRM, photo_count=append.photo_count, added=append.added)

    await _reply(
        submission.chat_id,
        render_message("confirm_reprompt", user_id=submission.user_id),
        confirm_keyboard(),
    )
    return _result(submission, STEP_CONFIRM)


async def _handle_failed(db: Session, submission: Submission, event: InboundEvent) -> dict:
    """Retryable failure: retry, add photos, or see the retry affordance again."""
    if event.action == ACTION_RETRY:
        step = derive_step(submission)
        if step == STEP_AWAIT_PHOTOS and submission.photo_count >= settings.min_photos:
            submission = await start_delivery(db, submission)
            return _result(submission, STEP_DELIVERY)
        submission = transition(
            db, submission, STATUS_COLLECTING, failure_reason=None, last_error=None
        )
        await _prompt_step(db, submission, step)
        return _result(submission, step)

    if event.photo is not None:
        append = append_photo(db, submission.id, event.photo)
        submission = transition(
            db, submission, STATUS_COLLECTING, failure_reason=None, last_error=None
        )
        await _send_prompt(
            db,
            submission,
            render_message("photos_received", user_id=submission.user_id, count=append.photo_count),
            photos_keyboard(),
        )
        return _result(submission, derive_step(submission), photo_count=append.photo_count)

    return await _reprompt_current(db, submission)


async def _start_submission(db: Session, event: InboundEvent) -> dict:
    get_questions(event.kind)  # Unknown kinds fail before anything is written
    submission = create_submission(db, event.user_id, event.chat_id, event.kind)
    step = derive_step(submission)
    await _prompt_step(db, submission, step)
    return _result(submission, step)


def _typed_text_is_answer(submission: Submission, event: InboundEvent) -> bool:
    """
    True when the user typed text while a free-text question is open.

    Such text is the answer even if it equals a button label; slash commands
    keep working.
    """
    if event.callback_query_id is not None or not event.text or event.text.startswith("/"):
        return False
    if submission.status != STATUS_COLLECTING:
        return False
    step = derive_step(submission)
    if step == STEP_AWAIT_PHOTOS:
        return False
    return not get_question(submission.kind, step).options


async def handle_event(db: Session, event: InboundEvent) -> dict:
    """
    Process one inbound event for a user.

    Returns:
        {"status": <submission status or None>, "step": <step name>, ...}
    """
    submission = find_current_submission(db, event.user_id)
    if submission is not None and _typed_text_is_answer(submission, event):
        event.action = event.kind = None

    if event.action == ACTION_START:
        close_open_submissions(db, event.user_id, REASON_RESTART_BY_USER)
        await _reply(event.chat_id, render_message("welcome", user_id=event.user_id), menu_keyboard())
        return _result(None, STEP_MENU)

    if event.action == ACTION_CANCEL:
        close_open_submissions(db, event.user_id, REASON_CANCELLED_BY_USER)
        await _reply(event.chat_id, render_message("cancelled", user_id=event.user_id), menu_keyboard())
        return _result(None, STEP_MENU)

    if submission is None:
        if event.kind:
            return await _start_submission(db, event)
        await _reply(
            event.chat_id, render_message("menu_prompt", user_id=event.user_id), menu_keyboard()
        )
        return _result(None, STEP_MENU)

    if event.kind:
        # Menu pressed mid-flow: keep the current submission
        return await _reprompt_current(db, submission)

    if submission.status == STATUS_COLLECTING:
        return await _handle_collecting(db, submission, event)
    if submission.status == STATUS_CONFIRMING:
        return await _handle_confirming(db, submission, event)
    if submission.status == STATUS_FAILED:
        return await _handle_failed(db, submission, event)
    return await _reprompt_current(db, submission)
