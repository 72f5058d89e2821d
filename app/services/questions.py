"""
Question configuration for the intake flow.

Each kind has a fixed, ordered list of questions. The current step is derived
from which answer fields are populated (see derive_step); nothing else tracks
dialogue progress, so reloading a submission after a restart yields the same
step.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from app.constants.statuses import KIND_ACHIEVEMENT, KIND_COMPETITION

# Stored for an explicitly skipped optional field (distinct from NULL = not answered)
SKIPPED_VALUE = "-"

OTHER_EVENT_TYPE = "Свой вариант"
SKIP_OPTION = "Пропустить"

EVENT_TYPE_OPTIONS = ("ШСЛ", "ПСИ", "ПС", "Фестиваль", OTHER_EVENT_TYPE)
SPORT_OPTIONS = ("Волейбол", "Баскетбол", "Футбол", "Футзал", "Шашки", "Шахматы", SKIP_OPTION)
GENDER_OPTIONS = ("Девочки", "Мальчики")
STAGE_OPTIONS = ("Межрайон", "Москва")
PHASE_OPTIONS = ("Группы", "Плейофф")

STEP_AWAIT_DATE = "await_date"
STEP_AWAIT_TYPE = "await_type"
STEP_AWAIT_CUSTOM_TYPE = "await_custom_type"
STEP_AWAIT_SPORT = "await_discipline"
STEP_AWAIT_GENDER = "await_gender"
STEP_AWAIT_STAGE = "await_stage"
STEP_AWAIT_PHASE = "await_phase"
STEP_AWAIT_ACHIEVEMENT_TEXT = "await_achievement_text"
STEP_AWAIT_PHOTOS = "await_photos"

DATE_PATTERN = re.compile(r"^\d{2}\.\d{2}\.(\d{2}|\d{4})$")


def is_valid_date(text: str) -> bool:
    """DD.MM.YY or DD.MM.YYYY (format check only, like the form on paper)."""
    return bool(DATE_PATTERN.match(text.strip()))


@dataclass(frozen=True)
class Question:
    """Represents a single question in the intake flow."""

    step: str
    field: str  # Submission attribute the answer is stored in
    prompt_key: str  # Copy key for the question text
    error_key: str  # Copy key for the validation re-prompt
    options: tuple[str, ...] = ()  # Button-driven single-select; empty = free text
    skip_option: Optional[str] = None  # Stored as SKIPPED_VALUE
    other_option: Optional[str] = None  # Requires a follow-up custom answer
    validator: Optional[Callable[[str], bool]] = None
    max_length: Optional[int] = None


CUSTOM_EVENT_TYPE_QUESTION = Question(
    step=STEP_AWAIT_CUSTOM_TYPE,
    field="custom_event_type",
    prompt_key="ask_custom_event_type",
    error_key="error_custom_event_type",
    max_length=255,
)

COMPETITION_QUESTIONS = [
    Question(
        step=STEP_AWAIT_DATE,
        field="event_date",
        prompt_key="ask_event_date",
        error_key="error_event_date",
        validator=is_valid_date,
    ),
    Question(
        step=STEP_AWAIT_TYPE,
        field="event_type",
        prompt_key="ask_event_type",
        error_key="error_event_type",
        options=EVENT_TYPE_OPTIONS,
        other_option=OTHER_EVENT_TYPE,
    ),
    Question(
        step=STEP_AWAIT_SPORT,
        field="sport",
        prompt_key="ask_sport",
        error_key="error_sport",
        options=SPORT_OPTIONS,
        skip_option=SKIP_OPTION,
    ),
    Question(
        step=STEP_AWAIT_GENDER,
        field="gender",
        prompt_key="ask_gender",
        error_key="error_gender",
        options=GENDER_OPTIONS,
    ),
    Question(
        step=STEP_AWAIT_STAGE,
        field="stage",
        prompt_key="ask_stage",
        error_key="error_stage",
        options=STAGE_OPTIONS,
    ),
    Question(
        step=STEP_AWAIT_PHASE,
        field="phase",
        prompt_key="ask_phase",
        error_key="error_phase",
        options=PHASE_OPTIONS,
    ),
]


def _achievement_questions() -> list[Question]:
    from app.core.config import settings

    return [
        Question(
            step=STEP_AWAIT_ACHIEVEMENT_TEXT,
            field="achievement_text",
            prompt_key="ask_achievement_text",
            error_key="error_achievement_text",
            max_length=settings.achievement_text_max_length,
        )
    ]


def get_questions(kind: str) -> list[Question]:
    """Ordered questions for a submission kind."""
    if kind == KIND_ACHIEVEMENT:
        return _achievement_questions()
    if kind == KIND_COMPETITION:
        return COMPETITION_QUESTIONS
    raise ValueError(f"Unknown submission kind: {kind!r}")


def get_question(kind: str, step: str) -> Optional[Question]:
    """Question for a step, or None for the photo step."""
    if step == STEP_AWAIT_CUSTOM_TYPE:
        return CUSTOM_EVENT_TYPE_QUESTION
    for question in get_questions(kind):
        if question.step == step:
            return question
    return None


def derive_step(submission: Any) -> str:
    """
    Derive the dialogue step from populated answer fields.

    Pure function of (kind, answer fields): the first unanswered question wins;
    an "other" event type without a custom type text stops at the custom step.
    Works on a Submission or any object with the same attributes.
    """
    for question in get_questions(submission.kind):
        value = getattr(submission, question.field)
        if value is None:
            return question.step
        if question.other_option and value == question.other_option:
            custom = getattr(submission, CUSTOM_EVENT_TYPE_QUESTION.field)
            if not (custom and custom.strip()):
                return CUSTOM_EVENT_TYPE_QUESTION.step
    return STEP_AWAIT_PHOTOS


def validate_answer(question: Question, text: str | None) -> tuple[bool, Optional[str]]:
    """
    Validate an inbound answer for a question.

    Returns:
        (True, value_to_store) on success, (False, None) otherwise.
        The skip option is stored as SKIPPED_VALUE.
    """
    if text is None:
        return False, None
    value = text.strip()
    if not value:
        return False, None

    if question.options:
        # Exact match against the fixed option set
        if value not in question.options:
            return False, None
        if question.skip_option and value == question.skip_option:
            return True, SKIPPED_VALUE
        return True, value

    if question.max_length is not None and len(value) > question.max_length:
        return False, None
    if question.validator is not None and not question.validator(value):
        return False, None
    return True, value
