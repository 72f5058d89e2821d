"""
Builders for submissions in a given state (bypassing the dialogue).
"""

from datetime import UTC, datetime, timedelta

from app.constants.statuses import KIND_COMPETITION, STATUS_COLLECTING
from app.db.models import Submission

from tests.helpers.telegram import USER_ID

COMPLETE_COMPETITION_ANSWERS = {
    "event_date": "01.09.25",
    "event_type": "Фестиваль",
    "sport": "-",
    "gender": "Девочки",
    "stage": "Москва",
    "phase": "Плейофф",
}

_sequence = {"n": 0}


def make_submission(
    db,
    user_id: int = USER_ID,
    status: str = STATUS_COLLECTING,
    photos: int = 0,
    kind: str = KIND_COMPETITION,
    answers: dict | None = None,
    **fields,
) -> Submission:
    """Insert a submission directly; created_at increases with every call."""
    _sequence["n"] += 1
    file_ids = [f"file-{_sequence['n']}-{i}" for i in range(photos)]
    submission = Submission(
        user_id=user_id,
        chat_id=user_id,
        kind=kind,
        status=status,
        photo_file_ids=file_ids,
        photo_unique_ids=[f"uniq-{fid}" for fid in file_ids],
        created_at=datetime.now(UTC) + timedelta(microseconds=_sequence["n"]),
        **(COMPLETE_COMPETITION_ANSWERS if answers is None else answers),
        **{"attempts": 0, **fields},
    )
    db.add(submission)
    db.commit()
    db.refresh(submission)
    return submission
