from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from jurynow.models.juror import Juror
from jurynow.models.question import Question

JUROR_ID_PREFIX = "JUR"
JUROR_ID_SEQUENCE_WIDTH = 5

QUESTION_ID_PREFIX = "QST"
QUESTION_ID_SEQUENCE_WIDTH = 6


def _next_sequence(db: Session, column, prefix: str) -> int:
    """
    Determine the next numeric sequence for the given prefix.
    The prefix is expected without the trailing dash (e.g., 'JUR').
    """
    like_pattern = f"{prefix}-%"
    latest: Optional[str] = (
        db.query(column)
        .filter(column.like(like_pattern))
        .order_by(column.desc())
        .limit(1)
        .scalar()
    )
    if not latest:
        return 1
    try:
        return int(latest.split("-")[-1]) + 1
    except (ValueError, IndexError):
        # Fallback to avoid blocking registration even if legacy data is malformed.
        return 1


def generate_juror_id(db: Session) -> str:
    """Construct a unique `juror_id` following the JUR-NNNNN pattern."""
    sequence = _next_sequence(db, Juror.juror_id, JUROR_ID_PREFIX)
    return f"{JUROR_ID_PREFIX}-{sequence:0{JUROR_ID_SEQUENCE_WIDTH}d}"


def generate_question_id(db: Session) -> str:
    """Construct a unique `question_id` following the QST-NNNNNN pattern."""
    sequence = _next_sequence(db, Question.question_id, QUESTION_ID_PREFIX)
    return f"{QUESTION_ID_PREFIX}-{sequence:0{QUESTION_ID_SEQUENCE_WIDTH}d}"


def generate_ballot_id() -> str:
    return str(uuid4())
