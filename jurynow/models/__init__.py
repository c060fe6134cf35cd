# Import models to make them accessible via jurynow.models
# and ensure they are registered with SQLAlchemy's Base metadata
from .juror import Juror, JurorStatus
from .question import Question, QuestionStatus
from .verdict import ArchivedBallot, VerdictRecord

__all__ = [
    "Juror",
    "JurorStatus",
    "Question",
    "QuestionStatus",
    "VerdictRecord",
    "ArchivedBallot",
]
