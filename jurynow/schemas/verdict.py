from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from .juror import Pagination


class ArchivedBallotPublic(BaseModel):
    """Ballot as shown to requesters; reasoning stays internal."""

    juror_id: str
    choice: str
    submitted_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ArchivedVerdictResponse(BaseModel):
    question_id: str
    panel: List[str]
    diversity_score: float
    tally_a: int
    tally_b: int
    outcome: Optional[str] = None
    completion: bool
    quorum_reached: bool
    forced_close: bool
    close_reason: Optional[str] = None
    finalized_at: Optional[datetime] = None
    ballots: List[ArchivedBallotPublic]


class JurorBallotHistoryItem(BaseModel):
    question_id: str
    choice: str
    reasoning: Optional[str] = None
    submitted_at: datetime

    model_config = ConfigDict(from_attributes=True)


class JurorHistoryResponse(BaseModel):
    juror_id: str
    verdicts: List[JurorBallotHistoryItem]
    pagination: Pagination
