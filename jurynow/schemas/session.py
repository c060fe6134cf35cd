from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class SessionCreateRequest(BaseModel):
    question_id: str = Field(..., min_length=1, max_length=20)
    # Falls back to the stored question's category when omitted.
    category: Optional[str] = None

    @field_validator("question_id", "category", mode="before")
    @classmethod
    def strip_text(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value


class SessionCreateResponse(BaseModel):
    question_id: str
    status: Literal["voting"] = "voting"
    panel: List[str]
    diversity_score: float
    created: bool = True


class BallotRequest(BaseModel):
    # Validated by the ballot box so malformed choices share the engine's error body.
    choice: str
    reasoning: Optional[str] = None

    @field_validator("reasoning", mode="before")
    @classmethod
    def empty_reasoning_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class BallotResponse(BaseModel):
    ballot_id: str
    submitted_at: datetime


class ProgressPayload(BaseModel):
    received: int
    total: int
    percentage: int


class SessionStatusResponse(BaseModel):
    question_id: str
    state: Literal["created", "selecting", "voting", "finalized"]
    progress: ProgressPayload
    current_tally: dict


class VerdictResponse(BaseModel):
    question_id: str
    completion: bool
    tally_a: int
    tally_b: int
    outcome: Optional[Literal["A", "B", "tie"]] = None
    received: int
    total: int
    quorum_reached: bool
    forced_close: bool
    provisional: bool
    close_reason: Optional[str] = None
