from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
from threading import Lock
from typing import Dict, Optional, Tuple

from jurynow.services.errors import (
    AlreadyVotedError,
    BoxClosedError,
    InternalConsistencyError,
    InvalidChoiceError,
    NotPanelMemberError,
)
from jurynow.services.panel_selector import PANEL_SIZE, Panel
from jurynow.utils.identifiers import generate_ballot_id

logger = logging.getLogger("jury")

VALID_CHOICES = ("A", "B")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BoxStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class CloseReason(str, Enum):
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


def normalize_choice(choice: object) -> str:
    value = str(choice or "").strip().upper()
    if value not in VALID_CHOICES:
        raise InvalidChoiceError("Choice must be either 'A' or 'B'.")
    return value


@dataclass(frozen=True)
class Ballot:
    ballot_id: str
    question_id: str
    juror_id: str
    choice: str
    submitted_at: datetime
    reasoning: Optional[str] = None


@dataclass(frozen=True)
class BoxSnapshot:
    """Consistent point-in-time view of a ballot box."""

    question_id: str
    status: BoxStatus
    close_reason: Optional[CloseReason]
    ballots: Tuple[Ballot, ...] = field(default_factory=tuple)
    total: int = PANEL_SIZE

    @property
    def received(self) -> int:
        return len(self.ballots)

    @property
    def is_closed(self) -> bool:
        return self.status == BoxStatus.CLOSED


class BallotBox:
    """
    Per-question ballot container.

    Each panel seat is a slot keyed by juror id. Claiming a slot and checking
    that it was free happen under the box lock, so two submissions from the
    same juror can never both succeed while different jurors only contend for
    the moment of insertion.
    """

    def __init__(self, panel: Panel) -> None:
        if len(panel.juror_ids) != PANEL_SIZE or len(set(panel.juror_ids)) != PANEL_SIZE:
            raise InternalConsistencyError(
                f"Cannot open a ballot box for {panel.question_id}: panel must hold "
                f"{PANEL_SIZE} distinct jurors, got {list(panel.juror_ids)}"
            )
        self.panel = panel
        self._slots: Dict[str, Optional[Ballot]] = {
            juror_id: None for juror_id in panel.juror_ids
        }
        self._received = 0
        self._status = BoxStatus.OPEN
        self._close_reason: Optional[CloseReason] = None
        self._lock = Lock()

    @classmethod
    def open(cls, panel: Panel) -> "BallotBox":
        box = cls(panel)
        logger.debug("Ballot box opened for %s.", panel.question_id)
        return box

    @property
    def question_id(self) -> str:
        return self.panel.question_id

    @property
    def status(self) -> BoxStatus:
        with self._lock:
            return self._status

    @property
    def close_reason(self) -> Optional[CloseReason]:
        with self._lock:
            return self._close_reason

    def submit(
        self,
        juror_id: str,
        choice: object,
        reasoning: Optional[str] = None,
    ) -> Ballot:
        normalized = normalize_choice(choice)
        if juror_id not in self.panel:
            raise NotPanelMemberError(
                f"Juror {juror_id} is not on the panel for question {self.question_id}."
            )

        with self._lock:
            if self._slots[juror_id] is not None:
                raise AlreadyVotedError(
                    f"Juror {juror_id} has already voted on question {self.question_id}."
                )
            if self._status == BoxStatus.CLOSED:
                raise BoxClosedError(
                    f"Voting on question {self.question_id} is closed."
                )
            ballot = Ballot(
                ballot_id=generate_ballot_id(),
                question_id=self.question_id,
                juror_id=juror_id,
                choice=normalized,
                submitted_at=_now(),
                reasoning=reasoning,
            )
            self._slots[juror_id] = ballot
            self._received += 1
            if self._received > PANEL_SIZE:
                raise InternalConsistencyError(
                    f"Ballot box for {self.question_id} holds {self._received} ballots."
                )
            if self._received == PANEL_SIZE:
                self._status = BoxStatus.CLOSED
                self._close_reason = CloseReason.COMPLETE
                logger.info("All %s ballots received for %s.", PANEL_SIZE, self.question_id)
        return ballot

    def close(self, reason: CloseReason = CloseReason.CANCELLED) -> bool:
        """Close the box. Returns False when it was already closed."""
        with self._lock:
            if self._status == BoxStatus.CLOSED:
                return False
            self._status = BoxStatus.CLOSED
            self._close_reason = reason
        logger.info("Ballot box for %s closed (%s).", self.question_id, reason.value)
        return True

    def snapshot(self) -> BoxSnapshot:
        with self._lock:
            ballots = tuple(
                ballot for ballot in self._slots.values() if ballot is not None
            )
            status = self._status
            reason = self._close_reason
        ballots = tuple(sorted(ballots, key=lambda ballot: ballot.submitted_at))
        return BoxSnapshot(
            question_id=self.question_id,
            status=status,
            close_reason=reason,
            ballots=ballots,
        )

    def has_voted(self, juror_id: str) -> bool:
        with self._lock:
            return self._slots.get(juror_id) is not None
