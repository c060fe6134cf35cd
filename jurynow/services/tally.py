from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Union

from jurynow.services.ballot_box import BallotBox, BoxSnapshot, CloseReason
from jurynow.services.errors import InternalConsistencyError
from jurynow.services.panel_selector import PANEL_SIZE

TIE = "tie"


@dataclass(frozen=True)
class Verdict:
    question_id: str
    tally_a: int
    tally_b: int
    outcome: Optional[str]
    completion: bool
    received: int
    total: int = PANEL_SIZE
    close_reason: Optional[str] = None

    @property
    def quorum_reached(self) -> bool:
        return self.received == self.total

    @property
    def forced_close(self) -> bool:
        return self.completion and not self.quorum_reached

    @property
    def provisional(self) -> bool:
        return not (self.completion and self.quorum_reached)

    def to_payload(self) -> Dict[str, object]:
        return {
            "question_id": self.question_id,
            "completion": self.completion,
            "tally_a": self.tally_a,
            "tally_b": self.tally_b,
            "outcome": self.outcome,
            "received": self.received,
            "total": self.total,
            "quorum_reached": self.quorum_reached,
            "forced_close": self.forced_close,
            "provisional": self.provisional,
            "close_reason": self.close_reason,
        }


def progress(received: int, total: int = PANEL_SIZE) -> Dict[str, int]:
    """Ballot progress with an integer percentage truncated toward zero."""
    percentage = (received * 100) // total if total else 0
    return {"received": received, "total": total, "percentage": percentage}


def decide_outcome(tally_a: int, tally_b: int, received: int, total: int = PANEL_SIZE) -> Optional[str]:
    if tally_a > tally_b:
        return "A"
    if tally_b > tally_a:
        return "B"
    # An even split only resolves to a tie once every panel member has voted.
    return TIE if received == total else None


def tally(source: Union[BallotBox, BoxSnapshot]) -> Verdict:
    snapshot = source.snapshot() if isinstance(source, BallotBox) else source
    tally_a = sum(1 for ballot in snapshot.ballots if ballot.choice == "A")
    tally_b = sum(1 for ballot in snapshot.ballots if ballot.choice == "B")
    received = snapshot.received
    if tally_a + tally_b != received or received > snapshot.total:
        raise InternalConsistencyError(
            f"Tally for {snapshot.question_id} does not add up: "
            f"A={tally_a} B={tally_b} received={received}"
        )
    reason = snapshot.close_reason
    return Verdict(
        question_id=snapshot.question_id,
        tally_a=tally_a,
        tally_b=tally_b,
        outcome=decide_outcome(tally_a, tally_b, received, snapshot.total),
        completion=snapshot.is_closed,
        received=received,
        total=snapshot.total,
        close_reason=reason.value if isinstance(reason, CloseReason) else reason,
    )
