from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
from threading import Lock, RLock
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from jurynow.config.loader import get_jury_settings
from jurynow.services.ballot_box import (
    Ballot,
    BallotBox,
    BoxStatus,
    CloseReason,
    normalize_choice,
)
from jurynow.services.errors import (
    AlreadySelectedError,
    IneligibleJurorError,
    InvalidStateError,
    SessionNotFoundError,
)
from jurynow.services.panel_selector import (
    PANEL_SIZE,
    JurorProfile,
    Panel,
    PanelSelector,
)
from jurynow.services.tally import Verdict, progress, tally

logger = logging.getLogger("jury")

JSONCompatibleDict = Dict[str, Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    CREATED = "created"
    SELECTING = "selecting"
    VOTING = "voting"
    FINALIZED = "finalized"


@dataclass
class VerdictSession:
    question_id: str
    category: Optional[str] = None
    state: SessionState = SessionState.CREATED
    panel: Optional[Panel] = None
    box: Optional[BallotBox] = None
    verdict: Optional[Verdict] = None
    created_at: datetime = field(default_factory=_now)
    voting_opened_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None
    lock: RLock = field(default_factory=RLock, repr=False, compare=False)

    def current_verdict(self) -> Verdict:
        if self.verdict is not None:
            return self.verdict
        if self.box is not None:
            return tally(self.box)
        return Verdict(
            question_id=self.question_id,
            tally_a=0,
            tally_b=0,
            outcome=None,
            completion=False,
            received=0,
        )

    def to_payload(self) -> JSONCompatibleDict:
        """Return a JSON-friendly status snapshot of the session."""
        verdict = self.current_verdict()
        return {
            "question_id": self.question_id,
            "state": self.state.value,
            "progress": progress(verdict.received, verdict.total),
            "current_tally": {"A": verdict.tally_a, "B": verdict.tally_b},
        }


class VerdictSessionCoordinator:
    """In-memory lifecycle owner for every question's selection and voting."""

    def __init__(
        self,
        selector: Optional[PanelSelector] = None,
        voting_window: Optional[timedelta] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.selector = selector or PanelSelector()
        if voting_window is None:
            minutes = get_jury_settings()["voting_window_minutes"]
            voting_window = timedelta(minutes=minutes)
        self.voting_window = voting_window
        self._clock = clock or _now
        self._sessions: Dict[str, VerdictSession] = {}
        self._lock = Lock()

    # Registry

    def get_session(self, question_id: str) -> VerdictSession:
        with self._lock:
            session = self._sessions.get(question_id)
        if session is None:
            raise SessionNotFoundError(f"No verdict session exists for question {question_id}.")
        return session

    def find_session(self, question_id: str) -> Optional[VerdictSession]:
        with self._lock:
            return self._sessions.get(question_id)

    def evict(self, question_id: str) -> bool:
        """Forget a finalized session once it has been archived."""
        with self._lock:
            session = self._sessions.get(question_id)
            if session is None or session.state != SessionState.FINALIZED:
                return False
            del self._sessions[question_id]
        logger.debug("Evicted finalized session %s.", question_id)
        return True

    def _get_or_register(self, question_id: str, category: Optional[str]) -> VerdictSession:
        with self._lock:
            session = self._sessions.get(question_id)
            if session is None:
                session = VerdictSession(question_id=question_id, category=category)
                self._sessions[question_id] = session
            return session

    # Lifecycle

    def create_session(
        self,
        question_id: str,
        category: Optional[str],
        eligible_pool: Iterable[JurorProfile],
    ) -> Tuple[Panel, bool]:
        """
        Select a panel and open voting. Returns the panel and whether it was
        formed by this call; a repeat call while voting returns the same panel.
        """
        session = self._get_or_register(question_id, category)
        with session.lock:
            if session.state == SessionState.VOTING and session.panel is not None:
                return session.panel, False
            if session.state == SessionState.FINALIZED:
                raise InvalidStateError(
                    f"Question {question_id} has already been finalized."
                )

            session.state = SessionState.SELECTING
            session.category = category or session.category
            try:
                panel = self.selector.select(question_id, session.category, eligible_pool)
            except AlreadySelectedError as exc:
                if exc.panel is None:
                    session.state = SessionState.CREATED
                    raise
                panel = exc.panel
            except Exception:
                session.state = SessionState.CREATED
                raise

            session.panel = panel
            session.box = BallotBox.open(panel)
            session.voting_opened_at = self._clock()
            session.state = SessionState.VOTING
            logger.info("Voting opened for %s.", question_id)
            return panel, True

    def submit_ballot(
        self,
        question_id: str,
        juror_id: str,
        choice: object,
        reasoning: Optional[str] = None,
        juror_eligible: bool = True,
    ) -> Ballot:
        normalized = normalize_choice(choice)
        if not juror_eligible:
            raise IneligibleJurorError(
                f"Juror {juror_id} is not registered or not eligible to vote."
            )
        session = self.get_session(question_id)
        self._expire_if_overdue(session)
        with session.lock:
            state = session.state
            box = session.box
        if state != SessionState.VOTING or box is None:
            raise InvalidStateError(
                f"Question {question_id} is not accepting ballots (state: {state.value})."
            )

        ballot = box.submit(juror_id, normalized, reasoning)
        logger.info("Ballot %s recorded for %s.", ballot.ballot_id, question_id)
        if box.status == BoxStatus.CLOSED:
            self._finalize(session)
        return ballot

    def cancel(self, question_id: str) -> Verdict:
        session = self.get_session(question_id)
        with session.lock:
            if session.state == SessionState.FINALIZED:
                return session.current_verdict()
            if session.state != SessionState.VOTING or session.box is None:
                raise InvalidStateError(
                    f"Question {question_id} has no open voting to cancel."
                )
            session.box.close(CloseReason.CANCELLED)
            return self._finalize(session)

    def expire_overdue(self, now: Optional[datetime] = None) -> List[str]:
        """Close every voting session whose window has elapsed."""
        with self._lock:
            sessions = list(self._sessions.values())
        expired = []
        for session in sessions:
            if self._expire_if_overdue(session, now):
                expired.append(session.question_id)
        return expired

    def _expire_if_overdue(
        self, session: VerdictSession, now: Optional[datetime] = None
    ) -> bool:
        current = now or self._clock()
        with session.lock:
            if session.state != SessionState.VOTING or session.box is None:
                return False
            opened = session.voting_opened_at
            if opened is None or current < opened + self.voting_window:
                return False
            session.box.close(CloseReason.TIMEOUT)
            self._finalize(session)
            logger.info("Voting window elapsed for %s.", session.question_id)
            return True

    def _finalize(self, session: VerdictSession) -> Verdict:
        with session.lock:
            if session.state == SessionState.FINALIZED and session.verdict is not None:
                return session.verdict
            verdict = tally(session.box)
            session.verdict = verdict
            session.state = SessionState.FINALIZED
            session.finalized_at = self._clock()
        self.selector.archive(session.question_id)
        logger.info(
            "Verdict finalized for %s: A=%s B=%s outcome=%s (%s/%s ballots).",
            session.question_id,
            verdict.tally_a,
            verdict.tally_b,
            verdict.outcome,
            verdict.received,
            PANEL_SIZE,
        )
        return verdict

    # Reads

    def get_status(self, question_id: str) -> JSONCompatibleDict:
        session = self.get_session(question_id)
        self._expire_if_overdue(session)
        with session.lock:
            return session.to_payload()

    def get_verdict(self, question_id: str) -> Verdict:
        session = self.get_session(question_id)
        self._expire_if_overdue(session)
        with session.lock:
            return session.current_verdict()


verdict_coordinator = VerdictSessionCoordinator()


def get_verdict_coordinator() -> VerdictSessionCoordinator:
    return verdict_coordinator
