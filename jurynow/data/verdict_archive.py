from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from jurynow.data.question_manager import QuestionManager
from jurynow.database import get_db
from jurynow.models.question import QuestionStatus
from jurynow.models.verdict import ArchivedBallot, VerdictRecord
from jurynow.services.errors import JuryError
from jurynow.services.panel_selector import PANEL_SIZE
from jurynow.services.tally import Verdict, progress
from jurynow.services.verdict_session import (
    SessionState,
    VerdictSession,
    VerdictSessionCoordinator,
)

logger = logging.getLogger("jury")


class VerdictArchive:
    """Write-once persistence of finalized verdicts and their ballots."""

    def __init__(self, db: Session):
        self.db = db

    def get_record(self, question_id: str) -> Optional[VerdictRecord]:
        return (
            self.db.query(VerdictRecord)
            .filter(VerdictRecord.question_id == question_id)
            .first()
        )

    def record(self, session: VerdictSession) -> Optional[VerdictRecord]:
        """
        Persist a finalized session. Returns the stored record, or None while
        the session is still open. Calling it again for the same question
        returns the existing row untouched.
        """
        with session.lock:
            if session.state != SessionState.FINALIZED or session.verdict is None:
                return None
            verdict = session.verdict
            panel = session.panel
            snapshot = session.box.snapshot() if session.box is not None else None
            finalized_at = session.finalized_at

        existing = self.get_record(session.question_id)
        if existing is not None:
            return existing

        record = VerdictRecord(
            question_id=session.question_id,
            panel=list(panel.juror_ids) if panel is not None else [],
            diversity_score=panel.diversity_score if panel is not None else 0.0,
            tally_a=verdict.tally_a,
            tally_b=verdict.tally_b,
            outcome=verdict.outcome,
            completion=verdict.completion,
            quorum_reached=verdict.quorum_reached,
            forced_close=verdict.forced_close,
            close_reason=verdict.close_reason,
            finalized_at=finalized_at,
        )
        ballots = [
            ArchivedBallot(
                ballot_id=ballot.ballot_id,
                question_id=session.question_id,
                juror_id=ballot.juror_id,
                choice=ballot.choice,
                reasoning=ballot.reasoning,
                submitted_at=ballot.submitted_at,
            )
            for ballot in (snapshot.ballots if snapshot is not None else ())
        ]
        try:
            self.db.add(record)
            self.db.flush()
            self.db.add_all(ballots)
            self.db.commit()
        except IntegrityError:
            # Another request archived the same question first.
            self.db.rollback()
            logger.info("Verdict for %s was already archived.", session.question_id)
            return self.get_record(session.question_id)
        self.db.refresh(record)
        logger.info(
            "Archived verdict for %s with %s ballots.", session.question_id, len(ballots)
        )
        return record

    def ballots_for_question(self, question_id: str) -> List[ArchivedBallot]:
        return (
            self.db.query(ArchivedBallot)
            .filter(ArchivedBallot.question_id == question_id)
            .order_by(ArchivedBallot.submitted_at.asc())
            .all()
        )

    def history_for_juror(
        self, juror_id: str, page: int = 1, limit: int = 20
    ) -> Dict[str, Any]:
        safe_page = max(1, int(page or 1))
        safe_limit = max(1, min(int(limit or 20), 100))
        base = self.db.query(ArchivedBallot).filter(ArchivedBallot.juror_id == juror_id)
        total = (
            self.db.query(func.count(ArchivedBallot.ballot_id))
            .filter(ArchivedBallot.juror_id == juror_id)
            .scalar()
            or 0
        )
        rows = (
            base.order_by(ArchivedBallot.submitted_at.desc())
            .offset((safe_page - 1) * safe_limit)
            .limit(safe_limit)
            .all()
        )
        return {
            "items": rows,
            "pagination": {
                "page": safe_page,
                "limit": safe_limit,
                "total": int(total),
                "pages": math.ceil(total / safe_limit) if total else 0,
            },
        }


def get_verdict_archive(db: Session = Depends(get_db)) -> VerdictArchive:
    return VerdictArchive(db=db)


def verdict_from_record(record: VerdictRecord) -> Verdict:
    """Rebuild the verdict view of an archived question."""
    return Verdict(
        question_id=record.question_id,
        tally_a=record.tally_a,
        tally_b=record.tally_b,
        outcome=record.outcome,
        completion=record.completion,
        received=record.tally_a + record.tally_b,
        total=PANEL_SIZE,
        close_reason=record.close_reason,
    )


def archived_status(record: VerdictRecord) -> Dict[str, Any]:
    verdict = verdict_from_record(record)
    return {
        "question_id": record.question_id,
        "state": SessionState.FINALIZED.value,
        "progress": progress(verdict.received, verdict.total),
        "current_tally": {"A": verdict.tally_a, "B": verdict.tally_b},
    }


def persist_finalized(
    question_id: str,
    coordinator: VerdictSessionCoordinator,
    archive: VerdictArchive,
    questions: QuestionManager,
) -> Optional[VerdictRecord]:
    """
    Archive a finalized session, mark its question completed and drop the
    session from the coordinator. Sessions still voting are left alone.
    """
    session = coordinator.find_session(question_id)
    if session is None or session.state != SessionState.FINALIZED:
        return None
    record = archive.record(session)
    questions.advance_status(question_id, QuestionStatus.COMPLETED.value)
    coordinator.evict(question_id)
    return record


def sweep_overdue_sessions(
    db: Session,
    coordinator: VerdictSessionCoordinator,
    now: Optional[datetime] = None,
) -> List[str]:
    """Close every overdue session and archive what the sweep finalized."""
    expired = coordinator.expire_overdue(now)
    archive = VerdictArchive(db)
    questions = QuestionManager(db)
    persisted = []
    for question_id in expired:
        try:
            if persist_finalized(question_id, coordinator, archive, questions) is not None:
                persisted.append(question_id)
        except (JuryError, SQLAlchemyError) as e:
            db.rollback()
            logger.error(f"sweep: could not archive timed-out verdict for {question_id}: {e}")
    if persisted:
        logger.info("Archived %s timed-out verdicts: %s", len(persisted), persisted)
    return persisted
