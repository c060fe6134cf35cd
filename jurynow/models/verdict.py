from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from jurynow.database import Base


class VerdictRecord(Base):
    """Finalized verdict for a question, written once when its session closes."""

    __tablename__ = "verdict_records"

    question_id = Column(
        String(20),
        ForeignKey("questions.question_id", ondelete="CASCADE"),
        primary_key=True,
    )
    panel = Column(JSON, default=list, nullable=False)
    diversity_score = Column(Float, nullable=False, default=0.0)
    tally_a = Column(Integer, nullable=False, default=0)
    tally_b = Column(Integer, nullable=False, default=0)
    outcome = Column(String(8), nullable=True)
    completion = Column(Boolean, nullable=False, default=False)
    quorum_reached = Column(Boolean, nullable=False, default=False)
    forced_close = Column(Boolean, nullable=False, default=False)
    close_reason = Column(String(16), nullable=True)
    finalized_at = Column(DateTime(timezone=True), server_default=func.now())


class ArchivedBallot(Base):
    __tablename__ = "archived_ballots"
    __table_args__ = (
        UniqueConstraint(
            "question_id",
            "juror_id",
            name="uq_archived_ballot_juror",
        ),
    )

    ballot_id = Column(String(36), primary_key=True)
    question_id = Column(
        String(20),
        ForeignKey("verdict_records.question_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    juror_id = Column(
        String(20),
        ForeignKey("jurors.juror_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    choice = Column(String(1), nullable=False)
    reasoning = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False)
