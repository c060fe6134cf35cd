from fastapi import APIRouter, Depends, HTTPException, Query, status

from jurynow.auth.auth import AuthenticatedIdentity, get_current_identity
from jurynow.data.verdict_archive import VerdictArchive, get_verdict_archive
from jurynow.schemas.verdict import (
    ArchivedBallotPublic,
    ArchivedVerdictResponse,
    JurorHistoryResponse,
)
from jurynow.services.errors import VerdictNotFoundError

router = APIRouter(prefix="/api/verdicts", tags=["verdicts"])


@router.get("/question/{question_id}", response_model=ArchivedVerdictResponse)
def get_archived_verdict(
    question_id: str,
    _: AuthenticatedIdentity = Depends(get_current_identity),
    archive: VerdictArchive = Depends(get_verdict_archive),
):
    record = archive.get_record(question_id)
    if record is None:
        raise VerdictNotFoundError(f"No finalized verdict for question {question_id}.")
    return ArchivedVerdictResponse(
        question_id=record.question_id,
        panel=list(record.panel or []),
        diversity_score=record.diversity_score,
        tally_a=record.tally_a,
        tally_b=record.tally_b,
        outcome=record.outcome,
        completion=record.completion,
        quorum_reached=record.quorum_reached,
        forced_close=record.forced_close,
        close_reason=record.close_reason,
        finalized_at=record.finalized_at,
        ballots=[
            ArchivedBallotPublic.model_validate(ballot)
            for ballot in archive.ballots_for_question(question_id)
        ],
    )


@router.get("/juror/{juror_id}", response_model=JurorHistoryResponse)
def get_juror_history(
    juror_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    archive: VerdictArchive = Depends(get_verdict_archive),
):
    if not identity.is_admin and identity.subject != juror_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Jurors may only view their own verdict history.",
        )
    result = archive.history_for_juror(juror_id, page=page, limit=limit)
    return {
        "juror_id": juror_id,
        "verdicts": result["items"],
        "pagination": result["pagination"],
    }
