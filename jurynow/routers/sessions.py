import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from jurynow.auth.auth import AuthenticatedIdentity, Role, get_current_identity, require_role
from jurynow.config.loader import get_jury_settings
from jurynow.data.juror_manager import JurorManager, get_juror_manager
from jurynow.data.question_manager import QuestionManager, get_question_manager
from jurynow.data.verdict_archive import (
    VerdictArchive,
    archived_status,
    get_verdict_archive,
    persist_finalized,
    verdict_from_record,
)
from jurynow.models.question import QuestionStatus
from jurynow.schemas.session import (
    BallotRequest,
    BallotResponse,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionStatusResponse,
    VerdictResponse,
)
from jurynow.services.errors import InvalidStateError, SessionNotFoundError
from jurynow.services.verdict_session import (
    VerdictSessionCoordinator,
    get_verdict_coordinator,
)

logger = logging.getLogger("jury")

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _ensure_owner_or_admin(question, identity: AuthenticatedIdentity) -> None:
    if identity.is_admin or question.owner_id == identity.subject:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Only the question owner or an administrator may manage this session.",
    )


@router.post("", response_model=SessionCreateResponse)
def create_session(
    payload: SessionCreateRequest,
    response: Response,
    identity: AuthenticatedIdentity = Depends(require_role(Role.ADMIN, Role.REQUESTER)),
    coordinator: VerdictSessionCoordinator = Depends(get_verdict_coordinator),
    jurors: JurorManager = Depends(get_juror_manager),
    questions: QuestionManager = Depends(get_question_manager),
    archive: VerdictArchive = Depends(get_verdict_archive),
):
    question = questions.get(payload.question_id)
    _ensure_owner_or_admin(question, identity)
    # A verdict record is final even when the coordinator holds no session for it.
    if (
        question.status == QuestionStatus.COMPLETED.value
        or archive.get_record(question.question_id) is not None
    ):
        raise InvalidStateError(f"Question {question.question_id} has already been finalized.")
    category = payload.category or question.category

    pool = jurors.list_eligible(category)
    panel, created = coordinator.create_session(question.question_id, category, pool)
    if created:
        jurors.record_service(panel.juror_ids, served_at=panel.formed_at)
        questions.advance_status(question.question_id, QuestionStatus.ACTIVE.value)
        response.status_code = status.HTTP_201_CREATED
    else:
        response.status_code = status.HTTP_200_OK

    return SessionCreateResponse(
        question_id=panel.question_id,
        panel=list(panel.juror_ids),
        diversity_score=panel.diversity_score,
        created=created,
    )


@router.post(
    "/{question_id}/ballots",
    response_model=BallotResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_ballot(
    question_id: str,
    payload: BallotRequest,
    identity: AuthenticatedIdentity = Depends(require_role(Role.JUROR)),
    coordinator: VerdictSessionCoordinator = Depends(get_verdict_coordinator),
    jurors: JurorManager = Depends(get_juror_manager),
    questions: QuestionManager = Depends(get_question_manager),
    archive: VerdictArchive = Depends(get_verdict_archive),
):
    limit = get_jury_settings()["reasoning_character_limit"]
    if payload.reasoning is not None and len(payload.reasoning) > limit:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Reasoning must be at most {limit} characters.",
        )

    try:
        ballot = coordinator.submit_ballot(
            question_id,
            identity.subject,
            payload.choice,
            reasoning=payload.reasoning,
            juror_eligible=jurors.is_eligible_voter(identity.subject),
        )
    except SessionNotFoundError:
        if archive.get_record(question_id) is None:
            raise
        raise InvalidStateError(
            f"Question {question_id} is not accepting ballots (state: finalized)."
        ) from None
    jurors.record_ballot(identity.subject, cast_at=ballot.submitted_at)
    persist_finalized(question_id, coordinator, archive, questions)
    return BallotResponse(ballot_id=ballot.ballot_id, submitted_at=ballot.submitted_at)


@router.get("/{question_id}/status", response_model=SessionStatusResponse)
def get_session_status(
    question_id: str,
    _: AuthenticatedIdentity = Depends(get_current_identity),
    coordinator: VerdictSessionCoordinator = Depends(get_verdict_coordinator),
    questions: QuestionManager = Depends(get_question_manager),
    archive: VerdictArchive = Depends(get_verdict_archive),
):
    try:
        payload = coordinator.get_status(question_id)
    except SessionNotFoundError:
        record = archive.get_record(question_id)
        if record is None:
            raise
        return archived_status(record)
    persist_finalized(question_id, coordinator, archive, questions)
    return payload


@router.get("/{question_id}/verdict", response_model=VerdictResponse)
def get_session_verdict(
    question_id: str,
    _: AuthenticatedIdentity = Depends(get_current_identity),
    coordinator: VerdictSessionCoordinator = Depends(get_verdict_coordinator),
    questions: QuestionManager = Depends(get_question_manager),
    archive: VerdictArchive = Depends(get_verdict_archive),
):
    try:
        verdict = coordinator.get_verdict(question_id)
    except SessionNotFoundError:
        record = archive.get_record(question_id)
        if record is None:
            raise
        verdict = verdict_from_record(record)
    persist_finalized(question_id, coordinator, archive, questions)
    return verdict.to_payload()


@router.post("/{question_id}/cancel", response_model=VerdictResponse)
def cancel_session(
    question_id: str,
    identity: AuthenticatedIdentity = Depends(require_role(Role.ADMIN, Role.REQUESTER)),
    coordinator: VerdictSessionCoordinator = Depends(get_verdict_coordinator),
    questions: QuestionManager = Depends(get_question_manager),
    archive: VerdictArchive = Depends(get_verdict_archive),
):
    _ensure_owner_or_admin(questions.get(question_id), identity)
    try:
        verdict = coordinator.cancel(question_id)
    except SessionNotFoundError:
        record = archive.get_record(question_id)
        if record is None:
            raise
        return verdict_from_record(record).to_payload()
    logger.info("Session %s cancelled by %s.", question_id, identity.subject)
    persist_finalized(question_id, coordinator, archive, questions)
    return verdict.to_payload()
