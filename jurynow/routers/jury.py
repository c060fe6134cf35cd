import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from jurynow.auth.auth import AuthenticatedIdentity, Role, get_current_identity, require_role
from jurynow.config.loader import get_jury_settings
from jurynow.data.juror_manager import JurorManager, get_juror_manager
from jurynow.data.question_manager import QuestionManager, get_question_manager
from jurynow.data.verdict_archive import VerdictArchive, get_verdict_archive
from jurynow.schemas.juror import (
    JurorListResponse,
    JurorRegister,
    JurorResponse,
    JurorUpdate,
    PanelMember,
    PanelPreviewResponse,
    PoolStatsResponse,
)
from jurynow.services.errors import SessionNotFoundError
from jurynow.services.verdict_session import (
    VerdictSessionCoordinator,
    get_verdict_coordinator,
)

logger = logging.getLogger("jury")

router = APIRouter(prefix="/api/jury", tags=["jury"])


@router.get("", response_model=JurorListResponse)
def list_jurors(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: AuthenticatedIdentity = Depends(require_role(Role.ADMIN)),
    jurors: JurorManager = Depends(get_juror_manager),
):
    result = jurors.list_jurors(page=page, limit=limit)
    return {"jurors": result["items"], "pagination": result["pagination"]}


@router.post("/register", response_model=JurorResponse, status_code=status.HTTP_201_CREATED)
def register_juror(
    payload: JurorRegister,
    _: AuthenticatedIdentity = Depends(require_role(Role.ADMIN)),
    jurors: JurorManager = Depends(get_juror_manager),
):
    known = get_jury_settings()["categories"]
    lookup = {category.lower(): category for category in known}
    unknown = [entry for entry in payload.categories if entry.strip().lower() not in lookup]
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown categories: {', '.join(unknown)}.",
        )
    categories = [lookup[entry.strip().lower()] for entry in payload.categories] or list(known)
    return jurors.register(
        demographics=payload.demographics,
        categories=categories,
        handle=payload.handle,
    )


@router.get("/stats", response_model=PoolStatsResponse)
def pool_stats(
    _: AuthenticatedIdentity = Depends(require_role(Role.ADMIN)),
    jurors: JurorManager = Depends(get_juror_manager),
):
    return jurors.pool_stats(get_jury_settings()["dimensions"])


@router.get("/selection", response_model=PanelPreviewResponse)
def panel_preview(
    question_id: str = Query(..., min_length=1),
    identity: AuthenticatedIdentity = Depends(require_role(Role.ADMIN, Role.REQUESTER)),
    coordinator: VerdictSessionCoordinator = Depends(get_verdict_coordinator),
    jurors: JurorManager = Depends(get_juror_manager),
    questions: QuestionManager = Depends(get_question_manager),
    archive: VerdictArchive = Depends(get_verdict_archive),
):
    question = questions.get(question_id)
    if not identity.is_admin and question.owner_id != identity.subject:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the question owner or an administrator may view its panel.",
        )
    session = coordinator.find_session(question_id)
    panel = None
    if session is not None:
        with session.lock:
            panel = session.panel

    if panel is not None:
        juror_ids = panel.juror_ids
        preview = dict(
            category=panel.category,
            diversity_score=panel.diversity_score,
            formed_at=panel.formed_at,
        )
    else:
        # Archived sessions are no longer held in memory.
        record = archive.get_record(question_id)
        if record is None:
            raise SessionNotFoundError(f"No panel has been formed for question {question_id}.")
        juror_ids = record.panel
        preview = dict(category=question.category, diversity_score=record.diversity_score)

    members = []
    for juror_id in juror_ids:
        profile = jurors.get(juror_id)
        members.append(PanelMember(juror_id=juror_id, demographics=dict(profile.demographics)))
    return PanelPreviewResponse(question_id=question_id, panel=members, **preview)


@router.get("/{juror_id}", response_model=JurorResponse)
def get_juror(
    juror_id: str,
    identity: AuthenticatedIdentity = Depends(get_current_identity),
    jurors: JurorManager = Depends(get_juror_manager),
):
    if not identity.is_admin and identity.subject != juror_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Jurors may only view their own profile.",
        )
    return jurors.get_juror(juror_id)


@router.patch("/{juror_id}", response_model=JurorResponse)
def update_juror(
    juror_id: str,
    payload: JurorUpdate,
    identity: AuthenticatedIdentity = Depends(require_role(Role.ADMIN)),
    jurors: JurorManager = Depends(get_juror_manager),
):
    juror = jurors.update(
        juror_id,
        status=payload.status,
        reliability=payload.reliability,
        categories=payload.categories,
    )
    logger.info("Juror %s updated by %s.", juror_id, identity.subject)
    return juror
