from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from jurynow.auth.auth import AuthenticatedIdentity, Role, get_current_identity, require_role
from jurynow.config.loader import get_jury_settings
from jurynow.data.question_manager import QuestionManager, get_question_manager
from jurynow.schemas.question import CategoriesResponse, QuestionCreate, QuestionResponse

router = APIRouter(prefix="/api/questions", tags=["questions"])


@router.get("/categories", response_model=CategoriesResponse)
def list_categories():
    return {"categories": get_jury_settings()["categories"]}


@router.get("", response_model=List[QuestionResponse])
def list_my_questions(
    identity: AuthenticatedIdentity = Depends(require_role(Role.ADMIN, Role.REQUESTER)),
    questions: QuestionManager = Depends(get_question_manager),
):
    return questions.list_for_owner(identity.subject)


@router.post("", response_model=QuestionResponse, status_code=status.HTTP_201_CREATED)
def create_question(
    payload: QuestionCreate,
    identity: AuthenticatedIdentity = Depends(require_role(Role.ADMIN, Role.REQUESTER)),
    questions: QuestionManager = Depends(get_question_manager),
):
    categories = {entry.lower(): entry for entry in get_jury_settings()["categories"]}
    category = categories.get(payload.category.lower())
    if category is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown category '{payload.category}'.",
        )
    return questions.create(
        owner_id=identity.subject,
        prompt=payload.prompt,
        option_a=payload.option_a,
        option_b=payload.option_b,
        category=category,
        image_a=payload.image_a,
        image_b=payload.image_b,
    )


@router.get("/{question_id}", response_model=QuestionResponse)
def get_question(
    question_id: str,
    _: AuthenticatedIdentity = Depends(get_current_identity),
    questions: QuestionManager = Depends(get_question_manager),
):
    return questions.get(question_id)
