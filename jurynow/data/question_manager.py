import logging
from typing import List, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.question import Question, QuestionStatus
from ..services.errors import InvalidStateError, QuestionNotFoundError
from ..utils.identifiers import generate_question_id

logger = logging.getLogger("jury")

# pending -> active -> completed, never backwards.
_STATUS_ORDER = {
    QuestionStatus.PENDING.value: 0,
    QuestionStatus.ACTIVE.value: 1,
    QuestionStatus.COMPLETED.value: 2,
}


class QuestionManager:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        owner_id: str,
        prompt: str,
        option_a: str,
        option_b: str,
        category: str,
        image_a: Optional[str] = None,
        image_b: Optional[str] = None,
    ) -> Question:
        question = Question(
            question_id=generate_question_id(self.db),
            owner_id=owner_id,
            prompt=prompt.strip(),
            option_a=option_a.strip(),
            option_b=option_b.strip(),
            category=category.strip(),
            image_a=image_a,
            image_b=image_b,
            status=QuestionStatus.PENDING.value,
        )
        try:
            self.db.add(question)
            self.db.commit()
            self.db.refresh(question)
        except Exception as e:
            logger.error(f"create: rolling back question creation due to error: {e}")
            self.db.rollback()
            raise
        logger.info("Question %s created by %s.", question.question_id, owner_id)
        return question

    def get(self, question_id: str) -> Question:
        question = (
            self.db.query(Question).filter(Question.question_id == question_id).first()
        )
        if question is None:
            raise QuestionNotFoundError(f"Question {question_id} not found.")
        return question

    def list_for_owner(self, owner_id: str) -> List[Question]:
        return (
            self.db.query(Question)
            .filter(Question.owner_id == owner_id)
            .order_by(Question.created_at.desc(), Question.question_id.desc())
            .all()
        )

    def advance_status(self, question_id: str, status: str) -> Question:
        """Move a question forward through its lifecycle; repeats are no-ops."""
        question = self.get(question_id)
        target = QuestionStatus(status).value
        current = _STATUS_ORDER.get(question.status, 0)
        if _STATUS_ORDER[target] < current:
            raise InvalidStateError(
                f"Question {question_id} cannot move from {question.status} to {target}."
            )
        if _STATUS_ORDER[target] == current:
            return question
        question.status = target
        self.db.add(question)
        self.db.commit()
        self.db.refresh(question)
        logger.info("Question %s is now %s.", question_id, target)
        return question


def get_question_manager(db: Session = Depends(get_db)) -> QuestionManager:
    """Dependency provider for QuestionManager."""
    return QuestionManager(db=db)
