from enum import Enum

from sqlalchemy import Column, DateTime, String, Text, func

from jurynow.database import Base


class QuestionStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


class Question(Base):
    __tablename__ = "questions"

    question_id = Column(String(20), primary_key=True, index=True)
    owner_id = Column(String(64), nullable=False, index=True)
    prompt = Column(Text, nullable=False)
    option_a = Column(String(255), nullable=False)
    option_b = Column(String(255), nullable=False)
    category = Column(String(64), nullable=False, index=True)
    image_a = Column(String(512), nullable=True)
    image_b = Column(String(512), nullable=True)
    status = Column(
        String(16), default=QuestionStatus.PENDING.value, nullable=False, index=True
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
