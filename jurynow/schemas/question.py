from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QuestionCreate(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=500)
    option_a: str = Field(..., min_length=1, max_length=255)
    option_b: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=64)
    image_a: Optional[str] = Field(None, max_length=512)
    image_b: Optional[str] = Field(None, max_length=512)

    @field_validator("prompt", "option_a", "option_b", "category", mode="before")
    @classmethod
    def strip_required(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class QuestionResponse(BaseModel):
    question_id: str
    owner_id: str
    prompt: str
    option_a: str
    option_b: str
    category: str
    image_a: Optional[str] = None
    image_b: Optional[str] = None
    status: Literal["pending", "active", "completed"]
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CategoriesResponse(BaseModel):
    categories: List[str]
