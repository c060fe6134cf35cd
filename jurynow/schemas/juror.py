from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class JurorRegister(BaseModel):
    handle: Optional[str] = Field(
        None, max_length=64, json_schema_extra={"example": "dwr.eth"}
    )
    demographics: Dict[str, str] = Field(
        default_factory=dict,
        json_schema_extra={"example": {"region": "Europe", "age_group": "25-34"}},
    )
    # Empty means every configured category.
    categories: List[str] = Field(default_factory=list)

    @field_validator("demographics", mode="before")
    @classmethod
    def stringify_demographics(cls, value):
        if isinstance(value, dict):
            return {
                str(key): str(item)
                for key, item in value.items()
                if item is not None and str(item).strip()
            }
        return value


class JurorUpdate(BaseModel):
    status: Optional[Literal["active", "inactive", "suspended"]] = None
    reliability: Optional[float] = Field(None, ge=0.0, le=1.0)
    categories: Optional[List[str]] = None


class JurorResponse(BaseModel):
    juror_id: str
    handle: Optional[str] = None
    demographics: Dict[str, str] = Field(default_factory=dict)
    categories: List[str] = Field(default_factory=list)
    status: str
    reliability: float
    questions_judged: int = 0
    last_served_at: Optional[datetime] = None
    last_active_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class JurorListResponse(BaseModel):
    jurors: List[JurorResponse]
    pagination: Pagination


class PoolStatsResponse(BaseModel):
    total_jurors: int
    active_jurors: int
    demographics: Dict[str, Dict[str, int]]
    average_reliability: float
    average_questions_judged: float


class PanelMember(BaseModel):
    juror_id: str
    demographics: Dict[str, str] = Field(default_factory=dict)


class PanelPreviewResponse(BaseModel):
    question_id: str
    category: Optional[str] = None
    panel: List[PanelMember]
    diversity_score: float
    formed_at: Optional[datetime] = None
