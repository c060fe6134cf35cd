from .juror import (
    JurorRegister,
    JurorUpdate,
    JurorResponse,
    JurorListResponse,
    PoolStatsResponse,
    PanelPreviewResponse,
)
from .question import QuestionCreate, QuestionResponse, CategoriesResponse
from .session import (
    SessionCreateRequest,
    SessionCreateResponse,
    BallotRequest,
    BallotResponse,
    SessionStatusResponse,
    VerdictResponse,
)
from .verdict import ArchivedVerdictResponse, JurorHistoryResponse

__all__ = [
    "JurorRegister",
    "JurorUpdate",
    "JurorResponse",
    "JurorListResponse",
    "PoolStatsResponse",
    "PanelPreviewResponse",
    "QuestionCreate",
    "QuestionResponse",
    "CategoriesResponse",
    "SessionCreateRequest",
    "SessionCreateResponse",
    "BallotRequest",
    "BallotResponse",
    "SessionStatusResponse",
    "VerdictResponse",
    "ArchivedVerdictResponse",
    "JurorHistoryResponse",
]
