from enum import Enum

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, func

from jurynow.database import Base


class JurorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class Juror(Base):
    __tablename__ = "jurors"

    juror_id = Column(String(20), primary_key=True, index=True)
    # Farcaster handle or other external account reference.
    handle = Column(String(64), unique=True, index=True, nullable=True)
    demographics = Column(JSON, default=dict, nullable=False)
    categories = Column(JSON, default=list, nullable=False)
    status = Column(
        String(16), default=JurorStatus.ACTIVE.value, nullable=False, index=True
    )
    reliability = Column(Float, default=1.0, nullable=False)
    questions_judged = Column(Integer, default=0, nullable=False)
    last_served_at = Column(DateTime(timezone=True), nullable=True)
    last_active_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
