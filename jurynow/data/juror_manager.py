import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from fastapi import Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.juror import Juror, JurorStatus
from ..services.errors import JurorNotFoundError
from ..services.panel_selector import JurorProfile
from ..utils.identifiers import generate_juror_id

logger = logging.getLogger("jury")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clean_demographics(raw: Optional[Dict[str, Any]]) -> Dict[str, str]:
    cleaned: Dict[str, str] = {}
    for key, value in (raw or {}).items():
        name = str(key).strip()
        text = str(value).strip() if value is not None else ""
        if name and text:
            cleaned[name] = text
    return cleaned


def _clean_categories(raw: Optional[Iterable[Any]]) -> List[str]:
    cleaned: List[str] = []
    for entry in raw or []:
        text = str(entry).strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


def to_profile(juror: Juror) -> JurorProfile:
    """Detach a juror row into the immutable snapshot the selector consumes."""
    return JurorProfile(
        juror_id=juror.juror_id,
        demographics=dict(juror.demographics or {}),
        categories=tuple(juror.categories or ()),
        status=juror.status,
        reliability=float(juror.reliability if juror.reliability is not None else 1.0),
        last_served_at=juror.last_served_at,
    )


class JurorManager:
    """Juror pool backed by SQLAlchemy. Jurors are never hard-deleted."""

    def __init__(self, db: Session):
        self.db = db

    # Pool read contract

    def list_eligible(self, category: Optional[str] = None) -> List[JurorProfile]:
        rows = (
            self.db.query(Juror)
            .filter(Juror.status == JurorStatus.ACTIVE.value)
            .order_by(Juror.juror_id.asc())
            .all()
        )
        profiles = [to_profile(row) for row in rows]
        return [profile for profile in profiles if profile.accepts_category(category)]

    def get(self, juror_id: str) -> JurorProfile:
        return to_profile(self.get_juror(juror_id))

    def get_juror(self, juror_id: str) -> Juror:
        juror = self.db.query(Juror).filter(Juror.juror_id == juror_id).first()
        if juror is None:
            raise JurorNotFoundError(f"Juror {juror_id} not found.")
        return juror

    def is_eligible_voter(self, juror_id: str) -> bool:
        """Registered and not suspended. Inactive panel members may still vote."""
        juror = self.db.query(Juror).filter(Juror.juror_id == juror_id).first()
        return juror is not None and juror.status != JurorStatus.SUSPENDED.value

    # Registration and status changes

    def register(
        self,
        demographics: Dict[str, Any],
        categories: Optional[Iterable[Any]] = None,
        handle: Optional[str] = None,
        juror_id: Optional[str] = None,
        reliability: float = 1.0,
    ) -> Juror:
        juror = Juror(
            juror_id=juror_id or generate_juror_id(self.db),
            handle=(handle or "").strip() or None,
            demographics=_clean_demographics(demographics),
            categories=_clean_categories(categories),
            status=JurorStatus.ACTIVE.value,
            reliability=max(0.0, min(1.0, float(reliability))),
            questions_judged=0,
            last_active_at=_now(),
        )
        try:
            self.db.add(juror)
            self.db.commit()
            self.db.refresh(juror)
        except Exception as e:
            logger.error(f"register: rolling back juror registration due to error: {e}")
            self.db.rollback()
            raise
        logger.info("Registered juror %s.", juror.juror_id)
        return juror

    def update(
        self,
        juror_id: str,
        status: Optional[str] = None,
        reliability: Optional[float] = None,
        categories: Optional[Iterable[Any]] = None,
    ) -> Juror:
        juror = self.get_juror(juror_id)
        if status is not None:
            juror.status = JurorStatus(status).value
        if reliability is not None:
            juror.reliability = max(0.0, min(1.0, float(reliability)))
        if categories is not None:
            juror.categories = _clean_categories(categories)
        self.db.add(juror)
        self.db.commit()
        self.db.refresh(juror)
        logger.info("Updated juror %s (status=%s).", juror_id, juror.status)
        return juror

    # Service bookkeeping

    def record_service(self, juror_ids: Iterable[str], served_at: Optional[datetime] = None) -> None:
        ids = list(juror_ids)
        if not ids:
            return
        stamp = served_at or _now()
        (
            self.db.query(Juror)
            .filter(Juror.juror_id.in_(ids))
            .update({Juror.last_served_at: stamp}, synchronize_session=False)
        )
        self.db.commit()

    def record_ballot(self, juror_id: str, cast_at: Optional[datetime] = None) -> None:
        (
            self.db.query(Juror)
            .filter(Juror.juror_id == juror_id)
            .update(
                {
                    Juror.questions_judged: Juror.questions_judged + 1,
                    Juror.last_active_at: cast_at or _now(),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()

    # Admin reads

    def list_jurors(self, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        safe_page = max(1, int(page or 1))
        safe_limit = max(1, min(int(limit or 20), 100))
        total = self.db.query(func.count(Juror.juror_id)).scalar() or 0
        rows = (
            self.db.query(Juror)
            .order_by(Juror.juror_id.asc())
            .offset((safe_page - 1) * safe_limit)
            .limit(safe_limit)
            .all()
        )
        return {
            "items": rows,
            "pagination": {
                "page": safe_page,
                "limit": safe_limit,
                "total": int(total),
                "pages": math.ceil(total / safe_limit) if total else 0,
            },
        }

    def pool_stats(self, dimensions: Iterable[str] = ("region", "age_group")) -> Dict[str, Any]:
        rows = self.db.query(Juror).all()
        breakdown: Dict[str, Dict[str, int]] = {dim: {} for dim in dimensions}
        active = 0
        reliability_total = 0.0
        judged_total = 0
        for juror in rows:
            if juror.status == JurorStatus.ACTIVE.value:
                active += 1
            reliability_total += float(juror.reliability or 0.0)
            judged_total += int(juror.questions_judged or 0)
            profile = to_profile(juror)
            for dim in breakdown:
                value = profile.attribute(dim)
                breakdown[dim][value] = breakdown[dim].get(value, 0) + 1
        total = len(rows)
        return {
            "total_jurors": total,
            "active_jurors": active,
            "demographics": breakdown,
            "average_reliability": round(reliability_total / total, 4) if total else 0.0,
            "average_questions_judged": round(judged_total / total, 2) if total else 0.0,
        }


def get_juror_manager(db: Session = Depends(get_db)) -> JurorManager:
    """Dependency provider for JurorManager."""
    return JurorManager(db=db)
