"""Stratified, deterministic panel selection.

The eligible pool is split into strata (the cells of the cross product of the
configured demographic dimensions). Seats are handed out one at a time to the
candidate whose stratum is least represented relative to its share of the
pool, which behaves like a weighted round robin across strata. Ties fall
through reliability, service recency, a seeded hash and finally the juror id,
so a fixed pool snapshot and seed always yields the same panel.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from fractions import Fraction
import hashlib
import logging
import math
from threading import Lock
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from jurynow.config.loader import get_jury_settings
from jurynow.services.errors import (
    AlreadySelectedError,
    InsufficientPoolError,
    InternalConsistencyError,
)

logger = logging.getLogger("jury")

PANEL_SIZE = 12
UNSPECIFIED = "unspecified"
ACTIVE_STATUS = "active"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class JurorProfile:
    """Read-only snapshot of a juror as seen by the selection engine."""

    juror_id: str
    demographics: Mapping[str, str] = field(default_factory=dict)
    categories: Tuple[str, ...] = ()
    status: str = ACTIVE_STATUS
    reliability: float = 1.0
    last_served_at: Optional[datetime] = None

    def attribute(self, dimension: str) -> str:
        value = self.demographics.get(dimension) if self.demographics else None
        text = str(value).strip() if value is not None else ""
        return text or UNSPECIFIED

    def accepts_category(self, category: Optional[str]) -> bool:
        # Jurors who never narrowed their categories serve on everything.
        if not category or not self.categories:
            return True
        wanted = category.strip().lower()
        return any(str(entry).strip().lower() == wanted for entry in self.categories)


@dataclass(frozen=True)
class Panel:
    question_id: str
    juror_ids: Tuple[str, ...]
    diversity_score: float
    category: Optional[str] = None
    formed_at: datetime = field(default_factory=_now)

    def __contains__(self, juror_id: object) -> bool:
        return juror_id in self.juror_ids

    def __len__(self) -> int:
        return len(self.juror_ids)


def _entropy(counts: Iterable[int]) -> float:
    values = [count for count in counts if count > 0]
    total = sum(values)
    if total == 0:
        return 0.0
    return -sum((count / total) * math.log(count / total) for count in values)


def compute_diversity_score(
    panel: Sequence[JurorProfile],
    pool: Sequence[JurorProfile],
    dimensions: Sequence[str],
) -> float:
    """
    Average, over dimensions, of the panel's Shannon entropy divided by the
    pool's. A dimension on which the pool has no variety counts as fully
    diverse. Result is in [0, 1].
    """
    if not panel or not dimensions:
        return 0.0
    ratios: List[float] = []
    for dimension in dimensions:
        pool_entropy = _entropy(
            Counter(juror.attribute(dimension) for juror in pool).values()
        )
        if pool_entropy == 0.0:
            ratios.append(1.0)
            continue
        panel_entropy = _entropy(
            Counter(juror.attribute(dimension) for juror in panel).values()
        )
        ratios.append(min(1.0, panel_entropy / pool_entropy))
    return round(sum(ratios) / len(ratios), 4)


class PanelSelector:
    """Forms exactly one immutable panel per question."""

    def __init__(
        self,
        dimensions: Optional[Sequence[str]] = None,
        seed: Optional[str] = None,
        panel_size: int = PANEL_SIZE,
    ) -> None:
        if dimensions is None or seed is None:
            settings = get_jury_settings()
            dimensions = dimensions if dimensions is not None else settings["dimensions"]
            seed = seed if seed is not None else settings["selection_seed"]
        self.dimensions: Tuple[str, ...] = tuple(dimensions)
        self.seed = seed
        self.panel_size = panel_size
        self._panels: Dict[str, Panel] = {}
        self._question_locks: Dict[str, Lock] = {}
        self._lock = Lock()

    def _question_lock(self, question_id: str) -> Lock:
        with self._lock:
            lock = self._question_locks.get(question_id)
            if lock is None:
                lock = Lock()
                self._question_locks[question_id] = lock
            return lock

    def get_panel(self, question_id: str) -> Optional[Panel]:
        with self._lock:
            return self._panels.get(question_id)

    def archive(self, question_id: str) -> Optional[Panel]:
        """Drop a finalized question's panel from the live registry."""
        with self._lock:
            self._question_locks.pop(question_id, None)
            return self._panels.pop(question_id, None)

    def select(
        self,
        question_id: str,
        category: Optional[str],
        eligible_pool: Iterable[JurorProfile],
    ) -> Panel:
        with self._question_lock(question_id):
            existing = self.get_panel(question_id)
            if existing is not None:
                raise AlreadySelectedError(
                    f"A panel has already been selected for question {question_id}.",
                    panel=existing,
                )

            candidates = self._eligible_candidates(eligible_pool, category)
            if len(candidates) < self.panel_size:
                logger.info(
                    "Panel selection for %s failed: %s eligible jurors, %s required.",
                    question_id,
                    len(candidates),
                    self.panel_size,
                )
                raise InsufficientPoolError(
                    f"Only {len(candidates)} eligible jurors available; "
                    f"{self.panel_size} are required.",
                    available=len(candidates),
                    required=self.panel_size,
                )

            chosen = self._stratified_pick(question_id, candidates)
            juror_ids = tuple(juror.juror_id for juror in chosen)
            if len(set(juror_ids)) != self.panel_size:
                raise InternalConsistencyError(
                    f"Panel for {question_id} does not hold {self.panel_size} "
                    f"distinct jurors: {juror_ids}"
                )

            panel = Panel(
                question_id=question_id,
                juror_ids=juror_ids,
                diversity_score=compute_diversity_score(
                    chosen, candidates, self.dimensions
                ),
                category=category,
            )
            with self._lock:
                self._panels[question_id] = panel
            logger.info(
                "Panel formed for %s from %s candidates (diversity %.4f).",
                question_id,
                len(candidates),
                panel.diversity_score,
            )
            return panel

    def _eligible_candidates(
        self, pool: Iterable[JurorProfile], category: Optional[str]
    ) -> List[JurorProfile]:
        seen: Dict[str, JurorProfile] = {}
        for juror in pool:
            if juror.status != ACTIVE_STATUS:
                continue
            if not juror.accepts_category(category):
                continue
            seen.setdefault(juror.juror_id, juror)
        return sorted(seen.values(), key=lambda juror: juror.juror_id)

    def _cell_of(self, juror: JurorProfile) -> Tuple[str, ...]:
        return tuple(juror.attribute(dimension) for dimension in self.dimensions)

    def _seeded_order(self, question_id: str, juror_id: str) -> int:
        seed = f"{self.seed}:{question_id}:{juror_id}"
        return int(hashlib.sha256(seed.encode("utf-8")).hexdigest(), 16)

    def _stratified_pick(
        self, question_id: str, candidates: List[JurorProfile]
    ) -> List[JurorProfile]:
        total = len(candidates)
        cell_sizes = Counter(self._cell_of(juror) for juror in candidates)
        value_sizes = {
            dimension: Counter(juror.attribute(dimension) for juror in candidates)
            for dimension in self.dimensions
        }
        seated_cells: Counter = Counter()
        seated_values = {dimension: Counter() for dimension in self.dimensions}

        def rank(juror: JurorProfile):
            cell = self._cell_of(juror)
            # (seated + 1) / share, kept exact so equal strata tie exactly.
            cell_pressure = Fraction((seated_cells[cell] + 1) * total, cell_sizes[cell])
            if self.dimensions:
                marginal = sum(
                    Fraction(
                        (seated_values[dim][juror.attribute(dim)] + 1) * total,
                        value_sizes[dim][juror.attribute(dim)],
                    )
                    for dim in self.dimensions
                ) / len(self.dimensions)
            else:
                marginal = Fraction(0)
            served = juror.last_served_at
            recency = (0, 0.0) if served is None else (1, served.timestamp())
            return (
                cell_pressure,
                marginal,
                -float(juror.reliability or 0.0),
                recency,
                self._seeded_order(question_id, juror.juror_id),
                juror.juror_id,
            )

        remaining = list(candidates)
        chosen: List[JurorProfile] = []
        while len(chosen) < self.panel_size:
            pick = min(remaining, key=rank)
            remaining.remove(pick)
            chosen.append(pick)
            seated_cells[self._cell_of(pick)] += 1
            for dimension in self.dimensions:
                seated_values[dimension][pick.attribute(dimension)] += 1
        return chosen
