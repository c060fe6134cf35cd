"""Jury selection and verdict aggregation engine for JuryNow."""

from .verdict_session import (
    verdict_coordinator,
    get_verdict_coordinator,
    VerdictSessionCoordinator,
    VerdictSession,
    SessionState,
)  # noqa: F401

__all__ = [
    "verdict_coordinator",
    "get_verdict_coordinator",
    "VerdictSessionCoordinator",
    "VerdictSession",
    "SessionState",
]
