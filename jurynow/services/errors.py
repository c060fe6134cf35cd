"""Error taxonomy for jury selection and verdict aggregation.

Every ordinary failure is a ``JuryError`` carrying the HTTP status the API
layer should answer with. ``InternalConsistencyError`` is deliberately not a
``JuryError``: it signals a broken invariant (a bug), never a normal race.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from jurynow.services.panel_selector import Panel


class JuryError(Exception):
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def error_code(self) -> str:
        return type(self).__name__


# Input / validation


class InvalidChoiceError(JuryError, ValueError):
    status_code = 422


# Lookups


class SessionNotFoundError(JuryError):
    status_code = 404


class JurorNotFoundError(JuryError):
    status_code = 404


class QuestionNotFoundError(JuryError):
    status_code = 404


class VerdictNotFoundError(JuryError):
    status_code = 404


# State violations


class AlreadySelectedError(JuryError):
    status_code = 409

    def __init__(self, message: str, panel: Optional["Panel"] = None) -> None:
        super().__init__(message)
        self.panel = panel


class NotPanelMemberError(JuryError):
    status_code = 403


class IneligibleJurorError(JuryError):
    status_code = 403


class AlreadyVotedError(JuryError):
    status_code = 409


class BoxClosedError(JuryError):
    status_code = 409


class InvalidStateError(JuryError):
    status_code = 409


# Resources


class InsufficientPoolError(JuryError):
    status_code = 409

    def __init__(self, message: str, available: int = 0, required: int = 0) -> None:
        super().__init__(message)
        self.available = available
        self.required = required


class InternalConsistencyError(RuntimeError):
    """Raised when a panel or ballot box invariant no longer holds."""
