"""
Data access layer providing managers for jurors, questions, and archived verdicts.
"""

from .juror_manager import JurorManager
from .question_manager import QuestionManager
from .verdict_archive import VerdictArchive

__all__ = ["JurorManager", "QuestionManager", "VerdictArchive"]
