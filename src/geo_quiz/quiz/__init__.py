"""Question generation, scheduling and the session state machine."""

from __future__ import annotations

from .questions import Question, QuestionGenerator, QuizKind, is_correct
from .scheduler import ScheduleSlot, slot_for
from .session import (
    SessionController,
    SessionMode,
    SessionSnapshot,
    SessionState,
    SessionStatus,
)

__all__ = [
    "Question",
    "QuestionGenerator",
    "QuizKind",
    "is_correct",
    "ScheduleSlot",
    "slot_for",
    "SessionController",
    "SessionMode",
    "SessionSnapshot",
    "SessionState",
    "SessionStatus",
]
