"""
Quiz Session Application Module
"""

from quiz_engine.application.session.service import QuizSessionService, SessionSummary
from quiz_engine.application.session.state import (
    INITIAL_STATE,
    SessionAction,
    SessionActionType,
    SessionState,
    reduce,
)

__all__ = [
    "QuizSessionService",
    "SessionSummary",
    "INITIAL_STATE",
    "SessionAction",
    "SessionActionType",
    "SessionState",
    "reduce",
]
