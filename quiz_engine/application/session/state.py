"""
Quiz Engine - Session State Machine
Pure reducer over an immutable session state
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from quiz_engine.domain.quiz.entities import Quiz, QuizResult
from quiz_engine.domain.quiz.scoring import calculate_points


class SessionActionType(str, Enum):
    """Session transitions."""
    SET_LOADING = "SET_LOADING"
    SET_ERROR = "SET_ERROR"
    LOAD_QUIZZES = "LOAD_QUIZZES"
    START_SESSION = "START_SESSION"
    SET_CURRENT_QUIZ = "SET_CURRENT_QUIZ"
    SET_USER_ANSWER = "SET_USER_ANSWER"
    SUBMIT_ANSWER = "SUBMIT_ANSWER"
    RECORD_RESULT = "RECORD_RESULT"
    NEXT_QUIZ = "NEXT_QUIZ"
    PREVIOUS_QUIZ = "PREVIOUS_QUIZ"
    USE_HINT = "USE_HINT"
    START_TIMER = "START_TIMER"
    TICK_TIMER = "TICK_TIMER"
    STOP_TIMER = "STOP_TIMER"
    RESET_SESSION = "RESET_SESSION"


@dataclass(frozen=True)
class SessionAction:
    type: SessionActionType
    payload: Any = None


@dataclass(frozen=True)
class SessionState:
    """
    Snapshot of a quiz session.

    ``is_correct`` stays None until ``is_answered``; ``hints_used`` only
    ever refers to the current quiz.
    """
    quizzes: Tuple[Quiz, ...] = ()
    current_index: int = 0
    current_quiz: Optional[Quiz] = None
    is_loading: bool = False
    error: Optional[str] = None
    user_answer: Any = None
    is_answered: bool = False
    is_correct: Optional[bool] = None
    time_remaining: Optional[int] = None
    hints_used: Tuple[str, ...] = ()
    quiz_started_at: Optional[datetime] = None
    session_start_time: Optional[datetime] = None
    session_results: Tuple[QuizResult, ...] = ()
    total_score: int = 0
    last_points_earned: int = 0
    streak: int = 0

    @property
    def is_first_quiz(self) -> bool:
        return self.current_index == 0

    @property
    def is_last_quiz(self) -> bool:
        return bool(self.quizzes) and self.current_index == len(self.quizzes) - 1

    @property
    def progress(self) -> float:
        if not self.quizzes:
            return 0.0
        return (self.current_index + 1) / len(self.quizzes)

    @property
    def is_complete(self) -> bool:
        return self.is_last_quiz and self.is_answered

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view for the presentation layer."""
        return {
            "quiz_ids": [q.id for q in self.quizzes],
            "current_index": self.current_index,
            "current_quiz": self.current_quiz.to_dict() if self.current_quiz else None,
            "is_loading": self.is_loading,
            "error": self.error,
            "user_answer": self.user_answer,
            "is_answered": self.is_answered,
            "is_correct": self.is_correct,
            "time_remaining": self.time_remaining,
            "hints_used": list(self.hints_used),
            "session_start_time": (
                self.session_start_time.isoformat() if self.session_start_time else None
            ),
            "session_results": [r.to_dict() for r in self.session_results],
            "total_score": self.total_score,
            "last_points_earned": self.last_points_earned,
            "streak": self.streak,
            "is_first_quiz": self.is_first_quiz,
            "is_last_quiz": self.is_last_quiz,
            "progress": self.progress,
            "is_complete": self.is_complete,
        }


INITIAL_STATE = SessionState()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _move_to(state: SessionState, index: int) -> SessionState:
    """Navigate to ``index`` (clamped) and re-enter the answering state."""
    if not state.quizzes:
        return state
    index = max(0, min(index, len(state.quizzes) - 1))
    quiz = state.quizzes[index]
    return replace(
        state,
        current_index=index,
        current_quiz=quiz,
        user_answer=None,
        is_answered=False,
        is_correct=None,
        hints_used=(),
        time_remaining=quiz.time_limit if quiz.is_time_limited() else None,
        quiz_started_at=_now(),
        last_points_earned=0,
    )


def _load(state: SessionState, quizzes: Sequence[Quiz]) -> SessionState:
    loaded = replace(
        state,
        quizzes=tuple(quizzes),
        current_index=0,
        current_quiz=None,
        is_loading=False,
        error=None,
        user_answer=None,
        is_answered=False,
        is_correct=None,
        hints_used=(),
        time_remaining=None,
    )
    return _move_to(loaded, 0)


def _submit(state: SessionState) -> SessionState:
    quiz = state.current_quiz
    if quiz is None or state.is_answered:
        return state
    is_correct = quiz.validate_answer(state.user_answer)
    points = calculate_points(quiz, state.hints_used, is_correct)
    return replace(
        state,
        is_answered=True,
        is_correct=is_correct,
        streak=state.streak + 1 if is_correct else 0,
        last_points_earned=points,
        total_score=state.total_score + points,
    )


def reduce(state: SessionState, action: SessionAction) -> SessionState:
    """
    Apply ``action`` to ``state`` and return the next state.

    Pure apart from reading the clock for session/quiz start stamps.
    Unknown or inapplicable actions return ``state`` unchanged.
    """
    kind = action.type

    if kind == SessionActionType.SET_LOADING:
        return replace(state, is_loading=bool(action.payload))

    if kind == SessionActionType.SET_ERROR:
        return replace(state, error=action.payload, is_loading=False)

    if kind == SessionActionType.LOAD_QUIZZES:
        return _load(state, action.payload or ())

    if kind == SessionActionType.START_SESSION:
        return replace(
            state,
            session_start_time=_now(),
            session_results=(),
            total_score=0,
            last_points_earned=0,
            streak=0,
        )

    if kind == SessionActionType.SET_CURRENT_QUIZ:
        return _move_to(state, int(action.payload))

    if kind == SessionActionType.SET_USER_ANSWER:
        if state.is_answered:
            return state
        return replace(state, user_answer=action.payload)

    if kind == SessionActionType.SUBMIT_ANSWER:
        return _submit(state)

    if kind == SessionActionType.RECORD_RESULT:
        return replace(state, session_results=state.session_results + (action.payload,))

    if kind == SessionActionType.NEXT_QUIZ:
        return _move_to(state, state.current_index + 1)

    if kind == SessionActionType.PREVIOUS_QUIZ:
        return _move_to(state, state.current_index - 1)

    if kind == SessionActionType.USE_HINT:
        if action.payload in state.hints_used:
            return state
        return replace(state, hints_used=state.hints_used + (action.payload,))

    if kind == SessionActionType.START_TIMER:
        return replace(state, time_remaining=action.payload)

    if kind == SessionActionType.TICK_TIMER:
        if state.time_remaining is None:
            return state
        return replace(state, time_remaining=max(state.time_remaining - 1, 0))

    if kind == SessionActionType.STOP_TIMER:
        return replace(state, time_remaining=None)

    if kind == SessionActionType.RESET_SESSION:
        return _move_to(replace(INITIAL_STATE, quizzes=state.quizzes), 0)

    return state
