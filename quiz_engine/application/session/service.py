"""
Quiz Engine - Quiz Session Application Service
Timer, auto-submit, hint wiring and best-effort persistence around the reducer
"""

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple

import structlog

from quiz_engine.application.hints.service import HintPreview, HintStatistics, QuizHintService
from quiz_engine.application.session.state import (
    INITIAL_STATE,
    SessionAction,
    SessionActionType,
    SessionState,
    reduce,
)
from quiz_engine.core.config import Settings, get_settings
from quiz_engine.domain.quiz.entities import Quiz, QuizHint, QuizLevel, QuizResult
from quiz_engine.domain.quiz.repository import QuizRepository, UserStatisticsSink

logger = structlog.get_logger(__name__)

StateListener = Callable[[SessionState], None]

# Transitions after which hint usage must start over, even on the same quiz.
_HINT_RESET_ACTIONS = {
    SessionActionType.LOAD_QUIZZES,
    SessionActionType.SET_CURRENT_QUIZ,
    SessionActionType.NEXT_QUIZ,
    SessionActionType.PREVIOUS_QUIZ,
    SessionActionType.RESET_SESSION,
}


@dataclass
class SessionSummary:
    """Emitted once when the last quiz of a session is answered."""
    user_id: str
    total_quizzes: int
    answered: int
    correct_answers: int
    total_score: int
    streak: int
    elapsed_seconds: float
    results: Tuple[QuizResult, ...] = field(default_factory=tuple)

    @property
    def accuracy(self) -> float:
        if self.answered == 0:
            return 0.0
        return self.correct_answers / self.answered

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "total_quizzes": self.total_quizzes,
            "answered": self.answered,
            "correct_answers": self.correct_answers,
            "accuracy": self.accuracy,
            "total_score": self.total_score,
            "streak": self.streak,
            "elapsed_seconds": self.elapsed_seconds,
            "results": [r.to_dict() for r in self.results],
        }


class QuizSessionService:
    """
    Orchestrates one user's quiz session.

    State transitions are synchronous and visible immediately; repository
    writes run as fire-and-forget tasks whose failures are logged and never
    roll the session back.
    """

    def __init__(
        self,
        repository: QuizRepository,
        user_id: str,
        statistics: Optional[UserStatisticsSink] = None,
        hints: Optional[QuizHintService] = None,
        settings: Optional[Settings] = None,
        on_complete: Optional[Callable[[SessionSummary], None]] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize quiz session service.

        Args:
            repository: Quiz data access
            user_id: User taking the session
            statistics: Optional sink notified after each result
            hints: Hint service to drive (one is created if omitted)
            settings: Engine settings
            on_complete: Called with a summary when the session completes
            rng: Random source for quiz shuffling
        """
        self._settings = settings or get_settings()
        self._repository = repository
        self._statistics = statistics
        self._user_id = user_id
        self._rng = rng or random.Random()
        self.on_complete = on_complete

        self._state: SessionState = INITIAL_STATE
        self._listeners: List[StateListener] = []
        self._timer_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

        self.hints = hints or QuizHintService(
            max_hints_allowed=self._settings.max_hints_allowed
        )
        self._hint_listener = self.hints.on_hint_used
        self.hints.on_hint_used = self._record_hint

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_first_quiz(self) -> bool:
        return self._state.is_first_quiz

    @property
    def is_last_quiz(self) -> bool:
        return self._state.is_last_quiz

    @property
    def progress(self) -> float:
        return self._state.progress

    @property
    def is_complete(self) -> bool:
        return self._state.is_complete

    @property
    def hint_statistics(self) -> HintStatistics:
        return self.hints.get_hint_statistics()

    @property
    def next_hint_preview(self) -> Optional[HintPreview]:
        return self.hints.get_next_hint_preview()

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def snapshot(self) -> Dict[str, Any]:
        """Full state plus hint summary for the presentation layer."""
        preview = self.next_hint_preview
        result = self._state.to_dict()
        result["hint_statistics"] = self.hint_statistics.to_dict()
        result["next_hint_preview"] = preview.to_dict() if preview else None
        return result

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` for every new state. Returns an unsubscriber."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: SessionAction) -> SessionState:
        """Run one reducer transition and keep the hint service in step."""
        new_state = reduce(self._state, action)
        if new_state is self._state:
            return new_state

        self._state = new_state
        rebound = self.hints.bind_quiz(new_state.current_quiz)
        if not rebound and action.type in _HINT_RESET_ACTIONS:
            self.hints.reset_hints()

        for listener in list(self._listeners):
            listener(new_state)
        return new_state

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_quizzes(self, level: QuizLevel) -> SessionState:
        """
        Load the level's quizzes and start a new session.

        Repository failures are recorded as ``state.error``.
        """
        level = QuizLevel(level)
        self.dispatch(SessionAction(SessionActionType.SET_LOADING, True))

        try:
            quizzes = await self._repository.get_quizzes_by_level(level)
        except Exception as e:
            logger.error(
                "Failed to load quizzes",
                user_id=self._user_id,
                quiz_level=level.value,
                error=str(e),
            )
            return self.dispatch(SessionAction(
                SessionActionType.SET_ERROR,
                str(e) or "Failed to load quizzes",
            ))

        state = self.start_with(quizzes)
        logger.info(
            "Quizzes loaded",
            user_id=self._user_id,
            quiz_level=level.value,
            quiz_count=len(state.quizzes),
        )
        return state

    async def load_review_quizzes(self) -> SessionState:
        """Start a session over the user's spaced-repetition review set."""
        self.dispatch(SessionAction(SessionActionType.SET_LOADING, True))

        try:
            quizzes = await self._repository.get_spaced_repetition_quizzes(self._user_id)
        except Exception as e:
            logger.error(
                "Failed to load review quizzes",
                user_id=self._user_id,
                error=str(e),
            )
            return self.dispatch(SessionAction(
                SessionActionType.SET_ERROR,
                str(e) or "Failed to load review quizzes",
            ))

        return self.start_with(quizzes)

    def start_with(self, quizzes: Sequence[Quiz]) -> SessionState:
        """Start a new session over an explicit quiz list."""
        quizzes = list(quizzes)
        if self._settings.shuffle_quizzes:
            self._rng.shuffle(quizzes)

        self._cancel_timer()
        self.dispatch(SessionAction(SessionActionType.LOAD_QUIZZES, quizzes))
        self.dispatch(SessionAction(SessionActionType.START_SESSION))
        self._start_timer()
        return self._state

    # ------------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------------

    def set_user_answer(self, answer: Any) -> SessionState:
        return self.dispatch(SessionAction(SessionActionType.SET_USER_ANSWER, answer))

    def submit_answer(self) -> Optional[QuizResult]:
        """
        Grade the staged answer for the current quiz.

        Returns:
            The recorded result, or None if there was nothing to submit
        """
        before = self._state
        quiz = before.current_quiz
        if quiz is None or before.is_answered:
            return None

        state = self.dispatch(SessionAction(SessionActionType.SUBMIT_ANSWER))
        self._cancel_timer()
        self.dispatch(SessionAction(SessionActionType.STOP_TIMER))

        result = QuizResult(
            quiz_id=quiz.id,
            user_id=self._user_id,
            is_correct=bool(state.is_correct),
            user_answer=state.user_answer,
            time_spent=self._time_spent(before, quiz),
            hints_used=state.hints_used,
            points_earned=state.last_points_earned,
            explanation=quiz.get_explanation(),
        )
        self.dispatch(SessionAction(SessionActionType.RECORD_RESULT, result))

        logger.info(
            "Answer submitted",
            user_id=self._user_id,
            quiz_id=quiz.id,
            is_correct=result.is_correct,
            points_earned=result.points_earned,
            hints_used=len(result.hints_used),
            streak=self._state.streak,
        )

        self._schedule(self._persist_result(result))

        if self._state.is_complete:
            self._complete()
        return result

    def _time_spent(self, state: SessionState, quiz: Quiz) -> float:
        if quiz.is_time_limited() and state.time_remaining is not None:
            return float(quiz.time_limit - state.time_remaining)
        if state.quiz_started_at is not None:
            elapsed = datetime.now(timezone.utc) - state.quiz_started_at
            return max(0.0, elapsed.total_seconds())
        return 0.0

    def _complete(self) -> None:
        state = self._state
        elapsed = 0.0
        if state.session_start_time is not None:
            elapsed = (datetime.now(timezone.utc) - state.session_start_time).total_seconds()

        summary = SessionSummary(
            user_id=self._user_id,
            total_quizzes=len(state.quizzes),
            answered=len(state.session_results),
            correct_answers=sum(1 for r in state.session_results if r.is_correct),
            total_score=state.total_score,
            streak=state.streak,
            elapsed_seconds=elapsed,
            results=state.session_results,
        )

        logger.info(
            "Session complete",
            user_id=self._user_id,
            total_score=summary.total_score,
            accuracy=summary.accuracy,
        )

        if self.on_complete is not None:
            self.on_complete(summary)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def go_to_next_quiz(self) -> bool:
        if self._state.current_index >= len(self._state.quizzes) - 1:
            return False
        self._navigate(SessionAction(SessionActionType.NEXT_QUIZ))
        return True

    def go_to_previous_quiz(self) -> bool:
        if self._state.current_index <= 0:
            return False
        self._navigate(SessionAction(SessionActionType.PREVIOUS_QUIZ))
        return True

    def go_to_quiz(self, index: int) -> bool:
        if not 0 <= index < len(self._state.quizzes):
            return False
        self._navigate(SessionAction(SessionActionType.SET_CURRENT_QUIZ, index))
        return True

    def _navigate(self, action: SessionAction) -> None:
        self._cancel_timer()
        self.dispatch(action)
        self._start_timer()

    # ------------------------------------------------------------------
    # Hints
    # ------------------------------------------------------------------

    def use_hint(self, hint_id: Optional[str] = None) -> bool:
        """
        Use a hint through the hint service so caps and penalties apply.

        Refused once the current quiz is answered.
        """
        if self._state.is_answered:
            return False
        return self.hints.use_hint(hint_id)

    def _record_hint(self, hint: QuizHint) -> None:
        self.dispatch(SessionAction(SessionActionType.USE_HINT, hint.id))
        if self._hint_listener is not None:
            self._hint_listener(hint)

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def tick(self) -> SessionState:
        """
        Advance the countdown by one step.

        Reaching zero on an unanswered quiz submits whatever answer is staged.
        """
        state = self._state
        if state.time_remaining is None or state.time_remaining <= 0:
            return state

        state = self.dispatch(SessionAction(SessionActionType.TICK_TIMER))
        if (
            state.time_remaining == 0
            and not state.is_answered
            and self._settings.auto_submit_on_timeout
        ):
            logger.info(
                "Time expired, submitting answer",
                user_id=self._user_id,
                quiz_id=state.current_quiz.id if state.current_quiz else None,
            )
            self.submit_answer()
        return self._state

    def stop_timer(self) -> SessionState:
        self._cancel_timer()
        return self.dispatch(SessionAction(SessionActionType.STOP_TIMER))

    def _start_timer(self) -> None:
        self._cancel_timer()
        remaining = self._state.time_remaining
        if remaining is None or remaining <= 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, timer driven manually")
            return
        self._timer_task = loop.create_task(self._run_timer())

    async def _run_timer(self) -> None:
        interval = self._settings.timer_interval_seconds
        while self._state.time_remaining is not None and self._state.time_remaining > 0:
            await asyncio.sleep(interval)
            self.tick()

    def _cancel_timer(self) -> None:
        task, self._timer_task = self._timer_task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _schedule(self, coro: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, result not persisted", user_id=self._user_id)
            coro.close()
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist_result(self, result: QuizResult) -> None:
        try:
            await self._repository.save_quiz_result(result)
            if not result.is_correct:
                await self._repository.add_to_wrong_answers(result)
        except Exception as e:
            logger.error(
                "Failed to save quiz result",
                user_id=result.user_id,
                quiz_id=result.quiz_id,
                error=str(e),
            )

        if self._statistics is None:
            return
        try:
            await self._statistics.update_user_statistics(result.user_id, result)
        except Exception as e:
            logger.error(
                "Failed to update user statistics",
                user_id=result.user_id,
                error=str(e),
            )

    async def drain(self) -> None:
        """Wait for outstanding persistence tasks."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset_session(self) -> SessionState:
        """Back to the initial state, keeping the loaded quizzes."""
        self._cancel_timer()
        state = self.dispatch(SessionAction(SessionActionType.RESET_SESSION))
        self._start_timer()
        return state

    def close(self) -> None:
        """Tear down the timer. Pending persistence keeps running."""
        self._cancel_timer()

    async def aclose(self) -> None:
        self.close()
        await self.drain()

    async def __aenter__(self) -> "QuizSessionService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
