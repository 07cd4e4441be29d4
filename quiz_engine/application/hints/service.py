"""
Quiz Engine - Hint System Application Service
Hint consumption, usage caps and point penalties for the active quiz
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Union

import structlog

from quiz_engine.core.config import get_settings
from quiz_engine.domain.quiz.entities import HintLevel, Quiz, QuizHint

logger = structlog.get_logger(__name__)

HintUsedCallback = Callable[[QuizHint], None]
PenaltyCallback = Callable[[int], None]


@dataclass
class HintState:
    """Hint state scoped to the bound quiz."""
    available_hints: List[QuizHint] = field(default_factory=list)
    used_hints: List[QuizHint] = field(default_factory=list)
    current_hint: Optional[QuizHint] = None
    is_hint_modal_visible: bool = False
    hint_usage_count: int = 0
    max_hints_allowed: int = 3
    total_points_penalty: int = 0


@dataclass
class LevelHintCount:
    """Available/used hint counts for one level."""
    available: int = 0
    used: int = 0


@dataclass
class HintStatistics:
    """Summary of hint usage for the presentation layer."""
    total_hints: int
    used_hints: int
    remaining_hints: int
    total_points_penalty: int
    hints_by_level: Dict[HintLevel, LevelHintCount]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_hints": self.total_hints,
            "used_hints": self.used_hints,
            "remaining_hints": self.remaining_hints,
            "total_points_penalty": self.total_points_penalty,
            "hints_by_level": {
                level.value: {"available": count.available, "used": count.used}
                for level, count in self.hints_by_level.items()
            },
        }


@dataclass
class HintPreview:
    """Cost of the next hint without its content."""
    level: Union[HintLevel, str]
    points_penalty: int
    unlock_condition: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value if isinstance(self.level, HintLevel) else self.level,
            "points_penalty": self.points_penalty,
            "unlock_condition": self.unlock_condition,
        }


class QuizHintService:
    """
    Service for managing hints of the current quiz.

    Every operation is total: refusals are reported as False/None and
    leave the state untouched. Binding a different quiz resets everything.
    """

    def __init__(
        self,
        max_hints_allowed: Optional[int] = None,
        on_hint_used: Optional[HintUsedCallback] = None,
        on_points_penalty: Optional[PenaltyCallback] = None,
    ):
        """
        Initialize hint service.

        Args:
            max_hints_allowed: Usage cap per quiz (defaults to settings)
            on_hint_used: Called with the hint after each successful use
            on_points_penalty: Called with the penalty when it is positive
        """
        if max_hints_allowed is None:
            max_hints_allowed = get_settings().max_hints_allowed
        self._quiz: Optional[Quiz] = None
        self._state = HintState(max_hints_allowed=max_hints_allowed)
        self.on_hint_used = on_hint_used
        self.on_points_penalty = on_points_penalty

    @property
    def quiz(self) -> Optional[Quiz]:
        return self._quiz

    @property
    def state(self) -> HintState:
        """Copy of the current hint state."""
        return replace(
            self._state,
            available_hints=list(self._state.available_hints),
            used_hints=list(self._state.used_hints),
        )

    def bind_quiz(self, quiz: Optional[Quiz]) -> bool:
        """
        Bind the service to ``quiz``.

        Returns True if the binding changed (and state was reset).
        """
        if quiz is self._quiz:
            return False
        self._quiz = quiz
        self._state = HintState(
            available_hints=quiz.get_hints() if quiz is not None else [],
            max_hints_allowed=self._state.max_hints_allowed,
        )
        return True

    def _is_used(self, hint: QuizHint) -> bool:
        return any(used.id == hint.id for used in self._state.used_hints)

    def _unused_hints(self) -> List[QuizHint]:
        return [h for h in self._state.available_hints if not self._is_used(h)]

    def can_use_hint(self, level: Optional[HintLevel] = None) -> bool:
        """Check the usage cap and, optionally, availability at ``level``."""
        if self._quiz is None:
            return False
        if self._state.hint_usage_count >= self._state.max_hints_allowed:
            return False
        if level is not None:
            return self.get_hint_by_level(level) is not None
        return len(self._unused_hints()) > 0

    def get_next_available_hint(self) -> Optional[QuizHint]:
        """
        Next unused hint in ascending level order.

        Falls back to list order for hints whose level is outside the
        standard ordering.
        """
        unused = self._unused_hints()
        if not unused:
            return None

        for level in HintLevel:
            hint = next((h for h in unused if h.level == level), None)
            if hint is not None:
                return hint

        return unused[0]

    def get_hint_by_level(self, level: HintLevel) -> Optional[QuizHint]:
        return next((h for h in self._unused_hints() if h.level == level), None)

    def use_hint(self, hint_id: Optional[str] = None) -> bool:
        """
        Use a hint by id, or the next available one.

        Returns:
            True if the hint was recorded
        """
        if hint_id is not None:
            hint = next(
                (h for h in self._state.available_hints if h.id == hint_id), None
            )
        else:
            hint = self.get_next_available_hint()

        if hint is None or not self.can_use_hint() or self._is_used(hint):
            return False

        penalty = hint.penalty
        self._state.used_hints.append(hint)
        self._state.current_hint = hint
        self._state.hint_usage_count += 1
        self._state.total_points_penalty += penalty
        self._state.is_hint_modal_visible = True

        logger.info(
            "Hint used",
            quiz_id=self._quiz.id if self._quiz else None,
            hint_id=hint.id,
            hint_level=hint.level_value,
            points_penalty=penalty,
        )

        if self.on_hint_used is not None:
            self.on_hint_used(hint)
        if penalty > 0 and self.on_points_penalty is not None:
            self.on_points_penalty(penalty)

        return True

    def use_hint_by_level(self, level: HintLevel) -> bool:
        hint = self.get_hint_by_level(level)
        if hint is None:
            return False
        return self.use_hint(hint.id)

    def show_hint(self, hint: QuizHint) -> None:
        """Open the hint modal on ``hint``. Does not consume it."""
        self._state.current_hint = hint
        self._state.is_hint_modal_visible = True

    def close_hint_modal(self) -> None:
        self._state.is_hint_modal_visible = False

    def reset_hints(self) -> None:
        """Forget usage for the bound quiz."""
        self._state = HintState(
            available_hints=self._state.available_hints,
            max_hints_allowed=self._state.max_hints_allowed,
        )

    def get_hint_statistics(self) -> HintStatistics:
        available = self._state.available_hints
        used = self._state.used_hints
        return HintStatistics(
            total_hints=len(available),
            used_hints=len(used),
            remaining_hints=max(
                0, self._state.max_hints_allowed - self._state.hint_usage_count
            ),
            total_points_penalty=self._state.total_points_penalty,
            hints_by_level={
                level: LevelHintCount(
                    available=sum(1 for h in available if h.level == level),
                    used=sum(1 for h in used if h.level == level),
                )
                for level in HintLevel
            },
        )

    def get_next_hint_preview(self) -> Optional[HintPreview]:
        hint = self.get_next_available_hint()
        if hint is None:
            return None
        return HintPreview(
            level=hint.level,
            points_penalty=hint.penalty,
            unlock_condition=hint.unlock_condition,
        )

    @property
    def hint_statistics(self) -> HintStatistics:
        return self.get_hint_statistics()

    @property
    def next_hint_preview(self) -> Optional[HintPreview]:
        return self.get_next_hint_preview()
