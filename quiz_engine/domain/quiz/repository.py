"""
Quiz Engine - Repository Contract
Abstract data access plus the cache and analytics capabilities it consumes
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, model_validator

from quiz_engine.domain.quiz.entities import (
    Quiz,
    QuizDifficulty,
    QuizLevel,
    QuizProgress,
    QuizResult,
    QuizType,
)


class NumericRange(BaseModel):
    """Inclusive range; either bound may be omitted."""
    min: Optional[int] = Field(default=None, ge=0)
    max: Optional[int] = Field(default=None, ge=0)

    def contains(self, value: Optional[int]) -> bool:
        if value is None:
            return self.min is None and self.max is None
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


class QuizSearchQuery(BaseModel):
    """Conjunctive quiz filter with pagination applied after filtering."""
    level: Optional[QuizLevel] = None
    type: Optional[QuizType] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    difficulty: Optional[QuizDifficulty] = None
    time_limit: Optional[NumericRange] = None
    points: Optional[NumericRange] = None
    keyword: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def strip_keyword(self) -> "QuizSearchQuery":
        if self.keyword is not None:
            self.keyword = self.keyword.strip() or None
        return self

    def matches(self, quiz: Quiz) -> bool:
        """True if ``quiz`` passes every filter that is set."""
        if self.level is not None and quiz.level != self.level:
            return False
        if self.type is not None and quiz.type != self.type:
            return False
        if self.category is not None and quiz.category != self.category:
            return False
        if self.tags and not set(self.tags) <= quiz.tags:
            return False
        if self.difficulty is not None and quiz.difficulty != self.difficulty:
            return False
        if self.time_limit is not None and not self.time_limit.contains(quiz.time_limit):
            return False
        if self.points is not None and not self.points.contains(quiz.points):
            return False
        if self.keyword:
            needle = self.keyword.casefold()
            haystack = [quiz.question, quiz.category, *quiz.tags]
            if not any(needle in text.casefold() for text in haystack):
                return False
        return True

    def paginate(self, quizzes: Sequence[Quiz]) -> List[Quiz]:
        end = None if self.limit is None else self.offset + self.limit
        return list(quizzes[self.offset:end])


class QuizRepository(ABC):
    """
    Data access surface for quizzes, results, progress and review.

    Lookups for missing entities return None or an empty list; only
    infrastructure failures raise (``RepositoryError``).
    """

    # Quiz lookup

    @abstractmethod
    async def get_quiz_by_id(self, quiz_id: str) -> Optional[Quiz]:
        ...

    @abstractmethod
    async def get_quizzes_by_level(self, level: QuizLevel) -> List[Quiz]:
        ...

    @abstractmethod
    async def get_quizzes_by_type(self, quiz_type: QuizType) -> List[Quiz]:
        ...

    @abstractmethod
    async def get_random_quiz(
        self, level: QuizLevel, exclude_ids: Optional[Sequence[str]] = None
    ) -> Optional[Quiz]:
        """Uniform sample from the level pool minus ``exclude_ids``."""

    # Search

    @abstractmethod
    async def search_quizzes(self, query: QuizSearchQuery) -> List[Quiz]:
        ...

    async def get_quizzes_by_category(self, category: str) -> List[Quiz]:
        return await self.search_quizzes(QuizSearchQuery(category=category))

    async def get_quizzes_by_tags(self, tags: Sequence[str]) -> List[Quiz]:
        return await self.search_quizzes(QuizSearchQuery(tags=list(tags)))

    # Results

    @abstractmethod
    async def save_quiz_result(self, result: QuizResult) -> None:
        ...

    @abstractmethod
    async def get_quiz_results(
        self, user_id: str, quiz_id: Optional[str] = None
    ) -> List[QuizResult]:
        ...

    @abstractmethod
    async def get_quiz_results_by_level(
        self, user_id: str, level: QuizLevel
    ) -> List[QuizResult]:
        ...

    # Progress

    @abstractmethod
    async def get_quiz_progress(self, user_id: str) -> List[QuizProgress]:
        ...

    @abstractmethod
    async def update_quiz_progress(self, progress: QuizProgress) -> None:
        """Upsert by (user_id, level)."""

    # Wrong-answer ledger

    @abstractmethod
    async def get_wrong_answers(self, user_id: str) -> List[QuizResult]:
        ...

    @abstractmethod
    async def add_to_wrong_answers(self, result: QuizResult) -> None:
        ...

    @abstractmethod
    async def remove_from_wrong_answers(self, user_id: str, quiz_id: str) -> None:
        ...

    # Review

    @abstractmethod
    async def get_review_quizzes(self, user_id: str) -> List[Quiz]:
        ...

    @abstractmethod
    async def get_spaced_repetition_quizzes(self, user_id: str) -> List[Quiz]:
        ...


class QuizCache(ABC):
    """Key-value cache with per-entry expiry and wildcard invalidation."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def invalidate(self, pattern: str) -> None:
        """Drop every key matching ``pattern`` (``*`` matches any run)."""

    @abstractmethod
    async def clear(self) -> None:
        ...


@dataclass
class QuizStatistics:
    """Aggregate statistics for a single quiz."""
    quiz_id: str
    total_attempts: int = 0
    correct_attempts: int = 0
    average_time: float = 0.0
    difficulty_rating: float = 0.0  # 0 (everyone right) to 5 (everyone wrong)
    popularity_score: float = 0.0

    @property
    def accuracy(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.correct_attempts / self.total_attempts


@dataclass
class UserPerformance:
    """Aggregate performance for a user."""
    user_id: str
    overall_accuracy: float = 0.0
    average_time: float = 0.0
    strong_categories: List[str] = field(default_factory=list)
    weak_categories: List[str] = field(default_factory=list)
    improvement_areas: List[str] = field(default_factory=list)
    current_streak: int = 0
    longest_streak: int = 0


@dataclass
class ProgressAnalytics:
    """Learning progress over time for a user."""
    user_id: str
    level_progress: Dict[QuizLevel, float] = field(default_factory=dict)
    weekly_progress: List[int] = field(default_factory=list)
    monthly_progress: List[int] = field(default_factory=list)
    learning_velocity: float = 0.0  # answers per active day
    estimated_completion_time: Optional[int] = None  # days


class QuizAnalytics(ABC):
    """Read side of analytics."""

    @abstractmethod
    async def get_quiz_statistics(self, quiz_id: str) -> QuizStatistics:
        ...

    @abstractmethod
    async def get_user_performance(self, user_id: str) -> UserPerformance:
        ...

    @abstractmethod
    async def get_progress_analytics(self, user_id: str) -> ProgressAnalytics:
        ...


class UserStatisticsSink(ABC):
    """Write side of analytics, fed one result at a time."""

    @abstractmethod
    async def update_user_statistics(self, user_id: str, result: QuizResult) -> None:
        """Advance the streak counters for ``user_id``."""
