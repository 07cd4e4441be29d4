"""
Quiz Engine - Analytics Infrastructure
In-memory analytics over the results it is fed
"""

import math
import statistics
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

import structlog

from quiz_engine.domain.quiz.entities import Quiz, QuizLevel, QuizResult
from quiz_engine.domain.quiz.repository import (
    ProgressAnalytics,
    QuizAnalytics,
    QuizStatistics,
    UserPerformance,
    UserStatisticsSink,
)

logger = structlog.get_logger(__name__)


class InMemoryQuizAnalytics(QuizAnalytics, UserStatisticsSink):
    """
    Aggregate queries plus the streak mutator.

    Category and level breakdowns need the quiz catalog, registered with
    ``register_quizzes``; results for unknown quizzes still count toward
    totals and streaks.
    """

    STRONG_ACCURACY = 0.8
    WEAK_ACCURACY = 0.5

    def __init__(self, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)):
        self._clock = clock
        self._quizzes: Dict[str, Quiz] = {}
        self._results_by_user: Dict[str, List[QuizResult]] = defaultdict(list)
        self._results_by_quiz: Dict[str, List[QuizResult]] = defaultdict(list)
        self._current_streak: Dict[str, int] = defaultdict(int)
        self._longest_streak: Dict[str, int] = defaultdict(int)

    def register_quizzes(self, quizzes: Iterable[Quiz]) -> None:
        for quiz in quizzes:
            self._quizzes[quiz.id] = quiz

    async def update_user_statistics(self, user_id: str, result: QuizResult) -> None:
        self._results_by_user[user_id].append(result)
        self._results_by_quiz[result.quiz_id].append(result)

        if result.is_correct:
            self._current_streak[user_id] += 1
            self._longest_streak[user_id] = max(
                self._longest_streak[user_id], self._current_streak[user_id]
            )
        else:
            self._current_streak[user_id] = 0

        logger.debug(
            "User statistics updated",
            user_id=user_id,
            current_streak=self._current_streak[user_id],
            longest_streak=self._longest_streak[user_id],
        )

    async def get_quiz_statistics(self, quiz_id: str) -> QuizStatistics:
        results = self._results_by_quiz.get(quiz_id, [])
        if not results:
            return QuizStatistics(quiz_id=quiz_id)

        correct = sum(1 for r in results if r.is_correct)
        busiest = max(len(rs) for rs in self._results_by_quiz.values())
        return QuizStatistics(
            quiz_id=quiz_id,
            total_attempts=len(results),
            correct_attempts=correct,
            average_time=statistics.fmean(r.time_spent for r in results),
            difficulty_rating=round(5.0 * (1 - correct / len(results)), 2),
            popularity_score=round(100.0 * len(results) / busiest, 2),
        )

    async def get_user_performance(self, user_id: str) -> UserPerformance:
        results = self._results_by_user.get(user_id, [])
        performance = UserPerformance(
            user_id=user_id,
            current_streak=self._current_streak.get(user_id, 0),
            longest_streak=self._longest_streak.get(user_id, 0),
        )
        if not results:
            return performance

        performance.overall_accuracy = sum(1 for r in results if r.is_correct) / len(results)
        performance.average_time = statistics.fmean(r.time_spent for r in results)

        by_category: Dict[str, List[bool]] = defaultdict(list)
        for result in results:
            quiz = self._quizzes.get(result.quiz_id)
            if quiz is not None and quiz.category:
                by_category[quiz.category].append(result.is_correct)

        accuracy = {
            category: sum(outcomes) / len(outcomes)
            for category, outcomes in by_category.items()
        }
        ranked = sorted(accuracy, key=lambda c: (accuracy[c], c))
        performance.strong_categories = [
            c for c in reversed(ranked) if accuracy[c] >= self.STRONG_ACCURACY
        ]
        performance.weak_categories = [c for c in ranked if accuracy[c] < self.WEAK_ACCURACY]
        performance.improvement_areas = [
            c for c in ranked if self.WEAK_ACCURACY <= accuracy[c] < self.STRONG_ACCURACY
        ]
        return performance

    async def get_progress_analytics(self, user_id: str) -> ProgressAnalytics:
        results = self._results_by_user.get(user_id, [])
        solved = {r.quiz_id for r in results if r.is_correct}

        level_progress: Dict[QuizLevel, float] = {}
        for level in QuizLevel:
            pool = [q.id for q in self._quizzes.values() if q.level == level]
            if pool:
                done = sum(1 for quiz_id in pool if quiz_id in solved)
                level_progress[level] = round(100.0 * done / len(pool), 2)
            else:
                level_progress[level] = 0.0

        active_days = {r.timestamp.date() for r in results}
        velocity = len(results) / len(active_days) if active_days else 0.0

        remaining = sum(1 for quiz_id in self._quizzes if quiz_id not in solved)
        estimate: Optional[int] = None
        if velocity > 0:
            estimate = math.ceil(remaining / velocity)

        return ProgressAnalytics(
            user_id=user_id,
            level_progress=level_progress,
            weekly_progress=self._daily_counts(results, 7),
            monthly_progress=self._daily_counts(results, 30),
            learning_velocity=round(velocity, 2),
            estimated_completion_time=estimate,
        )

    def _daily_counts(self, results: List[QuizResult], days: int) -> List[int]:
        """Answers per day, oldest first, ending today."""
        today = self._clock().date()
        counts = [0] * days
        for result in results:
            age = (today - result.timestamp.date()).days
            if 0 <= age < days:
                counts[days - 1 - age] += 1
        return counts

    def clear(self) -> None:
        self._results_by_user.clear()
        self._results_by_quiz.clear()
        self._current_streak.clear()
        self._longest_streak.clear()
