"""
Quiz Engine - In-Memory Quiz Repository
Reference repository over raw quiz records, read through an injected cache
"""

import random
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import structlog

from quiz_engine.core.config import Settings, get_settings
from quiz_engine.core.exceptions import RepositoryError
from quiz_engine.domain.quiz.entities import (
    Quiz,
    QuizFactory,
    QuizLevel,
    QuizProgress,
    QuizResult,
    QuizType,
)
from quiz_engine.domain.quiz.repository import QuizCache, QuizRepository, QuizSearchQuery

logger = structlog.get_logger(__name__)

ReviewScheduler = Callable[[List[QuizResult]], List[QuizResult]]


def oldest_first(entries: List[QuizResult]) -> List[QuizResult]:
    """Default review order: the wrong answer seen longest ago comes first."""
    return sorted(entries, key=lambda r: r.timestamp)


class InMemoryQuizRepository(QuizRepository):
    """
    Repository keeping raw quiz records, results, progress and the
    wrong-answer ledger in process memory.

    Quiz records are stored as plain mappings and rebuilt through
    ``QuizFactory`` on every read, cached or not.
    """

    def __init__(
        self,
        cache: QuizCache,
        quizzes: Iterable[Quiz] = (),
        settings: Optional[Settings] = None,
        review_scheduler: ReviewScheduler = oldest_first,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize repository.

        Args:
            cache: Read-through cache
            quizzes: Initial quiz catalog
            settings: Engine settings (cache TTLs)
            review_scheduler: Orders wrong answers for spaced repetition
            rng: Random source for ``get_random_quiz``
        """
        self._cache = cache
        self._settings = settings or get_settings()
        self._review_scheduler = review_scheduler
        self._rng = rng or random.Random()

        self._records: Dict[str, Dict[str, Any]] = OrderedDict()
        self._results: List[QuizResult] = []
        self._progress: Dict[Tuple[str, QuizLevel], QuizProgress] = {}
        self._wrong_answers: Dict[str, Dict[str, QuizResult]] = {}

        for quiz in quizzes:
            self._records[quiz.id] = quiz.to_dict()

    # ------------------------------------------------------------------
    # Catalog management
    # ------------------------------------------------------------------

    async def add_quiz(self, quiz: Quiz) -> None:
        """Insert or replace a quiz and drop stale cached lists."""
        self._records[quiz.id] = quiz.to_dict()
        await self._cache.invalidate(f"quiz:{quiz.id}")
        await self._cache.invalidate("quizzes:*")

    def _build(self, record: Mapping[str, Any]) -> Quiz:
        try:
            return QuizFactory.from_dict(record)
        except (ValueError, TypeError, KeyError) as e:
            raise RepositoryError(
                f"Cannot decode quiz record {record.get('id')!r}: {e}"
            ) from e

    async def _cached_records(
        self, key: str, ttl: int, load: Callable[[], List[Dict[str, Any]]]
    ) -> List[Dict[str, Any]]:
        cached = await self._cache.get(key)
        if cached is not None:
            return cached
        records = load()
        await self._cache.set(key, records, ttl)
        return records

    # ------------------------------------------------------------------
    # Quiz lookup
    # ------------------------------------------------------------------

    async def get_quiz_by_id(self, quiz_id: str) -> Optional[Quiz]:
        key = f"quiz:{quiz_id}"
        record = await self._cache.get(key)
        if record is None:
            record = self._records.get(quiz_id)
            if record is None:
                return None
            await self._cache.set(key, record, self._settings.cache_ttl_quiz)
        return self._build(record)

    async def get_quizzes_by_level(self, level: QuizLevel) -> List[Quiz]:
        level = QuizLevel(level)
        records = await self._cached_records(
            f"quizzes:level:{level.value}",
            self._settings.cache_ttl_quiz_list,
            lambda: [r for r in self._records.values() if r["level"] == level.value],
        )
        return [self._build(r) for r in records]

    async def get_quizzes_by_type(self, quiz_type: QuizType) -> List[Quiz]:
        quiz_type = QuizType(quiz_type)
        records = await self._cached_records(
            f"quizzes:type:{quiz_type.value}",
            self._settings.cache_ttl_quiz_list,
            lambda: [r for r in self._records.values() if r["type"] == quiz_type.value],
        )
        return [self._build(r) for r in records]

    async def get_random_quiz(
        self, level: QuizLevel, exclude_ids: Optional[Sequence[str]] = None
    ) -> Optional[Quiz]:
        excluded = set(exclude_ids or ())
        pool = [q for q in await self.get_quizzes_by_level(level) if q.id not in excluded]
        if not pool:
            return None
        return self._rng.choice(pool)

    async def search_quizzes(self, query: QuizSearchQuery) -> List[Quiz]:
        matches = [
            quiz
            for quiz in (self._build(r) for r in self._records.values())
            if query.matches(quiz)
        ]
        return query.paginate(matches)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    async def save_quiz_result(self, result: QuizResult) -> None:
        self._results.append(result)

        quiz = await self.get_quiz_by_id(result.quiz_id)
        if quiz is not None:
            key = (result.user_id, quiz.level)
            current = self._progress.get(key) or QuizProgress(
                user_id=result.user_id, level=quiz.level
            )
            pool_size = sum(
                1 for r in self._records.values() if r["level"] == quiz.level.value
            )
            self._progress[key] = current.record(result, total_quizzes=pool_size)

        await self._cache.invalidate(f"results:{result.user_id}:*")
        await self._cache.invalidate(f"progress:{result.user_id}")

        logger.debug(
            "Quiz result saved",
            user_id=result.user_id,
            quiz_id=result.quiz_id,
            is_correct=result.is_correct,
        )

    async def _cached_results(
        self, key: str, select: Callable[[QuizResult], bool]
    ) -> List[QuizResult]:
        cached = await self._cache.get(key)
        if cached is not None:
            return [QuizResult.from_dict(r) for r in cached]
        results = [r for r in self._results if select(r)]
        await self._cache.set(
            key, [r.to_dict() for r in results], self._settings.cache_ttl_results
        )
        return results

    async def get_quiz_results(
        self, user_id: str, quiz_id: Optional[str] = None
    ) -> List[QuizResult]:
        suffix = quiz_id if quiz_id is not None else "all"
        return await self._cached_results(
            f"results:{user_id}:{suffix}",
            lambda r: r.user_id == user_id and (quiz_id is None or r.quiz_id == quiz_id),
        )

    async def get_quiz_results_by_level(
        self, user_id: str, level: QuizLevel
    ) -> List[QuizResult]:
        level = QuizLevel(level)
        level_ids = {
            quiz_id for quiz_id, r in self._records.items() if r["level"] == level.value
        }
        return await self._cached_results(
            f"results:{user_id}:level:{level.value}",
            lambda r: r.user_id == user_id and r.quiz_id in level_ids,
        )

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def get_quiz_progress(self, user_id: str) -> List[QuizProgress]:
        key = f"progress:{user_id}"
        cached = await self._cache.get(key)
        if cached is not None:
            return [QuizProgress.from_dict(p) for p in cached]

        progress = sorted(
            (p for (uid, _), p in self._progress.items() if uid == user_id),
            key=lambda p: QuizLevel(p.level).value,
        )
        await self._cache.set(
            key, [p.to_dict() for p in progress], self._settings.cache_ttl_progress
        )
        return progress

    async def update_quiz_progress(self, progress: QuizProgress) -> None:
        self._progress[progress.key] = progress
        await self._cache.invalidate(f"progress:{progress.user_id}")

    # ------------------------------------------------------------------
    # Wrong-answer ledger
    # ------------------------------------------------------------------

    async def get_wrong_answers(self, user_id: str) -> List[QuizResult]:
        key = f"wrong:{user_id}"
        cached = await self._cache.get(key)
        if cached is not None:
            return [QuizResult.from_dict(r) for r in cached]

        entries = list(self._wrong_answers.get(user_id, {}).values())
        await self._cache.set(
            key, [r.to_dict() for r in entries], self._settings.cache_ttl_wrong_answers
        )
        return entries

    async def add_to_wrong_answers(self, result: QuizResult) -> None:
        ledger = self._wrong_answers.setdefault(result.user_id, {})
        ledger.pop(result.quiz_id, None)
        ledger[result.quiz_id] = result
        await self._cache.invalidate(f"wrong:{result.user_id}")

    async def remove_from_wrong_answers(self, user_id: str, quiz_id: str) -> None:
        ledger = self._wrong_answers.get(user_id)
        if ledger is not None:
            ledger.pop(quiz_id, None)
        await self._cache.invalidate(f"wrong:{user_id}")

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------

    async def _resolve(self, entries: Iterable[QuizResult]) -> List[Quiz]:
        quizzes = []
        for entry in entries:
            quiz = await self.get_quiz_by_id(entry.quiz_id)
            if quiz is not None:
                quizzes.append(quiz)
        return quizzes

    async def get_review_quizzes(self, user_id: str) -> List[Quiz]:
        return await self._resolve(await self.get_wrong_answers(user_id))

    async def get_spaced_repetition_quizzes(self, user_id: str) -> List[Quiz]:
        entries = await self.get_wrong_answers(user_id)
        return await self._resolve(self._review_scheduler(list(entries)))
