"""
Unit tests for the quiz session service.

Tests:
- End-to-end scoring, hint and timer flows
- Best-effort persistence of results
- Navigation, subscription and completion
- Timer task lifecycle
"""

import asyncio
import random
from typing import List

import pytest

from quiz_engine.application.hints.service import QuizHintService
from quiz_engine.application.session.service import QuizSessionService, SessionSummary
from quiz_engine.core.config import Settings
from quiz_engine.core.exceptions import RepositoryError
from quiz_engine.domain.quiz.entities import (
    HintLevel,
    OXQuiz,
    QuizHint,
    QuizLevel,
    QuizResult,
)
from quiz_engine.infrastructure.analytics import InMemoryQuizAnalytics
from quiz_engine.infrastructure.repository import InMemoryQuizRepository


class FailingRepository(InMemoryQuizRepository):
    """Repository whose writes and level lookups always fail."""

    async def save_quiz_result(self, result: QuizResult) -> None:
        raise RepositoryError("database unavailable")

    async def get_quizzes_by_level(self, level: QuizLevel) -> List:
        raise RepositoryError("database unavailable")


@pytest.fixture
def session(repository, sample_user_id, engine_settings) -> QuizSessionService:
    return QuizSessionService(
        repository=repository,
        user_id=sample_user_id,
        settings=engine_settings,
    )


class TestScoringFlow:
    """Test scores, streaks and hint penalties across a session."""

    def test_three_correct_answers(self, session, ox_quizzes):
        session.start_with(ox_quizzes)

        for n in range(3):
            session.set_user_answer(True)
            result = session.submit_answer()
            assert result.is_correct is True
            assert result.points_earned == 10
            if n < 2:
                assert session.go_to_next_quiz() is True

        state = session.state
        assert state.total_score == 30
        assert state.streak == 3
        assert len(state.session_results) == 3
        assert session.is_complete is True

    def test_hint_penalty_reduces_points(self, session):
        hint = QuizHint(id="basic", level=HintLevel.BASIC, points_penalty=2)
        session.start_with([OXQuiz(id="hinted", points=10, hints=(hint,))])

        assert session.use_hint() is True
        assert session.state.hints_used == ("basic",)

        session.set_user_answer(True)
        result = session.submit_answer()

        assert result.points_earned == 8
        assert result.hints_used == ("basic",)
        assert session.state.total_score == 8

    def test_hint_cap_comes_from_settings(self, repository, sample_user_id, mc_quiz):
        session = QuizSessionService(
            repository=repository,
            user_id=sample_user_id,
            settings=Settings(max_hints_allowed=1),
        )
        session.start_with([mc_quiz])

        assert session.use_hint() is True
        assert session.use_hint() is False
        assert session.state.hints_used == ("hint-basic",)

    def test_hint_listener_is_still_called(self, repository, sample_user_id,
                                           engine_settings, mc_quiz):
        seen = []
        hints = QuizHintService(max_hints_allowed=3, on_hint_used=seen.append)
        session = QuizSessionService(
            repository=repository,
            user_id=sample_user_id,
            hints=hints,
            settings=engine_settings,
        )
        session.start_with([mc_quiz])

        session.use_hint()

        assert [h.id for h in seen] == ["hint-basic"]
        assert session.state.hints_used == ("hint-basic",)

    def test_hint_refused_after_submit(self, session):
        hint = QuizHint(id="late", level=HintLevel.BASIC, points_penalty=4)
        session.start_with([OXQuiz(id="answered", points=10, hints=(hint,))])
        session.set_user_answer(True)
        result = session.submit_answer()

        assert session.use_hint() is False
        assert session.state.hints_used == ()
        assert session.hint_statistics.total_points_penalty == 0
        assert result.hints_used == ()
        assert session.state.total_score == 10

    def test_submit_twice_returns_none(self, session, ox_quizzes):
        session.start_with(ox_quizzes)
        session.set_user_answer(True)
        assert session.submit_answer() is not None
        assert session.submit_answer() is None
        assert len(session.state.session_results) == 1

    def test_submit_with_nothing_loaded(self, session):
        assert session.submit_answer() is None

    def test_result_carries_explanation(self, session, ox_quiz):
        session.start_with([ox_quiz])
        session.set_user_answer(False)
        result = session.submit_answer()
        assert result.explanation == "Lists can be changed in place."
        assert result.user_id == "user-1"


class TestTimerFlow:
    """Test countdown and auto-submit driven by ``tick``."""

    def test_timeout_auto_submits_once(self, session):
        session.start_with([OXQuiz(id="timed", time_limit=1, points=10)])
        assert session.state.time_remaining == 1

        session.tick()

        state = session.state
        assert state.is_answered is True
        assert state.is_correct is False
        assert state.time_remaining is None
        assert len(state.session_results) == 1
        assert state.session_results[0].time_spent == 1.0

        session.tick()
        assert len(session.state.session_results) == 1

    def test_timeout_submits_staged_answer(self, session):
        session.start_with([OXQuiz(id="timed", time_limit=2, points=10)])
        session.set_user_answer(True)

        session.tick()
        assert session.state.is_answered is False
        session.tick()

        assert session.state.is_correct is True
        assert session.state.total_score == 10

    def test_auto_submit_can_be_disabled(self, repository, sample_user_id):
        session = QuizSessionService(
            repository=repository,
            user_id=sample_user_id,
            settings=Settings(auto_submit_on_timeout=False),
        )
        session.start_with([OXQuiz(id="timed", time_limit=1)])

        session.tick()

        assert session.state.time_remaining == 0
        assert session.state.is_answered is False

    def test_stop_timer(self, session, mc_quiz):
        session.start_with([mc_quiz])
        session.stop_timer()
        assert session.state.time_remaining is None
        session.tick()
        assert session.state.is_answered is False

    def test_time_spent_for_timed_quiz(self, session, mc_quiz):
        session.start_with([mc_quiz])
        for _ in range(5):
            session.tick()
        session.set_user_answer(1)

        result = session.submit_answer()

        assert result.time_spent == 5.0


class TestNavigation:
    """Test navigation guards and hint resets."""

    def test_bounds(self, session, ox_quizzes):
        session.start_with(ox_quizzes)
        assert session.is_first_quiz is True
        assert session.go_to_previous_quiz() is False
        assert session.go_to_quiz(2) is True
        assert session.is_last_quiz is True
        assert session.go_to_next_quiz() is False
        assert session.go_to_quiz(3) is False
        assert session.go_to_quiz(-1) is False

    def test_navigation_resets_hints(self, session, mc_quiz, fib_quiz):
        session.start_with([mc_quiz, fib_quiz])
        session.use_hint()
        assert session.hint_statistics.used_hints == 1

        session.go_to_next_quiz()

        assert session.state.hints_used == ()
        assert session.hint_statistics.used_hints == 0
        assert session.hint_statistics.total_hints == 0

    def test_returning_to_same_quiz_resets_hints(self, session, mc_quiz, fib_quiz):
        session.start_with([mc_quiz, fib_quiz])
        session.use_hint()
        session.go_to_quiz(0)

        assert session.state.hints_used == ()
        assert session.hint_statistics.used_hints == 0
        assert session.next_hint_preview.level == HintLevel.BASIC

    def test_reset_session(self, session, ox_quizzes):
        session.start_with(ox_quizzes)
        session.set_user_answer(True)
        session.submit_answer()
        session.go_to_next_quiz()

        state = session.reset_session()

        assert state.current_index == 0
        assert state.total_score == 0
        assert len(state.quizzes) == 3


class TestSubscriptions:
    """Test listeners, snapshots and completion."""

    def test_subscribe_and_unsubscribe(self, session, ox_quizzes):
        states = []
        unsubscribe = session.subscribe(states.append)

        session.start_with(ox_quizzes)
        seen = len(states)
        assert seen >= 2

        unsubscribe()
        session.set_user_answer(True)
        assert len(states) == seen

    def test_snapshot(self, session, mc_quiz):
        session.start_with([mc_quiz])
        snapshot = session.snapshot()
        assert snapshot["current_quiz"]["id"] == "mc-1"
        assert snapshot["hint_statistics"]["total_hints"] == 4
        assert snapshot["next_hint_preview"]["level"] == "BASIC"

    def test_on_complete_fires_once(self, repository, sample_user_id,
                                    engine_settings, ox_quizzes):
        summaries = []
        session = QuizSessionService(
            repository=repository,
            user_id=sample_user_id,
            settings=engine_settings,
            on_complete=summaries.append,
        )
        session.start_with(ox_quizzes[:2])

        session.set_user_answer(True)
        session.submit_answer()
        assert summaries == []

        session.go_to_next_quiz()
        session.set_user_answer(False)
        session.submit_answer()

        assert len(summaries) == 1
        summary = summaries[0]
        assert isinstance(summary, SessionSummary)
        assert summary.total_quizzes == 2
        assert summary.correct_answers == 1
        assert summary.accuracy == pytest.approx(0.5)
        assert summary.total_score == 10
        assert summary.to_dict()["answered"] == 2

    def test_shuffle(self, repository, sample_user_id, ox_quizzes):
        session = QuizSessionService(
            repository=repository,
            user_id=sample_user_id,
            settings=Settings(shuffle_quizzes=True),
            rng=random.Random(7),
        )
        session.start_with(ox_quizzes)
        assert sorted(q.id for q in session.state.quizzes) == ["ox-1", "ox-2", "ox-3"]


class TestLoading:
    """Test loading quizzes from the repository."""

    async def test_load_quizzes(self, session):
        state = await session.load_quizzes(QuizLevel.LV2)
        assert [q.id for q in state.quizzes] == ["mc-1"]
        assert state.is_loading is False
        assert state.session_start_time is not None
        await session.aclose()

    async def test_load_failure_sets_error(self, memory_cache, engine_settings, sample_user_id):
        repository = FailingRepository(cache=memory_cache, settings=engine_settings)
        session = QuizSessionService(
            repository=repository, user_id=sample_user_id, settings=engine_settings
        )

        state = await session.load_quizzes(QuizLevel.LV1)

        assert state.error == "database unavailable"
        assert state.is_loading is False
        assert state.quizzes == ()

    async def test_load_review_quizzes(self, session, repository, sample_user_id):
        await repository.add_to_wrong_answers(
            QuizResult(quiz_id="fib-1", user_id=sample_user_id)
        )

        state = await session.load_review_quizzes()

        assert [q.id for q in state.quizzes] == ["fib-1"]
        await session.aclose()


class TestPersistence:
    """Test fire-and-forget result persistence."""

    async def test_results_are_saved(self, session, repository, sample_user_id, ox_quiz):
        session.start_with([ox_quiz])
        session.set_user_answer(True)
        session.submit_answer()

        await session.drain()

        results = await repository.get_quiz_results(sample_user_id)
        assert [r.quiz_id for r in results] == ["ox-1"]
        assert await repository.get_wrong_answers(sample_user_id) == []

    async def test_wrong_answers_go_to_ledger(self, session, repository,
                                              sample_user_id, ox_quiz):
        session.start_with([ox_quiz])
        session.set_user_answer(False)
        session.submit_answer()

        await session.drain()

        wrong = await repository.get_wrong_answers(sample_user_id)
        assert [r.quiz_id for r in wrong] == ["ox-1"]

    async def test_statistics_sink_is_updated(self, repository, sample_user_id,
                                              engine_settings, ox_quizzes):
        analytics = InMemoryQuizAnalytics()
        session = QuizSessionService(
            repository=repository,
            user_id=sample_user_id,
            statistics=analytics,
            settings=engine_settings,
        )
        session.start_with(ox_quizzes)
        for _ in range(2):
            session.set_user_answer(True)
            session.submit_answer()
            session.go_to_next_quiz()

        await session.drain()

        performance = await analytics.get_user_performance(sample_user_id)
        assert performance.current_streak == 2
        assert performance.longest_streak == 2

    async def test_failure_does_not_roll_back(self, memory_cache, engine_settings,
                                              sample_user_id, ox_quiz):
        repository = FailingRepository(
            cache=memory_cache, quizzes=[ox_quiz], settings=engine_settings
        )
        session = QuizSessionService(
            repository=repository, user_id=sample_user_id, settings=engine_settings
        )
        session.start_with([ox_quiz])
        session.set_user_answer(True)

        result = session.submit_answer()
        await session.drain()

        assert result.is_correct is True
        assert session.state.total_score == 10
        assert session.state.session_results == (result,)

    def test_no_event_loop_skips_persistence(self, session, repository, ox_quiz):
        session.start_with([ox_quiz])
        session.set_user_answer(True)
        result = session.submit_answer()
        assert result is not None
        assert repository._results == []


class TestTimerTask:
    """Test the background countdown task."""

    async def test_timer_auto_submits(self, session):
        session.start_with([OXQuiz(id="timed", time_limit=2)])
        assert session.timer_running is True

        for _ in range(100):
            if session.state.is_answered:
                break
            await asyncio.sleep(0.01)

        assert session.state.is_answered is True
        assert len(session.state.session_results) == 1
        await session.aclose()
        assert session.timer_running is False

    async def test_untimed_quiz_has_no_timer(self, session, ox_quiz):
        session.start_with([ox_quiz])
        assert session.timer_running is False

    async def test_submit_cancels_timer(self, session, mc_quiz):
        session.start_with([mc_quiz])
        task = session._timer_task

        session.set_user_answer(1)
        session.submit_answer()

        await asyncio.gather(task, return_exceptions=True)
        assert task.cancelled() is True
        assert session.timer_running is False
        await session.drain()

    async def test_close_cancels_timer(self, session, mc_quiz):
        session.start_with([mc_quiz])
        task = session._timer_task
        assert session.timer_running is True

        await session.aclose()

        await asyncio.gather(task, return_exceptions=True)
        assert task.cancelled() is True
        assert session.state.is_answered is False

    async def test_context_manager(self, repository, sample_user_id,
                                   engine_settings, mc_quiz):
        async with QuizSessionService(
            repository=repository, user_id=sample_user_id, settings=engine_settings
        ) as session:
            session.start_with([mc_quiz])
            task = session._timer_task

        await asyncio.gather(task, return_exceptions=True)
        assert task.cancelled() is True
