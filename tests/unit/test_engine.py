"""
Unit tests for configuration, logging setup and engine wiring.
"""

import json
import logging

import pytest
import structlog
from pydantic import ValidationError

from quiz_engine.core.config import Settings, get_settings
from quiz_engine.core.logging import setup_logging
from quiz_engine.domain.quiz.entities import QuizLevel
from quiz_engine.engine import create_engine, engine_lifespan
from quiz_engine.infrastructure.cache import MemoryQuizCache


@pytest.fixture
def restore_logging():
    """Undo global logging configuration after the test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)


class TestSettings:
    """Test environment-driven settings."""

    def test_defaults(self):
        settings = Settings()
        assert settings.max_hints_allowed == 3
        assert settings.auto_submit_on_timeout is True
        assert settings.timer_interval_seconds == 1.0
        assert settings.cache_default_ttl == 3600
        assert settings.cache_backend == "memory"

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("QUIZ_MAX_HINTS_ALLOWED", "5")
        monkeypatch.setenv("QUIZ_SHUFFLE_QUIZZES", "true")
        settings = Settings()
        assert settings.max_hints_allowed == 5
        assert settings.shuffle_quizzes is True

    def test_invalid_values_rejected(self):
        with pytest.raises(ValidationError):
            Settings(timer_interval_seconds=0)
        with pytest.raises(ValidationError):
            Settings(log_format="xml")

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestSetupLogging:
    """Test structlog configuration."""

    def test_json_renderer(self, restore_logging):
        setup_logging("INFO", "json")
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_renderer(self, restore_logging):
        setup_logging("DEBUG", "console")
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)


class TestEngine:
    """Test engine assembly."""

    async def test_create_engine_seeds_repository(self, tmp_path, restore_logging):
        bank = tmp_path / "bank.json"
        bank.write_text(json.dumps({"quizzes": [
            {"id": "q1", "type": "OX", "question": "Sets are ordered.", "correctAnswer": False,
             "points": 10},
        ]}), encoding="utf-8")

        engine = await create_engine(Settings(quiz_bank_path=str(bank)))

        assert isinstance(engine.cache, MemoryQuizCache)
        quizzes = await engine.repository.get_quizzes_by_level(QuizLevel.LV1)
        assert [q.id for q in quizzes] == ["q1"]

    async def test_session_round_trip(self, tmp_path, restore_logging):
        bank = tmp_path / "bank.json"
        bank.write_text(json.dumps({"quizzes": [
            {"id": "q1", "type": "OX", "question": "Sets are ordered.", "correctAnswer": False,
             "points": 10},
        ]}), encoding="utf-8")
        summaries = []

        async with engine_lifespan(Settings(quiz_bank_path=str(bank))) as engine:
            async with engine.new_session("user-9", on_complete=summaries.append) as session:
                await session.load_quizzes(QuizLevel.LV1)
                session.set_user_answer(False)
                session.submit_answer()

            results = await engine.repository.get_quiz_results("user-9")
            performance = await engine.analytics.get_user_performance("user-9")

        assert summaries[0].total_score == 10
        assert [r.quiz_id for r in results] == ["q1"]
        assert performance.current_streak == 1
