"""
Pytest configuration and shared fixtures.
"""

# Import fixtures
from tests.fixtures.quiz_fixtures import (
    sample_user_id,
    engine_settings,
    fake_clock,
    memory_cache,
    fake_redis,
    progressive_hints,
    ox_quiz,
    mc_quiz,
    fib_quiz,
    ox_quizzes,
    repository,
    level_one_pool,
)

__all__ = [
    "sample_user_id",
    "engine_settings",
    "fake_clock",
    "memory_cache",
    "fake_redis",
    "progressive_hints",
    "ox_quiz",
    "mc_quiz",
    "fib_quiz",
    "ox_quizzes",
    "repository",
    "level_one_pool",
]
