"""
Infrastructure Layer
"""

from quiz_engine.infrastructure.analytics import InMemoryQuizAnalytics
from quiz_engine.infrastructure.cache import MemoryQuizCache, RedisQuizCache, glob_to_regex
from quiz_engine.infrastructure.quiz_bank import QuizBankFile, build_repository, load_quiz_bank
from quiz_engine.infrastructure.repository import InMemoryQuizRepository, oldest_first

__all__ = [
    "InMemoryQuizAnalytics",
    "MemoryQuizCache",
    "RedisQuizCache",
    "glob_to_regex",
    "QuizBankFile",
    "build_repository",
    "load_quiz_bank",
    "InMemoryQuizRepository",
    "oldest_first",
]
