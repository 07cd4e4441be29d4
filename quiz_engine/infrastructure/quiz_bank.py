"""
Quiz Engine - Quiz Bank Loader
Reads a JSON quiz catalog and seeds a repository from it
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from quiz_engine.core.config import Settings, get_settings
from quiz_engine.core.exceptions import QuizBankError
from quiz_engine.domain.quiz.entities import Quiz, QuizFactory
from quiz_engine.domain.quiz.repository import QuizCache
from quiz_engine.infrastructure.analytics import InMemoryQuizAnalytics
from quiz_engine.infrastructure.cache import MemoryQuizCache
from quiz_engine.infrastructure.repository import InMemoryQuizRepository

logger = structlog.get_logger(__name__)


class QuizBankFile(BaseModel):
    """Top-level shape of a quiz bank document."""
    model_config = ConfigDict(extra="ignore")

    version: str = "1"
    quizzes: List[Dict[str, Any]] = Field(default_factory=list)


def load_quiz_bank(path: Union[str, Path]) -> List[Quiz]:
    """
    Load quizzes from a JSON file.

    Args:
        path: File holding ``{"quizzes": [...]}``

    Returns:
        Quizzes in file order

    Raises:
        QuizBankError: Unreadable file, malformed JSON or an invalid record
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise QuizBankError(f"Cannot read quiz bank {path}: {e}") from e

    try:
        bank = QuizBankFile.model_validate(json.loads(raw))
    except json.JSONDecodeError as e:
        raise QuizBankError(f"Malformed JSON in quiz bank {path}: {e}") from e
    except ValidationError as e:
        raise QuizBankError(f"Invalid quiz bank {path}: {e}") from e

    quizzes = []
    for position, record in enumerate(bank.quizzes):
        try:
            quizzes.append(QuizFactory.from_dict(record))
        except (ValueError, TypeError, KeyError) as e:
            raise QuizBankError(
                f"Invalid quiz #{position} ({record.get('id')!r}) in {path}: {e}"
            ) from e

    logger.info("Quiz bank loaded", path=str(path), quiz_count=len(quizzes))
    return quizzes


def build_repository(
    settings: Optional[Settings] = None,
    cache: Optional[QuizCache] = None,
    analytics: Optional[InMemoryQuizAnalytics] = None,
) -> InMemoryQuizRepository:
    """
    Build an in-memory repository, seeded from ``settings.quiz_bank_path``
    when one is configured.

    The analytics instance, if given, learns the same catalog.
    """
    settings = settings or get_settings()
    quizzes: List[Quiz] = []
    if settings.quiz_bank_path:
        quizzes = load_quiz_bank(settings.quiz_bank_path)

    if analytics is not None:
        analytics.register_quizzes(quizzes)

    return InMemoryQuizRepository(
        cache=cache or MemoryQuizCache(default_ttl=settings.cache_default_ttl),
        quizzes=quizzes,
        settings=settings,
    )
