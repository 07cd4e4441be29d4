"""
Quiz Engine - Engine Factory
Wires settings, logging, cache, repository and analytics into sessions
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Callable, Optional

import structlog

from quiz_engine.application.session.service import QuizSessionService, SessionSummary
from quiz_engine.core.config import Settings, get_settings
from quiz_engine.core.logging import setup_logging
from quiz_engine.domain.quiz.repository import QuizCache
from quiz_engine.infrastructure.analytics import InMemoryQuizAnalytics
from quiz_engine.infrastructure.cache import MemoryQuizCache, RedisQuizCache
from quiz_engine.infrastructure.quiz_bank import build_repository
from quiz_engine.infrastructure.repository import InMemoryQuizRepository

logger = structlog.get_logger(__name__)


@dataclass
class QuizEngine:
    """Shared services behind every session."""
    settings: Settings
    cache: QuizCache
    repository: InMemoryQuizRepository
    analytics: InMemoryQuizAnalytics

    def new_session(
        self,
        user_id: str,
        on_complete: Optional[Callable[[SessionSummary], None]] = None,
    ) -> QuizSessionService:
        """Create a session for ``user_id`` wired to the shared services."""
        return QuizSessionService(
            repository=self.repository,
            user_id=user_id,
            statistics=self.analytics,
            settings=self.settings,
            on_complete=on_complete,
        )


async def create_engine(settings: Optional[Settings] = None) -> QuizEngine:
    """
    Build the engine.

    Configures logging, connects the cache backend and seeds the
    repository from the configured quiz bank.
    """
    settings = settings or get_settings()

    # Setup structured logging
    setup_logging(settings.log_level, settings.log_format)

    logger.info(
        "Starting quiz engine",
        version=settings.app_version,
        environment=settings.environment,
        cache_backend=settings.cache_backend,
    )

    cache: QuizCache
    if settings.cache_backend == "redis":
        cache = RedisQuizCache(settings)
        await cache.connect()
    else:
        cache = MemoryQuizCache(default_ttl=settings.cache_default_ttl)

    analytics = InMemoryQuizAnalytics()
    repository = build_repository(settings, cache=cache, analytics=analytics)

    logger.info("Quiz engine initialized")
    return QuizEngine(
        settings=settings,
        cache=cache,
        repository=repository,
        analytics=analytics,
    )


async def shutdown_engine(engine: QuizEngine) -> None:
    """Release backend connections."""
    if isinstance(engine.cache, RedisQuizCache):
        await engine.cache.disconnect()
    logger.info("Quiz engine stopped")


@asynccontextmanager
async def engine_lifespan(
    settings: Optional[Settings] = None,
) -> AsyncGenerator[QuizEngine, None]:
    """Engine startup/shutdown around a block."""
    engine = await create_engine(settings)
    try:
        yield engine
    finally:
        await shutdown_engine(engine)
