"""
Quiz Engine - Cache Infrastructure
In-process TTL cache and a Redis-backed cache sharing one contract
"""

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import structlog
from pybreaker import CircuitBreaker, CircuitBreakerError
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from quiz_engine.core.config import Settings, get_settings
from quiz_engine.domain.quiz.repository import QuizCache

logger = structlog.get_logger(__name__)


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Translate a ``*`` wildcard pattern into an anchored regex."""
    parts = (re.escape(part) for part in pattern.split("*"))
    return re.compile(".*".join(parts))


@dataclass
class CacheEntry:
    value: Any
    expires_at: float  # absolute, same clock as the cache


class MemoryQuizCache(QuizCache):
    """
    In-process cache with lazy expiry.

    Expired entries are evicted when read; ``cleanup`` purges them eagerly.
    """

    def __init__(
        self,
        default_ttl: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize memory cache.

        Args:
            default_ttl: TTL in seconds when ``set`` gets none (defaults to settings)
            clock: Returns the current time in seconds
        """
        if default_ttl is None:
            default_ttl = get_settings().cache_default_ttl
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None

        return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if ttl is None:
            ttl = self._default_ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    async def invalidate(self, pattern: str) -> None:
        regex = glob_to_regex(pattern)
        for key in [k for k in self._entries if regex.fullmatch(k)]:
            del self._entries[key]

    async def clear(self) -> None:
        self._entries.clear()

    def get_size(self) -> int:
        return len(self._entries)

    def get_keys(self) -> List[str]:
        return list(self._entries)

    def cleanup(self) -> int:
        """Drop every expired entry. Returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now > e.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)


class RedisQuizCache(QuizCache):
    """
    Redis cache with JSON values and a circuit breaker.

    Redis failures are logged and degrade to cache misses so that the
    repository falls through to its backing store. After
    ``redis_breaker_fail_max`` consecutive failures the breaker opens and
    calls skip Redis until ``redis_breaker_reset_timeout`` has passed.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[Redis] = None):
        """
        Initialize Redis cache.

        Args:
            settings: Engine settings
            client: Pre-built client (skips ``connect``)
        """
        self._settings = settings or get_settings()
        self._prefix = self._settings.redis_key_prefix
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client
        self._breaker = CircuitBreaker(
            fail_max=self._settings.redis_breaker_fail_max,
            reset_timeout=self._settings.redis_breaker_reset_timeout,
            name="redis",
        )

    @property
    def breaker_state(self) -> str:
        """Circuit breaker state: ``closed``, ``open`` or ``half-open``."""
        return self._breaker.current_state

    async def connect(self) -> None:
        """Initialize Redis connection pool."""
        logger.info(
            "Connecting to Redis",
            host=str(self._settings.redis_url).split("@")[-1],
        )

        self._pool = ConnectionPool.from_url(
            str(self._settings.redis_url),
            password=self._settings.redis_password or None,
            max_connections=self._settings.redis_pool_size,
            decode_responses=True,
        )

        self._client = Redis(connection_pool=self._pool)

        # Test connection
        await self._client.ping()

        logger.info("Redis connection established")

    async def disconnect(self) -> None:
        """Close Redis connection pool."""
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        """Get Redis client."""
        if self._client is None:
            raise RuntimeError("Cache not connected")
        return self._client

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            with self._breaker.calling():
                raw = await self.client.get(self._key(key))
        except CircuitBreakerError:
            logger.warning("Redis circuit breaker open", key=key)
            return None
        except RedisError as e:
            logger.error("Redis get error", key=key, error=str(e))
            return None

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error("Invalid JSON in cache", key=key)
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        if ttl is None:
            ttl = self._settings.cache_default_ttl
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error("JSON serialization error", key=key, error=str(e))
            return
        try:
            with self._breaker.calling():
                await self.client.set(self._key(key), serialized, ex=ttl)
        except CircuitBreakerError:
            logger.warning("Redis circuit breaker open", key=key)
        except RedisError as e:
            logger.error("Redis set error", key=key, error=str(e))

    async def invalidate(self, pattern: str) -> None:
        """Delete matching keys. Redis MATCH globs treat ``*`` the same way."""
        match = self._key(pattern.replace("?", "\\?").replace("[", "\\["))
        try:
            with self._breaker.calling():
                keys = [k async for k in self.client.scan_iter(match=match)]
                if keys:
                    await self.client.delete(*keys)
        except CircuitBreakerError:
            logger.warning("Redis circuit breaker open", pattern=pattern)
        except RedisError as e:
            logger.error("Redis invalidate error", pattern=pattern, error=str(e))

    async def clear(self) -> None:
        await self.invalidate("*")

    async def health_check(self) -> dict:
        """
        Check Redis health.

        Returns:
            Health status dictionary
        """
        try:
            await self.client.ping()
            info = await self.client.info("memory")

            return {
                "status": "healthy",
                "used_memory": info.get("used_memory_human", "unknown"),
                "circuit_breaker": self.breaker_state,
            }
        except (RedisError, RuntimeError) as e:
            logger.error("Redis health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
                "circuit_breaker": self.breaker_state,
            }
