"""
Quiz Engine - Application Configuration
Pydantic Settings with environment variable support
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, RedisDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables (prefix ``QUIZ_``)."""

    model_config = SettingsConfigDict(
        env_prefix="QUIZ_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    app_name: str = "Quiz Engine"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "production"

    # ==========================================================================
    # Logging
    # ==========================================================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    # ==========================================================================
    # Session
    # ==========================================================================
    auto_submit_on_timeout: bool = True
    shuffle_quizzes: bool = False
    timer_interval_seconds: float = Field(default=1.0, gt=0)

    # ==========================================================================
    # Hints
    # ==========================================================================
    max_hints_allowed: int = Field(default=3, ge=0)

    # ==========================================================================
    # Cache
    # ==========================================================================
    cache_backend: Literal["memory", "redis"] = "memory"
    cache_default_ttl: int = Field(default=3600, gt=0)  # seconds
    cache_ttl_quiz: int = 3600
    cache_ttl_quiz_list: int = 1800
    cache_ttl_results: int = 900
    cache_ttl_progress: int = 600
    cache_ttl_wrong_answers: int = 300

    # ==========================================================================
    # Redis
    # ==========================================================================
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")
    redis_password: str = ""
    redis_pool_size: int = 10
    redis_key_prefix: str = "quiz:"
    redis_breaker_fail_max: int = Field(default=5, ge=1)
    redis_breaker_reset_timeout: int = Field(default=30, ge=1)  # seconds

    # ==========================================================================
    # Quiz bank
    # ==========================================================================
    quiz_bank_path: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
