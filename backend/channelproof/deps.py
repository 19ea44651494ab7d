"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Optional

import redis
from fastapi import Depends
from pydantic_settings import BaseSettings, SettingsConfigDict

from .services.journeys.cache import RecommendationCache, RedisRecommendationCache


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    REDIS_URL: str = "redis://localhost:6379/0"

    SENTRY_DSN: Optional[str] = None
    ENVIRONMENT: str = "development"

    # Attribution windows
    ATTRIBUTION_WINDOW_HOURS: int = 24
    JOURNEY_LOOKBACK_DAYS: int = 7
    OVER_ATTRIBUTION_LOOKBACK_DAYS: int = 7

    # Batch attribution defaults
    BATCH_SIZE: int = 100
    BATCH_MAX_CONCURRENT: int = 5
    BATCH_RETRY_ATTEMPTS: int = 3
    BATCH_RETRY_DELAY_MS: int = 1000

    RECOMMENDATION_CACHE_TTL_SECONDS: int = 300  # 5 minutes

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


@lru_cache()
def get_redis_client() -> redis.Redis:
    """Shared Redis client for request-time caches (connection pool is thread safe)."""
    return redis.Redis.from_url(get_settings().REDIS_URL, decode_responses=True)


def get_recommendation_cache(settings: Settings = Depends(get_settings)) -> RecommendationCache:
    """Recommendation cache dependency; tests override it with an in-memory fake."""
    return RedisRecommendationCache(
        get_redis_client(),
        ttl_seconds=settings.RECOMMENDATION_CACHE_TTL_SECONDS,
    )
