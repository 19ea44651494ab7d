"""Recommendation cache.

WHAT:
    TTL cache for generated recommendations keyed by (user, range start, range end).

WHY:
    Recommendations are recomputed from several aggregate queries. Dashboards
    request the same window repeatedly, so results are cached for a few
    minutes in Redis rather than in process memory (API and workers run as
    separate processes).
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

import redis

from .types import Recommendation

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


def recommendation_cache_key(user_id: UUID, start: datetime, end: datetime) -> str:
    return f"recommendations:{user_id}:{start.isoformat()}:{end.isoformat()}"


class RecommendationCache(ABC):
    @abstractmethod
    def get(self, user_id: UUID, start: datetime, end: datetime) -> Optional[List[Recommendation]]:
        ...

    @abstractmethod
    def set(self, user_id: UUID, start: datetime, end: datetime, value: List[Recommendation]) -> None:
        ...


class RedisRecommendationCache(RecommendationCache):
    """Redis-backed cache. Redis errors and unreadable entries degrade to cache misses."""

    def __init__(self, client: redis.Redis, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.client = client
        self.ttl_seconds = ttl_seconds

    def get(self, user_id, start, end):
        key = recommendation_cache_key(user_id, start, end)
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.warning("[CACHE] Read failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return [Recommendation.from_dict(item) for item in json.loads(raw)]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("[CACHE] Discarding unreadable entry %s: %s", key, e)
            return None

    def set(self, user_id, start, end, value):
        key = recommendation_cache_key(user_id, start, end)
        payload = json.dumps([r.to_dict() for r in value])
        try:
            self.client.setex(key, self.ttl_seconds, payload)
        except redis.RedisError as e:
            logger.warning("[CACHE] Write failed for %s: %s", key, e)
