"""
Redis client for worker stats.

- Worker periodically writes its counters to a key; API reads it for GET /stats.
- Optional: without REDIS_URL both sides skip Redis entirely.
"""
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from openships.core.config import settings

logger = logging.getLogger("openships.redis")

_redis: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    global _redis
    if _redis is None and settings.REDIS_URL:
        _redis = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


async def write_stats(stats: dict[str, Any]) -> None:
    """Write worker stats to Redis (worker calls this periodically)."""
    r = await get_redis()
    if r is None:
        return
    await r.set(settings.REDIS_STATS_KEY, json.dumps(stats), ex=60)


async def read_stats() -> Optional[dict[str, Any]]:
    """Read worker stats from Redis (API calls this for /stats)."""
    r = await get_redis()
    if r is None:
        return None
    raw = await r.get(settings.REDIS_STATS_KEY)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return None
