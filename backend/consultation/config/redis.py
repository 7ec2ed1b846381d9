"""Shared Redis client used for presence heartbeats and the summary channel."""
from typing import Optional

import redis.asyncio as redis

from consultation.config.settings import settings

_redis: Optional[redis.Redis] = None


def _redis_url() -> str:
    if settings.REDIS_PASSWORD:
        return f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:{settings.REDIS_PORT}"
    return f"redis://{settings.REDIS_HOST}:{settings.REDIS_PORT}"


async def get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.Redis.from_url(_redis_url(), decode_responses=True)
    return _redis


def set_redis(client: Optional[redis.Redis]) -> None:
    """Install a pre-built client (e.g. fakeredis in tests)."""
    global _redis
    _redis = client


async def close_redis():
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None
