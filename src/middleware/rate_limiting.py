"""Rate limiting middleware"""

from typing import Optional

import redis
import structlog
from fastapi import HTTPException, Request, status

from src.config import settings

logger = structlog.get_logger()

# Initialized by init_redis() at startup; None disables rate limiting
redis_client: Optional[redis.Redis] = None


def _subject(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(request: Request, key: str, limit: int, window: int = 60) -> None:
    """Fixed-window counter per client address"""
    if not redis_client:
        return

    redis_key = f"rate_limit:{key}:{_subject(request)}"
    try:
        current = redis_client.incr(redis_key)
        if current == 1:
            redis_client.expire(redis_key, window)
    except redis.RedisError as e:
        logger.warning("rate_limit_unavailable", key=key, error=str(e))
        return

    if current > limit:
        logger.warning("rate_limit_exceeded", key=key, subject=_subject(request))
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded: {limit} requests per {window} seconds",
        )


def init_redis() -> None:
    """Connect the rate limiter to Redis, disabling it if unreachable"""
    global redis_client
    try:
        redis_client = redis.from_url(settings.REDIS_URL)
        redis_client.ping()
        logger.info("rate_limiter_connected")
    except redis.RedisError as e:
        logger.warning("rate_limiter_disabled", error=str(e))
        redis_client = None


def rate_limit(key: str, limit: int, window: int = 60):
    """Dependency factory applying a rate limit to a route"""
    async def rate_limiter(request: Request):
        await enforce_rate_limit(request=request, key=key, limit=limit, window=window)

    return rate_limiter
