"""
Rate Limiting

Sliding-window request limits for the cron trigger surface. Windows are kept
in a Redis sorted set per key when Redis is connected, and in a per-process
dict otherwise.

Usage:
    @router.post("/run-jobs", dependencies=[Depends(TriggerRateLimit())])
"""

import logging
import time
from uuid import uuid4

from fastapi import HTTPException, Request, status
from redis.asyncio import Redis
from redis.exceptions import RedisError

from studyhub.core.config import settings
from studyhub.core.redis import get_redis

logger = logging.getLogger(__name__)

# Fallback windows: {key: [request timestamps]}
_memory_store: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    """429 raised when a client exhausts its window."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "success": False,
                "error": f"Too many trigger requests: limit is {limit} per {window_seconds}s",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _redis_window(client: Redis, key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, now - window_seconds)
    pipe.zcard(key)
    # Unique member so two requests in the same instant both count
    pipe.zadd(key, {f"{now}:{uuid4().hex}": now})
    pipe.expire(key, window_seconds)
    _, in_window, *_ = await pipe.execute()

    return in_window < limit


def _memory_window(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    recent = [ts for ts in _memory_store.get(key, []) if ts > now - window_seconds]

    allowed = len(recent) < limit
    if allowed:
        recent.append(now)
    _memory_store[key] = recent
    return allowed


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Record a request against ``key`` and report whether it fits the window.

    A Redis error downgrades this check to the in-memory window rather than
    failing the request.
    """
    client = get_redis()
    if client is not None:
        try:
            return await _redis_window(client, key, limit, window_seconds)
        except RedisError as e:
            logger.warning(f"Redis rate limit check failed for {key}, using memory: {e}")

    return _memory_window(key, limit, window_seconds)


class TriggerRateLimit:
    """
    FastAPI dependency limiting requests per client IP and path.

    Limits default to CRON_RATE_LIMIT per CRON_RATE_LIMIT_WINDOW_SECONDS and
    are read on each request.
    """

    def __init__(self, limit: int | None = None, window_seconds: int | None = None):
        self.limit = limit
        self.window_seconds = window_seconds

    async def __call__(self, request: Request) -> None:
        limit = self.limit or settings.cron_rate_limit
        window = self.window_seconds or settings.cron_rate_limit_window_seconds

        client_ip = request.client.host if request.client else "unknown"
        key = f"rate_limit:{client_ip}:{request.url.path}"

        if not await check_rate_limit(key, limit, window):
            logger.warning(f"Trigger rate limit hit for {client_ip} on {request.url.path}")
            raise RateLimitExceeded(limit, window)
