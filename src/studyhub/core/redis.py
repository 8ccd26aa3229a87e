"""
Redis Connection

Optional shared client. Only the cron trigger rate limiter uses it, and it
keeps working on per-process windows when Redis is down.
"""

import logging

from redis.asyncio import Redis, from_url

from studyhub.core.config import settings

logger = logging.getLogger(__name__)

# Seconds to wait on connect and on each command before giving up
REDIS_TIMEOUT_SECONDS = 2.0

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect to REDIS_URL and ping it. Raises if the server is unreachable."""
    global redis_client
    client = from_url(
        settings.redis_url,
        decode_responses=True,
        socket_connect_timeout=REDIS_TIMEOUT_SECONDS,
        socket_timeout=REDIS_TIMEOUT_SECONDS,
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    redis_client = client
    logger.debug(f"Redis client ready ({settings.redis_url.split('@')[-1]})")
    return redis_client


def get_redis() -> Redis | None:
    return redis_client


def is_redis_available() -> bool:
    return redis_client is not None


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
