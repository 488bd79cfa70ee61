"""Redis connection management.

When REDIS_URL is configured we open one shared connection pool for the
process; without it the service falls back to the in-memory cache store
and no Redis server is needed (local dev, tests).
"""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def create_redis_client(redis_url: str | None) -> aioredis.Redis | None:
    if not redis_url:
        return None
    return aioredis.from_url(
        redis_url,
        decode_responses=True,  # str in, str out
        max_connections=20,
    )


async def ping(client: aioredis.Redis) -> bool:
    try:
        await client.ping()  # type: ignore[misc]  # redis stubs mistype async ping as bool
    except (RedisError, OSError):
        return False
    return True


async def verify_connection(client: aioredis.Redis | None, redis_url: str | None) -> None:
    """Startup check.  An unreachable Redis is logged, not fatal.

    Cache reads and writes already degrade to misses, so the service can
    keep answering from the activity API alone.
    """
    if client is None:
        logger.info("No REDIS_URL configured, using the in-memory cache store")
        return
    if await ping(client):
        logger.info("Redis connected: %s", redis_url)
    else:
        logger.error("Redis unreachable on startup: %s", redis_url)
