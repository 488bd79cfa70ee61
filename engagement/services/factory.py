from __future__ import annotations

import redis.asyncio as aioredis

from engagement.core.config import Settings
from engagement.services.activity_source import ActivitySource
from engagement.services.cache import (
    CacheAsideStore,
    CacheStore,
    InMemoryCacheStore,
    RedisCacheStore,
)
from engagement.services.cache_keys import CacheKeyCodec
from engagement.services.engagement_service import EngagementService
from engagement.services.transport import HttpxTransport, Transport, build_http_client


def build_engagement_service(
    settings: Settings,
    *,
    transport: Transport | None = None,
    cache_store: CacheStore | None = None,
    redis_client: aioredis.Redis | None = None,
) -> EngagementService:
    """Wire an EngagementService from settings.

    Any collaborator passed in is used as-is.  Otherwise the transport is
    an httpx client against ``settings.api`` and the cache store is Redis
    when a client is given, in-memory when not.
    """
    if transport is None:
        transport = HttpxTransport(build_http_client(settings.api))

    if cache_store is None:
        cache_store = (
            RedisCacheStore(redis_client)
            if redis_client is not None
            else InMemoryCacheStore()
        )

    return EngagementService(
        source=ActivitySource(transport, timeout_ms=settings.api.timeout_ms),
        cache=CacheAsideStore(cache_store),
        cache_config=settings.cache,
        keys=CacheKeyCodec(),
        tz=settings.tzinfo,
        bulk_max_concurrency=settings.bulk_max_concurrency,
    )
