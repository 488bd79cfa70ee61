"""Cache store backends and the cache-aside wrapper used by the service.

Two layers:

  CacheStore        untyped string store: get, set-with-expiry, pattern
                    scan, batch delete.  Backends raise CacheReadError /
                    CacheWriteError when the store itself misbehaves.

  CacheAsideStore   typed JSON read/write on top of a CacheStore.  Reads
                    and writes never raise: a broken cache is a cache
                    miss, and a failed write only costs the next caller a
                    trip to the source.  Invalidation is the exception
                    and propagates store failures, since a caller asking
                    to clear a subject needs to know it did not happen.

Expiry is the only staleness policy besides explicit invalidation.  Raw
activity and derived metrics are written with separate TTLs and expire
independently.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from engagement.core.errors import CacheReadError, CacheWriteError
from engagement.core.metrics import CACHE_INVALIDATED_KEYS, CACHE_OPERATIONS

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class CacheStore(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None:
        """Store a value that expires after ``ttl_seconds``."""
        ...

    async def keys_matching(self, pattern: str) -> list[str]:
        """All keys matching a glob pattern (e.g. 'user-activity:u1:*')."""
        ...

    async def delete_all(self, keys: Sequence[str]) -> int:
        """Delete ``keys`` in one batch.  Returns how many existed."""
        ...


class InMemoryCacheStore:
    """Process-local store for dev and tests.

    Expiry is checked lazily on access against ``clock`` (monotonic
    seconds by default).
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._store: dict[str, tuple[str, float]] = {}
        self._clock = clock

    def _live(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._store[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None:
        self._store[key] = (value, self._clock() + ttl_seconds)

    async def keys_matching(self, pattern: str) -> list[str]:
        return [
            k
            for k in list(self._store)
            if fnmatch.fnmatchcase(k, pattern) and self._live(k) is not None
        ]

    async def delete_all(self, keys: Sequence[str]) -> int:
        deleted = 0
        for k in keys:
            if self._live(k) is not None:
                del self._store[k]
                deleted += 1
        return deleted


class RedisCacheStore:
    """Redis-backed store, shared across API instances."""

    _SCAN_BATCH = 100

    def __init__(self, redis_client: aioredis.Redis) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        try:
            return await self._redis.get(key)
        except RedisError as exc:
            raise CacheReadError(f"GET {key} failed: {exc}") from exc

    async def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None:
        try:
            # SETEX sets value and TTL atomically
            await self._redis.setex(key, ttl_seconds, value)
        except RedisError as exc:
            raise CacheWriteError(f"SETEX {key} failed: {exc}") from exc

    async def keys_matching(self, pattern: str) -> list[str]:
        # SCAN, not KEYS: KEYS blocks the server for the whole keyspace.
        # SCAN may repeat a key across batches, so collect into a set.
        found: set[str] = set()
        try:
            async for key in self._redis.scan_iter(match=pattern, count=self._SCAN_BATCH):
                found.add(key)
        except RedisError as exc:
            raise CacheReadError(f"SCAN {pattern} failed: {exc}") from exc
        return sorted(found)

    async def delete_all(self, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        try:
            return int(await self._redis.delete(*keys))
        except RedisError as exc:
            raise CacheWriteError(f"DEL of {len(keys)} keys failed: {exc}") from exc


def _namespace_of(key: str) -> str:
    parts = key.split(":")
    return parts[2] if len(parts) > 2 else "unknown"


class CacheAsideStore:
    """Typed, failure-tolerant JSON access to a CacheStore."""

    def __init__(self, store: CacheStore) -> None:
        self._store = store

    async def read(self, key: str, decode: Callable[[Any], T]) -> T | None:
        """Return the decoded cached value, or None on miss or any failure."""
        namespace = _namespace_of(key)
        try:
            raw = await self._store.get(key)
            if raw is None:
                CACHE_OPERATIONS.labels(namespace=namespace, result="miss").inc()
                return None
            value = decode(json.loads(raw))
        except (
            CacheReadError,
            ValueError,
            KeyError,
            TypeError,
            AttributeError,
        ) as exc:
            CACHE_OPERATIONS.labels(namespace=namespace, result="error").inc()
            logger.warning(
                "Cache read failed, treating as miss key=%s: %s",
                key,
                exc,
                extra={"cache_key": key, "error": str(exc)},
            )
            return None
        CACHE_OPERATIONS.labels(namespace=namespace, result="hit").inc()
        return value

    async def write(self, key: str, payload: Any, ttl_seconds: int) -> None:
        """Serialize and store with expiry.  Failures are logged and dropped."""
        namespace = _namespace_of(key)
        try:
            serialized = json.dumps(payload)
            await self._store.set_with_expiry(key, ttl_seconds, serialized)
        except (CacheWriteError, TypeError, ValueError) as exc:
            CACHE_OPERATIONS.labels(namespace=namespace, result="write_error").inc()
            logger.warning(
                "Failed to cache data key=%s: %s",
                key,
                exc,
                extra={"cache_key": key, "error": str(exc)},
            )
            return
        CACHE_OPERATIONS.labels(namespace=namespace, result="write").inc()

    async def invalidate(self, prefix: str) -> int:
        """Delete every key starting with ``prefix`` in a single batch.

        Returns the number of keys deleted; zero matches is a no-op.
        Store failures propagate.
        """
        keys = await self._store.keys_matching(f"{prefix}*")
        if not keys:
            logger.debug("No cache keys to invalidate prefix=%s", prefix)
            return 0
        deleted = await self._store.delete_all(keys)
        CACHE_INVALIDATED_KEYS.inc(deleted)
        return deleted
