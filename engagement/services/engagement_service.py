"""Cache-aside orchestration of activity retrieval and engagement metrics.

Each single-subject call runs:

    check cache ── hit ──────────────────────────────────────► return
         │
        miss ─► call source ─► aggregate (metrics only) ─► store ─► return
                     │
                   failure ─► log + re-raise (nothing cached)

Raw activity and metrics live under separate keys with separate TTLs;
``invalidate`` clears both for a subject in one batch.

``bulk_compute_metrics`` fans out one ``compute_metrics`` per unique
subject and waits for all of them to settle.  A failing subject is
logged and left out of the result; it never cancels its siblings and
never fails the bulk call.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable, Iterable

from engagement.core.config import CacheConfig
from engagement.core.errors import CacheError, UpstreamError, ValidationError
from engagement.core.metrics import BULK_IN_FLIGHT, BULK_SUBJECTS
from engagement.models.activity import ActivityEvent, ActivityFilter, EngagementMetrics
from engagement.services.activity_source import ActivitySource
from engagement.services.aggregator import aggregate
from engagement.services.cache import CacheAsideStore
from engagement.services.cache_keys import CacheKeyCodec, validate_subject_id

logger = logging.getLogger(__name__)

ACTIVITY_NAMESPACE = "activity"
METRICS_NAMESPACE = "metrics"


def _decode_activities(data: object) -> list[ActivityEvent]:
    if not isinstance(data, list):
        raise TypeError("cached activity payload is not a list")
    if not all(isinstance(item, dict) for item in data):
        raise TypeError("cached activity record is not an object")
    return [ActivityEvent.from_payload(item) for item in data]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _check_window(window_days: int | None) -> None:
    if window_days is not None and window_days <= 0:
        raise ValidationError(
            f"window must be a positive number of days (got {window_days})"
        )


class EngagementService:
    def __init__(
        self,
        source: ActivitySource,
        cache: CacheAsideStore,
        cache_config: CacheConfig,
        *,
        keys: CacheKeyCodec | None = None,
        tz: datetime.tzinfo = datetime.UTC,
        clock: Callable[[], datetime.datetime] = _utcnow,
        bulk_max_concurrency: int | None = None,
    ) -> None:
        self._source = source
        self._cache = cache
        self._cache_config = cache_config
        self._keys = keys or CacheKeyCodec()
        self._tz = tz
        self._clock = clock
        self._bulk_max_concurrency = bulk_max_concurrency

    # ------------------------------------------------------------------
    # Raw activity
    # ------------------------------------------------------------------

    async def fetch_activity(
        self, subject_id: str, activity_filter: ActivityFilter | None = None
    ) -> list[ActivityEvent]:
        """Activity records for a subject, from cache or the remote source.

        Raises:
            ValidationError: bad subject id (before any I/O)
            UpstreamError: the source failed; nothing is cached
        """
        validate_subject_id(subject_id)
        params = activity_filter.as_params() if activity_filter else {}
        cache_key = self._keys.derive(ACTIVITY_NAMESPACE, subject_id, params)

        cached = await self._cache.read(cache_key, _decode_activities)
        if cached is not None:
            logger.debug(
                "Retrieved user activity from cache user=%s",
                subject_id,
                extra={"subject_id": subject_id, "cache_key": cache_key},
            )
            return cached

        logger.debug(
            "Fetching user activity from API user=%s params=%s",
            subject_id,
            params,
            extra={"subject_id": subject_id},
        )
        try:
            activities = await self._source.fetch(subject_id, activity_filter)
        except UpstreamError as exc:
            logger.error(
                "Failed to fetch user activity user=%s: %s",
                subject_id,
                exc,
                extra={
                    "subject_id": subject_id,
                    "upstream_status": exc.status,
                    "error_kind": exc.kind.value,
                    "error": exc.message,
                },
            )
            raise

        await self._cache.write(
            cache_key,
            [a.to_payload() for a in activities],
            self._cache_config.activity_ttl_sec,
        )
        return activities

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    async def compute_metrics(
        self, subject_id: str, window_days: int | None = None
    ) -> EngagementMetrics:
        """Engagement metrics over the last ``window_days`` (all time if None)."""
        validate_subject_id(subject_id)
        _check_window(window_days)

        cache_key = self._keys.derive(
            METRICS_NAMESPACE, subject_id, {"timeRangeInDays": window_days}
        )
        cached = await self._cache.read(cache_key, EngagementMetrics.from_payload)
        if cached is not None:
            logger.debug(
                "Retrieved engagement metrics from cache user=%s",
                subject_id,
                extra={"subject_id": subject_id, "cache_key": cache_key},
            )
            return cached

        now = self._clock()
        activity_filter = None
        if window_days is not None:
            activity_filter = ActivityFilter(
                start_date=now - datetime.timedelta(days=window_days)
            )

        activities = await self.fetch_activity(subject_id, activity_filter)
        metrics = aggregate(activities, now=now, tz=self._tz)

        await self._cache.write(
            cache_key, metrics.to_payload(), self._cache_config.metrics_ttl_sec
        )
        return metrics

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate(self, subject_id: str) -> int:
        """Drop every cached entry for a subject.  Returns keys deleted."""
        prefix = self._keys.prefix_for(subject_id)
        try:
            deleted = await self._cache.invalidate(prefix)
        except CacheError:
            logger.exception(
                "Failed to invalidate user cache user=%s",
                subject_id,
                extra={"subject_id": subject_id},
            )
            raise

        if deleted:
            logger.info(
                "Invalidated user cache user=%s keys=%d",
                subject_id,
                deleted,
                extra={"subject_id": subject_id, "keys_count": deleted},
            )
        return deleted

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    async def bulk_compute_metrics(
        self, subject_ids: Iterable[str], window_days: int | None = None
    ) -> dict[str, EngagementMetrics]:
        """Metrics for many subjects at once; failed subjects are omitted.

        A non-positive ``window_days`` is rejected up front, before any
        subject is touched.  Compare ``len(result)`` with
        the number of unique ids to detect partial failure.
        """
        _check_window(window_days)
        unique_ids = list(dict.fromkeys(subject_ids))
        semaphore = (
            asyncio.Semaphore(self._bulk_max_concurrency)
            if self._bulk_max_concurrency
            else None
        )

        async def _one(subject_id: str) -> EngagementMetrics:
            if semaphore is None:
                return await self._tracked(subject_id, window_days)
            async with semaphore:
                return await self._tracked(subject_id, window_days)

        outcomes = await asyncio.gather(
            *(_one(subject_id) for subject_id in unique_ids),
            return_exceptions=True,
        )

        results: dict[str, EngagementMetrics] = {}
        for subject_id, outcome in zip(unique_ids, outcomes):
            if isinstance(outcome, BaseException):
                BULK_SUBJECTS.labels(result="failed").inc()
                logger.error(
                    "Failed to process user metrics user=%s: %s",
                    subject_id,
                    outcome,
                    exc_info=outcome,
                    extra={
                        "subject_id": subject_id,
                        "requested": len(unique_ids),
                        "error": str(outcome),
                    },
                )
                continue
            BULK_SUBJECTS.labels(result="ok").inc()
            results[subject_id] = outcome

        logger.info(
            "Bulk processed user metrics requested=%d processed=%d",
            len(unique_ids),
            len(results),
            extra={"requested": len(unique_ids), "processed": len(results)},
        )
        return results

    async def _tracked(
        self, subject_id: str, window_days: int | None
    ) -> EngagementMetrics:
        BULK_IN_FLIGHT.inc()
        try:
            return await self.compute_metrics(subject_id, window_days)
        finally:
            BULK_IN_FLIGHT.dec()
