"""Engagement metrics from raw activity records.

Pure computation: no I/O, no shared state.  ``now`` and ``tz`` are
parameters so results are reproducible.

SCORE
-----
A fixed heuristic, kept exactly as published so that scores stay
comparable with previously stored values::

    activity  = ln(total + 1) * 10                     weight 0.4
    recency   = max(0, 1 - days_since_last / 30)       weight 30
    duration  = min(1, average_duration / 300)         weight 15
    diversity = min(1, distinct_kinds / 5)             weight 15

    score = clamp(round(sum of weighted terms), 0, 100)

Rounding is half-up throughout (average duration and score).
"""

from __future__ import annotations

import datetime
import math
from collections import Counter
from collections.abc import Iterable

from engagement.models.activity import ActivityEvent, ActivityKind, EngagementMetrics

SECONDS_PER_DAY = 86_400

ACTIVITY_WEIGHT = 0.4
RECENCY_WEIGHT = 30
RECENCY_HORIZON_DAYS = 30
DURATION_WEIGHT = 15
DURATION_CAP_SEC = 300
DIVERSITY_WEIGHT = 15
DIVERSITY_CAP_KINDS = 5


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _first_max_index(buckets: list[int]) -> int:
    # list.index returns the lowest index on ties
    return buckets.index(max(buckets))


def _sunday_first_weekday(moment: datetime.datetime) -> int:
    # datetime.weekday() is Monday=0; buckets are Sunday=0 .. Saturday=6
    return (moment.weekday() + 1) % 7


def engagement_score(
    total_activities: int,
    days_since_last_activity: int,
    average_duration_sec: float,
    distinct_kinds: int,
) -> int:
    activity_score = math.log(total_activities + 1) * 10
    recency_factor = max(0.0, 1 - days_since_last_activity / RECENCY_HORIZON_DAYS)
    duration_factor = min(1.0, average_duration_sec / DURATION_CAP_SEC)
    diversity_factor = min(1.0, distinct_kinds / DIVERSITY_CAP_KINDS)

    score = (
        activity_score * ACTIVITY_WEIGHT
        + recency_factor * RECENCY_WEIGHT
        + duration_factor * DURATION_WEIGHT
        + diversity_factor * DIVERSITY_WEIGHT
    )
    return min(100, max(0, _round_half_up(score)))


def aggregate(
    records: Iterable[ActivityEvent],
    *,
    now: datetime.datetime | None = None,
    tz: datetime.tzinfo = datetime.UTC,
) -> EngagementMetrics:
    """Reduce a subject's activity records to an EngagementMetrics snapshot.

    An empty input yields the all-zero snapshot.  A future-dated latest
    event produces a negative ``days_since_last_activity``, which is
    reported as-is.
    """
    events = list(records)
    if not events:
        return EngagementMetrics()

    now = now or datetime.datetime.now(datetime.UTC)

    hour_counts = [0] * 24
    day_counts = [0] * 7
    kind_counts: Counter[ActivityKind] = Counter()
    total_duration = 0.0
    latest = events[0].timestamp

    for event in events:
        kind_counts[event.kind] += 1
        if event.duration_seconds:
            total_duration += event.duration_seconds
        if event.timestamp > latest:
            latest = event.timestamp

        local = event.timestamp.astimezone(tz)
        hour_counts[local.hour] += 1
        day_counts[_sunday_first_weekday(local)] += 1

    total = len(events)
    average_duration = _round_half_up(total_duration / total)
    days_since_last = math.floor((now - latest).total_seconds() / SECONDS_PER_DAY)

    return EngagementMetrics(
        total_activities=total,
        activity_by_type=kind_counts,
        average_duration_sec=average_duration,
        most_active_hour=_first_max_index(hour_counts),
        most_active_day=_first_max_index(day_counts),
        days_since_last_activity=days_since_last,
        engagement_score=engagement_score(
            total, days_since_last, average_duration, len(kind_counts)
        ),
    )
