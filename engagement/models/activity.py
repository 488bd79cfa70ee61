from __future__ import annotations

import datetime
import math
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from engagement.core.errors import ValidationError


class ActivityKind(str, Enum):
    """Closed set of activity kinds the remote source reports."""

    PAGE_VIEW = "PAGE_VIEW"
    CLICK = "CLICK"
    SCROLL = "SCROLL"
    FORM_SUBMISSION = "FORM_SUBMISSION"
    VIDEO_PLAY = "VIDEO_PLAY"
    VIDEO_PAUSE = "VIDEO_PAUSE"
    VIDEO_COMPLETE = "VIDEO_COMPLETE"
    DOWNLOAD = "DOWNLOAD"
    SHARE = "SHARE"
    COMMENT = "COMMENT"


class UnknownActivityKind(ValueError):
    def __init__(self, raw: object) -> None:
        super().__init__(f"unknown activity kind {raw!r}")
        self.raw = raw


def parse_instant(value: str | datetime.datetime) -> datetime.datetime:
    """Parse an ISO-8601 instant.  Naive values are taken as UTC."""
    if isinstance(value, datetime.datetime):
        parsed = value
    else:
        parsed = datetime.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.UTC)
    return parsed


def format_instant(value: datetime.datetime) -> str:
    """UTC, millisecond precision, trailing Z: 2023-05-01T10:00:00.000Z."""
    utc = value.astimezone(datetime.UTC)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class ActivityEvent:
    """One immutable event record, as produced by the remote source."""

    id: str
    subject_id: str
    kind: ActivityKind
    timestamp: datetime.datetime
    location: str
    device: str | None = None
    duration_seconds: float | None = None
    metadata: dict[str, Any] | None = None

    @staticmethod
    def from_payload(data: dict[str, Any]) -> ActivityEvent:
        """Decode one record of the upstream wire format.

        Raises UnknownActivityKind for a kind outside ActivityKind and
        ValueError (or KeyError/TypeError) for anything else malformed.
        """
        raw_kind = data.get("type")
        try:
            kind = ActivityKind(raw_kind)
        except ValueError:
            raise UnknownActivityKind(raw_kind) from None

        duration = data.get("durationSec")
        if duration is not None:
            duration = float(duration)
            if not math.isfinite(duration) or duration < 0:
                raise ValueError(
                    f"durationSec must be finite and non-negative (got {duration})"
                )

        metadata = data.get("metadata")
        if metadata is not None and not isinstance(metadata, dict):
            raise TypeError("metadata must be an object")

        return ActivityEvent(
            id=str(data["id"]),
            subject_id=str(data["userId"]),
            kind=kind,
            timestamp=parse_instant(data["timestamp"]),
            location=str(data.get("path", "")),
            device=data.get("device"),
            duration_seconds=duration,
            metadata=metadata,
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "userId": self.subject_id,
            "type": self.kind.value,
            "timestamp": format_instant(self.timestamp),
            "path": self.location,
        }
        if self.device is not None:
            payload["device"] = self.device
        if self.duration_seconds is not None:
            payload["durationSec"] = self.duration_seconds
        if self.metadata is not None:
            payload["metadata"] = self.metadata
        return payload


@dataclass(frozen=True, slots=True)
class ActivityFilter:
    """Optional constraints on an activity lookup.

    Bounds are inclusive.  Fields left as None are omitted from both the
    upstream query and the cache key.
    """

    start_date: datetime.datetime | None = None
    end_date: datetime.datetime | None = None
    kind: ActivityKind | None = None
    location: str | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        if (
            self.start_date is not None
            and self.end_date is not None
            and parse_instant(self.end_date) < parse_instant(self.start_date)
        ):
            raise ValidationError("endDate must not be before startDate")
        if self.limit is not None and self.limit <= 0:
            raise ValidationError(f"limit must be positive (got {self.limit})")

    def as_params(self) -> dict[str, str | int]:
        """Wire-format query parameters, absent fields dropped."""
        params: dict[str, str | int] = {}
        if self.start_date is not None:
            params["startDate"] = format_instant(parse_instant(self.start_date))
        if self.end_date is not None:
            params["endDate"] = format_instant(parse_instant(self.end_date))
        if self.kind is not None:
            params["type"] = self.kind.value
        if self.location is not None:
            params["path"] = self.location
        if self.limit is not None:
            params["limit"] = self.limit
        return params


@dataclass(frozen=True)
class EngagementMetrics:
    """Derived snapshot for one subject over one window.

    ``activity_by_type`` is a Counter: only observed kinds are keys, and
    looking up any other kind yields 0.
    """

    total_activities: int = 0
    activity_by_type: Counter[ActivityKind] = field(default_factory=Counter)
    average_duration_sec: int = 0
    most_active_hour: int = 0
    most_active_day: int = 0
    days_since_last_activity: int = 0
    engagement_score: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "totalActivities": self.total_activities,
            "activityByType": {
                kind.value: count for kind, count in self.activity_by_type.items()
            },
            "averageDurationSec": self.average_duration_sec,
            "mostActiveHour": self.most_active_hour,
            "mostActiveDay": self.most_active_day,
            "daysSinceLastActivity": self.days_since_last_activity,
            "engagementScore": self.engagement_score,
        }

    @staticmethod
    def from_payload(data: dict[str, Any]) -> EngagementMetrics:
        by_type = data["activityByType"]
        if not isinstance(by_type, dict):
            raise TypeError("activityByType must be an object")
        return EngagementMetrics(
            total_activities=int(data["totalActivities"]),
            activity_by_type=Counter(
                {
                    ActivityKind(kind): int(count)
                    for kind, count in by_type.items()
                }
            ),
            average_duration_sec=int(data["averageDurationSec"]),
            most_active_hour=int(data["mostActiveHour"]),
            most_active_day=int(data["mostActiveDay"]),
            days_since_last_activity=int(data["daysSinceLastActivity"]),
            engagement_score=int(data["engagementScore"]),
        )
