from __future__ import annotations

import datetime

import pytest

from engagement.core.errors import ValidationError
from engagement.models.activity import (
    ActivityEvent,
    ActivityFilter,
    ActivityKind,
    EngagementMetrics,
    UnknownActivityKind,
    format_instant,
    parse_instant,
)
from tests.conftest import SAMPLE_ACTIVITIES

# ---- instants ----


def test_parse_instant_accepts_z_suffix_and_offsets() -> None:
    a = parse_instant("2023-05-01T10:00:00Z")
    b = parse_instant("2023-05-01T12:00:00+02:00")
    assert a == b
    assert a.tzinfo is not None


def test_parse_instant_treats_naive_as_utc() -> None:
    assert parse_instant("2023-05-01T10:00:00") == datetime.datetime(
        2023, 5, 1, 10, tzinfo=datetime.UTC
    )


def test_format_instant_is_utc_millis_with_z() -> None:
    moment = datetime.datetime(
        2023, 5, 1, 12, 0, tzinfo=datetime.timezone(datetime.timedelta(hours=2))
    )
    assert format_instant(moment) == "2023-05-01T10:00:00.000Z"


# ---- ActivityEvent ----


def test_event_from_payload_maps_wire_fields() -> None:
    event = ActivityEvent.from_payload(SAMPLE_ACTIVITIES[2])
    assert event.id == "activity3"
    assert event.subject_id == "user123"
    assert event.kind is ActivityKind.VIDEO_PLAY
    assert event.location == "/products/123/video"
    assert event.device == "desktop"
    assert event.duration_seconds == 120
    assert event.metadata is None


def test_event_payload_survives_cache_serialization() -> None:
    event = ActivityEvent.from_payload(
        {**SAMPLE_ACTIVITIES[0], "metadata": {"referrer": "newsletter"}}
    )
    assert ActivityEvent.from_payload(event.to_payload()) == event


def test_event_rejects_unknown_kind() -> None:
    with pytest.raises(UnknownActivityKind) as info:
        ActivityEvent.from_payload({**SAMPLE_ACTIVITIES[0], "type": "HOVER"})
    assert info.value.raw == "HOVER"


def test_event_rejects_negative_duration() -> None:
    with pytest.raises(ValueError, match="non-negative"):
        ActivityEvent.from_payload({**SAMPLE_ACTIVITIES[2], "durationSec": -1})


def test_event_requires_timestamp() -> None:
    payload = dict(SAMPLE_ACTIVITIES[0])
    del payload["timestamp"]
    with pytest.raises(KeyError):
        ActivityEvent.from_payload(payload)


# ---- ActivityFilter ----


def test_filter_params_omit_absent_fields() -> None:
    assert ActivityFilter().as_params() == {}
    assert ActivityFilter(kind=ActivityKind.CLICK, limit=10).as_params() == {
        "type": "CLICK",
        "limit": 10,
    }


def test_filter_params_use_wire_names() -> None:
    f = ActivityFilter(
        start_date=parse_instant("2023-05-01T00:00:00Z"),
        end_date=parse_instant("2023-05-02T00:00:00Z"),
        location="/products",
    )
    assert f.as_params() == {
        "startDate": "2023-05-01T00:00:00.000Z",
        "endDate": "2023-05-02T00:00:00.000Z",
        "path": "/products",
    }


def test_filter_rejects_end_before_start() -> None:
    with pytest.raises(ValidationError, match="endDate"):
        ActivityFilter(
            start_date=parse_instant("2023-05-02T00:00:00Z"),
            end_date=parse_instant("2023-05-01T00:00:00Z"),
        )


def test_filter_allows_equal_bounds() -> None:
    moment = parse_instant("2023-05-01T00:00:00Z")
    assert ActivityFilter(start_date=moment, end_date=moment).as_params()


@pytest.mark.parametrize("limit", [0, -3])
def test_filter_rejects_non_positive_limit(limit: int) -> None:
    with pytest.raises(ValidationError, match="limit"):
        ActivityFilter(limit=limit)


# ---- EngagementMetrics ----


def test_metrics_counts_default_to_zero_for_unobserved_kinds() -> None:
    metrics = EngagementMetrics.from_payload(
        {
            "totalActivities": 1,
            "activityByType": {"CLICK": 1},
            "averageDurationSec": 0,
            "mostActiveHour": 10,
            "mostActiveDay": 1,
            "daysSinceLastActivity": 0,
            "engagementScore": 50,
        }
    )
    assert metrics.activity_by_type[ActivityKind.CLICK] == 1
    assert metrics.activity_by_type[ActivityKind.SHARE] == 0
    assert list(metrics.activity_by_type) == [ActivityKind.CLICK]
    assert metrics.to_payload()["activityByType"] == {"CLICK": 1}
