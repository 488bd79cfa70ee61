"""JSON and container log formats.

The JSON output is consumed by log aggregation, so the context fields
the pipeline attaches (subject_id, cache_key, upstream_status, ...) must
come through as top-level keys.
"""

from __future__ import annotations

import json
import logging
import sys

from engagement.core.logging import _ContainerFormatter, _JsonFormatter


def _record(msg: str = "test message", level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="engagement.test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_produces_valid_json() -> None:
    parsed = json.loads(_JsonFormatter().format(_record("Bulk processed")))
    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "engagement.test"
    assert parsed["message"] == "Bulk processed"
    assert "timestamp" in parsed


def test_json_formatter_lifts_pipeline_context() -> None:
    record = _record(
        "Failed to fetch user activity",
        level=logging.ERROR,
        subject_id="user123",
        upstream_status=503,
        error_kind="http_status",
        request_id="req-1",
    )
    parsed = json.loads(_JsonFormatter().format(record))
    assert parsed["subject_id"] == "user123"
    assert parsed["upstream_status"] == 503
    assert parsed["error_kind"] == "http_status"
    assert parsed["request_id"] == "req-1"


def test_json_formatter_ignores_unknown_extra_fields() -> None:
    parsed = json.loads(_JsonFormatter().format(_record(secret_token="abc")))
    assert "secret_token" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    formatter = _JsonFormatter()
    try:
        raise ValueError("test error")
    except ValueError:
        record = _record("Something failed", level=logging.ERROR)
        record.exc_info = sys.exc_info()
        output = formatter.format(record)

    assert "ValueError: test error" in json.loads(output)["exception"]


def test_container_formatter_is_plain_text_with_location_on_warnings() -> None:
    formatter = _ContainerFormatter()
    info = formatter.format(_record("cache hit"))
    warning = formatter.format(_record("cache read failed", level=logging.WARNING))

    assert "INFO" in info and "cache hit" in info
    assert "[test.py:1]" not in info
    assert "[test.py:1]" in warning
    assert not info.lstrip().startswith("{")


def test_container_formatter_tags_lines_with_request_id() -> None:
    formatter = _ContainerFormatter()

    tagged = formatter.format(_record("bulk subject done", request_id="req-7"))
    outside = formatter.format(_record("startup", request_id="-"))
    odd = formatter.format(_record("escaped", request_id="50%off"))

    assert "req=req-7" in tagged
    assert "req=" not in outside
    assert "req=50%off" in odd
