"""Tests for the request context middleware.

Verifies that every response gets:
- An X-Request-ID header (generated or echoed from the request)
- A request log line carrying the same ID
"""

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from engagement.core.errors import TransportError, TransportErrorKind
from tests.conftest import TEST_USER_ID, FakeTransport


def test_request_id_generated_when_not_provided(client: TestClient) -> None:
    resp = client.get("/health")
    req_id = resp.headers.get("x-request-id")
    assert req_id is not None
    uuid.UUID(req_id)  # raises ValueError if invalid


def test_request_id_echoed_when_provided(client: TestClient) -> None:
    custom_id = "my-custom-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": custom_id})
    assert resp.headers.get("x-request-id") == custom_id


def test_request_id_present_on_error_responses(
    client: TestClient, transport: FakeTransport
) -> None:
    transport.errors[TEST_USER_ID] = TransportError(
        TransportErrorKind.CONNECTION, "connection refused"
    )
    resp = client.get(f"/v1/users/{TEST_USER_ID}/engagement")
    assert resp.status_code == 502
    assert resp.headers.get("x-request-id") is not None


def test_request_is_logged_with_its_id(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    with caplog.at_level(logging.INFO, logger="engagement.middleware.request_context"):
        client.get("/ready", headers={"X-Request-ID": "req-42"})

    lines = [r for r in caplog.records if getattr(r, "path", None) == "/ready"]
    assert len(lines) == 1
    assert getattr(lines[0], "request_id") == "req-42"
    assert getattr(lines[0], "status_code") == 200
