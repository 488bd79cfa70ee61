from __future__ import annotations

import asyncio
import datetime
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Ensure repo root is on sys.path so `import engagement` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from engagement.core.config import ApiConfig, CacheConfig, Settings  # noqa: E402
from engagement.core.errors import TransportError  # noqa: E402
from engagement.main import create_app  # noqa: E402
from engagement.services.activity_source import ActivitySource  # noqa: E402
from engagement.services.cache import CacheAsideStore, InMemoryCacheStore  # noqa: E402
from engagement.services.engagement_service import EngagementService  # noqa: E402
from engagement.services.transport import TransportResponse  # noqa: E402

TEST_USER_ID = "user123"

# Tuesday 2023-05-02 09:00 UTC, the day after the sample activities.
NOW = datetime.datetime(2023, 5, 2, 9, 0, tzinfo=datetime.UTC)

SAMPLE_ACTIVITIES: list[dict[str, Any]] = [
    {
        "id": "activity1",
        "userId": TEST_USER_ID,
        "type": "PAGE_VIEW",
        "timestamp": "2023-05-01T10:00:00Z",
        "path": "/products",
        "device": "desktop",
    },
    {
        "id": "activity2",
        "userId": TEST_USER_ID,
        "type": "CLICK",
        "timestamp": "2023-05-01T10:05:00Z",
        "path": "/products/123",
        "device": "desktop",
    },
    {
        "id": "activity3",
        "userId": TEST_USER_ID,
        "type": "VIDEO_PLAY",
        "timestamp": "2023-05-01T11:00:00Z",
        "path": "/products/123/video",
        "device": "desktop",
        "durationSec": 120,
    },
]


class FakeTransport:
    """Scripted transport: per-subject payloads or errors, with a call log."""

    def __init__(self, delay: float = 0.0) -> None:
        self.payloads: dict[str, Any] = {}
        self.errors: dict[str, TransportError] = {}
        self.calls: list[dict[str, Any]] = []
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    def calls_for(self, subject_id: str) -> list[dict[str, Any]]:
        path = ActivitySource.path_for(subject_id)
        return [c for c in self.calls if c["path"] == path]

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        timeout_ms: int | None = None,
    ) -> TransportResponse:
        self.calls.append(
            {"method": method, "path": path, "params": params, "timeout_ms": timeout_ms}
        )
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            subject_id = path.split("/")[2]
            if subject_id in self.errors:
                raise self.errors[subject_id]
            return TransportResponse(status=200, data=self.payloads.get(subject_id, []))
        finally:
            self.in_flight -= 1


class SpyCacheStore(InMemoryCacheStore):
    """In-memory store that counts batch deletes."""

    def __init__(self, clock=None) -> None:
        if clock is None:
            super().__init__()
        else:
            super().__init__(clock=clock)
        self.delete_calls: list[list[str]] = []

    async def delete_all(self, keys: Sequence[str]) -> int:
        self.delete_calls.append(list(keys))
        return await super().delete_all(keys)


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_settings(**overrides: Any) -> Settings:
    fields: dict[str, Any] = {
        "app_env": "test",
        "log_level": "info",
        "log_json": False,
        "port": 8000,
        "redis_url": None,
        "api": ApiConfig(base_path="https://api.test.com", timeout_ms=1000),
        "cache": CacheConfig(activity_ttl_sec=60, metrics_ttl_sec=300),
    }
    fields.update(overrides)
    return Settings(**fields)


def make_service(
    transport: FakeTransport,
    store: InMemoryCacheStore | None = None,
    **kwargs: Any,
) -> EngagementService:
    settings = make_settings()
    return EngagementService(
        source=ActivitySource(transport, timeout_ms=settings.api.timeout_ms),
        cache=CacheAsideStore(store if store is not None else SpyCacheStore()),
        cache_config=settings.cache,
        clock=lambda: NOW,
        **kwargs,
    )


@pytest.fixture
def transport() -> FakeTransport:
    t = FakeTransport()
    t.payloads[TEST_USER_ID] = [dict(a) for a in SAMPLE_ACTIVITIES]
    return t


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> SpyCacheStore:
    return SpyCacheStore(clock=clock)


@pytest.fixture
def service(transport: FakeTransport, store: SpyCacheStore) -> EngagementService:
    return make_service(transport, store)


@pytest.fixture
def app(service: EngagementService) -> FastAPI:
    # No lifespan: the service is wired directly, Redis stays unconfigured.
    application = create_app(make_settings())
    application.state.engagement_service = service
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
