from __future__ import annotations

import datetime
import os
from dataclasses import dataclass
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def resolve_timezone(name: str) -> datetime.tzinfo:
    # UTC needs no tz database
    if name.upper() == "UTC":
        return datetime.UTC
    return ZoneInfo(name)


def _positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {value})")
    return value


@dataclass(frozen=True)
class ApiConfig:
    """Remote activity API: base URL, per-call timeout, optional key."""

    base_path: str
    timeout_ms: int
    api_key: str | None = None


@dataclass(frozen=True)
class CacheConfig:
    """TTLs for the two independently expiring cache namespaces."""

    activity_ttl_sec: int
    metrics_ttl_sec: int


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    redis_url: str | None
    api: ApiConfig
    cache: CacheConfig
    metrics_timezone: str = "UTC"
    bulk_max_concurrency: int | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def tzinfo(self) -> datetime.tzinfo:
        return resolve_timezone(self.metrics_timezone)


def load_settings() -> Settings:
    """Read and validate the environment once.

    Called at process start; the result is passed explicitly to whatever
    needs it.  Nothing in the service layer reads os.environ.
    """
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    log_json_raw = _getenv("LOG_JSON", "false").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    if log_json_raw not in ("true", "false", "1", "0", "yes", "no"):
        raise ValueError(f"LOG_JSON must be a boolean (got {log_json_raw!r})")

    port = _positive_int("PORT", _getenv("PORT", "8000"))

    api = ApiConfig(
        base_path=_getenv("USER_ACTIVITY_API_URL", "https://api.example.com/v1"),
        timeout_ms=_positive_int("API_TIMEOUT_MS", _getenv("API_TIMEOUT_MS", "5000")),
        api_key=_getenv("USER_ACTIVITY_API_KEY", "") or None,
    )
    if not api.base_path:
        raise ValueError("USER_ACTIVITY_API_URL must not be empty")

    cache = CacheConfig(
        activity_ttl_sec=_positive_int(
            "ACTIVITY_CACHE_TTL_SEC", _getenv("ACTIVITY_CACHE_TTL_SEC", "300")
        ),
        metrics_ttl_sec=_positive_int(
            "METRICS_CACHE_TTL_SEC", _getenv("METRICS_CACHE_TTL_SEC", "1800")
        ),
    )

    metrics_timezone = _getenv("METRICS_TIMEZONE", "UTC")
    try:
        resolve_timezone(metrics_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"METRICS_TIMEZONE must be an IANA zone name (got {metrics_timezone!r})"
        ) from None

    bulk_raw = _getenv("BULK_MAX_CONCURRENCY", "")
    bulk_max_concurrency = (
        _positive_int("BULK_MAX_CONCURRENCY", bulk_raw) if bulk_raw else None
    )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=log_json_raw in ("true", "1", "yes"),
        port=port,
        redis_url=_getenv("REDIS_URL", "") or None,
        api=api,
        cache=cache,
        metrics_timezone=metrics_timezone,
        bulk_max_concurrency=bulk_max_concurrency,
    )
