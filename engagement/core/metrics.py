"""Prometheus metric inventory.

Every counter the service exposes is defined here; the modules that own
the behaviour import the one they need and increment it in place.
Scraped from GET /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP (RequestContextMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

# ---------------------------------------------------------------------------
# Cache-aside layer
# ---------------------------------------------------------------------------

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache-aside reads and writes by namespace and result",
    ["namespace", "result"],  # hit | miss | error | write | write_error
)

CACHE_INVALIDATED_KEYS = Counter(
    "cache_invalidated_keys_total",
    "Keys deleted by explicit per-subject invalidation",
)

# ---------------------------------------------------------------------------
# Remote activity source
# ---------------------------------------------------------------------------

UPSTREAM_REQUESTS = Counter(
    "upstream_requests_total",
    "Calls to the remote activity API by outcome",
    ["outcome"],  # ok | timeout | http_status | connection | malformed_response
)

ACTIVITY_RECORDS_SKIPPED = Counter(
    "activity_records_skipped_total",
    "Activity records dropped while decoding the upstream payload",
    ["reason"],
)

# ---------------------------------------------------------------------------
# Bulk processing
# ---------------------------------------------------------------------------

BULK_SUBJECTS = Counter(
    "bulk_subjects_total",
    "Subjects processed by bulk metric computation",
    ["result"],  # ok | failed
)

BULK_IN_FLIGHT = Gauge(
    "bulk_subjects_in_flight",
    "Per-subject metric computations currently running inside bulk calls",
)
