"""Prometheus metric inventory.

Every metric the service exports is defined here; the modules that own
the behaviour import and update them.

  Counter:   only goes up (requests served, storage failures).
  Gauge:     goes up and down (requests in flight).
  Histogram: bucketed observations, from which Prometheus derives
             percentiles with histogram_quantile().

Report durations are tracked separately from HTTP durations so a slow
dashboard can be told apart from a slow network or a slow token check.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
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

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Analytics metrics
# ---------------------------------------------------------------------------

REPORT_DURATION = Histogram(
    "analytics_report_duration_seconds",
    "Time spent composing an analytics report, including all store queries",
    ["report", "outcome"],  # report: dashboard|course_analytics|...; outcome: ok|error
    # A dashboard fans out to a dozen aggregate queries; anything past
    # 2.5s means the store is struggling.
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

STORAGE_ERRORS = Counter(
    "analytics_storage_errors_total",
    "Store queries that failed and were surfaced as StorageError",
    ["operation"],
)
