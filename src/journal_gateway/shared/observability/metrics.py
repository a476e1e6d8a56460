"""Prometheus metrics for the provider gateways."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


# ── HTTP metrics ─────────────────────────────────────────────
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0),
)

# ── Gateway call metrics ─────────────────────────────────────
GATEWAY_CALLS_TOTAL = Counter(
    "gateway_calls_total",
    "Total gateway calls by outcome",
    ["provider", "outcome"],
)

GATEWAY_CALL_DURATION = Histogram(
    "gateway_call_duration_seconds",
    "Duration of provider calls let through the breaker",
    ["provider"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

# ── Breaker metrics ──────────────────────────────────────────
BREAKER_TRANSITIONS_TOTAL = Counter(
    "gateway_breaker_transitions_total",
    "Breaker state transitions",
    ["provider", "state"],
)

BREAKER_STATE = Gauge(
    "gateway_breaker_state",
    "Current breaker state (0 closed, 1 half-open, 2 open)",
    ["provider"],
)

BREAKER_STATE_VALUES: dict[str, int] = {
    "closed": 0,
    "half_open": 1,
    "open": 2,
}
