"""Prometheus metrics for healthshare.

Metric naming follows Prometheus conventions. Share metrics never carry
token, grant, or profile identifiers as labels.

Usage::

    from healthshare.observability.metrics import SHARE_ACCESS_TOTAL

    SHARE_ACCESS_TOTAL.labels(result="granted").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "http_server_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "http_server_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Share lifecycle metrics
# ---------------------------------------------------------------------------

SHARE_ISSUED_TOTAL = Counter(
    "healthshare_links_issued_total",
    "Share link issuance attempts by result.",
    labelnames=["result"],
    registry=REGISTRY,
)

SHARE_ACCESS_TOTAL = Counter(
    "healthshare_access_total",
    "Share link access attempts by outcome (granted or denial reason).",
    labelnames=["result"],
    registry=REGISTRY,
)

SHARE_REVOKED_TOTAL = Counter(
    "healthshare_links_revoked_total",
    "Share links moved from active to deactivated.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Recorder metrics
# ---------------------------------------------------------------------------

VIEW_RACE_LOST_TOTAL = Counter(
    "healthshare_view_race_lost_total",
    "Accesses whose projection was discarded after losing the view-limit race.",
    registry=REGISTRY,
)

AUDIT_APPEND_FAILURES_TOTAL = Counter(
    "healthshare_audit_append_failures_total",
    "Access events that could not be appended after all retries.",
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
