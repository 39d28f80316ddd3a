"""Prometheus metrics for the consent banner service.

HTTP metrics are recorded by ``MetricsMiddleware``; the gateway and asset
metrics are incremented by the pipeline stages and the asset lifecycle.

Usage::

    from consent_banner.observability.metrics import GATEWAY_DENIALS_TOTAL

    GATEWAY_DENIALS_TOTAL.labels(stage="csrf", code="CSRF_INVALID").inc()
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
# Gateway metrics
# ---------------------------------------------------------------------------

GATEWAY_DENIALS_TOTAL = Counter(
    "consent_banner_gateway_denials_total",
    "Requests rejected by a gateway pipeline stage.",
    labelnames=["stage", "code"],
    registry=REGISTRY,
)

CSRF_TOKENS_ISSUED_TOTAL = Counter(
    "consent_banner_csrf_tokens_issued_total",
    "CSRF tokens minted by GET /api/csrf-token.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Asset cache metrics
# ---------------------------------------------------------------------------

ASSET_RELOADS_TOTAL = Counter(
    "consent_banner_asset_reloads_total",
    "Asset cache reload attempts by outcome.",
    labelnames=["outcome"],
    registry=REGISTRY,
)

ASSET_VERSION = Gauge(
    "consent_banner_asset_version",
    "Version stamp of the asset snapshot currently served.",
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
