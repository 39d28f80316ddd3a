"""Observability infrastructure for the consent banner service.

Provides structured logging, Prometheus metrics, and request-ID
correlation middleware.

Quick start::

    from consent_banner.observability import configure_logging, get_logger
    from consent_banner.observability.middleware import (
        MetricsMiddleware,
        RequestIdMiddleware,
        RequestLoggingMiddleware,
    )
    from consent_banner.observability.metrics import metrics_text

    configure_logging()
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import configure_logging, get_logger, register_secrets, request_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "register_secrets",
    "request_id_ctx",
]
