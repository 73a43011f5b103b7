"""Observability infrastructure for healthshare.

Provides structured logging, Prometheus metrics, and request-ID
correlation middleware for the share service.

Quick start::

    from healthshare.observability import configure_logging, get_logger
    from healthshare.observability.middleware import (
        MetricsMiddleware,
        RequestIdMiddleware,
        RequestLoggingMiddleware,
    )

    configure_logging()
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import configure_logging, get_logger, request_id_ctx, scrub_share_tokens
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "request_id_ctx",
    "scrub_share_tokens",
]
