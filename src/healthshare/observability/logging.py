"""Structured logging for the share service.

structlog renders every event as one JSON line (or a console line for
local work) on stdout, tagged with the request id of the HTTP request
that produced it.

Share tokens are bearer credentials. Callers log ``token_prefix`` via
``redact_token``, and as a backstop ``scrub_share_tokens`` runs over
every string field of every event (exception text included), cutting
anything shaped like a share token down to its 8-char prefix.

Usage::

    from healthshare.observability.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_output=True)  # once, from create_app
    logger = get_logger(__name__)
    logger.info("share_accessed", grant_id="shr_1", token_prefix="abcd1234...")
"""

from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar
from typing import Any

import structlog

# Correlation id of the request being served, set by RequestIdMiddleware.
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# secrets.token_urlsafe(32) yields exactly 43 URL-safe characters. Grant
# ids (36), token hashes (64) and uuid hex (32) never match.
_SHARE_TOKEN_RE = re.compile(
    r"(?<![A-Za-z0-9_-])([A-Za-z0-9_-]{8})[A-Za-z0-9_-]{35}(?![A-Za-z0-9_-])"
)

_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")

_configured = False


def scrub_share_tokens(text: str) -> str:
    """Replace every share-token-shaped run in ``text`` with its prefix."""
    return _SHARE_TOKEN_RE.sub(r"\1...", text)


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return scrub_share_tokens(value)
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v) for v in value)
    return value


def _scrub_tokens(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    return {key: _scrub(value) for key, value in event_dict.items()}


def _add_request_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict["request_id"] = rid
    return event_dict


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = True,
    force: bool = False,
) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Only the first call takes effect unless ``force`` is set, so building
    several apps in one process keeps a single handler.
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_request_id,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _scrub_tokens,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            # Records from stdlib loggers (uvicorn) get scrubbed here too.
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                _scrub_tokens,
            ],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
