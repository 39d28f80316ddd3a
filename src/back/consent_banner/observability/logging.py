"""Structured logging for the consent banner gateway.

structlog renders every event, including records emitted through stdlib
``logging.getLogger(__name__)`` by the gateway modules, through one
processor chain. Each event carries:

- ``request_id`` of the request being handled, if any
- ``service``, ``environment`` and the ``asset_version`` being served
- no CSRF token, ``_csrf`` cookie or reload token values: those are
  replaced with ``[REDACTED]`` before rendering

Usage::

    from consent_banner.observability.logging import configure_logging

    configure_logging(environment="production", secrets=[reload_token])
"""

from __future__ import annotations

import logging
import os
import re
import sys
from contextvars import ContextVar
from typing import Any, Iterable

import structlog

SERVICE_NAME = "consent-banner-gateway"
REDACTED = "[REDACTED]"

# Request-scoped correlation ID, set by RequestIdMiddleware.
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Event keys whose values are never logged.
SENSITIVE_KEYS = frozenset({
    "_csrf",
    "cookie",
    "csrf_token",
    "csrftoken",
    "csrf-token",
    "x-csrf-token",
    "reload_token",
    "x-reload-token",
    "cookie_secret",
})

# Token-shaped values that may show up inside free-text messages.
SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    # _csrf cookie in a Cookie / Set-Cookie header
    re.compile(r"(_csrf=)[^;\s]+"),
    # Signed CSRF token: base64url payload, hex HMAC-SHA256 signature
    re.compile(r"[A-Za-z0-9_-]{16,}\.[a-f0-9]{64}"),
    # Token headers rendered as "Name: value"
    re.compile(r"((?:X-CSRF-Token|CSRF-Token|X-Reload-Token)\s*[:=]\s*)\S+", re.IGNORECASE),
)

# Exact secret values registered at startup; shorter values are ignored.
MIN_SECRET_LENGTH = 8

_configured = False
_secrets: set[str] = set()
_service_context: dict[str, Any] = {"service": SERVICE_NAME}


def set_asset_version(version: int | None) -> None:
    """Record the asset version attached to subsequent log events."""
    if version is None:
        _service_context.pop("asset_version", None)
    else:
        _service_context["asset_version"] = version


def register_secrets(values: Iterable[str | None]) -> None:
    """Redact these exact values wherever they appear in log events."""
    for value in values:
        if value and len(value) >= MIN_SECRET_LENGTH:
            _secrets.add(value)


def redact_text(text: str) -> str:
    for secret in sorted(_secrets, key=len, reverse=True):
        if secret in text:
            text = text.replace(secret, REDACTED)
    for pattern in SECRET_PATTERNS:
        if pattern.groups:
            text = pattern.sub(lambda m: m.group(1) + REDACTED, text)
        else:
            text = pattern.sub(REDACTED, text)
    return text


def _redact_value(key: str, value: Any) -> Any:
    if key.lower() in SENSITIVE_KEYS:
        return REDACTED
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return {k: _redact_value(str(k), v) for k, v in value.items()}
    return value


def redact_secrets(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Scrub CSRF and reload tokens from every field of the event."""
    return {key: _redact_value(key, value) for key, value in event_dict.items()}


def _add_request_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict["request_id"] = rid
    return event_dict


def _add_service_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    for key, value in _service_context.items():
        event_dict.setdefault(key, value)
    return event_dict


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
    environment: str | None = None,
    secrets: Iterable[str | None] = (),
) -> None:
    """Configure structlog and route stdlib logging through it.

    Only the first call takes effect.

    Args:
        level: Log level name. Defaults to LOG_LEVEL or INFO.
        json_output: JSON lines when True, console output when False.
            Defaults to LOG_FORMAT == "json" (the default format).
        environment: Deployment environment attached to every event.
        secrets: Exact values (reload token, cookie secret) to redact.
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json") == "json"
    if environment:
        _service_context["environment"] = environment
    register_secrets(secrets)

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        _add_service_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        redact_secrets,
    ]

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Request completion is logged by RequestLoggingMiddleware.
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
