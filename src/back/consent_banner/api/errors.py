"""Stable error codes and browser-safe error envelopes for the gateway.

Every rejection the gateway produces carries a machine-readable ``error``
code and a safe human message. Internal details (stack traces, secrets,
which CSRF check failed) stay in server-side logs.

Envelope::

    {"error": "CSRF_INVALID", "message": "CSRF token validation failed"}
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

if TYPE_CHECKING:
    from fastapi import FastAPI

    from .config import GatewayConfig

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Machine-readable error codes returned to callers."""

    ORIGIN_REJECTED = 'ORIGIN_REJECTED'
    CSRF_INVALID = 'CSRF_INVALID'
    RATE_LIMITED = 'RATE_LIMITED'
    ASSET_LOAD_FAILED = 'ASSET_LOAD_FAILED'
    CONFIG_VALIDATION_FAILED = 'CONFIG_VALIDATION_FAILED'
    SERVICE_NOT_READY = 'SERVICE_NOT_READY'
    PAYLOAD_TOO_LARGE = 'PAYLOAD_TOO_LARGE'
    NOT_FOUND = 'NOT_FOUND'
    INTERNAL_ERROR = 'INTERNAL_ERROR'


# Safe messages shown to callers.
CSRF_FAILED_MESSAGE = 'CSRF token validation failed'
RATE_LIMIT_MESSAGE = 'Too many requests'
INTERNAL_MESSAGE = 'Internal server error occurred'


def error_body(
    code: ErrorCode,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the JSON error envelope."""
    body: dict[str, Any] = {'error': code.value, 'message': message}
    if details:
        body['details'] = details
    return body


class GatewayError(Exception):
    """Base class for errors surfaced to callers with a stable code."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message
        self.details = details
        self.headers = headers or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return error_body(self.code, self.message, self.details)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.http_status,
            content=self.to_dict(),
            headers=self.headers,
        )


class OriginRejected(GatewayError):
    code = ErrorCode.ORIGIN_REJECTED
    http_status = 403


class CsrfInvalid(GatewayError):
    code = ErrorCode.CSRF_INVALID
    http_status = 403

    def __init__(self) -> None:
        super().__init__(CSRF_FAILED_MESSAGE)


class RateLimited(GatewayError):
    code = ErrorCode.RATE_LIMITED
    http_status = 429

    def __init__(self, *, headers: dict[str, str] | None = None) -> None:
        super().__init__(RATE_LIMIT_MESSAGE, headers=headers)


class ServiceNotReady(GatewayError):
    """Asset cache has never been populated."""

    code = ErrorCode.SERVICE_NOT_READY
    http_status = 503

    def __init__(self, message: str = 'Banner assets are not loaded') -> None:
        super().__init__(message)


class PayloadTooLarge(GatewayError):
    code = ErrorCode.PAYLOAD_TOO_LARGE
    http_status = 413

    def __init__(self, limit: int) -> None:
        super().__init__(
            'The request body exceeds the maximum allowed size',
            details={'max_bytes': limit},
        )


def _validation_details(exc: RequestValidationError) -> dict[str, Any]:
    # Input values are not echoed back.
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get('loc', ()) if part != 'body']
        fields.append({'field': '.'.join(loc), 'message': err.get('msg', '')})
    return {'fields': fields}


def install_exception_handlers(app: 'FastAPI', config: 'GatewayConfig') -> None:
    """Register the gateway error envelope on a FastAPI app."""

    async def handle_gateway_error(request: Request, exc: GatewayError):
        return exc.to_response()

    async def handle_validation_error(
        request: Request, exc: RequestValidationError,
    ):
        return JSONResponse(
            status_code=400,
            content=error_body(
                ErrorCode.CONFIG_VALIDATION_FAILED,
                'Validation failed',
                _validation_details(exc),
            ),
        )

    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content=error_body(
                    ErrorCode.NOT_FOUND,
                    f"The requested resource '{request.url.path}' was not found",
                ),
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={'error': f'HTTP_{exc.status_code}', 'message': str(exc.detail)},
            headers=getattr(exc, 'headers', None),
        )

    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception('Unhandled error on %s %s', request.method, request.url.path)
        message = INTERNAL_MESSAGE if config.is_production else str(exc)
        return JSONResponse(
            status_code=500,
            content=error_body(ErrorCode.INTERNAL_ERROR, message),
        )

    app.add_exception_handler(GatewayError, handle_gateway_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected)
