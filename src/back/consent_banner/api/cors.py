"""CORS for the API surface, driven by the origin allow-list.

Starlette's ``CORSMiddleware`` only understands exact origins or a single
regex; the allow-list here uses ``*`` wildcard patterns, so origin checks
are delegated to ``OriginValidator``. Public banner assets answer with
their own wildcard ``Access-Control-Allow-Origin`` and bypass this layer.
"""
from __future__ import annotations

from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from .origin_validator import OriginValidator

ALLOWED_METHODS = ('GET', 'POST', 'OPTIONS')
ALLOWED_HEADERS = ('Content-Type', 'X-CSRF-Token', 'CSRF-Token')
EXPOSED_HEADERS = (
    'RateLimit-Limit',
    'RateLimit-Remaining',
    'RateLimit-Reset',
    'Retry-After',
    'X-Request-ID',
)
PREFLIGHT_MAX_AGE = 600
PUBLIC_ASSET_PREFIX = '/banner/'


class OriginCORSMiddleware(CORSMiddleware):
    """``CORSMiddleware`` whose origin check uses wildcard patterns."""

    def __init__(self, app: ASGIApp, validator: OriginValidator) -> None:
        super().__init__(
            app,
            allow_origins=(),
            allow_methods=ALLOWED_METHODS,
            allow_headers=ALLOWED_HEADERS,
            allow_credentials=True,
            expose_headers=EXPOSED_HEADERS,
            max_age=PREFLIGHT_MAX_AGE,
        )
        self.validator = validator

    def is_allowed_origin(self, origin: str) -> bool:
        return bool(origin) and self.validator.is_valid(origin).is_valid

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope['type'] == 'http' and scope['path'].startswith(PUBLIC_ASSET_PREFIX):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)
