"""Security response headers.

Every response gets a strict Content-Security-Policy and the usual
hardening headers. API responses are additionally marked uncacheable.
Headers that fingerprint the server stack are dropped.
"""
from __future__ import annotations

from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

API_PREFIX = '/api/'

STATIC_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'X-XSS-Protection': '1; mode=block',
    'Referrer-Policy': 'no-referrer',
    'Cross-Origin-Resource-Policy': 'cross-origin',
    'Cross-Origin-Opener-Policy': 'same-origin',
}

NO_STORE_HEADERS = {
    'Cache-Control': 'no-store, no-cache, must-revalidate, proxy-revalidate',
    'Pragma': 'no-cache',
    'Expires': '0',
}

STRIPPED_HEADERS = ('server', 'x-powered-by')


def build_csp(connect_src: Iterable[str] = ()) -> str:
    """Render the Content-Security-Policy header value."""
    connect = ' '.join(["'self'", *connect_src])
    directives = [
        ("default-src", "'self'"),
        ("script-src", "'self' 'unsafe-inline'"),
        ("style-src", "'self' 'unsafe-inline'"),
        ("img-src", "'self' data: https:"),
        ("connect-src", connect),
        ("font-src", "'self' https:"),
        ("object-src", "'none'"),
        ("media-src", "'none'"),
        ("frame-src", "'none'"),
        ("base-uri", "'self'"),
        ("form-action", "'self'"),
        ("frame-ancestors", "'none'"),
    ]
    return '; '.join(f'{name} {value}' for name, value in directives)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers to every HTTP response."""

    def __init__(self, app: ASGIApp, connect_src: Iterable[str] = ()) -> None:
        super().__init__(app)
        self.csp = build_csp(connect_src)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        response = await call_next(request)

        headers = response.headers
        headers['Content-Security-Policy'] = self.csp
        for name, value in STATIC_HEADERS.items():
            headers[name] = value
        if request.url.path.startswith(API_PREFIX):
            for name, value in NO_STORE_HEADERS.items():
                headers[name] = value
        for name in STRIPPED_HEADERS:
            if name in headers:
                del headers[name]
        return response
