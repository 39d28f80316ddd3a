"""Unit tests for security headers and origin-aware CORS."""
import pytest
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from httpx import ASGITransport, AsyncClient

from consent_banner.api.cors import OriginCORSMiddleware
from consent_banner.api.origin_validator import OriginValidator
from consent_banner.api.security_headers import SecurityHeadersMiddleware, build_csp


class TestBuildCsp:

    def test_default_policy(self):
        assert build_csp() == (
            "default-src 'self'; "
            "script-src 'self' 'unsafe-inline'; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data: https:; "
            "connect-src 'self'; "
            "font-src 'self' https:; "
            "object-src 'none'; "
            "media-src 'none'; "
            "frame-src 'none'; "
            "base-uri 'self'; "
            "form-action 'self'; "
            "frame-ancestors 'none'"
        )

    def test_connect_sources_appended(self):
        csp = build_csp(['http://localhost:*', 'https://api.example.com'])
        assert "connect-src 'self' http://localhost:* https://api.example.com;" in csp


@pytest.fixture
def app():
    app = FastAPI()
    app.add_middleware(
        OriginCORSMiddleware,
        validator=OriginValidator(['https://*.example.com']),
    )
    app.add_middleware(SecurityHeadersMiddleware, connect_src=['https://api.example.com'])

    @app.get('/api/thing')
    async def api_thing():
        return PlainTextResponse('ok', headers={'X-Powered-By': 'Express', 'Server': 'leaky/1.0'})

    @app.get('/banner/thing.js')
    async def asset():
        return PlainTextResponse(
            'js', headers={'Cache-Control': 'public, max-age=86400, immutable'},
        )

    return app


def _client(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url='http://testserver')


class TestSecurityHeadersMiddleware:

    @pytest.mark.asyncio
    async def test_fingerprint_headers_removed(self, app):
        async with _client(app) as client:
            response = await client.get('/api/thing')
        assert 'x-powered-by' not in response.headers
        assert 'server' not in response.headers

    @pytest.mark.asyncio
    async def test_api_no_store(self, app):
        async with _client(app) as client:
            response = await client.get('/api/thing')
        assert response.headers['cache-control'].startswith('no-store')
        assert response.headers['expires'] == '0'

    @pytest.mark.asyncio
    async def test_asset_cache_control_preserved(self, app):
        async with _client(app) as client:
            response = await client.get('/banner/thing.js')
        assert response.headers['cache-control'] == 'public, max-age=86400, immutable'
        assert 'pragma' not in response.headers
        assert response.headers['cross-origin-opener-policy'] == 'same-origin'
        assert response.headers['x-xss-protection'] == '1; mode=block'


class TestOriginCORSMiddleware:

    def test_is_allowed_origin_uses_patterns(self):
        middleware = OriginCORSMiddleware(FastAPI(), OriginValidator(['https://*.example.com']))
        assert middleware.is_allowed_origin('https://a.example.com')
        assert not middleware.is_allowed_origin('https://example.org')
        assert not middleware.is_allowed_origin('')

    @pytest.mark.asyncio
    async def test_wildcard_origin_echoed(self, app):
        async with _client(app) as client:
            response = await client.get('/api/thing', headers={'Origin': 'https://a.b.example.com'})
        assert response.headers['access-control-allow-origin'] == 'https://a.b.example.com'
        assert response.headers['access-control-allow-credentials'] == 'true'

    @pytest.mark.asyncio
    async def test_unlisted_origin_not_echoed(self, app):
        async with _client(app) as client:
            response = await client.get('/api/thing', headers={'Origin': 'https://evil.test'})
        assert 'access-control-allow-origin' not in response.headers

    @pytest.mark.asyncio
    async def test_preflight_rejects_unknown_header(self, app):
        async with _client(app) as client:
            response = await client.options('/api/thing', headers={
                'Origin': 'https://a.example.com',
                'Access-Control-Request-Method': 'POST',
                'Access-Control-Request-Headers': 'X-Custom-Thing',
            })
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_public_assets_bypass(self, app):
        async with _client(app) as client:
            response = await client.get('/banner/thing.js', headers={'Origin': 'https://a.example.com'})
        assert 'access-control-allow-origin' not in response.headers
        assert 'access-control-allow-credentials' not in response.headers
