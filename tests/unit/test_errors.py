"""Unit tests for error codes and the error envelope handlers."""
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from consent_banner.api.config import GatewayConfig
from consent_banner.api.errors import (
    CsrfInvalid,
    ErrorCode,
    OriginRejected,
    PayloadTooLarge,
    RateLimited,
    ServiceNotReady,
    error_body,
    install_exception_handlers,
)


class Item(BaseModel):
    count: int


def _app(environment):
    app = FastAPI()
    install_exception_handlers(app, GatewayConfig(environment=environment, cookie_secret='x' * 32))

    @app.get('/boom')
    async def boom():
        raise RuntimeError('secret path /etc/cookie-secret')

    @app.get('/not-ready')
    async def not_ready():
        raise ServiceNotReady()

    @app.post('/items')
    async def items(item: Item):
        return item

    return app


def _client(app):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    return AsyncClient(transport=transport, base_url='http://testserver')


class TestErrorBody:

    def test_without_details(self):
        assert error_body(ErrorCode.RATE_LIMITED, 'Too many requests') == {
            'error': 'RATE_LIMITED', 'message': 'Too many requests',
        }

    def test_with_details(self):
        body = error_body(ErrorCode.PAYLOAD_TOO_LARGE, 'big', {'max_bytes': 1})
        assert body['details'] == {'max_bytes': 1}


class TestGatewayErrors:

    @pytest.mark.parametrize('error,status,code', [
        (OriginRejected('Origin x not allowed'), 403, ErrorCode.ORIGIN_REJECTED),
        (CsrfInvalid(), 403, ErrorCode.CSRF_INVALID),
        (RateLimited(), 429, ErrorCode.RATE_LIMITED),
        (ServiceNotReady(), 503, ErrorCode.SERVICE_NOT_READY),
        (PayloadTooLarge(10240), 413, ErrorCode.PAYLOAD_TOO_LARGE),
    ])
    def test_status_and_code(self, error, status, code):
        assert error.http_status == status
        assert error.code is code
        assert error.to_dict()['error'] == code.value

    def test_csrf_message_is_generic(self):
        assert CsrfInvalid().message == 'CSRF token validation failed'

    def test_payload_too_large_details(self):
        assert PayloadTooLarge(10240).to_dict()['details'] == {'max_bytes': 10240}

    def test_response_carries_headers(self):
        response = RateLimited(headers={'Retry-After': '30'}).to_response()
        assert response.status_code == 429
        assert response.headers['retry-after'] == '30'


class TestExceptionHandlers:

    @pytest.mark.asyncio
    async def test_gateway_error(self):
        async with _client(_app('development')) as client:
            response = await client.get('/not-ready')
        assert response.status_code == 503
        assert response.json() == {
            'error': 'SERVICE_NOT_READY', 'message': 'Banner assets are not loaded',
        }

    @pytest.mark.asyncio
    async def test_validation_error_lists_fields_without_input(self):
        async with _client(_app('development')) as client:
            response = await client.post('/items', json={'count': 'many-secret-values'})
        assert response.status_code == 400
        body = response.json()
        assert body['error'] == 'CONFIG_VALIDATION_FAILED'
        assert body['details']['fields'][0]['field'] == 'count'
        assert 'many-secret-values' not in response.text

    @pytest.mark.asyncio
    async def test_not_found(self):
        async with _client(_app('development')) as client:
            response = await client.get('/missing')
        assert response.status_code == 404
        assert response.json()['error'] == 'NOT_FOUND'

    @pytest.mark.asyncio
    async def test_method_not_allowed(self):
        async with _client(_app('development')) as client:
            response = await client.delete('/items')
        assert response.status_code == 405
        assert response.json()['error'] == 'HTTP_405'

    @pytest.mark.asyncio
    async def test_internal_error_detail_outside_production(self):
        async with _client(_app('development')) as client:
            response = await client.get('/boom')
        assert response.status_code == 500
        assert response.json() == {
            'error': 'INTERNAL_ERROR', 'message': 'secret path /etc/cookie-secret',
        }

    @pytest.mark.asyncio
    async def test_internal_error_generic_in_production(self):
        async with _client(_app('production')) as client:
            response = await client.get('/boom')
        assert response.status_code == 500
        assert response.json() == {
            'error': 'INTERNAL_ERROR', 'message': 'Internal server error occurred',
        }
        assert 'cookie-secret' not in response.text
