"""Banner asset delivery and the operator reload hook.

Assets are served straight from the published snapshot, so the bytes on
the wire always match the integrity hashes handed out by
``/api/generate`` for the same version.
"""
from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from .asset_cache import AssetIntegrityCache, AssetKind
from .config import GatewayConfig
from .errors import ErrorCode, ServiceNotReady, error_body
from .health_endpoints import HealthRegistry
from .lifecycle import refresh_assets

logger = logging.getLogger(__name__)

ASSET_CACHE_CONTROL = 'public, max-age=86400, immutable'
RELOAD_TOKEN_HEADER = 'X-Reload-Token'

MEDIA_TYPES = {
    AssetKind.JS: 'application/javascript',
    AssetKind.CSS: 'text/css',
}


def _asset_response(cache: AssetIntegrityCache, kind: AssetKind, request: Request) -> Response:
    snapshot = cache.snapshot()
    if snapshot is None:
        raise ServiceNotReady()

    entry = snapshot.entry(kind)
    etag = f'"{snapshot.version}"'
    headers = {
        'Cache-Control': ASSET_CACHE_CONTROL,
        'ETag': etag,
        'X-Asset-Version': str(snapshot.version),
        'Access-Control-Allow-Origin': '*',
    }
    if request.headers.get('if-none-match') == etag:
        return Response(status_code=304, headers=headers)
    return Response(
        content=entry.content,
        media_type=MEDIA_TYPES[kind],
        headers=headers,
    )


def create_static_router(
    config: GatewayConfig,
    cache: AssetIntegrityCache,
    health: HealthRegistry,
) -> APIRouter:
    """Create the router for banner assets and ``/internal/assets/reload``."""
    router = APIRouter(tags=['assets'])

    @router.get('/banner/consent-banner.js')
    async def banner_script(request: Request):
        return _asset_response(cache, AssetKind.JS, request)

    @router.get('/banner/consent-banner.css')
    async def banner_stylesheet(request: Request):
        return _asset_response(cache, AssetKind.CSS, request)

    @router.post('/internal/assets/reload')
    async def reload_assets(request: Request):
        """Re-read the assets from disk and publish a new version.

        Disabled (404) unless a reload token is configured.
        """
        expected = config.asset_reload_token
        if not expected:
            raise HTTPException(status_code=404)
        supplied = request.headers.get(RELOAD_TOKEN_HEADER, '')
        if not hmac.compare_digest(supplied.encode(), expected.encode()):
            logger.warning('Rejected asset reload with invalid token')
            raise HTTPException(status_code=403, detail='Invalid reload token')

        snapshot, error = await refresh_assets(
            cache, health, timeout=config.asset_load_timeout_seconds,
        )
        if error is not None:
            return JSONResponse(
                status_code=503,
                content=error_body(
                    ErrorCode.ASSET_LOAD_FAILED,
                    str(error),
                    {'version': cache.version()},
                ),
            )
        return {'reloaded': True, 'version': snapshot.version}

    return router
