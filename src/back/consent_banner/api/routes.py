"""Public API routes: health, CSRF token issuance, installation code."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..observability.metrics import CSRF_TOKENS_ISSUED_TOTAL
from .asset_cache import AssetIntegrityCache
from .config import GatewayConfig
from .csrf import CsrfTokenService
from .errors import ServiceNotReady
from .health_endpoints import HealthRegistry
from .installation_code import generate_installation_code
from .schemas import BannerConfig, CsrfTokenResponse, GenerateResponse

logger = logging.getLogger(__name__)


def create_api_router(
    config: GatewayConfig,
    cache: AssetIntegrityCache,
    csrf_service: CsrfTokenService,
    health: HealthRegistry,
) -> APIRouter:
    """Create the ``/api`` router.

    Args:
        config: Gateway configuration (supplies the public base URL).
        cache: Asset cache the installation code is generated from.
        csrf_service: Token service shared with the gateway pipeline.
        health: Registry reported by ``/api/health``.
    """
    router = APIRouter(prefix='/api', tags=['api'])

    @router.get('/health')
    async def health_check():
        """Service health and the asset version being served."""
        status_code, body = health.health_response(version=cache.version())
        return JSONResponse(status_code=status_code, content=body)

    @router.get('/csrf-token', response_model=CsrfTokenResponse)
    async def issue_csrf_token(request: Request):
        """Issue a CSRF token and bind it to the session cookie.

        A browser that still holds a valid cookie keeps its session id.
        """
        cookie = csrf_service.cookie
        session_id = csrf_service.session_id_from_cookie(request.cookies.get(cookie.name))
        issued = csrf_service.issue(session_id)
        CSRF_TOKENS_ISSUED_TOTAL.inc()

        response = JSONResponse(content={'csrfToken': issued.token})
        response.set_cookie(
            key=cookie.name,
            value=issued.token,
            max_age=issued.max_age,
            path=cookie.path,
            httponly=cookie.httponly,
            samesite=cookie.samesite,
            secure=cookie.secure,
        )
        return response

    @router.post('/generate', response_model=GenerateResponse)
    async def generate(banner: BannerConfig):
        """Generate the installation snippet for a banner configuration."""
        snapshot = cache.snapshot()
        if snapshot is None:
            raise ServiceNotReady()

        code = generate_installation_code(
            banner.to_widget_config(),
            snapshot,
            snapshot.version,
            config.base_url,
        )
        logger.info('Generated installation code for asset version %s', snapshot.version)
        return GenerateResponse(installationCode=code, version=snapshot.version)

    return router
