"""Application factory for the consent banner gateway."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.responses import Response

from .. import __version__
from ..observability.logging import set_asset_version
from ..observability.metrics import ASSET_VERSION, metrics_text
from ..observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)
from .asset_cache import AssetIntegrityCache
from .config import GatewayConfig
from .cors import OriginCORSMiddleware
from .csrf import CsrfTokenService
from .errors import install_exception_handlers
from .health_endpoints import ASSET_CACHE_DEPENDENCY, HealthRegistry, create_default_registry
from .lifecycle import load_assets_at_startup
from .origin_validator import OriginValidator
from .pipeline import GatewayMiddleware, GatewayPipeline, build_default_pipeline
from .rate_limiter import FixedWindowCounter, RateLimitConfig
from .routes import create_api_router
from .security_headers import SecurityHeadersMiddleware
from .static_routes import create_static_router

logger = logging.getLogger(__name__)


def create_app(
    config: GatewayConfig | None = None,
    cache: AssetIntegrityCache | None = None,
    health: HealthRegistry | None = None,
    counter: FixedWindowCounter | None = None,
    pipeline: GatewayPipeline | None = None,
) -> FastAPI:
    """Create a pre-wired FastAPI application.

    All collaborators are injectable for testing. A cache that is already
    loaded is served as-is; otherwise assets are loaded during startup and
    startup fails if they cannot be read.

    Args:
        config: Gateway configuration. Defaults to environment settings.
        cache: Asset cache. Defaults to the files under ``config.asset_dir``.
        health: Health registry. Defaults to one tracking the asset cache.
        counter: Rate-limit counter. Defaults to the configured window.
        pipeline: Guard pipeline. Defaults to the standard stage order.

    Returns:
        Configured FastAPI application with all routes mounted.

    Raises:
        ConfigValidationError: If the configuration is unusable.
    """
    config = config or GatewayConfig()
    try:
        config.validate_startup()
    except ValueError as e:
        logger.error('Configuration validation failed: %s', e)
        raise

    cache = cache or AssetIntegrityCache.from_directory(config.asset_dir)
    health = health or create_default_registry()
    counter = counter or FixedWindowCounter(RateLimitConfig(
        max_requests=config.rate_limit_max,
        window_seconds=config.rate_limit_window_minutes * 60,
    ))
    validator = OriginValidator(config.allowed_origins)
    csrf_service = CsrfTokenService(
        config.cookie_secret, secure_cookie=config.is_production,
    )
    pipeline = pipeline or build_default_pipeline(
        validator=validator,
        csrf_service=csrf_service,
        counter=counter,
        max_body_bytes=config.max_body_bytes,
        trust_proxy=config.trust_proxy,
    )

    if cache.is_ready:
        dep = health.get(ASSET_CACHE_DEPENDENCY)
        if dep is not None:
            dep.mark_healthy(f'version={cache.version()}')
        ASSET_VERSION.set(cache.version())
        set_asset_version(cache.version())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info('Consent banner gateway startup')
        logger.info('Environment: %s', config.environment)
        logger.info('Allowed origins: %s', ', '.join(validator.patterns))
        logger.info('Gateway stages: %s', ' -> '.join(pipeline.stage_names))
        if not cache.is_ready:
            await load_assets_at_startup(
                cache,
                health,
                attempts=config.asset_load_attempts,
                timeout=config.asset_load_timeout_seconds,
            )
        yield
        logger.info('Consent banner gateway shutdown')

    app = FastAPI(
        title='Consent Banner Gateway',
        description='Serves consent banner assets and installation code',
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.cache = cache
    app.state.health = health
    app.state.pipeline = pipeline

    # Middleware executes in reverse order of registration: the last one
    # added sees the request first.
    app.add_middleware(
        GatewayMiddleware, pipeline=pipeline, max_body_bytes=config.max_body_bytes,
    )
    app.add_middleware(OriginCORSMiddleware, validator=validator)
    app.add_middleware(SecurityHeadersMiddleware, connect_src=config.csp_connect_src)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

    install_exception_handlers(app, config)

    app.include_router(create_api_router(config, cache, csrf_service, health))
    app.include_router(create_static_router(config, cache, health))

    @app.get('/metrics', include_in_schema=False)
    async def prometheus_metrics():
        """Prometheus metrics exposition endpoint."""
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    return app
