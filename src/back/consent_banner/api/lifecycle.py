"""Asset loading policy at startup and on manual refresh.

The cache itself never retries. Startup retries a bounded number of times
with a per-attempt timeout and then gives up, which aborts app startup.
A manual refresh never takes the service down: on failure the last good
snapshot keeps being served and the failure is reported through health,
metrics and logs.
"""
from __future__ import annotations

import asyncio
import logging

from ..observability.logging import set_asset_version
from ..observability.metrics import ASSET_RELOADS_TOTAL, ASSET_VERSION
from .asset_cache import AssetIntegrityCache, AssetLoadError, AssetSnapshot, ReloadTicket
from .health_endpoints import ASSET_CACHE_DEPENDENCY, HealthRegistry

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 0.5
DEFAULT_TIMEOUT = 5.0


class AssetLoadTimeout(AssetLoadError):
    """Loading did not finish within the per-attempt timeout."""


async def _reload_with_timeout(
    cache: AssetIntegrityCache, timeout: float,
) -> AssetSnapshot:
    ticket = ReloadTicket()
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(cache.reload, ticket), timeout=timeout,
        )
    except asyncio.TimeoutError:
        # The worker thread keeps running; it must not publish after this.
        published = cache.abandon(ticket)
        if published is not None:
            return published
        raise AssetLoadTimeout(None, f'timed out after {timeout}s')


def _record_success(
    snapshot: AssetSnapshot, health: HealthRegistry | None,
) -> None:
    ASSET_RELOADS_TOTAL.labels(outcome='success').inc()
    ASSET_VERSION.set(snapshot.version)
    set_asset_version(snapshot.version)
    if health is not None:
        dep = health.get(ASSET_CACHE_DEPENDENCY)
        if dep is not None:
            dep.mark_healthy(f'version={snapshot.version}')


async def load_assets_at_startup(
    cache: AssetIntegrityCache,
    health: HealthRegistry | None = None,
    *,
    attempts: int = DEFAULT_ATTEMPTS,
    delay: float = DEFAULT_RETRY_DELAY,
    timeout: float = DEFAULT_TIMEOUT,
) -> AssetSnapshot:
    """Populate the cache before the service accepts traffic.

    At least one attempt is always made.

    Raises:
        AssetLoadError: After the final failed attempt.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            snapshot = await _reload_with_timeout(cache, timeout)
        except AssetLoadError as exc:
            ASSET_RELOADS_TOTAL.labels(outcome='failure').inc()
            logger.warning(
                'Asset load attempt %d/%d failed: %s', attempt, attempts, exc,
            )
            if attempt >= attempts:
                if health is not None:
                    dep = health.get(ASSET_CACHE_DEPENDENCY)
                    if dep is not None:
                        dep.mark_unhealthy(str(exc))
                logger.error('Giving up loading banner assets after %d attempts', attempt)
                raise
            await asyncio.sleep(delay)
        else:
            _record_success(snapshot, health)
            return snapshot


async def refresh_assets(
    cache: AssetIntegrityCache,
    health: HealthRegistry | None = None,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> tuple[AssetSnapshot | None, AssetLoadError | None]:
    """Reload assets on demand, keeping the last good snapshot on failure.

    Returns:
        ``(snapshot, None)`` on success, ``(None, error)`` on failure.
    """
    try:
        snapshot = await _reload_with_timeout(cache, timeout)
    except AssetLoadError as exc:
        ASSET_RELOADS_TOTAL.labels(outcome='failure').inc()
        logger.error(
            'Asset refresh failed, still serving version %s: %s',
            cache.version(), exc,
        )
        if health is not None:
            dep = health.get(ASSET_CACHE_DEPENDENCY)
            if dep is not None:
                if cache.is_ready:
                    dep.mark_degraded(f'refresh failed: {exc.reason}')
                else:
                    dep.mark_unhealthy(str(exc))
        return None, exc

    _record_success(snapshot, health)
    return snapshot, None
