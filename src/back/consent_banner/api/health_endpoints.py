"""Dependency health tracking behind ``GET /api/health``.

The only critical dependency is the asset cache:
  - unknown until the first load attempt,
  - healthy once a snapshot is published,
  - degraded when a later manual reload fails (the last good snapshot is
    still served),
  - unhealthy when nothing can be served.

The endpoint returns 503 only when a critical dependency is unhealthy or
unknown, so load balancers keep a degraded instance in rotation.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)

ASSET_CACHE_DEPENDENCY = 'asset_cache'


class DependencyStatus(str, Enum):
    """Status of a single dependency."""
    HEALTHY = 'healthy'
    DEGRADED = 'degraded'
    UNHEALTHY = 'unhealthy'
    UNKNOWN = 'unknown'


@dataclass
class DependencyState:
    """Current state of a dependency check."""
    name: str
    status: DependencyStatus = DependencyStatus.UNKNOWN
    message: str = ''
    last_check_ts: float = 0.0
    critical: bool = True  # If True, unhealthy blocks readiness.

    def mark_healthy(self, message: str = '', now: float | None = None) -> None:
        self.status = DependencyStatus.HEALTHY
        self.message = message
        self.last_check_ts = now or time.time()

    def mark_degraded(self, message: str = '', now: float | None = None) -> None:
        self.status = DependencyStatus.DEGRADED
        self.message = message
        self.last_check_ts = now or time.time()

    def mark_unhealthy(self, message: str = '', now: float | None = None) -> None:
        self.status = DependencyStatus.UNHEALTHY
        self.message = message
        self.last_check_ts = now or time.time()


class HealthRegistry:
    """Registry of dependency health states."""

    def __init__(self) -> None:
        self._deps: dict[str, DependencyState] = {}

    def register(
        self,
        name: str,
        *,
        critical: bool = True,
        initial_status: DependencyStatus = DependencyStatus.UNKNOWN,
    ) -> DependencyState:
        """Register a dependency for health tracking."""
        state = DependencyState(
            name=name, critical=critical, status=initial_status,
        )
        self._deps[name] = state
        return state

    def get(self, name: str) -> DependencyState | None:
        return self._deps.get(name)

    @property
    def all_deps(self) -> list[DependencyState]:
        return list(self._deps.values())

    def is_ready(self) -> bool:
        """True unless a critical dependency is unhealthy or unknown."""
        for dep in self._deps.values():
            if not dep.critical:
                continue
            if dep.status in (DependencyStatus.UNHEALTHY, DependencyStatus.UNKNOWN):
                return False
        return True

    def overall_status(self) -> DependencyStatus:
        if not self.is_ready():
            return DependencyStatus.UNHEALTHY
        if any(d.status is not DependencyStatus.HEALTHY for d in self._deps.values()):
            return DependencyStatus.DEGRADED
        return DependencyStatus.HEALTHY

    def health_response(
        self,
        *,
        version: int | None = None,
        now: float | None = None,
    ) -> tuple[int, dict]:
        """Build the /api/health response (status_code, body)."""
        status = self.overall_status()
        ts = now if now is not None else time.time()
        body: dict = {
            'status': status.value,
            'timestamp': datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(),
        }
        if version is not None:
            body['version'] = version
        return (200 if self.is_ready() else 503), body


def create_default_registry() -> HealthRegistry:
    """Create a health registry with the asset cache dependency."""
    registry = HealthRegistry()
    registry.register(ASSET_CACHE_DEPENDENCY, critical=True)
    return registry
