"""Fixed-window rate limiting for the API surface.

Requests are bucketed by ``rate_limit_key(ip, path)`` and counted per
fixed window (15 minutes, 100 requests by default). Windows start at
multiples of the window length, so every key resets at the same boundary.
Static asset delivery is never rate limited.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from threading import Lock

from starlette.requests import Request

logger = logging.getLogger(__name__)

UNKNOWN = 'unknown'


def rate_limit_key(ip: str | None, path: str | None) -> str:
    """Derive the limiter bucket key for a client and route.

    Missing parts collapse to ``'unknown'`` so the limiter still works,
    just coarsely, when the client address cannot be determined.
    """
    return f'{ip or UNKNOWN}-{path or UNKNOWN}'


def client_ip(request: Request, *, trust_proxy: bool = False) -> str | None:
    """Best-effort client address for rate limiting.

    With ``trust_proxy`` the first ``X-Forwarded-For`` hop wins; otherwise
    the socket peer is used.
    """
    if trust_proxy:
        forwarded_for = request.headers.get('x-forwarded-for', '')
        first_hop = forwarded_for.split(',')[0].strip()
        if first_hop:
            return first_hop
    if request.client is not None and request.client.host:
        return request.client.host
    return None


@dataclass(frozen=True)
class RateLimitConfig:
    """Configuration for a fixed-window limit."""
    max_requests: int = 100
    window_seconds: float = 15 * 60


@dataclass(frozen=True)
class RateLimitStatus:
    """Counter state after a hit."""
    limit: int
    remaining: int
    reset_at: float

    def reset_after(self, now: float) -> int:
        return max(1, math.ceil(self.reset_at - now))

    def headers(self, now: float) -> dict[str, str]:
        return {
            'RateLimit-Limit': str(self.limit),
            'RateLimit-Remaining': str(self.remaining),
            'RateLimit-Reset': str(self.reset_after(now)),
        }


class RateLimitExceeded(Exception):
    """Raised when a key has used up its window."""

    def __init__(self, key: str, status: RateLimitStatus, retry_after: int):
        self.key = key
        self.status = status
        self.retry_after = retry_after
        super().__init__(
            f'Rate limit exceeded for {key}: '
            f'{status.limit} requests per window. Retry after {retry_after}s'
        )


class FixedWindowCounter:
    """Thread-safe fixed-window counter keyed by ``rate_limit_key``."""

    def __init__(self, config: RateLimitConfig | None = None):
        self.config = config or RateLimitConfig()
        self._counts: dict[str, tuple[float, int]] = {}
        self._lock = Lock()

    def _window_start(self, now: float) -> float:
        window = self.config.window_seconds
        return now - (now % window)

    def hit(self, key: str, now: float | None = None) -> RateLimitStatus:
        """Count one request for ``key``.

        Raises:
            RateLimitExceeded: If the key already used its window.
        """
        now = now if now is not None else time.time()
        window_start = self._window_start(now)
        reset_at = window_start + self.config.window_seconds
        limit = self.config.max_requests

        with self._lock:
            started, count = self._counts.get(key, (window_start, 0))
            if started != window_start:
                count = 0
            if count >= limit:
                status = RateLimitStatus(limit=limit, remaining=0, reset_at=reset_at)
                raise RateLimitExceeded(key, status, status.reset_after(now))
            count += 1
            self._counts[key] = (window_start, count)
            self._prune(window_start)

        return RateLimitStatus(
            limit=limit, remaining=max(0, limit - count), reset_at=reset_at,
        )

    def _prune(self, window_start: float) -> None:
        # Caller holds the lock.
        if len(self._counts) < 10_000:
            return
        stale = [k for k, (started, _) in self._counts.items() if started != window_start]
        for k in stale:
            del self._counts[k]

    def current_count(self, key: str, now: float | None = None) -> int:
        """Return the request count for ``key`` in the current window."""
        now = now if now is not None else time.time()
        with self._lock:
            started, count = self._counts.get(key, (None, 0))
        return count if started == self._window_start(now) else 0

    def reset(self, key: str) -> None:
        with self._lock:
            self._counts.pop(key, None)

    def reset_all(self) -> None:
        with self._lock:
            self._counts.clear()
