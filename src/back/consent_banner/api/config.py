"""Configuration for the consent banner gateway."""
import logging
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3001
DEFAULT_ALLOWED_ORIGINS = (
    'http://localhost:3000',
    'http://localhost:5173',
    'http://localhost:5174',
)
DEFAULT_CONNECT_SRC = ('http://localhost:*',)
DEFAULT_ASSET_DIR = Path(__file__).resolve().parent.parent / 'assets' / 'banner'

PRODUCTION_ENVIRONMENTS = frozenset({'production', 'prod'})


class ConfigValidationError(ValueError):
    """Raised when the gateway configuration cannot be used."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        formatted = '\n'.join(f'  - {p}' for p in problems)
        super().__init__(f'Gateway configuration is invalid:\n{formatted}')


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(',') if item.strip()]


def _env_flag(name: str) -> bool:
    raw = os.environ.get(name, '').strip().lower()
    return raw in {'1', 'true', 'yes', 'on'}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigValidationError([f'{name} must be an integer, got {raw!r}'])


def _default_environment() -> str:
    return (
        os.environ.get('ENVIRONMENT')
        or os.environ.get('NODE_ENV')
        or 'development'
    ).strip().lower()


def _default_allowed_origins() -> list[str]:
    """Allowed origin patterns, supporting env override."""
    env_origins = _split_csv(os.environ.get('ALLOWED_ORIGINS', ''))
    return env_origins or list(DEFAULT_ALLOWED_ORIGINS)


def _default_port() -> int:
    return _env_int('PORT', DEFAULT_PORT)


def _default_connect_src() -> list[str]:
    env_sources = _split_csv(os.environ.get('CSP_CONNECT_SRC', ''))
    return env_sources or list(DEFAULT_CONNECT_SRC)


@dataclass
class GatewayConfig:
    """Central configuration for the gateway.

    Built once at startup and passed explicitly to every component that
    needs it; nothing reads the environment after construction.
    """
    environment: str = field(default_factory=_default_environment)
    allowed_origins: list[str] = field(default_factory=_default_allowed_origins)
    cookie_secret: str | None = field(
        default_factory=lambda: os.environ.get('COOKIE_SECRET') or None
    )
    port: int = field(default_factory=_default_port)
    # Public base URL embedded into installation snippets.
    api_url: str | None = field(default_factory=lambda: os.environ.get('API_URL') or None)
    asset_dir: Path = field(
        default_factory=lambda: Path(os.environ.get('ASSET_DIR', DEFAULT_ASSET_DIR))
    )
    # Shared secret for POST /internal/assets/reload; route disabled when unset.
    asset_reload_token: str | None = field(
        default_factory=lambda: os.environ.get('ASSET_RELOAD_TOKEN') or None
    )
    trust_proxy: bool = field(default_factory=lambda: _env_flag('TRUST_PROXY'))
    rate_limit_window_minutes: int = field(
        default_factory=lambda: _env_int('RATE_LIMIT_WINDOW_MINUTES', 15)
    )
    rate_limit_max: int = field(default_factory=lambda: _env_int('RATE_LIMIT_MAX', 100))
    csp_connect_src: list[str] = field(default_factory=_default_connect_src)
    max_body_bytes: int = 10 * 1024
    asset_load_attempts: int = 3
    asset_load_timeout_seconds: float = 5.0

    @property
    def is_production(self) -> bool:
        return self.environment in PRODUCTION_ENVIRONMENTS

    @property
    def base_url(self) -> str:
        return (self.api_url or f'http://localhost:{self.port}').rstrip('/')

    def validate_startup(self) -> None:
        """Validate configuration at startup.

        Collects every problem before raising so operators can fix them in
        one pass. Outside production a missing cookie secret is replaced
        with a random per-process secret.

        Raises:
            ConfigValidationError: If any setting is unusable.
        """
        problems = []
        if not self.cookie_secret:
            if self.is_production:
                problems.append('COOKIE_SECRET is required in production')
            else:
                logger.warning(
                    'COOKIE_SECRET not set; using a random per-process secret. '
                    'CSRF tokens will not survive a restart.'
                )
                self.cookie_secret = secrets.token_hex(32)
        elif self.is_production and len(self.cookie_secret) < 32:
            problems.append('COOKIE_SECRET must be at least 32 characters in production')

        if self.rate_limit_window_minutes <= 0:
            problems.append('RATE_LIMIT_WINDOW_MINUTES must be positive')
        if self.rate_limit_max <= 0:
            problems.append('RATE_LIMIT_MAX must be positive')
        if self.asset_load_attempts <= 0:
            problems.append('asset_load_attempts must be positive')
        if self.is_production and '*' in self.allowed_origins:
            problems.append('A bare "*" origin pattern is not allowed in production')

        if problems:
            raise ConfigValidationError(problems)
