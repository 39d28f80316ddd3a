"""Security and asset-integrity gateway for the consent banner."""
from .app import create_app
from .asset_cache import (
    AssetCacheEntry,
    AssetIntegrityCache,
    AssetKind,
    AssetLoadError,
    AssetSnapshot,
    FileAssetSource,
    compute_integrity,
)
from .config import ConfigValidationError, GatewayConfig
from .csrf import CsrfError, CsrfTokenService
from .errors import ErrorCode, GatewayError
from .installation_code import generate_installation_code, safe_json
from .origin_validator import OriginValidator, ValidationResult, match_origin
from .rate_limiter import FixedWindowCounter, RateLimitConfig, rate_limit_key
from .schemas import BannerConfig

__all__ = [
    'AssetCacheEntry',
    'AssetIntegrityCache',
    'AssetKind',
    'AssetLoadError',
    'AssetSnapshot',
    'BannerConfig',
    'ConfigValidationError',
    'CsrfError',
    'CsrfTokenService',
    'ErrorCode',
    'FileAssetSource',
    'FixedWindowCounter',
    'GatewayConfig',
    'GatewayError',
    'OriginValidator',
    'RateLimitConfig',
    'ValidationResult',
    'compute_integrity',
    'create_app',
    'generate_installation_code',
    'match_origin',
    'rate_limit_key',
    'safe_json',
]
