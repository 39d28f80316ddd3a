"""Pytest configuration for consent_banner tests."""
import sys
from pathlib import Path

# Add src/back to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC_BACK = _PROJECT_ROOT / 'src' / 'back'
if str(_SRC_BACK) not in sys.path:
    sys.path.insert(0, str(_SRC_BACK))

import pytest

from consent_banner.api.asset_cache import AssetIntegrityCache
from consent_banner.api.config import GatewayConfig

NOW = 1700000000.0
COOKIE_SECRET = 'test-cookie-secret-that-is-long-enough-0123456789'
RELOAD_TOKEN = 'reload-secret'
ALLOWED_ORIGINS = ['https://app.example.com', 'https://*.example.com']

BANNER_JS = b"window.CookieConsentBanner = { init: function(config) {} };\n"
BANNER_CSS = b".cb-consent-banner { position: fixed; }\n"


@pytest.fixture
def asset_dir(tmp_path):
    """Create a temporary asset directory with both banner assets."""
    directory = tmp_path / 'banner'
    directory.mkdir()
    (directory / 'consent-banner.js').write_bytes(BANNER_JS)
    (directory / 'consent-banner.css').write_bytes(BANNER_CSS)
    return directory


@pytest.fixture
def cache(asset_dir):
    """A cache that has already published one snapshot."""
    cache = AssetIntegrityCache.from_directory(asset_dir)
    cache.reload()
    return cache


@pytest.fixture
def config(asset_dir):
    return GatewayConfig(
        environment='test',
        allowed_origins=list(ALLOWED_ORIGINS),
        cookie_secret=COOKIE_SECRET,
        port=3001,
        api_url='https://cdn.example.com',
        asset_dir=asset_dir,
        asset_reload_token=RELOAD_TOKEN,
        trust_proxy=False,
        rate_limit_window_minutes=15,
        rate_limit_max=100,
        csp_connect_src=['http://localhost:*'],
    )


@pytest.fixture
def banner_js():
    return BANNER_JS


@pytest.fixture
def banner_css():
    return BANNER_CSS
