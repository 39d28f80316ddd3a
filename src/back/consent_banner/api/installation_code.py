"""Installation snippet generation.

The snippet loads the banner stylesheet and script from this service with
SRI hashes and a cache-busting version, then calls the widget's ``init``
with the caller's configuration. Output depends only on the inputs, so the
same configuration and snapshot always produce byte-identical markup.
"""
from __future__ import annotations

import json
from typing import Any

from .asset_cache import AssetSnapshot

SCRIPT_PATH = '/banner/consent-banner.js'
STYLE_PATH = '/banner/consent-banner.css'
WIDGET_INIT = 'window.CookieConsentBanner.init'

# Sequences that could end the surrounding <script> element or break out of
# a JS string literal.
_UNSAFE_JSON_CHARS = {
    '<': '\\u003c',
    '>': '\\u003e',
    '&': '\\u0026',
    '\u2028': '\\u2028',
    '\u2029': '\\u2029',
}

_TEMPLATE = """\
<!-- Consent Banner -->
<script>
  (function() {{
    var script = document.createElement('script');
    script.src = {script_src};
    script.integrity = {script_integrity};
    script.crossOrigin = "anonymous";

    var style = document.createElement('link');
    style.rel = "stylesheet";
    style.href = {style_href};
    style.integrity = {style_integrity};
    style.crossOrigin = "anonymous";

    script.onload = function() {{
      {init}({config});
    }};

    document.head.appendChild(style);
    document.body.appendChild(script);
  }})();
</script>"""


def safe_json(value: Any) -> str:
    """Serialize ``value`` as JSON that is safe to inline in a <script>."""
    encoded = json.dumps(value, ensure_ascii=False, separators=(',', ':'))
    for char, escape in _UNSAFE_JSON_CHARS.items():
        encoded = encoded.replace(char, escape)
    return encoded


def asset_url(base_url: str, path: str, version: int) -> str:
    return f'{base_url.rstrip("/")}{path}?v={version}'


def generate_installation_code(
    config: dict[str, Any],
    snapshot: AssetSnapshot,
    version: int,
    base_url: str,
) -> str:
    """Build the HTML snippet a site owner pastes into their page.

    Args:
        config: Validated, fully-resolved widget configuration.
        snapshot: Asset snapshot supplying the integrity hashes.
        version: Version stamp used for cache busting.
        base_url: Public URL of this service.
    """
    return _TEMPLATE.format(
        script_src=safe_json(asset_url(base_url, SCRIPT_PATH, version)),
        script_integrity=safe_json(snapshot.js.integrity),
        style_href=safe_json(asset_url(base_url, STYLE_PATH, version)),
        style_integrity=safe_json(snapshot.css.integrity),
        init=WIDGET_INIT,
        config=safe_json(config),
    )
