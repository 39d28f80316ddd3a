"""Pydantic schemas for banner configuration and API responses.

``BannerConfig`` is validated at the request boundary; the installation
code generator only ever sees instances that already passed. Field names
are snake_case in Python and camelCase on the wire, matching the widget's
``init()`` options.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CONSENT_NAME_PATTERN = r'^[A-Za-z0-9_-]{1,50}$'
URL_PATTERN = r'^https?://.+'
HEX_COLOR_PATTERN = r'^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$'

DEFAULT_COOKIE_DURATION = 365
DEFAULT_CONSENT_NAME = '_cb_consent'
DEFAULT_DETAILED_TEXT = (
    'Click "Accept" to enable cookies or "Preferences" to choose which '
    'cookies to enable.'
)
DEFAULT_ACCEPT_TEXT = 'Accept All'
DEFAULT_REJECT_TEXT = 'Reject All'
DEFAULT_PREFERENCES_TEXT = 'Preferences'

StorageType = Literal['localStorage', 'cookie']
BannerPosition = Literal[
    'top', 'bottom', 'top-left', 'top-right', 'bottom-left', 'bottom-right',
]
ThemeMode = Literal['light', 'dark', 'custom']


class _WidgetModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='forbid',
    )


class CategoryConfig(_WidgetModel):
    """One consent category shown in the preferences dialog."""
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default='', max_length=500)
    required: bool = False
    vendors: list[str] | None = None


class VendorConfig(_WidgetModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=500)
    privacy_policy: str = Field(pattern=URL_PATTERN, max_length=2048)


class ThemeColors(_WidgetModel):
    primary: str = Field(pattern=HEX_COLOR_PATTERN)
    background: str = Field(pattern=HEX_COLOR_PATTERN)
    text: str = Field(pattern=HEX_COLOR_PATTERN)


class ThemeConfig(_WidgetModel):
    colors: ThemeColors | None = None
    position: BannerPosition | None = None
    mode: ThemeMode | None = None


class BannerConfig(_WidgetModel):
    """Caller-supplied banner configuration, defaults applied."""
    storage_type: StorageType
    cookie_duration: int = Field(default=DEFAULT_COOKIE_DURATION, ge=1, le=365)
    consent_name: str = Field(default=DEFAULT_CONSENT_NAME, pattern=CONSENT_NAME_PATTERN)
    auto_show: bool = True
    force_show: bool = False
    privacy_policy_url: str | None = Field(
        default=None, pattern=URL_PATTERN, max_length=2048,
    )
    text: str = Field(min_length=1, max_length=500)
    detailed_text: str = Field(default=DEFAULT_DETAILED_TEXT, max_length=500)
    accept_button_text: str = Field(default=DEFAULT_ACCEPT_TEXT, min_length=1, max_length=50)
    reject_button_text: str = Field(default=DEFAULT_REJECT_TEXT, min_length=1, max_length=50)
    preferences_button_text: str = Field(
        default=DEFAULT_PREFERENCES_TEXT, min_length=1, max_length=50,
    )
    categories: dict[str, CategoryConfig]
    vendors: dict[str, VendorConfig] | None = None
    theme: ThemeConfig | None = None

    def to_widget_config(self) -> dict[str, Any]:
        """Fully-resolved options for ``CookieConsentBanner.init``."""
        return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class CsrfTokenResponse(BaseModel):
    csrfToken: str


class GenerateResponse(BaseModel):
    success: bool = True
    installationCode: str
    version: int
