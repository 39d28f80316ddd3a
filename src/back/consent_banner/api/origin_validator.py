"""Origin allow-list matching for CORS and the gateway pipeline.

Patterns are plain origins (``https://app.example.com``) or origins with
``*`` wildcards (``https://*.example.com``). A wildcard matches any run of
characters, including separators and the empty string; everything else in
the pattern is literal. Matching is case-sensitive and anchored.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable

logger = logging.getLogger(__name__)

WILDCARD = '*'


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of an origin check. ``message`` is set only when invalid."""
    is_valid: bool
    message: str | None = None


def _is_non_empty_str(value: object) -> bool:
    return isinstance(value, str) and len(value) > 0


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    literal_parts = (re.escape(part) for part in pattern.split(WILDCARD))
    return re.compile('.*'.join(literal_parts), re.DOTALL)


def match_origin(origin: object, pattern: object) -> bool:
    """Return True if ``origin`` satisfies ``pattern``."""
    if not _is_non_empty_str(origin) or not _is_non_empty_str(pattern):
        return False
    if WILDCARD not in pattern:
        return origin == pattern
    return _compile_pattern(pattern).fullmatch(origin) is not None


class OriginValidator:
    """Immutable allow-list of origin patterns."""

    def __init__(self, patterns: Iterable[str]):
        self._patterns = tuple(
            p.strip() for p in patterns if isinstance(p, str) and p.strip()
        )

    @property
    def patterns(self) -> tuple[str, ...]:
        return self._patterns

    def is_valid(self, origin: object) -> ValidationResult:
        # Header-less requests (curl, server-to-server, native apps) are trusted.
        if origin is None or origin == '':
            return ValidationResult(is_valid=True)

        if not isinstance(origin, str):
            return ValidationResult(is_valid=False, message='Invalid origin format')

        if any(match_origin(origin, pattern) for pattern in self._patterns):
            return ValidationResult(is_valid=True)

        return ValidationResult(
            is_valid=False, message=f'Origin {origin} not allowed',
        )

    def __repr__(self) -> str:
        return f'OriginValidator(patterns={list(self._patterns)!r})'
