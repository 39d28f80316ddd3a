"""Signed CSRF tokens bound to a browser session.

Token format: ``{payload_b64}.{signature}``
  payload:   base64url(json({"sid", "nonce", "iat", "exp"}))
  signature: HMAC-SHA256(cookie_secret, payload_b64), hex

Lifecycle:
  1. ``GET /api/csrf-token`` issues a token. It is returned in the JSON
     body and set as an httpOnly ``_csrf`` cookie. A browser that already
     holds a valid cookie keeps its session id; every issuance still gets
     a fresh nonce.
  2. Mutating requests send the token back in ``X-CSRF-Token`` (or
     ``CSRF-Token``). Both the header token and the cookie token must carry
     a valid signature, be unexpired, and name the same session.
  3. Expired tokens are rejected; callers re-request ``/api/csrf-token``.

Verification is read-only: the same token verifies on every request until
it expires. Callers only ever see one generic rejection; the specific
reason is logged.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CSRF_COOKIE_NAME = '_csrf'
CSRF_HEADER_NAMES = ('X-CSRF-Token', 'CSRF-Token')
CSRF_TOKEN_TTL = 3600  # 1 hour
CSRF_SAMESITE = 'strict'
SESSION_ID_BYTES = 16
NONCE_BYTES = 16
EXEMPT_METHODS = frozenset({'GET', 'HEAD', 'OPTIONS'})

_REQUIRED_CLAIMS = ('sid', 'nonce', 'iat', 'exp')


class CsrfError(Exception):
    """Raised when CSRF verification fails. ``reason`` is for logs only."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


@dataclass(frozen=True)
class CsrfClaims:
    """Decoded claims of a verified token."""
    session_id: str
    nonce: str
    issued_at: float
    expires_at: float


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted token and its cookie lifetime."""
    token: str
    session_id: str
    expires_at: float
    max_age: int


@dataclass(frozen=True)
class CookieSettings:
    """Attributes of the CSRF cookie."""
    name: str = CSRF_COOKIE_NAME
    httponly: bool = True
    samesite: str = CSRF_SAMESITE
    secure: bool = False
    path: str = '/'


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b'=').decode('ascii')


def _b64url_decode(s: str) -> bytes:
    padding = 4 - len(s) % 4
    if padding != 4:
        s += '=' * padding
    return base64.urlsafe_b64decode(s)


def requires_verification(method: str) -> bool:
    """Return True for methods that must carry a CSRF token."""
    return method.upper() not in EXEMPT_METHODS


class CsrfTokenService:
    """Issues and verifies CSRF tokens with a shared HMAC secret."""

    def __init__(
        self,
        secret: str,
        *,
        ttl: int = CSRF_TOKEN_TTL,
        secure_cookie: bool = False,
    ) -> None:
        if not secret:
            raise ValueError('CSRF signing secret must not be empty')
        self._secret = secret.encode('utf-8')
        self.ttl = ttl
        self.cookie = CookieSettings(secure=secure_cookie)

    def _sign(self, message: str) -> str:
        return hmac.new(
            self._secret,
            message.encode('utf-8'),
            hashlib.sha256,
        ).hexdigest()

    def issue(
        self,
        session_id: str | None = None,
        *,
        now: float | None = None,
    ) -> IssuedToken:
        """Mint a new token, minting a session id when none is given."""
        current_time = now if now is not None else time.time()
        sid = session_id or secrets.token_urlsafe(SESSION_ID_BYTES)
        payload = {
            'sid': sid,
            'nonce': secrets.token_urlsafe(NONCE_BYTES),
            'iat': current_time,
            'exp': current_time + self.ttl,
        }
        payload_b64 = _b64url_encode(
            json.dumps(payload, sort_keys=True, separators=(',', ':')).encode()
        )
        token = f'{payload_b64}.{self._sign(payload_b64)}'
        return IssuedToken(
            token=token,
            session_id=sid,
            expires_at=payload['exp'],
            max_age=self.ttl,
        )

    def decode(self, token: str, *, now: float | None = None) -> CsrfClaims:
        """Check signature and expiry of a single token.

        Raises:
            CsrfError: If the token is malformed, forged, or expired.
        """
        if not token.isascii():
            raise CsrfError('malformed_token')
        parts = token.split('.')
        if len(parts) != 2 or not all(parts):
            raise CsrfError('malformed_token')
        payload_b64, signature = parts

        expected = self._sign(payload_b64)
        if not hmac.compare_digest(signature, expected):
            raise CsrfError('bad_signature')

        try:
            payload = json.loads(_b64url_decode(payload_b64))
        except (ValueError, UnicodeDecodeError):
            raise CsrfError('malformed_payload')
        if not isinstance(payload, dict) or any(c not in payload for c in _REQUIRED_CLAIMS):
            raise CsrfError('malformed_payload')

        current_time = now if now is not None else time.time()
        if current_time >= payload['exp']:
            raise CsrfError('expired')

        return CsrfClaims(
            session_id=payload['sid'],
            nonce=payload['nonce'],
            issued_at=payload['iat'],
            expires_at=payload['exp'],
        )

    def verify(
        self,
        header_token: str | None,
        cookie_token: str | None,
        *,
        now: float | None = None,
    ) -> CsrfClaims:
        """Verify a submitted token against the session cookie.

        Raises:
            CsrfError: On any failure; ``reason`` names the failed check.
        """
        if not header_token:
            raise CsrfError('missing_token')
        if not cookie_token:
            raise CsrfError('missing_cookie')

        claims = self.decode(header_token, now=now)
        session = self.decode(cookie_token, now=now)
        if not hmac.compare_digest(claims.session_id, session.session_id):
            raise CsrfError('session_mismatch')
        return claims

    def session_id_from_cookie(
        self, cookie_token: str | None, *, now: float | None = None,
    ) -> str | None:
        """Session id of a still-valid cookie, else None."""
        if not cookie_token:
            return None
        try:
            return self.decode(cookie_token, now=now).session_id
        except CsrfError:
            return None


def token_from_headers(headers) -> str | None:
    """Read the submitted token from the first exchange header present."""
    for name in CSRF_HEADER_NAMES:
        value = headers.get(name)
        if value:
            return value
    return None
