"""Ordered request-guard pipeline.

Every inbound request runs through a fixed list of named stages. Each
stage that applies to the request returns one of:

  ALLOW     stop evaluating, let the request through
  DENY      stop evaluating, answer with the stage's error
  CONTINUE  hand over to the next stage

The default order is ``body_size -> origin -> csrf -> rate_limit``; the
order is data on the pipeline (``stage_names``), not a side effect of
middleware registration. Headers produced by passing stages (rate-limit
counters) are copied onto the final response.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..observability.metrics import GATEWAY_DENIALS_TOTAL
from .csrf import CSRF_COOKIE_NAME, CsrfError, CsrfTokenService, requires_verification, token_from_headers
from .errors import CsrfInvalid, GatewayError, OriginRejected, PayloadTooLarge, RateLimited
from .origin_validator import OriginValidator
from .rate_limiter import FixedWindowCounter, RateLimitExceeded, client_ip, rate_limit_key

logger = logging.getLogger(__name__)

API_PREFIX = '/api/'
HEALTH_PATH = '/api/health'
RECEIVED_BODY_BYTES = 'received_body_bytes'

# Rate-limit buckets exist only for these routes; every other API path
# shares one bucket per client.
RATE_LIMITED_ROUTES = frozenset({'/api/csrf-token', '/api/generate'})
OTHER_API_ROUTE = '/api/{other}'


class Decision(str, Enum):
    ALLOW = 'allow'
    DENY = 'deny'
    CONTINUE = 'continue'


@dataclass(frozen=True)
class StageResult:
    decision: Decision
    error: GatewayError | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def allow(cls) -> 'StageResult':
        return cls(Decision.ALLOW)

    @classmethod
    def proceed(cls, headers: dict[str, str] | None = None) -> 'StageResult':
        return cls(Decision.CONTINUE, headers=headers or {})

    @classmethod
    def deny(cls, error: GatewayError) -> 'StageResult':
        return cls(Decision.DENY, error=error)


@dataclass(frozen=True)
class Stage:
    """A named guard with a scope predicate and a check."""
    name: str
    applies_to: Callable[[Request], bool]
    check: Callable[[Request], StageResult]


@dataclass(frozen=True)
class PipelineOutcome:
    """Final verdict of a pipeline run."""
    decision: Decision
    stage: str | None = None
    error: GatewayError | None = None
    headers: dict[str, str] = field(default_factory=dict)


class GatewayPipeline:
    """Evaluates stages in order until one allows or denies."""

    def __init__(self, stages: Sequence[Stage]):
        names = [s.name for s in stages]
        if len(set(names)) != len(names):
            raise ValueError(f'Duplicate stage names: {names}')
        self._stages = tuple(stages)

    @property
    def stage_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self._stages)

    def evaluate(self, request: Request) -> PipelineOutcome:
        headers: dict[str, str] = {}
        for stage in self._stages:
            if not stage.applies_to(request):
                continue
            result = stage.check(request)
            headers.update(result.headers)
            if result.decision is Decision.DENY:
                return PipelineOutcome(
                    Decision.DENY, stage=stage.name, error=result.error, headers=headers,
                )
            if result.decision is Decision.ALLOW:
                return PipelineOutcome(Decision.ALLOW, stage=stage.name, headers=headers)
        return PipelineOutcome(Decision.CONTINUE, headers=headers)


# ── Scope predicates ──


def is_api_request(request: Request) -> bool:
    return request.url.path.startswith(API_PREFIX)


def is_guarded_api_request(request: Request) -> bool:
    """API routes other than the unauthenticated health check."""
    return is_api_request(request) and request.url.path != HEALTH_PATH


def is_mutating_api_request(request: Request) -> bool:
    return is_api_request(request) and requires_verification(request.method)


# ── Stage factories ──


def body_size_stage(max_bytes: int) -> Stage:
    """Reject bodies over ``max_bytes``.

    Declared ``Content-Length`` is checked first; the byte count recorded
    by ``GatewayMiddleware`` covers chunked uploads that declare none.
    """
    def check(request: Request) -> StageResult:
        raw = request.headers.get('content-length')
        if raw is not None and raw.isdigit() and int(raw) > max_bytes:
            return StageResult.deny(PayloadTooLarge(max_bytes))
        received = getattr(request.state, RECEIVED_BODY_BYTES, None)
        if received is not None and received > max_bytes:
            return StageResult.deny(PayloadTooLarge(max_bytes))
        return StageResult.proceed()

    return Stage('body_size', is_api_request, check)


def origin_stage(validator: OriginValidator) -> Stage:
    def check(request: Request) -> StageResult:
        result = validator.is_valid(request.headers.get('origin'))
        if result.is_valid:
            return StageResult.proceed()
        return StageResult.deny(OriginRejected(result.message or 'Origin not allowed'))

    return Stage('origin', is_guarded_api_request, check)


def csrf_stage(service: CsrfTokenService) -> Stage:
    def check(request: Request) -> StageResult:
        try:
            service.verify(
                token_from_headers(request.headers),
                request.cookies.get(CSRF_COOKIE_NAME),
            )
        except CsrfError as exc:
            logger.warning(
                'CSRF verification failed on %s %s: %s',
                request.method, request.url.path, exc.reason,
            )
            return StageResult.deny(CsrfInvalid())
        return StageResult.proceed()

    return Stage('csrf', is_mutating_api_request, check)


def rate_limit_route(path: str) -> str:
    return path if path in RATE_LIMITED_ROUTES else OTHER_API_ROUTE


def rate_limit_stage(
    counter: FixedWindowCounter,
    *,
    trust_proxy: bool = False,
    clock: Callable[[], float] = time.time,
) -> Stage:
    def check(request: Request) -> StageResult:
        now = clock()
        key = rate_limit_key(
            client_ip(request, trust_proxy=trust_proxy),
            rate_limit_route(request.url.path),
        )
        try:
            status = counter.hit(key, now=now)
        except RateLimitExceeded as exc:
            headers = exc.status.headers(now)
            headers['Retry-After'] = str(exc.retry_after)
            return StageResult.deny(RateLimited(headers=headers))
        return StageResult.proceed(status.headers(now))

    return Stage('rate_limit', is_guarded_api_request, check)


def build_default_pipeline(
    *,
    validator: OriginValidator,
    csrf_service: CsrfTokenService,
    counter: FixedWindowCounter,
    max_body_bytes: int,
    trust_proxy: bool = False,
) -> GatewayPipeline:
    return GatewayPipeline([
        body_size_stage(max_body_bytes),
        origin_stage(validator),
        csrf_stage(csrf_service),
        rate_limit_stage(counter, trust_proxy=trust_proxy),
    ])


async def _buffer_body(receive: Receive, limit: int) -> tuple[list[Message], int]:
    """Read request messages until the body ends or passes ``limit`` bytes."""
    messages: list[Message] = []
    received = 0
    while True:
        message = await receive()
        messages.append(message)
        if message['type'] != 'http.request':
            break
        received += len(message.get('body', b''))
        if received > limit or not message.get('more_body', False):
            break
    return messages, received


def _replay(messages: list[Message], receive: Receive) -> Receive:
    pending = list(messages)

    async def replay() -> Message:
        if pending:
            return pending.pop(0)
        return await receive()

    return replay


class GatewayMiddleware(BaseHTTPMiddleware):
    """Runs the guard pipeline in front of the routes.

    With ``max_body_bytes`` set, API request bodies are read up front (never
    more than one message past the limit) so the pipeline sees the bytes
    actually received, not only the declared ``Content-Length``.
    """

    def __init__(
        self,
        app: ASGIApp,
        pipeline: GatewayPipeline,
        max_body_bytes: int | None = None,
    ) -> None:
        super().__init__(app)
        self.pipeline = pipeline
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope['type'] == 'http'
            and self.max_body_bytes is not None
            and scope['path'].startswith(API_PREFIX)
        ):
            messages, received = await _buffer_body(receive, self.max_body_bytes)
            scope.setdefault('state', {})[RECEIVED_BODY_BYTES] = received
            receive = _replay(messages, receive)
        await super().__call__(scope, receive, send)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        outcome = self.pipeline.evaluate(request)
        if outcome.decision is Decision.DENY and outcome.error is not None:
            GATEWAY_DENIALS_TOTAL.labels(
                stage=outcome.stage, code=outcome.error.code.value,
            ).inc()
            logger.info(
                'Gateway stage %s denied %s %s: %s',
                outcome.stage, request.method, request.url.path,
                outcome.error.code.value,
            )
            response = outcome.error.to_response()
            for name, value in outcome.headers.items():
                response.headers.setdefault(name, value)
            return response

        response = await call_next(request)
        for name, value in outcome.headers.items():
            response.headers.setdefault(name, value)
        return response
