"""
Request pipeline stages.

Each stage is awaited with the request and the shared ``PipelineContext``.
A stage returns ``None`` to let the request continue, returns a response to
answer it directly, or raises a ``GatewayError`` to reject it.
"""

import hmac
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional

from fastapi import Request, Response

from shared.errors import (
    AuthenticationRequiredError,
    InvalidRequestError,
    OriginRejectedError,
    PayloadTooLargeError,
    RateLimitedError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector, route_template

from ..ratelimit import FixedWindowRateLimiter, RateLimitDecision
from .origin_policy import OriginDecision, OriginPolicy

CORS_ALLOWED_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
CORS_ALLOWED_HEADERS = "Content-Type, Authorization, X-API-Key"


@dataclass
class PipelineContext:
    """Per-request state shared between stages."""

    client_ip: str
    origin: Optional[str]
    origin_decision: Optional[OriginDecision] = None
    rate_limit: Optional[RateLimitDecision] = None
    response_headers: Dict[str, str] = field(default_factory=dict)


class OriginStage:
    """Applies the origin policy and answers CORS preflights."""

    def __init__(self, policy: OriginPolicy, metrics: MetricsCollector):
        self.policy = policy
        self.metrics = metrics

    async def __call__(self, request: Request, context: PipelineContext) -> Optional[Response]:
        decision = self.policy.evaluate(context.origin)
        context.origin_decision = decision
        self.metrics.increment_counter("origin_decisions_total", decision=decision.value)

        if not decision.allowed:
            raise OriginRejectedError(context.origin or "")

        if context.origin:
            context.response_headers["Access-Control-Allow-Origin"] = context.origin
            context.response_headers["Access-Control-Allow-Credentials"] = "true"
            context.response_headers["Vary"] = "Origin"

        if request.method == "OPTIONS" and request.headers.get("Access-Control-Request-Method"):
            response = Response(status_code=204)
            response.headers["Access-Control-Allow-Methods"] = CORS_ALLOWED_METHODS
            response.headers["Access-Control-Allow-Headers"] = CORS_ALLOWED_HEADERS
            return response

        return None


class RateLimitStage:
    """Enforces the per-client request budget."""

    def __init__(self, limiter: FixedWindowRateLimiter, metrics: MetricsCollector):
        self.limiter = limiter
        self.metrics = metrics
        self.logger = get_logger("gateway.rate_limit_middleware")

    async def __call__(self, request: Request, context: PipelineContext) -> Optional[Response]:
        decision = self.limiter.hit(context.client_ip)
        context.rate_limit = decision
        context.response_headers["RateLimit-Limit"] = str(decision.limit)
        context.response_headers["RateLimit-Remaining"] = str(decision.remaining)
        context.response_headers["RateLimit-Reset"] = str(decision.reset_in_seconds)

        if not decision.allowed:
            self.logger.warning(
                "Rate limit exceeded",
                ip=context.client_ip,
                user_agent=request.headers.get("User-Agent"),
                path=request.url.path,
            )
            self.metrics.increment_counter("rate_limit_hits_total", endpoint=route_template(request))
            raise RateLimitedError(retry_after=decision.reset_in_seconds)

        return None


class BodyLimitStage:
    """Rejects requests whose declared body exceeds the size cap."""

    def __init__(self, max_body_bytes: int):
        self.max_body_bytes = max_body_bytes

    async def __call__(self, request: Request, context: PipelineContext) -> Optional[Response]:
        content_length = request.headers.get("Content-Length")
        if content_length is None:
            return None

        try:
            declared = int(content_length)
        except ValueError:
            raise InvalidRequestError("Invalid request body", "Content-Length header is not a number")

        if declared > self.max_body_bytes:
            raise PayloadTooLargeError(self.max_body_bytes)

        return None


class ApiKeyStage:
    """Requires a static X-API-Key on the credential-gated routes."""

    def __init__(self, api_key: str, protected_paths: Iterable[str]):
        self._api_key = api_key
        self.protected_paths = frozenset(protected_paths)
        self.logger = get_logger("gateway.api_key")

    async def __call__(self, request: Request, context: PipelineContext) -> Optional[Response]:
        if request.url.path not in self.protected_paths:
            return None

        provided = request.headers.get("X-API-Key")
        if not provided:
            self.logger.warning(
                "API request without API key",
                ip=context.client_ip,
                user_agent=request.headers.get("User-Agent"),
                path=request.url.path,
            )
            raise AuthenticationRequiredError(
                "API key required",
                "Please provide a valid API key in the x-api-key header",
            )

        if not hmac.compare_digest(provided.encode(), self._api_key.encode()):
            self.logger.warning(
                "API request with invalid API key",
                ip=context.client_ip,
                user_agent=request.headers.get("User-Agent"),
                path=request.url.path,
                provided_key=provided[:4] + "...",
            )
            raise AuthenticationRequiredError("Invalid API key", "The provided API key is not valid")

        return None
