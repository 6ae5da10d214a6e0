"""
Ordered request pipeline for the token gateway.
"""

import time
from typing import Awaitable, Callable, Dict, Optional, Sequence

from fastapi import Request, Response

from shared.errors import ErrorTranslator, GatewayError, get_client_ip
from shared.logging import clear_context, get_logger, set_client_context, set_request_id
from shared.metrics import MetricsCollector, route_template

from .stages import PipelineContext

Stage = Callable[[Request, PipelineContext], Awaitable[Optional[Response]]]

SECURITY_HEADERS: Dict[str, str] = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; img-src 'self' data: https:"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}


class RequestPipeline:
    """Runs stages in order, then the routed handler.

    The first stage that answers or raises short-circuits everything after
    it. Any failure, from a stage or the handler, is rendered by the error
    translator. Security, CORS and rate-limit headers are applied to every
    response that leaves the pipeline, and every request is counted and
    logged once, including those rejected before routing.
    """

    def __init__(
        self,
        stages: Sequence[Stage],
        error_translator: ErrorTranslator,
        metrics: MetricsCollector,
        trust_proxy: bool = True,
    ):
        self.stages = list(stages)
        self.error_translator = error_translator
        self.metrics = metrics
        self.trust_proxy = trust_proxy
        self.logger = get_logger("gateway.http")

    async def __call__(self, request: Request, call_next) -> Response:
        start_time = time.time()
        request_id = set_request_id(request.headers.get("X-Request-ID"))
        client_ip = get_client_ip(request, self.trust_proxy)
        set_client_context(client_ip)

        context = PipelineContext(client_ip=client_ip, origin=request.headers.get("Origin"))
        try:
            response = await self._run(request, context, call_next)

            response.headers.update(SECURITY_HEADERS)
            response.headers.update(context.response_headers)
            response.headers["X-Request-ID"] = request_id

            self._observe(request, response, time.time() - start_time)
        finally:
            clear_context()

        return response

    async def _run(self, request: Request, context: PipelineContext, call_next) -> Response:
        for stage in self.stages:
            try:
                answered = await stage(request, context)
            except GatewayError as exc:
                return self.error_translator.to_response(request, exc)
            if answered is not None:
                return answered

        try:
            return await call_next(request)
        except Exception as exc:
            return self.error_translator.to_response(request, exc)

    def _observe(self, request: Request, response: Response, duration: float) -> None:
        endpoint = route_template(request)
        self.metrics.record_http_request(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
            duration=duration,
        )
        self.logger.info(
            "HTTP request",
            method=request.method,
            path=request.url.path,
            route=endpoint,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
