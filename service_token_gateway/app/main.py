"""
Token gateway service.
"""

import json
import sys
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qsl

import httpx
from fastapi import FastAPI, Request

from shared.base_service import SERVICE_VERSION, BaseService
from shared.config import ConfigurationError, GatewayConfig, load_config
from shared.errors import InvalidRequestError, PayloadTooLargeError, success_envelope
from shared.logging import configure_logging, get_logger

from .adapters.provider_client import ProviderTokenClient
from .domain.token_exchange import TokenExchangeService
from .pipeline import (
    ApiKeyStage,
    BodyLimitStage,
    OriginPolicy,
    OriginStage,
    RateLimitStage,
    RequestPipeline,
)
from .ratelimit import FixedWindowRateLimiter

SERVICE_NAME = "token_gateway"
DISPLAY_NAME = "OAuth Token Gateway"

EXCHANGE_PATH = "/api/auth/exchange"
REFRESH_PATH = "/api/auth/refresh"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TokenGatewayService(BaseService):
    """Token gateway service implementation."""

    def __init__(
        self,
        config: GatewayConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(SERVICE_NAME, config)

        self.provider_client = ProviderTokenClient(
            config.token_url,
            config.credentials,
            timeout=config.upstream_timeout_seconds,
            transport=transport,
        )
        self.token_service = TokenExchangeService(
            self.provider_client,
            redirect_uri=config.redirect_uri,
            metrics=self.metrics,
        )
        self.origin_policy = OriginPolicy(config.origin_allow_list, permissive=config.is_development)
        self.rate_limiter = FixedWindowRateLimiter(
            config.rate_limit_window_seconds,
            config.rate_limit_max_requests,
            clock=clock,
        )

        # Outermost middleware; wraps every route
        self.pipeline = RequestPipeline(
            self._build_stages(),
            self.error_translator,
            self.metrics,
            trust_proxy=config.trust_proxy,
        )
        self.app.middleware("http")(self.pipeline)

        self._setup_gateway_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _build_stages(self) -> List[Any]:
        stages: List[Any] = [
            OriginStage(self.origin_policy, self.metrics),
            RateLimitStage(self.rate_limiter, self.metrics),
            BodyLimitStage(self.config.max_body_bytes),
        ]
        if self.config.api_key_enabled:
            stages.append(ApiKeyStage(
                self.config.api_key.get_secret_value(),
                protected_paths=[EXCHANGE_PATH, REFRESH_PATH],
            ))
        return stages

    async def _on_shutdown(self):
        await self.provider_client.close()

    async def _read_payload(self, request: Request) -> Dict[str, Any]:
        """Parse a JSON or URL-encoded form body into a dict."""
        body = bytearray()
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > self.config.max_body_bytes:
                raise PayloadTooLargeError(self.config.max_body_bytes)
        if not body:
            return {}

        content_type = request.headers.get("Content-Type", JSON_CONTENT_TYPE).split(";")[0].strip().lower()
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidRequestError("Invalid request body", "Request body must be UTF-8 encoded")

        if content_type == FORM_CONTENT_TYPE:
            return dict(parse_qsl(text, keep_blank_values=True))

        if content_type == JSON_CONTENT_TYPE or content_type.endswith("+json"):
            try:
                payload = json.loads(text)
            except ValueError:
                raise InvalidRequestError("Invalid request body", "Request body is not valid JSON")
            if not isinstance(payload, dict):
                raise InvalidRequestError("Invalid request body", "Request body must be a JSON object")
            return payload

        raise InvalidRequestError(
            "Invalid request body",
            f"Content-Type must be {JSON_CONTENT_TYPE} or {FORM_CONTENT_TYPE}",
        )

    def _setup_gateway_routes(self):
        """Set up gateway routes."""

        @self.app.get("/")
        async def root():
            """Service banner."""
            banner = self._banner()
            banner["name"] = DISPLAY_NAME
            banner["timestamp"] = _utc_now()
            return success_envelope(banner, message=f"{DISPLAY_NAME} API")

        @self.app.get("/api/auth/health")
        async def health_check():
            """Liveness check."""
            return success_envelope(
                {
                    "status": "ok",
                    "version": SERVICE_VERSION,
                    "timestamp": _utc_now(),
                    "uptime_seconds": round(self._get_uptime(), 3),
                },
                message=f"{DISPLAY_NAME} is running",
            )

        if not self.config.is_production:
            @self.app.get("/api/auth/debug")
            async def debug_config():
                """Configuration summary. Reports credential presence only."""
                return success_envelope(
                    {
                        "environment": self.config.env,
                        "token_url": self.config.token_url,
                        "client_id_configured": bool(self.config.client_id),
                        "client_secret_configured": bool(self.config.client_secret.get_secret_value()),
                        "redirect_uri_configured": bool(self.config.redirect_uri),
                        "allowed_origins": self.config.origin_allow_list,
                        "rate_limit": {
                            "window_ms": self.config.rate_limit_window_ms,
                            "max_requests": self.config.rate_limit_max_requests,
                        },
                        "api_key_enabled": self.config.api_key_enabled,
                    },
                    message="Debug configuration",
                )

        @self.app.post(EXCHANGE_PATH)
        async def exchange_token(request: Request):
            """Exchange an authorization code for an access token."""
            payload = await self._read_payload(request)
            tokens = await self.token_service.exchange_authorization_code(
                payload.get("code"),
                payload.get("state"),
            )
            return success_envelope(tokens.model_dump(), message="Token exchange successful")

        @self.app.post(REFRESH_PATH)
        async def refresh_token(request: Request):
            """Refresh an access token using a refresh token."""
            payload = await self._read_payload(request)
            tokens = await self.token_service.refresh_access_token(payload.get("refresh_token"))
            return success_envelope(tokens.model_dump(), message="Token refresh successful")


def create_app(
    config: Optional[GatewayConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create FastAPI application."""
    service = TokenGatewayService(config or load_config(), transport=transport)
    return service.app


def main():
    """Process entry point."""
    try:
        config = load_config()
    except ConfigurationError as e:
        configure_logging(SERVICE_NAME)
        get_logger(SERVICE_NAME).critical("Invalid configuration", error=str(e), missing=e.missing)
        sys.exit(1)

    service = TokenGatewayService(config)
    service.logger.info(
        "Token gateway started",
        port=config.port,
        environment=config.env,
        allowed_origins=config.origin_allow_list,
        rate_limit={
            "window_ms": config.rate_limit_window_ms,
            "max_requests": config.rate_limit_max_requests,
        },
        api_key_enabled=config.api_key_enabled,
    )
    try:
        service.run()
    except Exception:
        service.logger.critical("Uncaught exception, shutting down", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
