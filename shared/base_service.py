"""
Base service class for the OAuth token gateway.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict
import time

from fastapi import FastAPI, Request, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.config import GatewayConfig
from shared.errors import ErrorTranslator, GatewayError, InvalidRequestError, NotFoundError
from shared.logging import configure_logging, get_logger
from shared.metrics import get_metrics_collector

SERVICE_VERSION = "1.0.0"


class BaseService:
    """Base service class with common functionality."""

    def __init__(self, service_name: str, config: GatewayConfig):
        self.service_name = service_name
        self.config = config

        configure_logging(service_name, self.config.log_level)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self.error_translator = ErrorTranslator(
            expose_diagnostics=not self.config.is_production,
            trust_proxy=self.config.trust_proxy,
        )
        self._start_time = time.time()

        self.app = self._create_app()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self._on_startup()
            try:
                yield
            finally:
                await self._on_shutdown()

        return FastAPI(
            title=f"{self.service_name.replace('_', ' ').title()} Service",
            description="OAuth2 token-exchange gateway",
            version=SERVICE_VERSION,
            docs_url=None if self.config.is_production else "/docs",
            redoc_url=None if self.config.is_production else "/redoc",
            openapi_url=None if self.config.is_production else "/openapi.json",
            lifespan=lifespan,
        )

    def _setup_routes(self):
        """Set up common routes and error handlers."""

        @self.app.get("/metrics", include_in_schema=False)
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            from prometheus_client import CONTENT_TYPE_LATEST
            return Response(content=self.metrics.render(), media_type=CONTENT_TYPE_LATEST)

        @self.app.exception_handler(GatewayError)
        async def gateway_exception_handler(request: Request, exc: GatewayError):
            return self.error_translator.to_response(request, exc)

        @self.app.exception_handler(StarletteHTTPException)
        async def http_exception_handler(request: Request, exc: StarletteHTTPException):
            if exc.status_code in (404, 405):
                error: GatewayError = NotFoundError(request.url.path)
            else:
                error = InvalidRequestError("Bad request", str(exc.detail))
            return self.error_translator.to_response(request, error)

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            return self.error_translator.to_response(request, exc)

    def _get_uptime(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self._start_time

    def _banner(self) -> Dict[str, Any]:
        return {
            "name": self.service_name,
            "version": SERVICE_VERSION,
            "environment": self.config.env,
        }

    async def _on_startup(self):
        """Startup hook. Override in subclasses."""

    async def _on_shutdown(self):
        """Shutdown hook. Override in subclasses."""

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
