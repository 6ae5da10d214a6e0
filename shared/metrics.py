"""
Shared metrics configuration for the OAuth token gateway.
"""

import threading
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info, generate_latest
from starlette.requests import Request
from starlette.routing import Match

UNMATCHED_ROUTE = "unmatched"


class MetricsCollector:
    """Centralized metrics collector for a service instance."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # A private registry per instance lets several apps live in one process
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up the gateway metrics."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Pipeline rejections
        self._metrics["rate_limit_hits_total"] = Counter(
            "rate_limit_hits_total",
            "Total requests rejected by the rate limiter",
            ["endpoint"],
            registry=self.registry
        )

        self._metrics["origin_decisions_total"] = Counter(
            "origin_decisions_total",
            "Origin policy decisions",
            ["decision"],
            registry=self.registry
        )

        # Upstream token endpoint
        self._metrics["upstream_token_requests_total"] = Counter(
            "upstream_token_requests_total",
            "Calls to the provider token endpoint",
            ["grant_type", "outcome"],
            registry=self.registry
        )

        self._metrics["upstream_token_duration_seconds"] = Histogram(
            "upstream_token_duration_seconds",
            "Provider token endpoint latency in seconds",
            ["grant_type"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_upstream_call(self, grant_type: str, outcome: str, duration: float):
        """Record a provider token endpoint call."""
        self._metrics["upstream_token_requests_total"].labels(
            grant_type=grant_type,
            outcome=outcome
        ).inc()
        self._metrics["upstream_token_duration_seconds"].labels(grant_type=grant_type).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()

    def render(self) -> bytes:
        """Render the registry in Prometheus text format."""
        with self._lock:
            return generate_latest(self.registry)


def route_template(request: Request) -> str:
    """Endpoint label for a request: the path template of the route it matches.

    Requests that match no route share one label so arbitrary paths cannot
    create new series.
    """
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", UNMATCHED_ROUTE)
    return UNMATCHED_ROUTE


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
