"""
Shared utilities for the OAuth token gateway.

This package aggregates the cross-cutting building blocks the gateway
service is assembled from:

- config: Gateway configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Error taxonomy, response envelope and the error translator
- base_service: FastAPI service scaffolding

Do not import from service packages into shared/.
"""
