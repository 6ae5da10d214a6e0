"""
Token Gateway Service package.

The gateway performs OAuth2 authorization-code and refresh-token exchanges
against the vehicle-telematics provider on the client's behalf, so the
provider client secret never leaves the server. Requests pass through:
- Origin policy: allow-list with a permissive development mode
- Rate limiting: fixed window per client address
- Body limits and an optional static API key
- Centralized error translation into the response envelope

Structure:
- app.main: FastAPI app, routes, and pipeline wiring.
- app.pipeline: Ordered request stages and the origin policy.
- app.ratelimit: Fixed-window limiter.
- app.adapters: HTTP client for the provider token endpoint.
- app.domain: Token exchange models and service.
"""
