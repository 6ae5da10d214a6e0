"""
Shared error handling for the OAuth token gateway.

Every failure the gateway can produce is a ``GatewayError`` subclass tagged
with an ``ErrorKind``. ``HTTP_STATUS_BY_KIND`` is the single mapping from kind
to HTTP status and ``ErrorTranslator`` is the single place where failures are
logged and rendered into the response envelope.
"""

import traceback
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, model_validator

from shared.logging import get_logger


class ErrorKind(str, Enum):
    """Failure classification."""

    INVALID_REQUEST = "invalid_request"
    AUTHENTICATION_REQUIRED = "authentication_required"
    ORIGIN_REJECTED = "origin_rejected"
    RATE_LIMITED = "rate_limited"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    UPSTREAM_REJECTED = "upstream_rejected"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"


HTTP_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.AUTHENTICATION_REQUIRED: 401,
    ErrorKind.ORIGIN_REJECTED: 403,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.PAYLOAD_TOO_LARGE: 413,
    ErrorKind.UPSTREAM_REJECTED: 400,
    ErrorKind.UPSTREAM_UNAVAILABLE: 500,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTERNAL: 500,
}

GENERIC_INTERNAL_MESSAGE = "Something went wrong on our end"


class ApiEnvelope(BaseModel):
    """Uniform response body for every endpoint."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "ApiEnvelope":
        if self.success:
            if self.error is not None or self.details is not None:
                raise ValueError("successful envelope must not carry an error")
        else:
            if self.data is not None:
                raise ValueError("failed envelope must not carry data")
            if not self.error or not self.message:
                raise ValueError("failed envelope requires error and message")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def success_envelope(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """Build a success envelope body."""
    return ApiEnvelope(success=True, data=data, message=message).to_dict()


class GatewayError(Exception):
    """Base exception for gateway failures."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, error: str, message: str, log_details: Optional[Dict[str, Any]] = None):
        self.error = error
        self.message = message
        # Logged by the translator, never rendered to the caller.
        self.log_details = log_details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def to_envelope(self) -> ApiEnvelope:
        return ApiEnvelope(success=False, error=self.error, message=self.message)


class InvalidRequestError(GatewayError):
    """Caller supplied insufficient or malformed input."""

    kind = ErrorKind.INVALID_REQUEST


class AuthenticationRequiredError(GatewayError):
    """Missing or invalid API credential on a gated route."""

    kind = ErrorKind.AUTHENTICATION_REQUIRED


class OriginRejectedError(GatewayError):
    """Request origin is not permitted by the CORS policy."""

    kind = ErrorKind.ORIGIN_REJECTED

    def __init__(self, origin: str):
        self.origin = origin
        super().__init__("Not allowed by CORS", "Not allowed by CORS", {"origin": origin})


class RateLimitedError(GatewayError):
    """Client exceeded its request budget for the current window."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(
            "Too many requests",
            "Rate limit exceeded. Please try again later.",
            {"retry_after": retry_after},
        )


class PayloadTooLargeError(GatewayError):
    """Request body exceeds the configured size cap."""

    kind = ErrorKind.PAYLOAD_TOO_LARGE

    def __init__(self, limit: int):
        super().__init__(
            "Payload too large",
            f"Request body exceeds the {limit} byte limit",
            {"limit": limit},
        )


class UpstreamRejectedError(GatewayError):
    """Provider answered with a declared OAuth error."""

    kind = ErrorKind.UPSTREAM_REJECTED

    def __init__(self, error: str, description: str, upstream_status: int, provider_code: Optional[str]):
        self.upstream_status = upstream_status
        self.provider_code = provider_code
        super().__init__(
            error,
            description,
            {"upstream_status": upstream_status, "provider_error": provider_code},
        )


class UpstreamUnavailableError(GatewayError):
    """Provider could not be reached or answered with something unparseable."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE

    def __init__(self, message: str, reason: str):
        self.reason = reason
        super().__init__("Internal server error", message, {"reason": reason})


class NotFoundError(GatewayError):
    """No route matches the request."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, path: str):
        super().__init__("Not found", f"Route {path} not found")


class InternalError(GatewayError):
    """Unclassified failure."""

    kind = ErrorKind.INTERNAL

    def __init__(self, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__("Internal server error", GENERIC_INTERNAL_MESSAGE)


def get_client_ip(request: Request, trust_proxy: bool = True) -> str:
    """Extract the caller IP, honouring proxy headers when trusted.

    Only the single trusted proxy in front of the gateway is believed, so the
    address it appended (the rightmost X-Forwarded-For entry) is used.
    Entries to its left are client-supplied.
    """
    if trust_proxy:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
            if hops:
                return hops[-1]
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip
    if request.client:
        return request.client.host
    return "unknown"


class ErrorTranslator:
    """Turns any failure into a logged, well-formed HTTP response."""

    def __init__(self, expose_diagnostics: bool, trust_proxy: bool = True):
        self.expose_diagnostics = expose_diagnostics
        self.trust_proxy = trust_proxy
        self.logger = get_logger("gateway.errors")

    def classify(self, exc: BaseException) -> GatewayError:
        if isinstance(exc, GatewayError):
            return exc
        return InternalError(exc)

    def to_response(self, request: Request, exc: BaseException) -> Response:
        error = self.classify(exc)
        self._log(request, error)

        if isinstance(error, OriginRejectedError):
            return PlainTextResponse(error.message, status_code=error.status_code)

        envelope = error.to_envelope()
        if isinstance(error, InternalError) and error.cause is not None and self.expose_diagnostics:
            cause = error.cause
            envelope = ApiEnvelope(
                success=False,
                error=envelope.error,
                message=str(cause) or envelope.message,
                details={
                    "type": type(cause).__name__,
                    "stack": traceback.format_exception(type(cause), cause, cause.__traceback__),
                },
            )

        response = JSONResponse(status_code=error.status_code, content=envelope.to_dict())
        if isinstance(error, RateLimitedError):
            response.headers["Retry-After"] = str(error.retry_after)
        return response

    def _log(self, request: Request, error: GatewayError) -> None:
        fields: Dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "ip": get_client_ip(request, self.trust_proxy),
            "user_agent": request.headers.get("User-Agent"),
            "kind": error.kind.value,
            "status_code": error.status_code,
            "error": error.error,
        }
        fields.update(error.log_details)

        if isinstance(error, InternalError) and error.cause is not None:
            self.logger.error(
                "Request error",
                exc_info=(type(error.cause), error.cause, error.cause.__traceback__),
                **fields,
            )
        elif error.status_code >= 500:
            self.logger.error("Request error", **fields)
        else:
            self.logger.warning("Request error", **fields)
