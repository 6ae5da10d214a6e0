"""
Tests for the error taxonomy and response envelope.
"""

import pytest
from pydantic import ValidationError
from starlette.requests import Request

from shared.errors import (
    HTTP_STATUS_BY_KIND,
    ApiEnvelope,
    ErrorKind,
    GatewayError,
    InternalError,
    NotFoundError,
    RateLimitedError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
    get_client_ip,
    success_envelope,
)


def test_every_kind_has_a_status():
    """Test the kind to status table is total."""
    assert set(HTTP_STATUS_BY_KIND) == set(ErrorKind)
    assert HTTP_STATUS_BY_KIND[ErrorKind.INVALID_REQUEST] == 400
    assert HTTP_STATUS_BY_KIND[ErrorKind.UPSTREAM_REJECTED] == 400
    assert HTTP_STATUS_BY_KIND[ErrorKind.AUTHENTICATION_REQUIRED] == 401
    assert HTTP_STATUS_BY_KIND[ErrorKind.NOT_FOUND] == 404
    assert HTTP_STATUS_BY_KIND[ErrorKind.RATE_LIMITED] == 429
    assert HTTP_STATUS_BY_KIND[ErrorKind.UPSTREAM_UNAVAILABLE] == 500
    assert HTTP_STATUS_BY_KIND[ErrorKind.INTERNAL] == 500


@pytest.mark.parametrize("error, status", [
    (NotFoundError("/x"), 404),
    (RateLimitedError(retry_after=30), 429),
    (UpstreamRejectedError("Token exchange failed", "bad code", 400, "invalid_grant"), 400),
    (UpstreamUnavailableError("Failed to refresh access token", "timeout"), 500),
    (InternalError(RuntimeError("x")), 500),
])
def test_status_codes(error: GatewayError, status: int):
    """Test each variant resolves its status through the table."""
    assert error.status_code == status


def test_log_details_never_rendered():
    """Test that diagnostic fields stay out of the envelope."""
    error = UpstreamRejectedError("Token exchange failed", "bad code", 400, "invalid_grant")

    body = error.to_envelope().to_dict()

    assert body == {"success": False, "error": "Token exchange failed", "message": "bad code"}
    assert error.log_details == {"upstream_status": 400, "provider_error": "invalid_grant"}


def test_success_envelope_shape():
    """Test success bodies omit error fields."""
    assert success_envelope({"a": 1}, message="ok") == {"success": True, "data": {"a": 1}, "message": "ok"}
    assert success_envelope() == {"success": True}


@pytest.mark.parametrize("fields", [
    {"success": True, "error": "boom"},
    {"success": False, "error": "boom", "message": "m", "data": {"a": 1}},
    {"success": False, "message": "m"},
    {"success": False, "error": "boom"},
])
def test_envelope_invariant_enforced(fields):
    """Test that malformed envelopes cannot be constructed."""
    with pytest.raises(ValidationError):
        ApiEnvelope(**fields)


def _request(headers):
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(name.lower().encode(), value.encode()) for name, value in headers.items()],
        "client": ("192.0.2.10", 51000),
    })


@pytest.mark.parametrize("headers, expected", [
    ({"X-Forwarded-For": "198.51.100.7"}, "198.51.100.7"),
    ({"X-Forwarded-For": "10.0.0.1, 10.0.0.2, 198.51.100.7"}, "198.51.100.7"),
    ({"X-Forwarded-For": "10.0.0.1, 198.51.100.7 , "}, "198.51.100.7"),
    ({"X-Real-IP": "198.51.100.8"}, "198.51.100.8"),
    ({}, "192.0.2.10"),
])
def test_client_ip_uses_proxy_appended_hop(headers, expected):
    """Test that only the address added by the trusted proxy is used."""
    assert get_client_ip(_request(headers), trust_proxy=True) == expected


def test_client_ip_ignores_headers_when_proxy_untrusted():
    """Test the socket peer is used when proxy headers are not trusted."""
    request = _request({"X-Forwarded-For": "198.51.100.7", "X-Real-IP": "198.51.100.8"})

    assert get_client_ip(request, trust_proxy=False) == "192.0.2.10"
