"""
Token exchange service.

Performs the two upstream OAuth2 grants on the caller's behalf and maps the
provider's reply onto the gateway's error taxonomy:

- missing input            -> InvalidRequestError (no upstream call is made)
- provider non-2xx reply   -> UpstreamRejectedError
- network, timeout, bad JSON or a malformed token payload
                           -> UpstreamUnavailableError

Each call is a single attempt. Retrying is left to the caller.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError

from shared.errors import InvalidRequestError, UpstreamRejectedError, UpstreamUnavailableError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from ..adapters.provider_client import ProviderReply, ProviderTokenClient, ProviderTransportError
from .models import ExchangeRequest, GrantType, ProviderError, RefreshRequest, TokenResponse


@dataclass(frozen=True)
class _Operation:
    grant_type: GrantType
    name: str
    rejected_error: str
    unavailable_message: str


EXCHANGE = _Operation(
    grant_type=GrantType.AUTHORIZATION_CODE,
    name="exchange",
    rejected_error="Token exchange failed",
    unavailable_message="Failed to exchange authorization code",
)

REFRESH = _Operation(
    grant_type=GrantType.REFRESH_TOKEN,
    name="refresh",
    rejected_error="Token refresh failed",
    unavailable_message="Failed to refresh access token",
)


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


class TokenExchangeService:
    """Authorization-code and refresh-token exchanges against the provider."""

    def __init__(
        self,
        client: ProviderTokenClient,
        redirect_uri: str,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.client = client
        self.redirect_uri = redirect_uri
        self.metrics = metrics
        self.logger = get_logger("gateway.token_exchange")

    async def exchange_authorization_code(self, code: Any, state: Any = None) -> TokenResponse:
        """Exchange an authorization code for a token set."""
        code = _as_text(code)
        if code is None:
            raise InvalidRequestError("Missing authorization code", "Authorization code is required")

        request = ExchangeRequest(code=code, state=_as_text(state))
        self.logger.info("Token exchange request", has_code=True, has_state=request.state is not None)

        reply = await self._call(EXCHANGE, {"code": request.code, "redirect_uri": self.redirect_uri})
        tokens = self._parse_tokens(EXCHANGE, reply)

        self.logger.info(
            "Token exchange successful",
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            scopes=tokens.scope,
        )
        return tokens

    async def refresh_access_token(self, refresh_token: Any) -> TokenResponse:
        """Trade a refresh token for a new token set.

        The caller always gets a usable refresh token back: when the provider
        does not rotate it, the one supplied is returned.
        """
        refresh_token = _as_text(refresh_token)
        if refresh_token is None:
            raise InvalidRequestError("Missing refresh token", "Refresh token is required")

        request = RefreshRequest(refresh_token=refresh_token)
        self.logger.info("Token refresh request")

        reply = await self._call(REFRESH, {"refresh_token": request.refresh_token})
        tokens = self._parse_tokens(REFRESH, reply)
        if not tokens.refresh_token:
            tokens = tokens.model_copy(update={"refresh_token": request.refresh_token})

        self.logger.info(
            "Token refresh successful",
            token_type=tokens.token_type,
            expires_in=tokens.expires_in,
            rotated=tokens.refresh_token != request.refresh_token,
        )
        return tokens

    async def _call(self, operation: _Operation, params: Dict[str, str]) -> ProviderReply:
        start_time = time.time()
        try:
            reply = await self.client.request_token(operation.grant_type, params)
        except ProviderTransportError as e:
            self._record(operation, "unavailable", start_time)
            raise UpstreamUnavailableError(operation.unavailable_message, e.reason) from e

        if reply.ok:
            self._record(operation, "succeeded", start_time)
            return reply

        self._record(operation, "rejected", start_time)
        try:
            provider_error = ProviderError.model_validate(reply.body)
        except ValidationError:
            provider_error = ProviderError()

        self.logger.error(
            f"Provider token {operation.name} failed",
            status=reply.status_code,
            error=provider_error.error,
            description=provider_error.error_description,
        )
        raise UpstreamRejectedError(
            operation.rejected_error,
            provider_error.description,
            upstream_status=reply.status_code,
            provider_code=provider_error.error,
        )

    def _parse_tokens(self, operation: _Operation, reply: ProviderReply) -> TokenResponse:
        try:
            return TokenResponse.model_validate(reply.body)
        except ValidationError as e:
            self.logger.error(
                f"Provider token {operation.name} returned an invalid token payload",
                status=reply.status_code,
                fields=sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]}),
            )
            raise UpstreamUnavailableError(operation.unavailable_message, "invalid token payload") from e

    def _record(self, operation: _Operation, outcome: str, start_time: float) -> None:
        if self.metrics is not None:
            self.metrics.record_upstream_call(operation.grant_type.value, outcome, time.time() - start_time)
