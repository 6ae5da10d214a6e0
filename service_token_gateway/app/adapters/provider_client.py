"""
Client for the provider's OAuth2 token endpoint.
"""

import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from shared.config import ClientCredentials
from shared.logging import get_logger

from ..domain.models import GrantType

USER_AGENT = "oauth-token-gateway/1.0.0"


class ProviderTransportError(Exception):
    """The token endpoint could not be reached or its reply could not be parsed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


@dataclass(frozen=True)
class ProviderReply:
    """Parsed reply from the token endpoint."""
    status_code: int
    body: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class ProviderTokenClient:
    """Posts form-encoded grants to the token endpoint with HTTP Basic auth."""

    def __init__(
        self,
        token_url: str,
        credentials: ClientCredentials,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_url = token_url
        self.credentials = credentials
        self.timeout = timeout
        self.logger = get_logger("gateway.provider_client")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get the shared HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    def _authorization_header(self) -> str:
        raw = f"{self.credentials.client_id}:{self.credentials.client_secret.get_secret_value()}"
        return "Basic " + base64.b64encode(raw.encode("utf-8")).decode("ascii")

    async def request_token(self, grant_type: GrantType, params: Dict[str, str]) -> ProviderReply:
        """POST one grant to the token endpoint. Single attempt, no retries."""
        form = {"grant_type": grant_type.value, **params}
        headers = {
            "Authorization": self._authorization_header(),
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

        client = await self._get_client()
        try:
            response = await client.post(self.token_url, data=form, headers=headers)
        except httpx.TimeoutException as e:
            self.logger.error("Token endpoint timed out", grant_type=grant_type.value, error=str(e))
            raise ProviderTransportError(f"timeout: {e}") from e
        except httpx.HTTPError as e:
            self.logger.error(
                "Token endpoint unreachable",
                grant_type=grant_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderTransportError(f"{type(e).__name__}: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            self.logger.error(
                "Token endpoint returned malformed JSON",
                grant_type=grant_type.value,
                status=response.status_code,
            )
            raise ProviderTransportError(f"malformed JSON (HTTP {response.status_code})") from e

        if not isinstance(body, dict):
            raise ProviderTransportError(f"unexpected JSON payload (HTTP {response.status_code})")

        return ProviderReply(status_code=response.status_code, body=body)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
