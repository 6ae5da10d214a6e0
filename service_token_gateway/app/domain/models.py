"""
Token exchange data models.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class GrantType(str, Enum):
    """OAuth2 grant types sent to the provider."""
    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"


class ExchangeRequest(BaseModel):
    """Inbound authorization-code exchange."""
    code: str = Field(..., min_length=1, description="Authorization grant from the provider")
    state: Optional[str] = Field(None, description="Opaque, passed through untouched")


class RefreshRequest(BaseModel):
    """Inbound refresh."""
    refresh_token: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Token set returned by the provider and relayed to the caller."""
    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_in: int = Field(..., gt=0)
    token_type: str
    scope: List[str] = Field(default_factory=list)

    @field_validator("scope", mode="before")
    @classmethod
    def _split_scope(cls, value):
        # RFC 6749 allows a space-delimited string
        if value is None:
            return []
        if isinstance(value, str):
            return value.split()
        return value


class ProviderError(BaseModel):
    """OAuth2 error body from the provider; never relayed verbatim."""
    error: str = "unknown_error"
    error_description: Optional[str] = None

    @property
    def description(self) -> str:
        return self.error_description or self.error or "Unknown error"
