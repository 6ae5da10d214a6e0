"""
Shared configuration management for the OAuth token gateway.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


REQUIRED_ENV_VARS = {
    "client_id": "GATEWAY_CLIENT_ID",
    "client_secret": "GATEWAY_CLIENT_SECRET",
    "redirect_uri": "GATEWAY_REDIRECT_URI",
}


class ConfigurationError(Exception):
    """Raised when the gateway cannot start with the supplied environment."""

    def __init__(self, message: str, missing: List[str]):
        self.missing = missing
        super().__init__(message)


class ClientCredentials(BaseModel):
    """Upstream OAuth client credentials, immutable for the process lifetime."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: SecretStr
    redirect_uri: str


class GatewayConfig(BaseSettings):
    """Gateway configuration loaded from the environment."""

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Upstream credentials
    client_id: str = Field(min_length=1)
    client_secret: SecretStr
    redirect_uri: str = Field(min_length=1)
    token_url: str = "https://auth.smartcar.com/oauth/token"
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)

    # Server
    env: str = "development"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"

    # Request pipeline
    allowed_origins: str = "http://localhost:19006"
    rate_limit_window_ms: int = Field(default=900_000, gt=0)
    rate_limit_max_requests: int = Field(default=100, gt=0)
    max_body_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    trust_proxy: bool = True

    # Empty disables the X-API-Key gate
    api_key: SecretStr = SecretStr("")

    @field_validator("client_secret")
    @classmethod
    def _secret_not_empty(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("client secret must not be empty")
        return value

    @property
    def credentials(self) -> ClientCredentials:
        return ClientCredentials(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
        )

    @property
    def origin_allow_list(self) -> List[str]:
        """Comma-separated ``allowed_origins`` as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def rate_limit_window_seconds(self) -> float:
        return self.rate_limit_window_ms / 1000.0

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.env.lower() == "development"

    @property
    def api_key_enabled(self) -> bool:
        return bool(self.api_key.get_secret_value())


def load_config(**overrides) -> GatewayConfig:
    """Build the gateway configuration, failing fast on missing credentials."""
    try:
        config = GatewayConfig(**overrides)
    except ValidationError as exc:
        missing = sorted({
            REQUIRED_ENV_VARS[str(error["loc"][0])]
            for error in exc.errors()
            if error["loc"] and str(error["loc"][0]) in REQUIRED_ENV_VARS
        })
        if missing:
            raise ConfigurationError(
                f"Missing required environment variable(s): {', '.join(missing)}",
                missing=missing,
            ) from exc
        raise ConfigurationError(f"Invalid gateway configuration: {exc}", missing=[]) from exc

    return config
