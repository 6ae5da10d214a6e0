"""
Tests for gateway configuration loading.
"""

import pytest
from pydantic import ValidationError

from shared.config import ConfigurationError, GatewayConfig, load_config
from shared.test_helpers import make_config


@pytest.fixture
def clean_env(monkeypatch):
    """Remove gateway variables inherited from the host environment."""
    for name in ("CLIENT_ID", "CLIENT_SECRET", "REDIRECT_URI", "ENV", "ALLOWED_ORIGINS", "API_KEY"):
        monkeypatch.delenv(f"GATEWAY_{name}", raising=False)
    return monkeypatch


def test_missing_credentials_fail_fast(clean_env):
    """Test that startup fails naming every missing credential."""
    with pytest.raises(ConfigurationError) as exc_info:
        load_config(_env_file=None)

    assert exc_info.value.missing == [
        "GATEWAY_CLIENT_ID",
        "GATEWAY_CLIENT_SECRET",
        "GATEWAY_REDIRECT_URI",
    ]
    assert "GATEWAY_CLIENT_ID" in str(exc_info.value)


def test_empty_credentials_rejected(clean_env):
    """Test that blank credentials count as missing."""
    with pytest.raises(ConfigurationError) as exc_info:
        load_config(_env_file=None, client_id="", client_secret="", redirect_uri="app://cb")

    assert exc_info.value.missing == ["GATEWAY_CLIENT_ID", "GATEWAY_CLIENT_SECRET"]


def test_loads_from_environment(clean_env):
    """Test configuration sourced from GATEWAY_* variables."""
    clean_env.setenv("GATEWAY_CLIENT_ID", "env-id")
    clean_env.setenv("GATEWAY_CLIENT_SECRET", "env-secret")
    clean_env.setenv("GATEWAY_REDIRECT_URI", "app://callback")
    clean_env.setenv("GATEWAY_ENV", "production")
    clean_env.setenv("GATEWAY_ALLOWED_ORIGINS", "https://a.example, https://b.example,")
    clean_env.setenv("GATEWAY_RATE_LIMIT_WINDOW_MS", "30000")

    config = load_config(_env_file=None)

    assert config.client_id == "env-id"
    assert config.is_production is True
    assert config.is_development is False
    assert config.origin_allow_list == ["https://a.example", "https://b.example"]
    assert config.rate_limit_window_seconds == 30.0
    assert config.rate_limit_max_requests == 100


def test_defaults():
    """Test tunable defaults."""
    config = make_config(env="development", allowed_origins="http://localhost:19006")

    assert config.port == 3000
    assert config.max_body_bytes == 10 * 1024 * 1024
    assert config.upstream_timeout_seconds == 10.0
    assert config.api_key_enabled is False
    assert config.is_development is True


def test_credentials_are_immutable_and_masked():
    """Test that credentials cannot change and the secret never renders."""
    config = make_config()
    credentials = config.credentials

    assert credentials.client_secret.get_secret_value() == "test-client-secret"
    assert "test-client-secret" not in repr(credentials)
    assert "test-client-secret" not in repr(config)

    with pytest.raises(ValidationError):
        credentials.client_id = "other"
    with pytest.raises(ValidationError):
        config.client_id = "other"


def test_api_key_enables_gate():
    """Test that a configured API key turns the credential gate on."""
    assert make_config(api_key="k-123").api_key_enabled is True


def test_invalid_tunable_reported(clean_env):
    """Test that invalid tunables surface as configuration errors."""
    with pytest.raises(ConfigurationError) as exc_info:
        load_config(
            _env_file=None,
            client_id="id",
            client_secret="secret",
            redirect_uri="app://cb",
            rate_limit_max_requests=0,
        )

    assert exc_info.value.missing == []


def test_gateway_config_direct_construction_requires_credentials(clean_env):
    """Test that the settings model itself enforces mandatory fields."""
    with pytest.raises(ValidationError):
        GatewayConfig(_env_file=None)
