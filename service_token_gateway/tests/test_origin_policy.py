"""
Unit tests for the origin policy.
"""

import pytest
from structlog.testing import capture_logs

from service_token_gateway.app.pipeline import OriginDecision, OriginPolicy

ALLOW_LIST = ["https://app.example", "http://localhost:19006"]


class TestOriginPolicy:
    """Test cases for OriginPolicy."""

    @pytest.fixture
    def strict_policy(self):
        return OriginPolicy(ALLOW_LIST, permissive=False)

    @pytest.fixture
    def development_policy(self):
        return OriginPolicy(ALLOW_LIST, permissive=True)

    @pytest.mark.parametrize("origin", [None, ""])
    def test_missing_origin_allowed(self, strict_policy, origin):
        """Test that non-browser callers without an Origin are allowed."""
        with capture_logs() as logs:
            assert strict_policy.evaluate(origin) is OriginDecision.ALLOW
        assert logs == []

    def test_listed_origin_allowed(self, strict_policy):
        """Test that allow-listed origins pass silently."""
        with capture_logs() as logs:
            assert strict_policy.evaluate("https://app.example") is OriginDecision.ALLOW
        assert logs == []

    def test_unlisted_origin_denied_in_production(self, strict_policy):
        """Test that an unlisted origin is denied and the denial is logged."""
        with capture_logs() as logs:
            decision = strict_policy.evaluate("https://evil.example")

        assert decision is OriginDecision.DENY
        assert decision.allowed is False
        assert logs == [{
            "event": "CORS: Blocked origin",
            "log_level": "warning",
            "origin": "https://evil.example",
        }]

    def test_unlisted_origin_allowed_in_development(self, development_policy):
        """Test that development mode allows unlisted origins with a warning."""
        with capture_logs() as logs:
            decision = development_policy.evaluate("https://evil.example")

        assert decision is OriginDecision.ALLOW_DEVELOPMENT
        assert decision.allowed is True
        assert len(logs) == 1
        assert logs[0]["log_level"] == "warning"
        assert logs[0]["origin"] == "https://evil.example"

    def test_origin_match_is_exact(self, strict_policy):
        """Test that origins are compared exactly, without prefix matching."""
        assert strict_policy.evaluate("https://app.example.evil.test") is OriginDecision.DENY
        assert strict_policy.evaluate("http://app.example") is OriginDecision.DENY
