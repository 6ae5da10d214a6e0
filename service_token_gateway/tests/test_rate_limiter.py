"""
Unit tests for the gateway rate limiter.
"""

import pytest

from service_token_gateway.app.ratelimit import FixedWindowRateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class TestFixedWindowRateLimiter:
    """Test cases for FixedWindowRateLimiter."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def rate_limiter(self, clock):
        """Create a limiter allowing 5 requests per 60 seconds."""
        return FixedWindowRateLimiter(window_seconds=60, max_requests=5, clock=clock)

    def test_requests_within_limit_allowed(self, rate_limiter):
        """Test that the first M requests are allowed."""
        decisions = [rate_limiter.hit("127.0.0.1") for _ in range(5)]

        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [4, 3, 2, 1, 0]
        assert decisions[-1].current_count == 5
        assert decisions[-1].limit == 5

    def test_sixth_request_rejected(self, rate_limiter):
        """Test that request M+1 within the window is rejected."""
        for _ in range(5):
            rate_limiter.hit("127.0.0.1")

        decision = rate_limiter.hit("127.0.0.1")

        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.current_count == 6

    def test_rejections_continue_until_window_ends(self, rate_limiter, clock):
        """Test that every request past the limit stays rejected in the window."""
        for _ in range(5):
            rate_limiter.hit("127.0.0.1")

        clock.advance(59.9)
        assert rate_limiter.hit("127.0.0.1").allowed is False
        assert rate_limiter.hit("127.0.0.1").allowed is False

    def test_new_window_after_expiry(self, rate_limiter, clock):
        """Test that the first request after W elapses succeeds with a fresh budget."""
        for _ in range(6):
            rate_limiter.hit("127.0.0.1")

        clock.advance(60)
        decision = rate_limiter.hit("127.0.0.1")

        assert decision.allowed is True
        assert decision.current_count == 1
        assert decision.remaining == 4

    def test_window_anchored_on_first_request(self, rate_limiter, clock):
        """Test that the window resets W after its first request, not after the last."""
        rate_limiter.hit("127.0.0.1")
        clock.advance(30)
        for _ in range(4):
            rate_limiter.hit("127.0.0.1")
        assert rate_limiter.hit("127.0.0.1").allowed is False

        clock.advance(30)
        assert rate_limiter.hit("127.0.0.1").allowed is True

    def test_reset_in_seconds(self, rate_limiter, clock):
        """Test reset metadata counts down to the window end."""
        assert rate_limiter.hit("127.0.0.1").reset_in_seconds == 60

        clock.advance(45.5)
        assert rate_limiter.hit("127.0.0.1").reset_in_seconds == 15

    def test_clients_counted_independently(self, rate_limiter):
        """Test that one client's budget does not affect another's."""
        for _ in range(6):
            rate_limiter.hit("10.0.0.1")

        decision = rate_limiter.hit("10.0.0.2")

        assert decision.allowed is True
        assert decision.current_count == 1

    def test_reset_clears_key(self, rate_limiter):
        """Test manual reset of a client window."""
        for _ in range(6):
            rate_limiter.hit("127.0.0.1")

        rate_limiter.reset("127.0.0.1")

        assert rate_limiter.hit("127.0.0.1").allowed is True

    def test_expired_windows_swept(self, rate_limiter, clock):
        """Test that idle client windows are dropped once expired."""
        rate_limiter.hit("10.0.0.1")
        rate_limiter.hit("10.0.0.2")
        assert rate_limiter.active_keys() == 2

        clock.advance(61)
        rate_limiter.hit("10.0.0.3")

        assert rate_limiter.active_keys() == 1

    @pytest.mark.parametrize("window, maximum", [(0, 5), (60, 0), (-1, 5)])
    def test_invalid_parameters(self, window, maximum):
        """Test that non-positive window or limit is rejected."""
        with pytest.raises(ValueError):
            FixedWindowRateLimiter(window_seconds=window, max_requests=maximum)
