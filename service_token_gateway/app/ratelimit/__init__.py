"""
Rate limiting package for the token gateway.

Holds the in-process fixed-window limiter that bounds request volume per
client address.
"""

from .fixed_window import FixedWindowRateLimiter, RateLimitDecision

__all__ = ["FixedWindowRateLimiter", "RateLimitDecision"]
