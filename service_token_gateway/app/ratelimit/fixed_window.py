"""
Fixed-window rate limiter for the token gateway.

A client's window opens with its first request and closes exactly
``window_seconds`` later; the next request after that opens a new window
with a fresh budget.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from shared.logging import get_logger


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    current_count: int
    reset_in_seconds: int


@dataclass
class _Window:
    started_at: float
    count: int


class FixedWindowRateLimiter:
    """Per-key request counter over a fixed window."""

    def __init__(
        self,
        window_seconds: float,
        max_requests: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")

        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + window_seconds
        self.logger = get_logger("gateway.rate_limiter")

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for ``key`` and decide whether it may proceed."""
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)

            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                window = _Window(started_at=now, count=0)
                self._windows[key] = window

            window.count += 1
            count = window.count

        reset_in = max(0, math.ceil(window.started_at + self.window_seconds - now))
        allowed = count <= self.max_requests
        return RateLimitDecision(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            current_count=count,
            reset_in_seconds=reset_in,
        )

    def reset(self, key: str) -> None:
        """Forget the window for ``key``."""
        with self._lock:
            self._windows.pop(key, None)

    def active_keys(self) -> int:
        with self._lock:
            return len(self._windows)

    def _sweep(self, now: float) -> None:
        expired = [
            key for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.window_seconds
        if expired:
            self.logger.debug("Expired rate limit windows", count=len(expired))
