"""Fixed-window request limiter keyed by client."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Allow ``max_requests`` per ``window_seconds`` for each key.

    A key's window starts with its first request and resets once
    ``window_seconds`` have elapsed. State lives in process memory, so each
    worker enforces its own limit.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def check(self, key: str) -> bool:
        """Count a request for ``key``; False when it exceeds the limit."""

        now = self._clock()
        window = self._windows.get(key)
        if window is None or now >= window.reset_at:
            self._prune(now)
            self._windows[key] = _Window(count=1, reset_at=now + self.window_seconds)
            return True
        if window.count >= self.max_requests:
            return False
        window.count += 1
        return True

    def retry_after(self, key: str) -> float:
        """Seconds until the current window for ``key`` resets."""

        window = self._windows.get(key)
        if window is None:
            return 0.0
        return max(0.0, window.reset_at - self._clock())

    def _prune(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]


__all__ = ["RateLimiter"]
