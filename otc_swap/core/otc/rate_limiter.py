"""
Per-wallet rate limiting for swap quotes.

Fixed window per identity, held in process memory. Losing the counters on
restart is acceptable: this throttles abuse of the treasury signer, it does
not guard correctness.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .errors import RateLimitExceeded


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """
    Grants each identity up to ``limit`` operations per ``window_seconds``.

    The window opens on the first request and resets once it has elapsed;
    the request after the limit inside an open window is rejected. Expired
    windows are swept at most once per window length, so memory tracks the
    wallets seen recently rather than every wallet ever seen.
    """

    def __init__(
        self,
        limit: int = 5,
        window_seconds: int = 60,
        clock: Optional[Callable[[], float]] = None,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock or time.monotonic
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._next_sweep = self._clock() + window_seconds

    def allow(self, identity: str) -> bool:
        """Record an attempt for ``identity`` and return whether it is within limits."""
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)

            window = self._windows.get(identity)
            if window is None or now >= window.reset_at:
                self._windows[identity] = _Window(count=1, reset_at=now + self.window_seconds)
                return True
            if window.count >= self.limit:
                return False
            window.count += 1
            return True

    def check(self, identity: str) -> None:
        """Like ``allow`` but raises ``RateLimitExceeded`` with a retry hint."""
        if self.allow(identity):
            return
        with self._lock:
            window = self._windows.get(identity)
            remaining = window.reset_at - self._clock() if window else self.window_seconds
        raise RateLimitExceeded(
            limit=self.limit,
            window_seconds=self.window_seconds,
            retry_after=max(1, math.ceil(remaining)),
        )

    def _sweep(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.window_seconds


__all__ = ["RateLimiter", "RateLimitExceeded"]
