"""Fixed-window request limiting per client."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

logger = logging.getLogger("errmon.collector")


class RateLimiter:
    def __init__(
        self,
        max_requests: int = 100,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._next_sweep = 0.0

    def __len__(self) -> int:
        return len(self._windows)

    def is_limited(self, key: str) -> bool:
        """Count a request for ``key``; True once it is over the limit for this window."""
        now = self._clock()
        self._sweep(now)
        count, reset_at = self._windows.get(key, (0, 0.0))
        if now >= reset_at:
            self._windows[key] = (1, now + self.window)
            return False
        count += 1
        self._windows[key] = (count, reset_at)
        return count > self.max_requests

    def _sweep(self, now: float) -> None:
        """Drop keys whose window has ended, at most once per window."""
        if now < self._next_sweep:
            return
        expired = [k for k, (_, reset_at) in self._windows.items() if now >= reset_at]
        for k in expired:
            del self._windows[k]
        if expired:
            logger.debug("Dropped %d expired rate limit windows", len(expired))
        self._next_sweep = now + self.window
