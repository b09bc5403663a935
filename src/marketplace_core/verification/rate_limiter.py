"""Fixed-window request throttling per identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from marketplace_core.clock import Clock
from marketplace_core.errors import RateLimited
from marketplace_core.verification.locks import KeyedLocks

logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    """Request counter for one identity within one window."""

    window_start: datetime
    reset_at: datetime
    count: int = 0


class RateLimiter:
    """Counts code requests per identity in fixed windows.

    Coarser than a sliding window: a caller can burst up to twice the
    budget across a window boundary.  Windows are created lazily and only
    removed by :meth:`purge_expired`.
    """

    def __init__(self, max_requests: int, window: timedelta, clock: Clock) -> None:
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}
        self._locks = KeyedLocks()

    def check(self, identity: str) -> RateLimitWindow:
        """Count one request for *identity* or raise ``RateLimited``.

        A rejected request does not increment the counter.
        """
        with self._locks(identity):
            now = self._clock.now()
            window = self._windows.get(identity)

            if window is None or now >= window.reset_at:
                window = RateLimitWindow(
                    window_start=now, reset_at=now + self.window, count=1
                )
                self._windows[identity] = window
                return window

            if window.count >= self.max_requests:
                logger.warning(
                    "Rate limit hit for %s (%d/%d, resets %s)",
                    identity,
                    window.count,
                    self.max_requests,
                    window.reset_at.isoformat(),
                )
                raise RateLimited(identity, window.reset_at)

            window.count += 1
            return window

    def remaining(self, identity: str) -> int:
        """Requests *identity* may still make in its current window."""
        with self._locks(identity):
            window = self._windows.get(identity)
            if window is None or self._clock.now() >= window.reset_at:
                return self.max_requests
            return max(self.max_requests - window.count, 0)

    def purge_expired(self) -> int:
        """Drop windows that have already reset; returns how many."""
        now = self._clock.now()
        removed = 0
        for identity in list(self._windows):
            with self._locks(identity):
                window = self._windows.get(identity)
                if window is not None and now >= window.reset_at:
                    del self._windows[identity]
                    removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._windows)
