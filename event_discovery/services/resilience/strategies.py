"""
Rate Limiting Strategies

Sliding window request accounting per external API. Every attempted call is
recorded; a new call is allowed only while the number of records inside the
trailing window stays below the configured maximum.
"""

from collections import deque
from typing import Deque, Optional

from ...domain.resilience.value_objects import RateLimitConfig, RequestRecord


class SlidingWindowLimiter:
    """
    Request history and sliding-window check for one API.

    The window is evaluated against the caller-supplied "now" on every
    check rather than reset on clock boundaries. Without a config the
    limiter only keeps history for statistics and never denies a call.
    """

    def __init__(self, config: Optional[RateLimitConfig] = None):
        self.config = config
        self._history: Deque[RequestRecord] = deque()

    def __len__(self) -> int:
        return len(self._history)

    def prune(self, now: float, max_age_seconds: Optional[float] = None) -> int:
        """Drop records older than the window (or max_age_seconds)."""
        horizon = max_age_seconds
        if horizon is None:
            if self.config is None:
                return 0
            horizon = self.config.window_seconds

        removed = 0
        while self._history and now - self._history[0].timestamp >= horizon:
            self._history.popleft()
            removed += 1
        return removed

    def in_window(self, now: float) -> int:
        """Number of records inside the trailing window."""
        if self.config is None:
            return len(self._history)
        self.prune(now)
        return len(self._history)

    def allows(self, now: float) -> bool:
        if self.config is None:
            return True
        return self.in_window(now) < self.config.max_requests

    def retry_after(self, now: float) -> float:
        """Seconds until the oldest in-window record slides out."""
        if self.config is None or not self._history:
            return 0.0
        oldest = self._history[0].timestamp
        return max(0.0, oldest + self.config.window_seconds - now)

    def record(self, now: float) -> RequestRecord:
        """Append an in-flight attempt; the caller sets its outcome later."""
        record = RequestRecord(timestamp=now)
        self._history.append(record)
        return record

    def discard(self, record: RequestRecord) -> None:
        """Forget an attempt that never settled."""
        try:
            self._history.remove(record)
        except ValueError:
            # Already pruned
            return

    @property
    def success_count(self) -> int:
        return sum(1 for record in self._history if record.success is True)

    @property
    def failure_count(self) -> int:
        return sum(1 for record in self._history if record.success is False)
