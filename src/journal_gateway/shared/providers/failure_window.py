"""Rolling failure window consulted by a closed breaker.

Failures older than ``window_seconds`` are evicted before every read, so
a burst of errors spread over a long period never trips the breaker.
Not locked on its own: the owning breaker serialises access.
"""

from __future__ import annotations

from collections import deque


class FailureWindow:
    """Time-bounded failure counter with a trip threshold."""

    def __init__(self, threshold: int, window_seconds: float) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self._threshold = threshold
        self._window = window_seconds
        self._timestamps: deque[float] = deque()

    def record_failure(self, now: float) -> bool:
        """Count one failure; return True once the threshold is reached."""
        self._evict(now)
        self._timestamps.append(now)
        return len(self._timestamps) >= self._threshold

    def count(self, now: float) -> int:
        self._evict(now)
        return len(self._timestamps)

    def oldest(self, now: float) -> float | None:
        """Timestamp of the oldest failure still inside the window."""
        self._evict(now)
        return self._timestamps[0] if self._timestamps else None

    def clear(self) -> None:
        self._timestamps.clear()

    # ── Internals ────────────────────────────────────────────
    def _evict(self, now: float) -> None:
        cutoff = now - self._window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()
