"""Per-gateway call statistics.

Cumulative outcome counters plus a rolling window of recent attempts
used for the success rate and latency percentiles.  Purely
observational: the breaker never reads from here.
"""

from __future__ import annotations

import bisect
import threading
import time
from collections import Counter, deque
from collections.abc import Callable
from typing import NamedTuple

from journal_gateway.domain.enums import GatewayErrorKind
from journal_gateway.shared.providers.types import GatewayHealth


class _Attempt(NamedTuple):
    at: float
    succeeded: bool
    latency_ms: float


class GatewayStatsTracker:
    """Thread-safe outcome counters and latency window for one provider."""

    def __init__(
        self,
        provider_id: str,
        *,
        window_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider_id = provider_id
        self._window_s = window_seconds
        self._clock = clock
        self._lock = threading.Lock()

        self._recent: deque[_Attempt] = deque()
        self._sorted_latencies: list[float] = []
        self._totals: Counter[str] = Counter()
        self._last_error: tuple[str, float] | None = None

    def record_success(self, latency_ms: float) -> None:
        with self._lock:
            self._attempt(True, latency_ms)
            self._totals.update(("calls", "successes"))

    def record_failure(
        self, kind: GatewayErrorKind, error: str, latency_ms: float, *, counted: bool
    ) -> None:
        """Record a provider attempt that failed; ``counted`` mirrors the breaker verdict."""
        with self._lock:
            self._attempt(False, latency_ms)
            self._totals.update(("calls", "failures" if counted else "not_counted"))
            if kind is GatewayErrorKind.TIMEOUT:
                self._totals["timeouts"] += 1
            self._last_error = (error, time.time())

    def record_rejected(self) -> None:
        with self._lock:
            self._totals.update(("calls", "rejected"))

    def record_cancelled(self) -> None:
        with self._lock:
            self._totals.update(("calls", "cancelled"))

    def health(self) -> GatewayHealth:
        with self._lock:
            self._expire()
            attempts = len(self._recent)
            ok = sum(1 for a in self._recent if a.succeeded)
            error, error_at = self._last_error or (None, None)
            return GatewayHealth(
                provider_id=self._provider_id,
                total_calls=self._totals["calls"],
                total_successes=self._totals["successes"],
                total_failures=self._totals["failures"],
                total_rejected=self._totals["rejected"],
                total_timeouts=self._totals["timeouts"],
                total_cancelled=self._totals["cancelled"],
                total_not_counted=self._totals["not_counted"],
                success_rate=round(ok / attempts, 4) if attempts else 1.0,
                latency_p50_ms=self._quantile(0.50),
                latency_p95_ms=self._quantile(0.95),
                latency_p99_ms=self._quantile(0.99),
                last_error=error,
                last_error_time=error_at,
            )

    # ── Window maintenance (caller holds lock) ───────────────
    def _attempt(self, succeeded: bool, latency_ms: float) -> None:
        self._recent.append(_Attempt(self._clock(), succeeded, latency_ms))
        bisect.insort(self._sorted_latencies, latency_ms)
        self._expire()

    def _expire(self) -> None:
        horizon = self._clock() - self._window_s
        while self._recent and self._recent[0].at < horizon:
            stale = self._recent.popleft()
            idx = bisect.bisect_left(self._sorted_latencies, stale.latency_ms)
            del self._sorted_latencies[idx]

    def _quantile(self, q: float) -> float:
        values = self._sorted_latencies
        if not values:
            return 0.0
        return round(values[min(int(len(values) * q), len(values) - 1)], 2)
