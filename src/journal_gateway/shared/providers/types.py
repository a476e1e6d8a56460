"""Core types for the breaker-guarded provider gateway."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Generic, NamedTuple, TypeVar, cast

from journal_gateway.domain.enums import GatewayErrorKind
from journal_gateway.domain.exceptions import GatewayError

T = TypeVar("T")


class BreakerState(str, enum.Enum):
    """Health state of a single provider's breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class ProviderConfig:
    """Static configuration for a single provider gateway.

    Attributes:
        provider_id:  Unique identifier (e.g. "text", "vision").
        timeout_s:    Default per-call deadline in seconds.
        cb_failure_threshold:  Counted failures within the window before the circuit opens.
        cb_window_s:           Length of the rolling failure window.
        cb_cooldown_s:         Seconds an open circuit waits before a trial call.
        cb_backoff_multiplier: Cooldown growth factor per consecutive failed trial (1.0 = fixed).
        cb_max_cooldown_s:     Upper bound on the grown cooldown.
        metadata:     Arbitrary extra config (model name, endpoint path, etc.).
    """

    provider_id: str
    timeout_s: float = 60.0
    cb_failure_threshold: int = 3
    cb_window_s: float = 120.0
    cb_cooldown_s: float = 60.0
    cb_backoff_multiplier: float = 1.0
    cb_max_cooldown_s: float = 600.0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class TrialToken:
    """Single-use permit for the one probe call allowed while half-open."""

    serial: int
    issued_at: float


class Permit(NamedTuple):
    """Answer of ``CircuitBreaker.allow()``."""

    permitted: bool
    is_trial: bool = False
    token: TrialToken | None = None
    retry_after: float | None = None


@dataclass(frozen=True, slots=True)
class CallOutcome:
    """What happened to one attempt, fed back into the breaker."""

    succeeded: bool
    error_kind: GatewayErrorKind | None = None
    duration_ms: float = 0.0

    @classmethod
    def success(cls, duration_ms: float = 0.0) -> CallOutcome:
        return cls(True, None, duration_ms)

    @classmethod
    def failure(cls, kind: GatewayErrorKind, duration_ms: float = 0.0) -> CallOutcome:
        return cls(False, kind, duration_ms)


@dataclass(frozen=True)
class GatewayResult(Generic[T]):
    """Either the provider's value or a typed ``GatewayError``."""

    value: T | None = None
    error: GatewayError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> GatewayErrorKind | None:
        return self.error.kind if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value, or raise the carried ``GatewayError``."""
        if self.error is not None:
            raise self.error
        return cast(T, self.value)


@dataclass
class BreakerSnapshot:
    """Read-only view of a breaker's bookkeeping."""

    provider_id: str
    state: BreakerState
    failures_in_window: int = 0
    oldest_failure_age_s: float | None = None
    consecutive_trial_failures: int = 0
    cooldown_s: float = 0.0
    retry_after_s: float | None = None
    trial_in_flight: bool = False
    transitions: int = 0
    subscribers: int = 0


@dataclass
class GatewayHealth:
    """Read-only snapshot of a provider gateway's current health."""

    provider_id: str
    circuit_state: str = BreakerState.CLOSED.value
    total_calls: int = 0
    total_successes: int = 0
    total_failures: int = 0
    total_rejected: int = 0
    total_timeouts: int = 0
    total_cancelled: int = 0
    total_not_counted: int = 0
    success_rate: float = 1.0
    latency_p50_ms: float = 0.0
    latency_p95_ms: float = 0.0
    latency_p99_ms: float = 0.0
    last_error: str | None = None
    last_error_time: float | None = None
    retry_after_s: float | None = None
