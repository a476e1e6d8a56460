"""Circuit breaker — stops a failing provider from being hammered.

State machine:
    CLOSED    → (threshold failures inside the window) → OPEN
    OPEN      → (call attempted after cooldown)         → HALF_OPEN, caller gets the trial token
    HALF_OPEN → (trial succeeds)                        → CLOSED
    HALF_OPEN → (trial fails)                           → OPEN, cooldown restarted with backoff
    HALF_OPEN → (trial ends neutrally)                  → HALF_OPEN, token released

``allow`` / ``report`` / ``release_trial`` / ``reset`` read and mutate
state in a single critical section with no suspension point.  The lock
additionally makes them safe under OS threads.  Subscribers are notified
after the lock is released, in the order transitions were produced.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from journal_gateway.shared.observability.metrics import (
    BREAKER_STATE,
    BREAKER_STATE_VALUES,
    BREAKER_TRANSITIONS_TOTAL,
)
from journal_gateway.shared.providers.failure_window import FailureWindow
from journal_gateway.shared.providers.subscriptions import Subscription, SubscriptionRegistry
from journal_gateway.shared.providers.trial import TrialCoordinator
from journal_gateway.shared.providers.types import (
    BreakerSnapshot,
    BreakerState,
    CallOutcome,
    Permit,
)

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]
StateCallback = Callable[[BreakerState], None]


@dataclass(frozen=True, slots=True)
class CooldownTimer:
    opened_at: float
    duration: float

    def remaining(self, now: float) -> float:
        return max(0.0, self.opened_at + self.duration - now)

    def expired(self, now: float) -> bool:
        return now - self.opened_at >= self.duration


class CircuitBreaker:
    """Per-provider circuit breaker with a single half-open trial."""

    def __init__(
        self,
        provider_id: str,
        *,
        failure_threshold: int = 3,
        window_seconds: float = 120.0,
        cooldown_seconds: float = 60.0,
        backoff_multiplier: float = 1.0,
        max_cooldown_seconds: float = 600.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be > 0")
        if backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")
        if max_cooldown_seconds < cooldown_seconds:
            raise ValueError("max_cooldown_seconds must be >= cooldown_seconds")

        self._provider_id = provider_id
        self._cooldown = cooldown_seconds
        self._backoff = backoff_multiplier
        self._max_cooldown = max_cooldown_seconds
        self._clock = clock

        self._state = BreakerState.CLOSED
        self._window = FailureWindow(failure_threshold, window_seconds)
        self._timer: CooldownTimer | None = None
        self._trial = TrialCoordinator()
        self._trial_failures = 0
        self._transitions = 0
        self._registry: SubscriptionRegistry[BreakerState] = SubscriptionRegistry(provider_id)
        self._lock = threading.Lock()

        BREAKER_STATE.labels(provider=provider_id).set(BREAKER_STATE_VALUES[self._state.value])

    @property
    def provider_id(self) -> str:
        return self._provider_id

    @property
    def state(self) -> BreakerState:
        """Synchronous snapshot; reading never causes a transition."""
        return self._state

    @property
    def subscriber_count(self) -> int:
        return self._registry.count

    # ── Gate ─────────────────────────────────────────────────
    def allow(self) -> Permit:
        """Decide whether a call may reach the provider right now."""
        with self._lock:
            permit = self._allow_locked(self._clock())
        self._registry.drain()
        return permit

    def _allow_locked(self, now: float) -> Permit:
        if self._state is BreakerState.CLOSED:
            return Permit(True)

        if self._state is BreakerState.OPEN:
            timer = self._timer
            if timer is not None and not timer.expired(now):
                return Permit(False, retry_after=timer.remaining(now))
            elapsed = now - timer.opened_at if timer is not None else 0.0
            self._timer = None
            self._transition(BreakerState.HALF_OPEN)
            logger.info(
                "circuit_breaker_half_open",
                provider=self._provider_id,
                elapsed_s=round(elapsed, 1),
            )

        token = self._trial.issue(now)
        if token is None:
            return Permit(False)
        logger.debug("circuit_breaker_trial_issued", provider=self._provider_id, trial=token.serial)
        return Permit(True, is_trial=True, token=token)

    # ── Feedback ─────────────────────────────────────────────
    def report(self, outcome: CallOutcome, permit: Permit | None = None) -> None:
        """Feed back a counted outcome (success or qualifying failure)."""
        with self._lock:
            self._report_locked(outcome, permit, self._clock())
        self._registry.drain()

    def _report_locked(self, outcome: CallOutcome, permit: Permit | None, now: float) -> None:
        if permit is not None and permit.is_trial:
            if not self._trial.consume(permit.token):
                logger.debug("circuit_breaker_stale_trial", provider=self._provider_id)
                return
            if outcome.succeeded:
                self._close()
            else:
                self._reopen(now, outcome)
            return

        if self._state is not BreakerState.CLOSED:
            # Call was let through before the trip; only the trial decides recovery.
            logger.debug(
                "circuit_breaker_stale_report",
                provider=self._provider_id,
                state=self._state.value,
                succeeded=outcome.succeeded,
            )
            return

        if outcome.succeeded:
            self._window.clear()
        elif self._window.record_failure(now):
            self._trip(now, outcome)

    def release_trial(self, permit: Permit) -> None:
        """End a trial without a verdict (cancelled, or rejected as invalid input)."""
        if not permit.is_trial:
            return
        with self._lock:
            if self._trial.consume(permit.token):
                logger.info("circuit_breaker_trial_released", provider=self._provider_id)

    def reset(self) -> None:
        """Force the circuit to CLOSED (admin override)."""
        with self._lock:
            self._window.clear()
            self._trial.clear()
            self._timer = None
            self._trial_failures = 0
            self._transition(BreakerState.CLOSED)
            logger.info("circuit_breaker_force_reset", provider=self._provider_id)
        self._registry.drain()

    # ── Observation ──────────────────────────────────────────
    def on_state_change(self, callback: StateCallback) -> Subscription[BreakerState]:
        return self._registry.subscribe(callback)

    def retry_after(self) -> float | None:
        with self._lock:
            if self._timer is None:
                return None
            return self._timer.remaining(self._clock())

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            now = self._clock()
            oldest = self._window.oldest(now)
            return BreakerSnapshot(
                provider_id=self._provider_id,
                state=self._state,
                failures_in_window=self._window.count(now),
                oldest_failure_age_s=None if oldest is None else now - oldest,
                consecutive_trial_failures=self._trial_failures,
                cooldown_s=self._timer.duration if self._timer else self._next_cooldown(),
                retry_after_s=self._timer.remaining(now) if self._timer else None,
                trial_in_flight=self._trial.in_flight,
                transitions=self._transitions,
                subscribers=self._registry.count,
            )

    def clear_subscribers(self) -> None:
        self._registry.clear()

    # ── Transitions (caller holds lock) ──────────────────────
    def _trip(self, now: float, outcome: CallOutcome) -> None:
        failures = self._window.count(now)
        self._window.clear()
        self._timer = CooldownTimer(now, self._cooldown)
        self._transition(BreakerState.OPEN)
        logger.warning(
            "circuit_breaker_opened",
            provider=self._provider_id,
            failures=failures,
            last_error_kind=outcome.error_kind.value if outcome.error_kind else None,
            cooldown_s=self._cooldown,
        )

    def _reopen(self, now: float, outcome: CallOutcome) -> None:
        self._trial_failures += 1
        cooldown = self._next_cooldown()
        self._timer = CooldownTimer(now, cooldown)
        self._transition(BreakerState.OPEN)
        logger.warning(
            "circuit_breaker_reopened",
            provider=self._provider_id,
            trial_failures=self._trial_failures,
            last_error_kind=outcome.error_kind.value if outcome.error_kind else None,
            cooldown_s=round(cooldown, 1),
        )

    def _close(self) -> None:
        prev = self._state
        self._window.clear()
        self._timer = None
        self._trial_failures = 0
        self._transition(BreakerState.CLOSED)
        logger.info(
            "circuit_breaker_closed",
            provider=self._provider_id,
            previous_state=prev.value,
        )

    def _next_cooldown(self) -> float:
        return min(self._cooldown * (self._backoff ** self._trial_failures), self._max_cooldown)

    def _transition(self, new_state: BreakerState) -> None:
        if self._state is new_state:
            return
        self._state = new_state
        self._transitions += 1
        BREAKER_TRANSITIONS_TOTAL.labels(provider=self._provider_id, state=new_state.value).inc()
        BREAKER_STATE.labels(provider=self._provider_id).set(BREAKER_STATE_VALUES[new_state.value])
        self._registry.enqueue(new_state)
