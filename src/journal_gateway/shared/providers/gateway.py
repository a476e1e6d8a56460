"""Provider gateway — the single entry-point for calls to one AI provider.

Composes CircuitBreaker, failure classification and GatewayStatsTracker
into one protective layer.  Callers hand in a zero-argument coroutine
factory and always get a ``GatewayResult`` back; the gateway never
retries, caches, or swallows errors.

Usage::

    gateway = ProviderGateway(ProviderConfig("vision", timeout_s=90))

    result = await gateway.execute(
        lambda: adapter.analyze_image(frame, on_progress=show_progress),
        cancel_token=token,
    )
    if result.error_kind is GatewayErrorKind.CIRCUIT_OPEN:
        ...  # render "temporarily unavailable"
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, TypeVar

import structlog

from journal_gateway.domain.enums import GatewayErrorKind
from journal_gateway.domain.exceptions import GatewayError
from journal_gateway.shared.observability.metrics import (
    GATEWAY_CALL_DURATION,
    GATEWAY_CALLS_TOTAL,
)
from journal_gateway.shared.providers.cancellation import CancelToken
from journal_gateway.shared.providers.circuit_breaker import CircuitBreaker, Clock, StateCallback
from journal_gateway.shared.providers.classification import classify_exception
from journal_gateway.shared.providers.health import GatewayStatsTracker
from journal_gateway.shared.providers.subscriptions import Subscription
from journal_gateway.shared.providers.types import (
    BreakerState,
    CallOutcome,
    GatewayHealth,
    GatewayResult,
    Permit,
    ProviderConfig,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ProviderGateway:
    """Deadline, cancellation and breaker enforcement around one provider."""

    def __init__(self, config: ProviderConfig, *, clock: Clock = time.monotonic) -> None:
        self._config = config
        self._breaker = CircuitBreaker(
            config.provider_id,
            failure_threshold=config.cb_failure_threshold,
            window_seconds=config.cb_window_s,
            cooldown_seconds=config.cb_cooldown_s,
            backoff_multiplier=config.cb_backoff_multiplier,
            max_cooldown_seconds=config.cb_max_cooldown_s,
            clock=clock,
        )
        self._tracker = GatewayStatsTracker(config.provider_id)
        self._in_flight: set[asyncio.Future[Any]] = set()
        self._watchers: set[tuple[asyncio.AbstractEventLoop, asyncio.Queue[BreakerState | None]]] = set()
        self._closed = False

    @property
    def provider_id(self) -> str:
        return self._config.provider_id

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def state(self) -> BreakerState:
        return self._breaker.state

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Main entry-point ─────────────────────────────────────
    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
        label: str = "call",
    ) -> GatewayResult[T]:
        """Run ``operation`` through the breaker.

        Args:
            operation: Zero-argument callable returning the provider awaitable.
            timeout: Deadline in seconds (defaults to ``config.timeout_s``).
            cancel_token: Caller-side cancellation; never counts as a failure.
            label: Operation name for logs.

        Returns:
            ``GatewayResult`` holding the value or a ``GatewayError`` whose
            ``kind`` is CIRCUIT_OPEN, TIMEOUT, CANCELLED, PROVIDER_ERROR or UNKNOWN.

        Raises:
            asyncio.CancelledError: If the task awaiting ``execute`` is itself
                cancelled.  The provider call is cancelled too and the breaker
                is left untouched.
        """
        pid = self._config.provider_id
        log = logger.bind(provider=pid, operation=label)

        if self._closed:
            return self._cancelled(log, "gateway is shut down")
        if cancel_token is not None and cancel_token.cancelled:
            return self._cancelled(log, cancel_token.reason or "cancelled before dispatch")

        permit = self._breaker.allow()
        if not permit.permitted:
            self._tracker.record_rejected()
            GATEWAY_CALLS_TOTAL.labels(provider=pid, outcome="circuit_open").inc()
            log.debug("gateway_fast_fail", retry_after_s=permit.retry_after)
            return GatewayResult(error=GatewayError.circuit_open(pid, retry_after=permit.retry_after))
        if permit.is_trial:
            log.info("gateway_trial_call")

        deadline = self._config.timeout_s if timeout is None else timeout
        task = asyncio.ensure_future(_invoke(operation))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        cancel_waiter = asyncio.ensure_future(cancel_token.wait()) if cancel_token else None

        start = time.perf_counter()
        try:
            done, _ = await asyncio.wait(
                {task} if cancel_waiter is None else {task, cancel_waiter},
                timeout=deadline,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            _abandon(task)
            self._breaker.release_trial(permit)
            self._tracker.record_cancelled()
            GATEWAY_CALLS_TOTAL.labels(provider=pid, outcome="cancelled").inc()
            log.info("gateway_caller_task_cancelled")
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        latency_ms = (time.perf_counter() - start) * 1000
        GATEWAY_CALL_DURATION.labels(provider=pid).observe(latency_ms / 1000)

        if task in done:
            return self._settle(task, permit, latency_ms, log)

        _abandon(task)
        if cancel_waiter is not None and cancel_waiter in done:
            self._breaker.release_trial(permit)
            reason = cancel_token.reason if cancel_token is not None else None
            return self._cancelled(log, reason or "cancelled by caller", latency_ms)

        # Deadline exceeded
        message = f"Timeout after {deadline}s"
        self._breaker.report(CallOutcome.failure(GatewayErrorKind.TIMEOUT, latency_ms), permit)
        self._tracker.record_failure(GatewayErrorKind.TIMEOUT, message, latency_ms, counted=True)
        GATEWAY_CALLS_TOTAL.labels(provider=pid, outcome="timeout").inc()
        log.warning("gateway_timeout", timeout_s=deadline, trial=permit.is_trial)
        return GatewayResult(
            error=GatewayError(
                GatewayErrorKind.TIMEOUT, message, provider=pid, retryable=True, counted=True
            )
        )

    # ── Outcome handling ─────────────────────────────────────
    def _settle(
        self,
        task: asyncio.Future[T],
        permit: Permit,
        latency_ms: float,
        log: structlog.stdlib.BoundLogger,
    ) -> GatewayResult[T]:
        pid = self._config.provider_id

        if task.cancelled():
            # The adapter cancelled itself, or the gateway is shutting down.
            self._breaker.release_trial(permit)
            return self._cancelled(log, "provider call was cancelled", latency_ms)

        exc = task.exception()
        if exc is None:
            self._breaker.report(CallOutcome.success(latency_ms), permit)
            self._tracker.record_success(latency_ms)
            GATEWAY_CALLS_TOTAL.labels(provider=pid, outcome="success").inc()
            log.info(
                "gateway_call_success",
                latency_ms=float(f"{latency_ms:.1f}"),
                trial=permit.is_trial,
            )
            return GatewayResult(value=task.result())

        verdict = classify_exception(exc)
        if verdict.counted:
            self._breaker.report(CallOutcome.failure(verdict.kind, latency_ms), permit)
        else:
            self._breaker.release_trial(permit)
        self._tracker.record_failure(verdict.kind, verdict.message, latency_ms, counted=verdict.counted)
        GATEWAY_CALLS_TOTAL.labels(provider=pid, outcome=verdict.kind.value.lower()).inc()
        log.warning(
            "gateway_call_failed",
            error_kind=verdict.kind.value,
            counted=verdict.counted,
            error=verdict.message,
            latency_ms=float(f"{latency_ms:.1f}"),
            trial=permit.is_trial,
        )
        error = GatewayError(
            verdict.kind,
            verdict.message,
            provider=pid,
            retryable=verdict.retryable,
            counted=verdict.counted,
        )
        error.__cause__ = exc
        return GatewayResult(error=error)

    def _cancelled(
        self, log: structlog.stdlib.BoundLogger, reason: str, latency_ms: float = 0.0
    ) -> GatewayResult[Any]:
        self._tracker.record_cancelled()
        GATEWAY_CALLS_TOTAL.labels(provider=self._config.provider_id, outcome="cancelled").inc()
        log.info("gateway_call_cancelled", reason=reason, latency_ms=float(f"{latency_ms:.1f}"))
        return GatewayResult(
            error=GatewayError(
                GatewayErrorKind.CANCELLED, reason, provider=self._config.provider_id
            )
        )

    # ── State observation ────────────────────────────────────
    def on_state_change(self, callback: StateCallback) -> Subscription[BreakerState]:
        return self._breaker.on_state_change(callback)

    async def watch(self) -> AsyncIterator[BreakerState]:
        """Yield every transition from now on.

        Unsubscribes when the iterator closes, and ends once the gateway
        is shut down.
        """
        if self._closed:
            return
        queue: asyncio.Queue[BreakerState | None] = asyncio.Queue()
        loop = asyncio.get_running_loop()
        watcher = (loop, queue)

        def _forward(state: BreakerState) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, state)

        self._watchers.add(watcher)
        try:
            with self.on_state_change(_forward):
                while True:
                    state = await queue.get()
                    if state is None:
                        return
                    yield state
        finally:
            self._watchers.discard(watcher)

    def health(self) -> GatewayHealth:
        health = self._tracker.health()
        snapshot = self._breaker.snapshot()
        health.circuit_state = snapshot.state.value
        health.retry_after_s = snapshot.retry_after_s
        return health

    def reset(self) -> None:
        """Admin reset — force the breaker closed."""
        self._breaker.reset()
        logger.info("provider_admin_reset", provider=self._config.provider_id)

    async def aclose(self) -> None:
        """Shutdown hook: cancel in-flight calls, drop every subscriber and end open watches."""
        if self._closed:
            return
        self._closed = True
        pending = list(self._in_flight)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._breaker.clear_subscribers()
        # None ends each watch() iterator after the transitions already queued
        for loop, queue in list(self._watchers):
            loop.call_soon_threadsafe(queue.put_nowait, None)
        logger.info("gateway_closed", provider=self._config.provider_id, cancelled_calls=len(pending))


async def _invoke(operation: Callable[[], Awaitable[T]]) -> T:
    return await operation()


def _abandon(task: asyncio.Future[Any]) -> None:
    """Best-effort cancel of a provider call nobody is waiting for anymore."""
    if task.done():
        return
    task.cancel()
    task.add_done_callback(_log_late_failure)


def _log_late_failure(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("gateway_abandoned_call_failed", error=f"{type(exc).__name__}: {exc}")
