"""Subscription registry — ordered, leak-safe broadcast of breaker transitions.

Consumers mount and unmount constantly, so every subscription is an
explicit handle whose ``unsubscribe`` is idempotent, safe to call from
inside a callback, and usable as a context manager::

    with gateway.on_state_change(render_banner):
        ...  # banner follows the breaker until the block exits

Delivery guarantees:

* Transitions reach each subscriber in the order they were produced,
  including transitions produced by a callback while a pass is running
  (those are queued and delivered after the current pass).
* Each transition goes to the subscribers registered when it was
  produced, minus any that unsubscribed before their turn came.
* A failing callback is logged and does not starve the others.
"""

from __future__ import annotations

import itertools
import threading
from collections import deque
from collections.abc import Callable
from types import TracebackType
from typing import Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

S = TypeVar("S")


class Subscription(Generic[S]):
    """Handle for one registered callback."""

    __slots__ = ("id", "callback", "_registry", "_active")

    def __init__(
        self, sub_id: int, callback: Callable[[S], None], registry: SubscriptionRegistry[S]
    ) -> None:
        self.id = sub_id
        self.callback = callback
        self._registry = registry
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._registry._remove(self)

    def __call__(self) -> None:
        self.unsubscribe()

    def __enter__(self) -> Subscription[S]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, active={self._active})"


class SubscriptionRegistry(Generic[S]):
    """Multi-subscriber broadcast with a FIFO of pending notifications."""

    def __init__(self, name: str = "") -> None:
        self._name = name
        self._subscriptions: dict[int, Subscription[S]] = {}
        self._ids = itertools.count(1)
        self._pending: deque[tuple[S, tuple[Subscription[S], ...]]] = deque()
        self._dispatching = False
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, callback: Callable[[S], None]) -> Subscription[S]:
        """Register ``callback``; each call yields an independent subscription."""
        with self._lock:
            sub = Subscription(next(self._ids), callback, self)
            self._subscriptions[sub.id] = sub
            total = len(self._subscriptions)
        logger.debug("subscriber_added", registry=self._name, subscription=sub.id, total=total)
        return sub

    def notify(self, value: S) -> None:
        """Broadcast ``value`` to every current subscriber."""
        self.enqueue(value)
        self.drain()

    def enqueue(self, value: S) -> None:
        """Queue ``value`` against a snapshot of the current subscribers.

        Producers that must order notifications with their own state
        changes call this under their lock and ``drain`` after releasing it.
        """
        with self._lock:
            self._pending.append((value, tuple(self._subscriptions.values())))

    def drain(self) -> None:
        """Deliver queued notifications unless another pass is already doing so."""
        with self._lock:
            if self._dispatching:
                return
            self._dispatching = True
        try:
            while True:
                with self._lock:
                    if not self._pending:
                        self._dispatching = False
                        return
                    value, snapshot = self._pending.popleft()
                self._deliver(value, snapshot)
        except BaseException:
            with self._lock:
                self._dispatching = False
            raise

    def clear(self) -> None:
        """Deactivate every subscription (shutdown hook)."""
        with self._lock:
            subs = list(self._subscriptions.values())
            self._subscriptions.clear()
            self._pending.clear()
        for sub in subs:
            sub._active = False

    # ── Internals ────────────────────────────────────────────
    def _deliver(self, value: S, snapshot: tuple[Subscription[S], ...]) -> None:
        for sub in snapshot:
            if not sub.active:
                continue
            try:
                sub.callback(value)
            except Exception as exc:
                logger.error(
                    "subscriber_callback_error",
                    registry=self._name,
                    subscription=sub.id,
                    error=f"{type(exc).__name__}: {exc}",
                )

    def _remove(self, sub: Subscription[S]) -> None:
        with self._lock:
            self._subscriptions.pop(sub.id, None)
            total = len(self._subscriptions)
        logger.debug("subscriber_removed", registry=self._name, subscription=sub.id, total=total)
