"""Tests for the breaker building blocks: FailureWindow, TrialCoordinator
and SubscriptionRegistry."""

from __future__ import annotations

import pytest

from journal_gateway.shared.providers.failure_window import FailureWindow
from journal_gateway.shared.providers.subscriptions import SubscriptionRegistry
from journal_gateway.shared.providers.trial import TrialCoordinator


# ═══════════════════════════════════════════════════════════════
#  FailureWindow
# ═══════════════════════════════════════════════════════════════
class TestFailureWindow:
    def test_trips_at_threshold(self) -> None:
        window = FailureWindow(threshold=3, window_seconds=60)
        assert window.record_failure(0.0) is False
        assert window.record_failure(1.0) is False
        assert window.record_failure(2.0) is True
        assert window.count(2.0) == 3

    def test_old_failures_are_evicted(self) -> None:
        window = FailureWindow(threshold=3, window_seconds=60)
        window.record_failure(0.0)
        window.record_failure(10.0)
        # The first failure is exactly one window old at t=60
        assert window.record_failure(60.0) is False
        assert window.count(60.0) == 2
        assert window.oldest(60.0) == 10.0

    def test_spread_out_failures_never_trip(self) -> None:
        window = FailureWindow(threshold=2, window_seconds=5)
        tripped = [window.record_failure(t) for t in (0.0, 6.0, 12.0, 18.0)]
        assert tripped == [False, False, False, False]

    def test_clear(self) -> None:
        window = FailureWindow(threshold=2, window_seconds=5)
        window.record_failure(0.0)
        window.clear()
        assert window.count(0.0) == 0
        assert window.oldest(0.0) is None

    @pytest.mark.parametrize(
        ("threshold", "window_seconds"),
        [(0, 10.0), (3, 0.0), (3, -1.0)],
    )
    def test_rejects_invalid_config(self, threshold: int, window_seconds: float) -> None:
        with pytest.raises(ValueError):
            FailureWindow(threshold, window_seconds)


# ═══════════════════════════════════════════════════════════════
#  TrialCoordinator
# ═══════════════════════════════════════════════════════════════
class TestTrialCoordinator:
    def test_single_token_outstanding(self) -> None:
        trials = TrialCoordinator()
        token = trials.issue(1.0)
        assert token is not None
        assert trials.in_flight
        assert trials.issue(2.0) is None

    def test_consume_frees_the_slot(self) -> None:
        trials = TrialCoordinator()
        token = trials.issue(1.0)
        assert trials.consume(token) is True
        assert not trials.in_flight
        assert trials.issue(2.0) is not None

    def test_token_is_consumed_once(self) -> None:
        trials = TrialCoordinator()
        token = trials.issue(1.0)
        assert trials.consume(token) is True
        assert trials.consume(token) is False

    def test_stale_token_rejected_after_clear(self) -> None:
        trials = TrialCoordinator()
        stale = trials.issue(1.0)
        trials.clear()
        fresh = trials.issue(2.0)
        assert fresh is not None and stale is not None
        assert fresh.serial == stale.serial + 1
        assert trials.consume(stale) is False
        assert trials.in_flight
        assert trials.consume(fresh) is True

    def test_consume_none(self) -> None:
        assert TrialCoordinator().consume(None) is False


# ═══════════════════════════════════════════════════════════════
#  SubscriptionRegistry
# ═══════════════════════════════════════════════════════════════
class TestSubscriptionRegistry:
    def test_notify_reaches_every_subscriber_in_order(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        calls: list[tuple[str, str]] = []
        registry.subscribe(lambda v: calls.append(("a", v)))
        registry.subscribe(lambda v: calls.append(("b", v)))

        registry.notify("open")
        registry.notify("closed")

        assert calls == [("a", "open"), ("b", "open"), ("a", "closed"), ("b", "closed")]

    def test_zero_subscribers_is_a_noop(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        registry.notify("open")
        assert registry.count == 0

    def test_unsubscribe_is_idempotent(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        seen: list[str] = []
        sub = registry.subscribe(seen.append)
        sub.unsubscribe()
        sub.unsubscribe()
        sub()
        registry.notify("open")
        assert seen == []
        assert registry.count == 0
        assert not sub.active

    def test_same_callback_twice_gives_independent_subscriptions(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        seen: list[str] = []
        first = registry.subscribe(seen.append)
        second = registry.subscribe(seen.append)
        assert first.id != second.id

        registry.notify("open")
        assert seen == ["open", "open"]

        first.unsubscribe()
        registry.notify("closed")
        assert seen == ["open", "open", "closed"]

    def test_context_manager_unsubscribes(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        seen: list[str] = []
        with registry.subscribe(seen.append):
            registry.notify("open")
        registry.notify("closed")
        assert seen == ["open"]
        assert registry.count == 0

    def test_unsubscribe_of_later_subscriber_during_notify(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        seen: list[str] = []
        victim = None

        def first(value: str) -> None:
            seen.append(f"first:{value}")
            assert victim is not None
            victim.unsubscribe()

        registry.subscribe(first)
        victim = registry.subscribe(lambda v: seen.append(f"victim:{v}"))

        registry.notify("open")
        assert seen == ["first:open"]
        assert registry.count == 1

    def test_self_unsubscribe_during_notify(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        seen: list[str] = []
        holder: dict[str, object] = {}

        def once(value: str) -> None:
            seen.append(value)
            holder["sub"].unsubscribe()  # type: ignore[attr-defined]

        holder["sub"] = registry.subscribe(once)
        registry.subscribe(lambda v: seen.append(f"other:{v}"))

        registry.notify("open")
        registry.notify("closed")
        assert seen == ["open", "other:open", "other:closed"]

    def test_subscribe_during_notify_waits_for_next_value(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        late: list[str] = []

        def add_late(value: str) -> None:
            if value == "open":
                registry.subscribe(late.append)

        registry.subscribe(add_late)
        registry.notify("open")
        registry.notify("closed")
        assert late == ["closed"]

    def test_nested_notify_preserves_order(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        a: list[str] = []
        b: list[str] = []

        def chained(value: str) -> None:
            a.append(value)
            if value == "half_open":
                registry.notify("closed")

        registry.subscribe(chained)
        registry.subscribe(b.append)

        registry.notify("half_open")
        assert a == ["half_open", "closed"]
        assert b == ["half_open", "closed"]

    def test_failing_callback_does_not_starve_others(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        seen: list[str] = []

        def broken(value: str) -> None:
            raise RuntimeError("render failed")

        registry.subscribe(broken)
        registry.subscribe(seen.append)

        registry.notify("open")
        registry.notify("closed")
        assert seen == ["open", "closed"]

    def test_clear_deactivates_everything(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        seen: list[str] = []
        sub = registry.subscribe(seen.append)
        registry.clear()
        registry.notify("open")
        assert seen == []
        assert not sub.active
        sub.unsubscribe()  # still safe
        assert registry.count == 0

    def test_enqueue_then_drain(self) -> None:
        registry: SubscriptionRegistry[str] = SubscriptionRegistry("test")
        seen: list[str] = []
        registry.subscribe(seen.append)
        registry.enqueue("open")
        registry.enqueue("half_open")
        assert seen == []
        registry.drain()
        assert seen == ["open", "half_open"]
