"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from journal_gateway.domain.exceptions import AdapterError
from journal_gateway.shared.providers.types import ProviderConfig


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Scriptable provider call: counts invocations, fails or blocks on demand."""

    def __init__(self, result: Any = None) -> None:
        self.result = result if result is not None else {"ok": True}
        self.calls = 0
        self.error: BaseException | None = None
        self.gate: asyncio.Event | None = None
        self.cancelled = 0

    def fail_with(self, error: BaseException | None) -> None:
        self.error = error

    def block(self) -> asyncio.Event:
        self.gate = asyncio.Event()
        return self.gate

    def __call__(self) -> Awaitable[Any]:
        return self._run()

    async def _run(self) -> Any:
        self.calls += 1
        try:
            if self.gate is not None:
                await self.gate.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        if self.error is not None:
            raise self.error
        return self.result


# ═══════════════════════════════════════════════════════════════
#  Fixtures
# ═══════════════════════════════════════════════════════════════
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    return FakeProvider


@pytest.fixture
def transient_error() -> Callable[[], AdapterError]:
    def _make() -> AdapterError:
        return AdapterError("HTTP 503 upstream unavailable", retryable=True, status_code=503, provider="text")

    return _make


@pytest.fixture
def provider_config() -> ProviderConfig:
    return ProviderConfig(
        provider_id="text",
        timeout_s=5.0,
        cb_failure_threshold=3,
        cb_window_s=120.0,
        cb_cooldown_s=60.0,
    )
