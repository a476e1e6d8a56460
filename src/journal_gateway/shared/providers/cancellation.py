"""Caller-side cancellation handle passed into ``ProviderGateway.execute``."""

from __future__ import annotations

import asyncio


class CancelToken:
    """One-shot cancellation signal owned by a UI flow.

    Cancelling after the gateway let the call through aborts the provider
    call without counting against the breaker; cancelling earlier means the
    provider is never invoked at all.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()

    def cancel_after(self, delay: float) -> asyncio.TimerHandle:
        """Schedule ``cancel`` on the running loop after ``delay`` seconds."""
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self.cancel, f"cancelled after {delay}s")

    async def wait(self) -> None:
        await self._event.wait()
