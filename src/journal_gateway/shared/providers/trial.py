"""Trial coordinator — hands out the single half-open probe permit."""

from __future__ import annotations

from journal_gateway.shared.providers.types import TrialToken


class TrialCoordinator:
    """Issues at most one live ``TrialToken`` at a time.

    The owning breaker calls ``issue`` and ``consume`` inside its critical
    section, so issuance is mutually exclusive even when many callers race
    for the probe slot.  A token is consumed exactly once; stale tokens
    (already consumed, or issued before a ``clear``) are rejected.
    """

    def __init__(self) -> None:
        self._serial = 0
        self._current: TrialToken | None = None

    @property
    def in_flight(self) -> bool:
        return self._current is not None

    def issue(self, now: float) -> TrialToken | None:
        """Return a fresh token, or None while another trial is outstanding."""
        if self._current is not None:
            return None
        self._serial += 1
        self._current = TrialToken(serial=self._serial, issued_at=now)
        return self._current

    def consume(self, token: TrialToken | None) -> bool:
        """Retire ``token``; True only if it was the live one."""
        if token is None or self._current is None or token.serial != self._current.serial:
            return False
        self._current = None
        return True

    def clear(self) -> None:
        self._current = None
