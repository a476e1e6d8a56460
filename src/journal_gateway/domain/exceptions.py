"""Domain-specific exception hierarchy.

All exceptions inherit from ``DomainError`` so callers can catch the entire
family in one clause while still discriminating on subclass (or, for
``GatewayError``, on its ``kind``).
"""

from __future__ import annotations

from journal_gateway.domain.enums import GatewayErrorKind


class DomainError(Exception):
    """Base class for all domain-layer errors."""

    def __init__(self, message: str, *, code: str = "DOMAIN_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# ── Validation ───────────────────────────────────────────────
class ValidationError(DomainError):
    """Input failed validation rules (caller error, never provider health)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="VALIDATION_ERROR")


# ── Provider adapters ────────────────────────────────────────
class AdapterError(DomainError):
    """Raised by provider adapters.

    ``retryable`` separates transient provider trouble (network, 5xx,
    overload) from non-retryable rejections of the request itself
    (malformed input, unsupported media).  Only the former counts
    against the breaker.
    """

    def __init__(
        self,
        message: str,
        *,
        retryable: bool,
        status_code: int | None = None,
        provider: str = "",
    ) -> None:
        self.retryable = retryable
        self.status_code = status_code
        self.provider = provider
        prefix = f"[{provider}] " if provider else ""
        super().__init__(f"{prefix}{message}", code="ADAPTER_ERROR")


# ── Gateway ──────────────────────────────────────────────────
class GatewayError(DomainError):
    """Typed failure returned (or raised via ``unwrap``) by a gateway call.

    Discriminate on ``kind``; never on the message text.
    """

    def __init__(
        self,
        kind: GatewayErrorKind,
        message: str,
        *,
        provider: str = "",
        retryable: bool = False,
        counted: bool = False,
        retry_after: float | None = None,
    ) -> None:
        self.kind = kind
        self.provider = provider
        self.retryable = retryable
        self.counted = counted
        self.retry_after = retry_after
        super().__init__(message, code=kind.value)

    @classmethod
    def circuit_open(
        cls, provider: str, *, retry_after: float | None = None
    ) -> GatewayError:
        if retry_after is not None:
            detail = f"retry in {retry_after:.1f}s"
        else:
            detail = "recovery probe in flight"
        return cls(
            GatewayErrorKind.CIRCUIT_OPEN,
            f"Service {provider!r} temporarily unavailable ({detail})",
            provider=provider,
            retry_after=retry_after,
        )

    @property
    def is_circuit_open(self) -> bool:
        return self.kind is GatewayErrorKind.CIRCUIT_OPEN

    def __repr__(self) -> str:
        return f"GatewayError(kind={self.kind.value}, provider={self.provider!r}, message={self.message!r})"


class UnknownProviderError(DomainError):
    def __init__(self, provider: str) -> None:
        super().__init__(f"Provider {provider!r} is not configured", code="UNKNOWN_PROVIDER")
