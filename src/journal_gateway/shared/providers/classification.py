"""Failure classification — which adapter errors say something about provider health.

Counted (trip the breaker):   network/transport errors, 5xx, 408/425/429,
                              deadline exceeded, anything unrecognised.
Not counted:                  caller cancellation, validation / malformed
                              input rejected by the provider (other 4xx).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx

from journal_gateway.domain.enums import GatewayErrorKind
from journal_gateway.domain.exceptions import AdapterError, ValidationError

TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})


@dataclass(frozen=True, slots=True)
class Classification:
    kind: GatewayErrorKind
    counted: bool
    retryable: bool
    message: str


def is_transient_status(status_code: int) -> bool:
    return status_code >= 500 or status_code in TRANSIENT_STATUS_CODES


def classify_exception(exc: BaseException) -> Classification:
    """Map an exception raised by a provider call onto the gateway taxonomy."""
    message = f"{type(exc).__name__}: {exc}"

    if isinstance(exc, asyncio.CancelledError):
        return Classification(GatewayErrorKind.CANCELLED, counted=False, retryable=False, message=message)

    if isinstance(exc, AdapterError):
        if exc.status_code is not None and is_transient_status(exc.status_code):
            retryable = True
        else:
            retryable = exc.retryable
        return Classification(
            GatewayErrorKind.PROVIDER_ERROR, counted=retryable, retryable=retryable, message=exc.message
        )

    if isinstance(exc, ValidationError):
        return Classification(
            GatewayErrorKind.PROVIDER_ERROR, counted=False, retryable=False, message=exc.message
        )

    if isinstance(exc, httpx.HTTPStatusError):
        transient = is_transient_status(exc.response.status_code)
        return Classification(
            GatewayErrorKind.PROVIDER_ERROR, counted=transient, retryable=transient, message=message
        )

    # httpx timeouts subclass TransportError, and TimeoutError subclasses OSError
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return Classification(GatewayErrorKind.TIMEOUT, counted=True, retryable=True, message=message)

    if isinstance(exc, (httpx.TransportError, ConnectionError, OSError)):
        return Classification(GatewayErrorKind.PROVIDER_ERROR, counted=True, retryable=True, message=message)

    return Classification(GatewayErrorKind.UNKNOWN, counted=True, retryable=False, message=message)
