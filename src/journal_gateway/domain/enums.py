"""Domain enumerations for the AI service gateway."""

from __future__ import annotations

import enum


class ProviderKind(str, enum.Enum):
    """Logical AI provider behind its own gateway."""

    TEXT = "text"
    AUDIO = "audio"
    VISION = "vision"
    IMAGE = "image"
    LIVE = "live"


class GatewayErrorKind(str, enum.Enum):
    """Stable, machine-checkable identity of a gateway failure."""

    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    UNKNOWN = "UNKNOWN"
