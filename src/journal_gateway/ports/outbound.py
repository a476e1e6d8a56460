"""Outbound ports — interfaces that AI provider adapters must implement.

The gateway treats adapters as opaque: a port method either returns the
provider's response or raises.  Adapters should raise ``AdapterError``
(with ``retryable`` set) so failures are classified precisely; anything
else is classified by type.  Cancellation is cooperative: adapters are
run as asyncio tasks and must let ``CancelledError`` propagate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

ProgressCallback = Callable[[str, float], None]
"""(stage description, percent complete 0-100)."""


class TextAnalysisPort(ABC):
    """Journal text analysis (structured health parsing, reflections)."""

    @abstractmethod
    async def analyze_text(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...


class AudioAnalysisPort(ABC):
    """Voice journal analysis."""

    @abstractmethod
    async def analyze_audio(
        self, audio: bytes, mime_type: str, prompt: str
    ) -> dict[str, Any]: ...


class VisionAnalysisPort(ABC):
    """Facial state check from a camera frame."""

    @abstractmethod
    async def analyze_image(
        self,
        image: bytes,
        *,
        mime_type: str = "image/jpeg",
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, Any]: ...


class ImageGenerationPort(ABC):
    """Vision-board image generation or editing."""

    @abstractmethod
    async def generate_image(
        self, prompt: str, base_image: bytes | None = None
    ) -> dict[str, Any]: ...


class LiveSession(ABC):
    """An established bidirectional live coaching session."""

    @abstractmethod
    async def send(self, payload: bytes | str) -> None: ...

    @abstractmethod
    async def receive(self) -> Any: ...

    @abstractmethod
    async def close(self) -> None: ...


class LiveSessionPort(ABC):
    """Opens live sessions; only establishment is breaker-guarded."""

    @abstractmethod
    async def connect(self, config: dict[str, Any]) -> LiveSession: ...
