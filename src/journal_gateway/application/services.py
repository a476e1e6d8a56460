"""Journal AI service — the operations UI flows call.

Every operation funnels through the ``ProviderGateway`` of its own
provider, so a vision outage never blocks text analysis and each UI
surface can follow exactly the breaker that concerns it.
"""

from __future__ import annotations

from typing import Any

import structlog

from journal_gateway.dependencies import GatewayContainer
from journal_gateway.domain.enums import ProviderKind
from journal_gateway.domain.exceptions import ValidationError
from journal_gateway.ports.outbound import (
    AudioAnalysisPort,
    ImageGenerationPort,
    LiveSession,
    LiveSessionPort,
    ProgressCallback,
    TextAnalysisPort,
    VisionAnalysisPort,
)
from journal_gateway.shared.providers.cancellation import CancelToken
from journal_gateway.shared.providers.gateway import ProviderGateway
from journal_gateway.shared.providers.types import GatewayResult

logger = structlog.get_logger(__name__)

DEFAULT_AUDIO_PROMPT = "Analyze this audio journal entry"


class JournalAIService:
    """Breaker-guarded facade over the journaling app's AI providers."""

    def __init__(
        self,
        gateways: GatewayContainer,
        *,
        text: TextAnalysisPort,
        audio: AudioAnalysisPort,
        vision: VisionAnalysisPort,
        image: ImageGenerationPort,
        live: LiveSessionPort | None = None,
    ) -> None:
        self._gateways = gateways
        self._text = text
        self._audio = audio
        self._vision = vision
        self._image = image
        self._live = live

    @property
    def gateways(self) -> GatewayContainer:
        return self._gateways

    def gateway(self, provider: ProviderKind | str) -> ProviderGateway:
        return self._gateways.get(provider)

    async def analyze_text(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        options: dict[str, Any] | None = None,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> GatewayResult[dict[str, Any]]:
        if not prompt.strip():
            raise ValidationError("prompt must not be empty")
        return await self._gateways.text.execute(
            lambda: self._text.analyze_text(prompt, system_prompt=system_prompt, options=options),
            timeout=timeout,
            cancel_token=cancel_token,
            label="analyze_text",
        )

    async def analyze_audio(
        self,
        audio: bytes,
        mime_type: str,
        prompt: str | None = None,
        *,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> GatewayResult[dict[str, Any]]:
        if not audio:
            raise ValidationError("audio must not be empty")
        return await self._gateways.audio.execute(
            lambda: self._audio.analyze_audio(audio, mime_type, prompt or DEFAULT_AUDIO_PROMPT),
            timeout=timeout,
            cancel_token=cancel_token,
            label="analyze_audio",
        )

    async def analyze_vision(
        self,
        image: bytes,
        *,
        mime_type: str = "image/jpeg",
        on_progress: ProgressCallback | None = None,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> GatewayResult[dict[str, Any]]:
        """Analyze a camera frame; ``on_progress`` reaches the adapter untouched."""
        if not image:
            raise ValidationError("image must not be empty")
        return await self._gateways.vision.execute(
            lambda: self._vision.analyze_image(image, mime_type=mime_type, on_progress=on_progress),
            timeout=timeout,
            cancel_token=cancel_token,
            label="analyze_vision",
        )

    async def generate_image(
        self,
        prompt: str,
        base_image: bytes | None = None,
        *,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> GatewayResult[dict[str, Any]]:
        if not prompt.strip():
            raise ValidationError("prompt must not be empty")
        return await self._gateways.image.execute(
            lambda: self._image.generate_image(prompt, base_image),
            timeout=timeout,
            cancel_token=cancel_token,
            label="generate_image",
        )

    async def connect_live(
        self,
        config: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel_token: CancelToken | None = None,
    ) -> GatewayResult[LiveSession]:
        """Open a live session; the breaker guards establishment only."""
        if self._live is None:
            raise ValidationError("live sessions are not configured")
        live = self._live
        return await self._gateways.live.execute(
            lambda: live.connect(config or {}),
            timeout=timeout,
            cancel_token=cancel_token,
            label="connect_live",
        )
