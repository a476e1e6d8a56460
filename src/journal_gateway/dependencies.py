"""Dependency wiring — one gateway per logical provider, built once at startup.

Nothing here is a module-level singleton: ``build_gateways`` returns a
``GatewayContainer`` that the host (FastAPI lifespan, a test, a CLI)
owns, passes down, and shuts down with ``aclose()``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

import structlog
from fastapi import Request

from journal_gateway.config import Settings, get_settings
from journal_gateway.domain.enums import ProviderKind
from journal_gateway.domain.exceptions import UnknownProviderError
from journal_gateway.shared.providers.circuit_breaker import Clock
from journal_gateway.shared.providers.gateway import ProviderGateway
from journal_gateway.shared.providers.types import ProviderConfig

if TYPE_CHECKING:
    from journal_gateway.application.services import JournalAIService

logger = structlog.get_logger(__name__)


# ── Settings ─────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_cached_settings() -> Settings:
    return get_settings()


def build_provider_configs(settings: Settings) -> dict[ProviderKind, ProviderConfig]:
    """Build one ProviderConfig per provider from settings values."""
    timeouts = {
        ProviderKind.TEXT: settings.text_timeout_seconds,
        ProviderKind.AUDIO: settings.audio_timeout_seconds,
        ProviderKind.VISION: settings.vision_timeout_seconds,
        ProviderKind.IMAGE: settings.image_timeout_seconds,
        ProviderKind.LIVE: settings.live_connect_timeout_seconds,
    }

    configs: dict[ProviderKind, ProviderConfig] = {}
    for kind, default_timeout in timeouts.items():
        override = settings.provider_overrides.get(kind.value)
        configs[kind] = ProviderConfig(
            provider_id=kind.value,
            timeout_s=(override and override.timeout_seconds) or default_timeout,
            cb_failure_threshold=(override and override.failure_threshold)
            or settings.breaker_failure_threshold,
            cb_window_s=(override and override.window_seconds) or settings.breaker_window_seconds,
            cb_cooldown_s=(override and override.cooldown_seconds)
            or settings.breaker_cooldown_seconds,
            cb_backoff_multiplier=settings.breaker_backoff_multiplier,
            cb_max_cooldown_s=settings.breaker_max_cooldown_seconds,
        )
    return configs


@dataclass
class GatewayContainer:
    """Owns the independent gateway of every provider."""

    text: ProviderGateway
    audio: ProviderGateway
    vision: ProviderGateway
    image: ProviderGateway
    live: ProviderGateway

    def get(self, provider: ProviderKind | str) -> ProviderGateway:
        try:
            kind = ProviderKind(provider)
        except ValueError:
            raise UnknownProviderError(str(provider)) from None
        gateway: ProviderGateway = getattr(self, kind.value)
        return gateway

    def all(self) -> list[ProviderGateway]:
        return [self.text, self.audio, self.vision, self.image, self.live]

    async def aclose(self) -> None:
        for gateway in self.all():
            await gateway.aclose()
        logger.info("gateways_closed")


def build_gateways(settings: Settings, *, clock: Clock = time.monotonic) -> GatewayContainer:
    configs = build_provider_configs(settings)
    gateways = {kind.value: ProviderGateway(cfg, clock=clock) for kind, cfg in configs.items()}
    logger.info(
        "gateways_built",
        providers=sorted(gateways),
        failure_threshold=settings.breaker_failure_threshold,
        cooldown_s=settings.breaker_cooldown_seconds,
    )
    return GatewayContainer(**gateways)


# ── Request-scoped access ────────────────────────────────────
def get_app_settings(request: Request) -> Settings:
    settings: Settings | None = getattr(request.app.state, "settings", None)
    return settings or get_cached_settings()


def get_gateways(request: Request) -> GatewayContainer:
    container: GatewayContainer = request.app.state.gateways
    return container


def get_ai_service(request: Request) -> JournalAIService:
    service: JournalAIService = request.app.state.ai_service
    return service
