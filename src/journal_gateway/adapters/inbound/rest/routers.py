"""REST routers — health, metrics, provider admin and breaker-guarded AI calls."""

from __future__ import annotations

import secrets
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from journal_gateway import __version__
from journal_gateway.application.dtos import (
    AIResponse,
    AudioAnalysisRequest,
    ErrorResponse,
    ImageGenerationRequest,
    ProgressStage,
    TextAnalysisRequest,
    VisionAnalysisRequest,
)
from journal_gateway.application.services import JournalAIService
from journal_gateway.config import Settings
from journal_gateway.dependencies import (
    GatewayContainer,
    get_ai_service,
    get_app_settings,
    get_gateways,
)
from journal_gateway.shared.providers.types import BreakerState

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════
#  Health
# ═══════════════════════════════════════════════════════════════
health_router = APIRouter(tags=["Health"])


@health_router.get("/health")
async def health_check(
    gateways: GatewayContainer = Depends(get_gateways),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    providers = {g.provider_id: g.state.value for g in gateways.all()}
    overall = "ok" if BreakerState.OPEN.value not in providers.values() else "degraded"
    return {
        "status": overall,
        "version": __version__,
        "environment": settings.app_env.value,
        "providers": providers,
    }


@health_router.get("/metrics")
async def prometheus_metrics(settings: Settings = Depends(get_app_settings)) -> Response:
    if not settings.prometheus_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Metrics disabled")
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# ═══════════════════════════════════════════════════════════════
#  Provider Health
# ═══════════════════════════════════════════════════════════════
providers_router = APIRouter(prefix="/providers", tags=["Provider Health"])


def require_admin(
    x_admin_token: str | None = Header(None, alias="X-Admin-Token"),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Admin token check; open when no token is configured (development)."""
    expected = settings.admin_token
    if not expected:
        return
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin token required",
        )


@providers_router.get("/health")
async def provider_health(
    gateways: GatewayContainer = Depends(get_gateways),
) -> list[dict[str, Any]]:
    """Get health snapshots for every provider gateway."""
    return [
        {
            "provider_id": h.provider_id,
            "circuit_state": h.circuit_state,
            "retry_after_s": h.retry_after_s,
            "total_calls": h.total_calls,
            "total_successes": h.total_successes,
            "total_failures": h.total_failures,
            "total_rejected": h.total_rejected,
            "total_timeouts": h.total_timeouts,
            "total_cancelled": h.total_cancelled,
            "total_not_counted": h.total_not_counted,
            "success_rate": h.success_rate,
            "latency_p50_ms": h.latency_p50_ms,
            "latency_p95_ms": h.latency_p95_ms,
            "latency_p99_ms": h.latency_p99_ms,
            "last_error": h.last_error,
        }
        for h in (g.health() for g in gateways.all())
    ]


@providers_router.post("/{provider_id}/reset")
async def reset_provider(
    provider_id: str,
    _admin: None = Depends(require_admin),
    gateways: GatewayContainer = Depends(get_gateways),
) -> dict[str, str]:
    """Admin: force a provider's breaker closed."""
    gateway = gateways.get(provider_id)
    logger.warning("provider_reset_requested", provider=provider_id, state=gateway.state.value)
    gateway.reset()
    return {"status": "reset", "provider_id": provider_id, "circuit_state": gateway.state.value}


# ═══════════════════════════════════════════════════════════════
#  AI Analysis
# ═══════════════════════════════════════════════════════════════
_GATEWAY_ERRORS: dict[int | str, dict[str, Any]] = {
    499: {"model": ErrorResponse, "description": "Call cancelled"},
    502: {"model": ErrorResponse, "description": "Provider failed"},
    503: {"model": ErrorResponse, "description": "Circuit open"},
    504: {"model": ErrorResponse, "description": "Provider timed out"},
}

ai_router = APIRouter(prefix="/ai", tags=["AI Analysis"], responses=_GATEWAY_ERRORS)


@ai_router.post("/text", response_model=AIResponse)
async def analyze_text(
    body: TextAnalysisRequest,
    service: JournalAIService = Depends(get_ai_service),
) -> AIResponse:
    result = await service.analyze_text(
        body.prompt, system_prompt=body.system_prompt, options=body.options
    )
    return AIResponse(provider="text", result=result.unwrap())


@ai_router.post("/audio", response_model=AIResponse)
async def analyze_audio(
    body: AudioAnalysisRequest,
    service: JournalAIService = Depends(get_ai_service),
) -> AIResponse:
    result = await service.analyze_audio(body.audio, body.mime_type, body.prompt)
    return AIResponse(provider="audio", result=result.unwrap())


@ai_router.post("/vision", response_model=AIResponse)
async def analyze_vision(
    body: VisionAnalysisRequest,
    service: JournalAIService = Depends(get_ai_service),
) -> AIResponse:
    """Facial state check; returns the progress stages the adapter reported."""
    stages: list[ProgressStage] = []
    result = await service.analyze_vision(
        body.image,
        mime_type=body.mime_type,
        on_progress=lambda stage, percent: stages.append(ProgressStage(stage=stage, percent=percent)),
    )
    return AIResponse(provider="vision", result=result.unwrap(), progress=stages)


@ai_router.post("/image", response_model=AIResponse)
async def generate_image(
    body: ImageGenerationRequest,
    service: JournalAIService = Depends(get_ai_service),
) -> AIResponse:
    result = await service.generate_image(body.prompt, body.base_image)
    return AIResponse(provider="image", result=result.unwrap())
