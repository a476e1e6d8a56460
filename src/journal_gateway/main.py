"""FastAPI application entry-point.

Assembles middleware, routers, exception handlers, and the lifecycle
hooks that build the per-provider gateways at startup and shut them down
on exit.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from journal_gateway import __version__
from journal_gateway.adapters.inbound.rest.routers import (
    ai_router,
    health_router,
    providers_router,
)
from journal_gateway.adapters.inbound.ws import ws_router
from journal_gateway.adapters.outbound.http import ProxyAIAdapter
from journal_gateway.application.services import JournalAIService
from journal_gateway.config import Settings, get_settings
from journal_gateway.dependencies import GatewayContainer, build_gateways
from journal_gateway.shared.errors import register_exception_handlers
from journal_gateway.shared.middleware import RequestContextMiddleware
from journal_gateway.shared.observability import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifecycle — startup & shutdown hooks."""
    settings: Settings = app.state.settings
    configure_logging(log_level=settings.log_level, json_logs=settings.json_logs)

    # Injected collaborators belong to the caller and are not closed here
    owns_gateways = app.state.gateways is None
    if owns_gateways:
        app.state.gateways = build_gateways(settings)

    proxy: ProxyAIAdapter | None = None
    if app.state.ai_service is None:
        proxy = ProxyAIAdapter(
            settings.ai_proxy_base_url,
            api_key=settings.ai_proxy_api_key,
            provider_id="ai-proxy",
        )
        app.state.ai_service = JournalAIService(
            app.state.gateways, text=proxy, audio=proxy, vision=proxy, image=proxy
        )
    logger.info("application_starting", env=settings.app_env.value, version=__version__)

    yield

    gateways: GatewayContainer = app.state.gateways
    if owns_gateways:
        await gateways.aclose()
    if proxy is not None:
        await proxy.close()
    logger.info("application_shutdown")


def create_app(
    settings: Settings | None = None,
    *,
    gateways: GatewayContainer | None = None,
    ai_service: JournalAIService | None = None,
) -> FastAPI:
    """Application factory.

    ``gateways`` and ``ai_service`` let a host (or a test) inject
    collaborators it already owns; otherwise they are built in the
    lifespan and closed on shutdown.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Journal AI Gateway",
        description=(
            "Breaker-guarded gateway between the journaling UI and its AI "
            "providers. Exposes AI calls, provider health, admin reset, "
            "metrics and a live breaker-state stream."
        ),
        version=__version__,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gateways = gateways
    app.state.ai_service = ai_service

    # ── Middleware (last added = outermost) ──────────────────
    allow_all_origins = "*" in settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[] if allow_all_origins else settings.cors_origins,
        allow_origin_regex=".*" if allow_all_origins else None,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    register_exception_handlers(app)

    # ── REST routers ─────────────────────────────────────────
    api_v1 = "/api/v1"
    app.include_router(health_router, prefix=api_v1)
    app.include_router(providers_router, prefix=api_v1)
    app.include_router(ai_router, prefix=api_v1)

    # ── WebSocket routers ────────────────────────────────────
    app.include_router(ws_router)

    return app


# Uvicorn entry-point
app = create_app()
