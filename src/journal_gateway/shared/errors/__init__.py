"""Global exception handlers — map domain errors to HTTP responses."""

from __future__ import annotations

import math

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from journal_gateway.domain.enums import GatewayErrorKind
from journal_gateway.domain.exceptions import (
    DomainError,
    GatewayError,
    UnknownProviderError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

GATEWAY_STATUS_CODES: dict[GatewayErrorKind, int] = {
    GatewayErrorKind.CIRCUIT_OPEN: 503,
    GatewayErrorKind.TIMEOUT: 504,
    GatewayErrorKind.CANCELLED: 499,
    GatewayErrorKind.PROVIDER_ERROR: 502,
    GatewayErrorKind.UNKNOWN: 502,
}


def register_exception_handlers(app: FastAPI) -> None:
    """Register all domain→HTTP exception mappings."""

    @app.exception_handler(GatewayError)
    async def handle_gateway(request: Request, exc: GatewayError) -> ORJSONResponse:
        headers: dict[str, str] = {}
        if exc.kind is GatewayErrorKind.CIRCUIT_OPEN and exc.retry_after is not None:
            headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
        if exc.kind is not GatewayErrorKind.CANCELLED:
            logger.warning("gateway_error_http", kind=exc.kind.value, provider=exc.provider)
        return ORJSONResponse(
            status_code=GATEWAY_STATUS_CODES[exc.kind],
            content={"code": exc.code, "message": exc.message, "provider": exc.provider},
            headers=headers,
        )

    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=422,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(UnknownProviderError)
    async def handle_unknown_provider(
        request: Request, exc: UnknownProviderError
    ) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=404,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(DomainError)
    async def handle_domain(request: Request, exc: DomainError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=400,
            content={"code": exc.code, "message": exc.message},
        )
