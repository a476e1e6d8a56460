"""HTTP middleware — request correlation, access log and request metrics."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from journal_gateway.shared.observability.metrics import HTTP_REQUEST_DURATION, HTTP_REQUESTS_TOTAL

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id into the structlog context for the request's lifetime.

    The id is taken from ``X-Request-ID`` when the UI supplies one and is
    echoed back, so a failed AI call can be matched with the gateway log
    lines (``gateway_call_failed``, ``circuit_breaker_opened``) it caused.
    Each request is also logged once and metered by its route template.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        started = time.perf_counter()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)
            elapsed = time.perf_counter() - started
            endpoint = _route_template(request)

            HTTP_REQUESTS_TOTAL.labels(
                method=request.method, endpoint=endpoint, status_code=response.status_code
            ).inc()
            HTTP_REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(elapsed)
            logger.info(
                "http_request",
                method=request.method,
                endpoint=endpoint,
                status=response.status_code,
                duration_ms=round(elapsed * 1000, 2),
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"
