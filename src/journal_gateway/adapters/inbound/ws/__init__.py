"""WebSocket endpoint — live breaker state stream.

``/ws/v1/breakers`` sends the current state of every provider on connect,
then one JSON message per transition.  Each connection holds one
subscription per provider and releases all of them on disconnect.
"""

from __future__ import annotations

import asyncio
import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from journal_gateway.dependencies import GatewayContainer
from journal_gateway.shared.providers.subscriptions import Subscription
from journal_gateway.shared.providers.types import BreakerState

logger = structlog.get_logger(__name__)

ws_router = APIRouter(tags=["WebSocket"])


class ConnectionManager:
    """Tracks open state-stream connections."""

    def __init__(self) -> None:
        self._connections: list[WebSocket] = []

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self._connections.append(ws)

    def disconnect(self, ws: WebSocket) -> None:
        if ws in self._connections:
            self._connections.remove(ws)

    @property
    def count(self) -> int:
        return len(self._connections)


breaker_stream_manager = ConnectionManager()


@ws_router.websocket("/ws/v1/breakers")
async def breaker_stream(ws: WebSocket) -> None:
    """Stream breaker transitions for every provider."""
    gateways: GatewayContainer = ws.app.state.gateways
    queue: asyncio.Queue[tuple[str, BreakerState]] = asyncio.Queue()
    loop = asyncio.get_running_loop()
    subscriptions: list[Subscription[BreakerState]] = []

    await breaker_stream_manager.connect(ws)
    logger.info("ws_breakers_connected", total=breaker_stream_manager.count)
    try:
        for gateway in gateways.all():
            pid = gateway.provider_id

            def _forward(state: BreakerState, pid: str = pid) -> None:
                loop.call_soon_threadsafe(queue.put_nowait, (pid, state))

            subscriptions.append(gateway.on_state_change(_forward))
            await ws.send_text(json.dumps({"provider": pid, "state": gateway.state.value}))

        while True:
            try:
                pid, state = await asyncio.wait_for(queue.get(), timeout=1.0)
                await ws.send_text(json.dumps({"provider": pid, "state": state.value}))
            except asyncio.TimeoutError:
                pass

            # Client pings surface disconnects
            try:
                data = await asyncio.wait_for(ws.receive_text(), timeout=0.1)
                logger.debug("ws_breakers_client_message", data=data)
            except asyncio.TimeoutError:
                pass
    except WebSocketDisconnect:
        logger.info("ws_breakers_disconnected", total=breaker_stream_manager.count - 1)
    except Exception as exc:
        logger.error("ws_breakers_error", error=str(exc))
    finally:
        for sub in subscriptions:
            sub.unsubscribe()
        breaker_stream_manager.disconnect(ws)
