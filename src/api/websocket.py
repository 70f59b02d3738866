"""WebSocket endpoint that forwards every event-bus event to the client.

# ─── HOW EVENT STREAMING WORKS ────────────────────────────────────────
#
#   Client                               Backend (this file)
#   ──────                               ───────────────────
#   ws = new WebSocket(url)   ──────→   websocket.accept()
#                                        register_listener(callback)
#                             ←──────   current server status snapshot
#                                        ...server logs, downloads, chat...
#                             ←──────   {"event": "llama-log", "payload": {...}}
#                             ←──────   {"event": "download-progress", ...}
#   ws.close()                ──────→   WebSocketDisconnect
#                                        unregister_listener(callback)
#
# The `while True: await websocket.receive_text()` loop keeps the
# connection open; pushes happen in the _forward callback.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from src.models.events import EventName
from src.pipeline.event_bus import EventBus
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


async def websocket_events(websocket: WebSocket) -> None:
    """Stream ``{"event": name, "payload": {...}}`` messages until the client leaves."""
    event_bus: EventBus = websocket.app.state.event_bus

    await websocket.accept()
    _logger.info("websocket_connected")

    async def _forward(name: str, payload: dict[str, Any]) -> None:
        # The client may be gone between publish and send; the bus logs
        # the failure and the finally block below unregisters us.
        if websocket.application_state is WebSocketState.CONNECTED:
            await websocket.send_json({"event": name, "payload": payload})

    event_bus.register_listener(_forward)

    try:
        status = event_bus.last(EventName.SERVER_STATUS)
        if status is not None:
            await websocket.send_json({"event": EventName.SERVER_STATUS.value, "payload": status})

        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected")

    finally:
        event_bus.unregister_listener(_forward)
        _logger.debug("websocket_listener_cleaned_up")
