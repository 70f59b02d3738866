"""Application event bus with callback-based listener notification.

Every long-running component (supervisor, installer, download manager,
completion service) publishes named events here instead of holding
references to its consumers.

# ─── HOW EVENTS FLOW ──────────────────────────────────────────────────
#
# Observer pattern:
#
#   ServerSupervisor ──publish()──→ EventBus ──callback()──→ WebSocket handler
#   DownloadManager  ──publish()──┘          ──callback()──→ CLI progress printer
#
#   - Listeners subscribe to one event name, or to all events (event=None)
#   - The last payload of each event is kept so a late subscriber can show
#     the current state immediately (e.g. the most recent server status)
#   - A listener that raises is logged and skipped; publishers never see it
#   - Both sync and async callbacks are supported
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

from src.models.events import EventName
from src.utils.logging import get_logger

# Wildcard key under which "every event" listeners are stored.
_ALL = "*"


class EventBus:
    """Publishes named events to registered listener callbacks.

    Callbacks receive ``(event_name: str, payload: dict)``.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable]] = {}
        self._last: dict[str, dict[str, Any]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def publish(self, event: EventName | str, payload: dict[str, Any]) -> None:
        """Record *payload* as the latest value of *event* and notify listeners."""
        name = _event_key(event)
        self._last[name] = payload

        # Log lines and stream fragments are too chatty for DEBUG output.
        if name not in (EventName.LLAMA_LOG.value, EventName.GENERATION_CHUNK.value):
            self._logger.debug("event_published", event_name=name, payload_keys=sorted(payload))

        await self._notify_listeners(name, payload)

    def register_listener(self, callback: Callable, event: EventName | str | None = None) -> None:
        """Register *callback* for one event, or for every event when *event* is None."""
        key = _ALL if event is None else _event_key(event)
        listeners = self._listeners.setdefault(key, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                event_name=key,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, callback: Callable, event: EventName | str | None = None) -> None:
        """Remove a previously registered callback."""
        key = _ALL if event is None else _event_key(event)
        listeners = self._listeners.get(key, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                event_name=key,
                remaining_listeners=len(listeners),
            )

    def last(self, event: EventName | str) -> dict[str, Any] | None:
        """Return the most recent payload published for *event*, if any."""
        return self._last.get(_event_key(event))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, name: str, payload: dict[str, Any]) -> None:
        """Invoke specific listeners first, then wildcard listeners.

        A copy of each list is iterated so a callback may unregister itself.
        """
        listeners = [*self._listeners.get(name, []), *self._listeners.get(_ALL, [])]
        for callback in listeners:
            try:
                result = callback(name, payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    event_name=name,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )


def _event_key(event: EventName | str) -> str:
    return event.value if isinstance(event, EventName) else str(event)
