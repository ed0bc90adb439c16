from __future__ import annotations

"""
File: warehouse_twin/events.py
Purpose: One-way event fan-out from the dispatch engine to transports.
Key responsibilities:
- Accept events synchronously from the engine (never blocks a tick).
- Forward each event to registered async sinks as background tasks.
- Log and drop sink failures.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger("warehouse-twin.events")

AsyncSink = Callable[[str, dict[str, Any]], Awaitable[None]]


class EventHub:
    """Fire-and-forget fan-out to WebSocket, RabbitMQ or any other async sink."""

    def __init__(self) -> None:
        self.sinks: list[AsyncSink] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, sink: AsyncSink) -> None:
        self.sinks.append(sink)

    def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        """Schedule delivery of one event to every sink."""
        if not self.sinks:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running loop, dropping event_type=%s", event_type)
            return
        for sink in list(self.sinks):
            task = loop.create_task(self._deliver(sink, event_type, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, sink: AsyncSink, event_type: str, payload: dict[str, Any]) -> None:
        try:
            await sink(event_type, payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("event delivery failed event_type=%s err=%s", event_type, exc)
