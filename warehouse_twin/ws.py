from __future__ import annotations

"""
File: warehouse_twin/ws.py
Purpose: WebSocket connection manager for live dashboard clients.
"""

import asyncio
import json
from typing import Any

from fastapi import WebSocket


def envelope(event_type: str, payload: Any) -> str:
    return json.dumps({"type": event_type, "payload": payload}, separators=(",", ":"))


class WSManager:
    """Track WebSocket clients and broadcast engine events to them."""
    def __init__(self) -> None:
        self.clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a client and greet it."""
        await websocket.accept()
        async with self._lock:
            self.clients.add(websocket)
        await websocket.send_text(envelope("connected", {"message": "Connected to warehouse twin"}))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self.clients.discard(websocket)

    async def broadcast(self, event_type: str, payload: dict[str, Any]) -> None:
        """Send one event envelope to all connected clients; drop the ones that fail."""
        data = envelope(event_type, payload)
        stale: list[WebSocket] = []
        async with self._lock:
            clients = list(self.clients)
        for client in clients:
            try:
                await client.send_text(data)
            except Exception:  # noqa: BLE001
                stale.append(client)
        if stale:
            async with self._lock:
                for client in stale:
                    self.clients.discard(client)
