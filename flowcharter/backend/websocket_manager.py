"""
WebSocket Manager - Pushes flowchart updates to connected UI shells.

Every change to the flowchart becomes one flowchart_updated event with
the flowchart's name and its current validation messages. Clients fetch
the full state via GET /api/state.
"""
import asyncio
import json
import logging
from typing import Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)

UPDATE_EVENT = "flowchart_updated"
PONG = json.dumps({"type": "pong"})


def update_event(name: Optional[str], diagnostics: list[str]) -> dict:
    return {"type": UPDATE_EVENT, "name": name, "diagnostics": diagnostics}


class WebSocketManager:
    """UI shell connections, and the flowchart_updated fan-out."""

    def __init__(self):
        self._clients: list[WebSocket] = []
        self._lock = asyncio.Lock()
        self.last_event: Optional[dict] = None

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._clients.append(websocket)
        logger.info("UI shell connected (%d open)", len(self._clients))

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            if websocket in self._clients:
                self._clients.remove(websocket)
        logger.info("UI shell disconnected (%d open)", len(self._clients))

    async def handle_message(self, websocket: WebSocket, text: str):
        """Answer keepalive pings; anything else from a client is ignored."""
        if text == "ping":
            await websocket.send_text(PONG)
        else:
            logger.debug("Ignoring client message %r", text[:80])

    async def broadcast(self, name: Optional[str], diagnostics: list[str]) -> int:
        """
        Send a flowchart_updated event to every client.

        Clients whose send fails are dropped. Returns the number of clients
        that received the event.
        """
        self.last_event = update_event(name, diagnostics)
        if not self._clients:
            return 0

        text = json.dumps(self.last_event)
        async with self._lock:
            delivered = []
            for websocket in self._clients:
                try:
                    await websocket.send_text(text)
                except Exception as e:
                    logger.debug("Dropping UI shell after failed send: %s", e)
                    continue
                delivered.append(websocket)
            self._clients = delivered
        return len(delivered)

    @property
    def connection_count(self) -> int:
        return len(self._clients)
