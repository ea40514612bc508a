"""Tests for the flowchart_updated fan-out."""

import asyncio
import json

from flowcharter.backend.websocket_manager import WebSocketManager


class FakeSocket:
    def __init__(self, broken=False):
        self.broken = broken
        self.sent = []

    async def accept(self):
        pass

    async def send_text(self, text):
        if self.broken:
            raise RuntimeError("connection closed")
        self.sent.append(json.loads(text))


def test_broadcast_sends_update_event_and_drops_dead_clients():
    manager = WebSocketManager()
    alive, dead = FakeSocket(), FakeSocket(broken=True)

    async def scenario():
        await manager.connect(alive)
        await manager.connect(dead)
        return await manager.broadcast("demo", ["No end node found."])

    assert asyncio.run(scenario()) == 1
    assert alive.sent == [{"type": "flowchart_updated", "name": "demo", "diagnostics": ["No end node found."]}]
    assert manager.connection_count == 1


def test_broadcast_without_clients_remembers_last_event():
    manager = WebSocketManager()
    assert asyncio.run(manager.broadcast(None, [])) == 0
    assert manager.last_event == {"type": "flowchart_updated", "name": None, "diagnostics": []}


def test_ping_gets_pong_and_other_messages_are_ignored():
    manager = WebSocketManager()
    socket = FakeSocket()

    async def scenario():
        await manager.handle_message(socket, "ping")
        await manager.handle_message(socket, "hello")

    asyncio.run(scenario())
    assert socket.sent == [{"type": "pong"}]
