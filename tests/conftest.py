"""Shared fixtures for flowcharter tests."""

import pytest

from flowcharter.backend.editor import Editor
from flowcharter.backend.graph_store import GraphStore
from flowcharter.backend.interaction import InteractionController
from flowcharter.backend.persistence import MemoryKeyValueStore, PersistenceGateway
from flowcharter.core.models import Node


@pytest.fixture
def store():
    return GraphStore()


@pytest.fixture
def controller(store):
    return InteractionController(store)


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def gateway(kv):
    return PersistenceGateway(kv)


@pytest.fixture
def editor(kv):
    return Editor(kv_store=kv)


@pytest.fixture
def change_counter(store):
    """Count store change notifications."""
    calls = []
    store.on_change(lambda: calls.append(1))
    return calls


@pytest.fixture
def simple_flow(store):
    """start -> process -> end, laid out left to right."""
    start = store.add_node("start", 100, 100)
    process = store.add_node("process", 300, 100)
    end = store.add_node("end", 500, 100)
    store.add_edge(start.id, process.id)
    store.add_edge(process.id, end.id)
    return start, process, end


@pytest.fixture
def make_node():
    """Build a free-standing Node (not in any store)."""
    def _make(node_type="process", x=0.0, y=0.0, width=120.0, height=60.0, node_id="n", text=""):
        return Node(id=node_id, node_type=node_type, x=x, y=y, width=width, height=height, text=text)
    return _make
