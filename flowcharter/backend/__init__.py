"""
Flowcharter Backend - Editing session, rendering, persistence and HTTP shell.
"""

from .graph_store import GraphStore
from .interaction import InteractionController, Mode, InteractionKind
from .persistence import JsonFileKeyValueStore, MemoryKeyValueStore, PersistenceGateway
from .renderer import Renderer, export_png
from .validation_engine import ValidationEngine
from .editor import Editor

__all__ = [
    "GraphStore",
    "InteractionController",
    "Mode",
    "InteractionKind",
    "JsonFileKeyValueStore",
    "MemoryKeyValueStore",
    "PersistenceGateway",
    "Renderer",
    "export_png",
    "ValidationEngine",
    "Editor",
]
