"""
Editor - One editing session.

Bundles the graph store, interaction controller, validation engine,
renderer and persistence gateway, and exposes the document-level
operations of the toolbar: new, save, load, delete, export.
"""

import logging
from typing import Any, Callable, Optional

from ..core.models import FlowchartSnapshot, ItemKind
from .graph_store import GraphStore
from .interaction import InteractionController
from .persistence import JsonFileKeyValueStore, KeyValueStore, PersistenceGateway
from .renderer import Renderer, export_png
from .validation_engine import ValidationEngine

logger = logging.getLogger(__name__)


class Editor:
    """
    Editing session over a single flowchart.

    Components subscribe to the store in construction order: the
    controller first (so stale selections are dropped), then validation,
    then any listeners added through on_change().
    """

    def __init__(self, kv_store: Optional[KeyValueStore] = None):
        self.store = GraphStore()
        self.controller = InteractionController(self.store)
        self.validation = ValidationEngine(self.store)
        self.renderer = Renderer(self.store, self.controller)
        self.persistence = PersistenceGateway(kv_store if kv_store is not None else JsonFileKeyValueStore())
        self.current_name: Optional[str] = None

    def on_change(self, callback: Callable[[], None]):
        """Register a callback for graph and selection changes."""
        self.store.on_change(callback)
        self.controller.on_selection_change(lambda _ref: callback())

    # --- Document ---

    def new(self):
        """Start an empty flowchart."""
        self.store.clear()
        self.controller.reset()
        self.current_name = None

    def save(self, name: str):
        """Save the current graph under name (last write wins)."""
        self.persistence.save(name, self.store.snapshot())
        self.current_name = name

    def load(self, name: str):
        """
        Replace the current graph with a saved flowchart.

        The saved data is fully parsed before anything changes, so a
        failed load leaves the open flowchart untouched.
        """
        snapshot = self.persistence.load(name)
        self._replace(snapshot)
        self.current_name = name

    def load_data(self, data: Any, name: Optional[str] = None):
        """Replace the current graph with snapshot JSON data (e.g. an import)."""
        snapshot = FlowchartSnapshot.from_json_dict(data)
        self._replace(snapshot)
        self.current_name = name

    def _replace(self, snapshot: FlowchartSnapshot):
        self.store.load_snapshot(snapshot)
        self.controller.reset()
        logger.info("Opened flowchart with %d nodes, %d edges", len(self.store.nodes), len(self.store.edges))

    def delete_saved(self, name: str):
        self.persistence.delete(name)
        if self.current_name == name:
            self.current_name = None

    def list_saved(self) -> list[str]:
        return self.persistence.list()

    def export_png(self) -> bytes:
        return export_png(self.store)

    # --- Properties panel ---

    def edit_selection(self, text: str) -> bool:
        """Set the text of the selected node or the label of the selected edge."""
        selection = self.controller.selection
        if selection is None:
            return False
        if selection.kind == ItemKind.NODE:
            return self.store.update_node_text(selection.id, text) is not None
        return self.store.update_edge_label(selection.id, text) is not None

    def state(self) -> dict:
        """Full session state for the UI shell."""
        return {
            "name": self.current_name,
            "flowchart": self.store.get_state(),
            "interaction": self.controller.get_state(),
            "diagnostics": [d.to_dict() for d in self.validation.diagnostics],
            "summary": self.validation.summary(),
        }
