"""
Validation Engine - Keeps diagnostics in step with the graph.

Runs validate_flowchart() synchronously after every store change and
replaces its diagnostics list wholesale. Listeners receive the messages.
"""

import logging
from typing import Callable

from ..core.validation import Diagnostic, validate_flowchart, validation_summary
from .graph_store import GraphStore

logger = logging.getLogger(__name__)


class ValidationEngine:
    def __init__(self, store: GraphStore):
        self.store = store
        self.diagnostics: list[Diagnostic] = []
        self._on_update_callbacks: list[Callable[[list[str]], None]] = []

        store.on_change(self.revalidate)
        self.revalidate()

    def on_update(self, callback: Callable[[list[str]], None]):
        """Register a callback receiving the new message list."""
        self._on_update_callbacks.append(callback)

    @property
    def messages(self) -> list[str]:
        return [d.message for d in self.diagnostics]

    def revalidate(self) -> list[Diagnostic]:
        self.diagnostics = validate_flowchart(self.store.nodes, self.store.edges)
        logger.debug("Validation produced %d diagnostic(s)", len(self.diagnostics))
        messages = self.messages
        for callback in list(self._on_update_callbacks):
            callback(messages)
        return self.diagnostics

    def summary(self) -> dict:
        return validation_summary(self.diagnostics)
