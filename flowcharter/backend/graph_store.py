"""
Graph Store - Owns the flowchart's nodes and edges.

This module implements:
- Node/edge collections kept in insertion order (last inserted is topmost)
- O(1) node/edge lookups via index dictionaries
- Monotonic id counters per entity kind (ids are never reused)
- Mutation primitives that notify subscribers once per applied change
- Deep-copied snapshots for persistence
"""

import logging
from typing import Callable, Optional

from ..core.models import (
    Corner,
    Edge,
    FlowchartSnapshot,
    ItemKind,
    ItemRef,
    Node,
    default_node_text,
    parse_counter_suffix,
)
from ..core.shapes import get_shape, type_key
from . import config

logger = logging.getLogger(__name__)

NODE_ID_PREFIX = "node"
EDGE_ID_PREFIX = "edge"


class GraphStore:
    """
    Manages a single flowchart graph.

    Features:
    - O(1) node/edge lookups via index dictionaries
    - Duplicate directed edges are rejected via a pair index
    - Deleting a node cascades to every edge touching it
    - Change callbacks for validation and real-time sync

    Operations that turn out to be no-ops (stale id, duplicate edge,
    unknown node type) return None/False and do not notify.
    """

    def __init__(self):
        self._node_counter = 0
        self._edge_counter = 0
        self._on_change_callbacks: list[Callable[[], None]] = []

        # O(1) lookup indexes; dicts keep insertion order
        self._nodes: dict[str, Node] = {}                 # node_id -> Node
        self._edges: dict[str, Edge] = {}                 # edge_id -> Edge
        self._edges_by_node: dict[str, set[str]] = {}     # node_id -> set of edge_ids
        self._edge_pairs: dict[tuple[str, str], str] = {}  # (source, target) -> edge_id

    # --- Index Management ---

    def _rebuild_indexes(self):
        """Rebuild edge indexes from the current node/edge collections."""
        self._edges_by_node = {node_id: set() for node_id in self._nodes}
        self._edge_pairs.clear()
        for edge in self._edges.values():
            self._index_edge(edge)

    def _index_edge(self, edge: Edge):
        """Add an edge to the indexes."""
        self._edges_by_node.setdefault(edge.source_id, set()).add(edge.id)
        self._edges_by_node.setdefault(edge.target_id, set()).add(edge.id)
        self._edge_pairs[(edge.source_id, edge.target_id)] = edge.id

    def _unindex_edge(self, edge: Edge):
        """Remove an edge from the indexes."""
        if edge.source_id in self._edges_by_node:
            self._edges_by_node[edge.source_id].discard(edge.id)
        if edge.target_id in self._edges_by_node:
            self._edges_by_node[edge.target_id].discard(edge.id)
        self._edge_pairs.pop((edge.source_id, edge.target_id), None)

    # --- Properties ---

    @property
    def nodes(self) -> tuple[Node, ...]:
        """Nodes in insertion order (bottom to top)."""
        return tuple(self._nodes.values())

    @property
    def edges(self) -> tuple[Edge, ...]:
        """Edges in insertion order."""
        return tuple(self._edges.values())

    @property
    def node_counter(self) -> int:
        return self._node_counter

    @property
    def edge_counter(self) -> int:
        return self._edge_counter

    def is_empty(self) -> bool:
        return not self._nodes

    # --- Change Callbacks ---

    def on_change(self, callback: Callable[[], None]):
        """Register a callback for graph changes."""
        self._on_change_callbacks.append(callback)

    def remove_listener(self, callback: Callable[[], None]):
        """Unregister a previously registered change callback."""
        if callback in self._on_change_callbacks:
            self._on_change_callbacks.remove(callback)

    def _notify_change(self):
        """Notify all registered callbacks of a change."""
        for callback in list(self._on_change_callbacks):
            callback()

    # --- Lookups ---

    def get_node(self, node_id: str) -> Optional[Node]:
        """Get a node by ID (O(1) lookup)."""
        return self._nodes.get(node_id)

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        """Get an edge by ID (O(1) lookup)."""
        return self._edges.get(edge_id)

    def resolve(self, ref: Optional[ItemRef]) -> Optional[Node | Edge]:
        """Resolve an item reference to the live entity, if it still exists."""
        if ref is None:
            return None
        if ref.kind == ItemKind.NODE:
            return self._nodes.get(ref.id)
        return self._edges.get(ref.id)

    def edges_for_node(self, node_id: str) -> list[Edge]:
        """Get all edges connected to a node, in insertion order."""
        edge_ids = self._edges_by_node.get(node_id)
        if not edge_ids:
            return []
        return [e for e in self._edges.values() if e.id in edge_ids]

    def outgoing(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges_for_node(node_id) if e.source_id == node_id]

    def incoming(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges_for_node(node_id) if e.target_id == node_id]

    def find_edge(self, source_id: str, target_id: str) -> Optional[Edge]:
        """Get the edge for a directed (source, target) pair, if any."""
        edge_id = self._edge_pairs.get((source_id, target_id))
        return self._edges.get(edge_id) if edge_id else None

    # --- Node Operations ---

    def add_node(self, node_type: str, x: float, y: float) -> Optional[Node]:
        """Add a node of the given type centered at (x, y)."""
        shape = get_shape(node_type)
        if shape is None:
            logger.debug("Ignoring node of unknown type %r", node_type)
            return None

        key = type_key(node_type)
        self._node_counter += 1
        node = Node(
            id=f"{NODE_ID_PREFIX}_{self._node_counter}",
            node_type=key,
            x=x,
            y=y,
            width=shape.default_width,
            height=shape.default_height,
            text=default_node_text(key),
        )
        self._nodes[node.id] = node
        self._edges_by_node[node.id] = set()
        self._notify_change()
        return node

    def update_node_text(self, node_id: str, text: str) -> Optional[Node]:
        """Replace a node's text."""
        node = self._nodes.get(node_id)
        if node is None:
            return None
        node.text = text
        self._notify_change()
        return node

    def move_node(self, node_id: str, dx: float, dy: float) -> Optional[Node]:
        """Translate a node by (dx, dy) in canvas space."""
        node = self._nodes.get(node_id)
        if node is None:
            return None
        node.x += dx
        node.y += dy
        self._notify_change()
        return node

    def resize_node(self, node_id: str, corner: Corner | str, dx: float, dy: float) -> Optional[Node]:
        """
        Resize a node by dragging one corner by (dx, dy).

        Width and height change by the delta projected onto the corner's
        axes, floored at the minimum size. The center moves by half of the
        size change actually applied, so the opposite corner stays put.
        """
        node = self._nodes.get(node_id)
        if node is None:
            return None
        corner = Corner(corner)

        new_width = max(config.MIN_NODE_WIDTH, node.width + corner.x_sign * dx)
        new_height = max(config.MIN_NODE_HEIGHT, node.height + corner.y_sign * dy)
        applied_w = new_width - node.width
        applied_h = new_height - node.height

        node.width = new_width
        node.height = new_height
        node.x += corner.x_sign * applied_w / 2
        node.y += corner.y_sign * applied_h / 2
        self._notify_change()
        return node

    # --- Edge Operations ---

    def add_edge(self, source_id: str, target_id: str) -> Optional[Edge]:
        """
        Add a directed edge between two existing nodes.

        Returns None when either node is missing, the ids are equal, or an
        edge with the same direction already exists.
        """
        if source_id not in self._nodes or target_id not in self._nodes:
            logger.debug("Ignoring edge with missing endpoint: %s -> %s", source_id, target_id)
            return None
        if source_id == target_id:
            return None
        if (source_id, target_id) in self._edge_pairs:
            return None

        self._edge_counter += 1
        edge = Edge(
            id=f"{EDGE_ID_PREFIX}_{self._edge_counter}",
            source_id=source_id,
            target_id=target_id,
        )
        self._edges[edge.id] = edge
        self._index_edge(edge)
        self._notify_change()
        return edge

    def update_edge_label(self, edge_id: str, label: str) -> Optional[Edge]:
        """Replace an edge's label."""
        edge = self._edges.get(edge_id)
        if edge is None:
            return None
        edge.label = label
        self._notify_change()
        return edge

    # --- Deletion ---

    def delete_item(self, ref: Optional[ItemRef]) -> bool:
        """Delete a node (and all connected edges) or a single edge."""
        if ref is None:
            return False
        if ref.kind == ItemKind.NODE:
            removed = self._remove_node(ref.id)
        else:
            removed = self._remove_edge(ref.id)
        if removed:
            self._notify_change()
        return removed

    def _remove_node(self, node_id: str) -> bool:
        if self._nodes.pop(node_id, None) is None:
            return False
        for edge_id in self._edges_by_node.pop(node_id, set()).copy():
            self._remove_edge(edge_id)
        return True

    def _remove_edge(self, edge_id: str) -> bool:
        edge = self._edges.pop(edge_id, None)
        if edge is None:
            return False
        self._unindex_edge(edge)
        return True

    # --- Snapshots ---

    def snapshot(self) -> FlowchartSnapshot:
        """Deep copy of the graph for persistence."""
        return FlowchartSnapshot(
            nodes=[n.model_copy(deep=True) for n in self._nodes.values()],
            edges=[e.model_copy(deep=True) for e in self._edges.values()],
            node_counter=self._node_counter,
            edge_counter=self._edge_counter,
        )

    def load_snapshot(self, snapshot: FlowchartSnapshot):
        """
        Replace the whole graph with a snapshot.

        Edges whose endpoints are missing and repeated directed pairs are
        dropped. Counters never fall below an id already in use.
        """
        nodes: dict[str, Node] = {}
        for node in snapshot.nodes:
            nodes[node.id] = node.model_copy(deep=True)

        edges: dict[str, Edge] = {}
        pairs: set[tuple[str, str]] = set()
        for edge in snapshot.edges:
            pair = (edge.source_id, edge.target_id)
            if edge.source_id not in nodes or edge.target_id not in nodes or pair in pairs:
                logger.warning("Dropping invalid edge %s (%s -> %s) from snapshot",
                               edge.id, edge.source_id, edge.target_id)
                continue
            pairs.add(pair)
            edges[edge.id] = edge.model_copy(deep=True)

        self._nodes = nodes
        self._edges = edges
        self._node_counter = _counter_floor(snapshot.node_counter, nodes, NODE_ID_PREFIX)
        self._edge_counter = _counter_floor(snapshot.edge_counter, edges, EDGE_ID_PREFIX)
        self._rebuild_indexes()
        self._notify_change()

    def clear(self):
        """Remove everything and restart the id counters."""
        self._nodes = {}
        self._edges = {}
        self._node_counter = 0
        self._edge_counter = 0
        self._rebuild_indexes()
        self._notify_change()

    def get_state(self) -> dict:
        """Get the full graph for API responses."""
        return self.snapshot().to_json_dict()


def _counter_floor(counter: int, entities: dict, prefix: str) -> int:
    suffixes = [parse_counter_suffix(entity_id, prefix) for entity_id in entities]
    return max([counter] + [n for n in suffixes if n is not None])
