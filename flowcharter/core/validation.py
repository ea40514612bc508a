"""
Flowchart validation - Check flowcharts for structural issues.

Validation is a pure, read-only pass over nodes and edges. It produces an
ordered list of advisory diagnostics; nothing here blocks editing or saving.

Checks, in order:
- Start node count (missing / multiple)
- End node count (missing)
- Per-node connectivity (disconnected / no incoming / no outgoing)
- Cycles (each distinct cycle reported once)
- Decision branching (fewer than 2 paths / unlabeled paths)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterator, Sequence

from .models import NodeType

if TYPE_CHECKING:
    from .models import Edge, Node


CYCLE_ARROW = " → "


class DiagnosticKind(str, Enum):
    """Kinds of validation findings."""
    MISSING_START = "missing_start"
    MULTIPLE_START = "multiple_start"
    MISSING_END = "missing_end"
    DISCONNECTED = "disconnected"
    NO_INCOMING = "no_incoming"
    NO_OUTGOING = "no_outgoing"
    CYCLE = "cycle"
    DECISION_BRANCHES = "decision_branches"
    DECISION_UNLABELED = "decision_unlabeled"


@dataclass
class Diagnostic:
    """A single validation finding."""
    kind: DiagnosticKind
    message: str
    node_ids: tuple[str, ...] = field(default_factory=tuple)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.node_ids:
            result["node_ids"] = list(self.node_ids)
        return result


def validate_flowchart(nodes: Sequence["Node"], edges: Sequence["Edge"]) -> list[Diagnostic]:
    """
    Validate a flowchart and return its diagnostics in check order.

    Args:
        nodes: Nodes in insertion order
        edges: Edges in insertion order

    Returns:
        List of Diagnostic objects (empty when the flowchart is well formed)
    """
    diagnostics: list[Diagnostic] = []

    start_nodes = [n for n in nodes if n.node_type == NodeType.START.value]
    if not start_nodes:
        diagnostics.append(Diagnostic(
            kind=DiagnosticKind.MISSING_START,
            message="No start node found. Add a start node to your flowchart.",
        ))
    elif len(start_nodes) > 1:
        diagnostics.append(Diagnostic(
            kind=DiagnosticKind.MULTIPLE_START,
            message="Multiple start nodes found. A flowchart should have only one start node.",
            node_ids=tuple(n.id for n in start_nodes),
        ))

    if not any(n.node_type == NodeType.END.value for n in nodes):
        diagnostics.append(Diagnostic(
            kind=DiagnosticKind.MISSING_END,
            message="No end node found. Add an end node to your flowchart.",
        ))

    diagnostics.extend(check_connectivity(nodes, edges))
    diagnostics.extend(check_cycles(nodes, edges))
    diagnostics.extend(check_decisions(nodes, edges))
    return diagnostics


def check_connectivity(nodes: Sequence["Node"], edges: Sequence["Edge"]) -> list[Diagnostic]:
    """Report nodes missing incoming and/or outgoing connections."""
    node_ids = {n.id for n in nodes}
    has_incoming: set[str] = set()
    has_outgoing: set[str] = set()
    for edge in edges:
        # Edges must join two live nodes to count
        if edge.source_id in node_ids and edge.target_id in node_ids:
            has_outgoing.add(edge.source_id)
            has_incoming.add(edge.target_id)

    diagnostics: list[Diagnostic] = []
    for node in nodes:
        incoming_ok = node.node_type == NodeType.START.value or node.id in has_incoming
        outgoing_ok = node.node_type == NodeType.END.value or node.id in has_outgoing

        if not incoming_ok and not outgoing_ok:
            kind = DiagnosticKind.DISCONNECTED
            message = f'Node "{node.text}" is completely disconnected.'
        elif not incoming_ok:
            kind = DiagnosticKind.NO_INCOMING
            message = f'Node "{node.text}" has no incoming connections.'
        elif not outgoing_ok:
            kind = DiagnosticKind.NO_OUTGOING
            message = f'Node "{node.text}" has no outgoing connections.'
        else:
            continue
        diagnostics.append(Diagnostic(kind=kind, message=message, node_ids=(node.id,)))
    return diagnostics


def find_cycles(nodes: Sequence["Node"], edges: Sequence["Edge"]) -> list[list[str]]:
    """
    Find directed cycles with an iterative depth-first search.

    The search starts from every start node, then from any node not yet
    visited. Each back edge to a node on the current path closes a cycle;
    cycles are deduplicated by their node set.

    Returns:
        List of cycles, each the node ids from the first repeated node
        around to the last node before returning to it
    """
    adjacency: dict[str, list[str]] = {n.id: [] for n in nodes}
    for edge in edges:
        if edge.source_id in adjacency and edge.target_id in adjacency:
            adjacency[edge.source_id].append(edge.target_id)

    roots = [n.id for n in nodes if n.node_type == NodeType.START.value]
    roots += [n.id for n in nodes]

    visited: set[str] = set()
    seen_sets: set[frozenset[str]] = set()
    cycles: list[list[str]] = []

    for root in roots:
        if root in visited:
            continue

        path: list[str] = [root]
        on_path: set[str] = {root}
        visited.add(root)
        stack: list[Iterator[str]] = [iter(adjacency[root])]

        while stack:
            neighbor = next(stack[-1], None)
            if neighbor is None:
                stack.pop()
                on_path.discard(path.pop())
                continue

            if neighbor in on_path:
                cycle = path[path.index(neighbor):]
                key = frozenset(cycle)
                if key not in seen_sets:
                    seen_sets.add(key)
                    cycles.append(cycle)
            elif neighbor not in visited:
                visited.add(neighbor)
                path.append(neighbor)
                on_path.add(neighbor)
                stack.append(iter(adjacency[neighbor]))

    return cycles


def check_cycles(nodes: Sequence["Node"], edges: Sequence["Edge"]) -> list[Diagnostic]:
    """Report each distinct cycle as its closed sequence of node labels."""
    text_by_id = {n.id: n.text for n in nodes}
    diagnostics = []
    for cycle in find_cycles(nodes, edges):
        labels = [text_by_id.get(node_id, node_id) for node_id in cycle]
        labels.append(labels[0])
        diagnostics.append(Diagnostic(
            kind=DiagnosticKind.CYCLE,
            message=f"Cycle detected: {CYCLE_ARROW.join(labels)}",
            node_ids=tuple(cycle),
        ))
    return diagnostics


def check_decisions(nodes: Sequence["Node"], edges: Sequence["Edge"]) -> list[Diagnostic]:
    """Decision nodes need at least two outgoing paths, all labeled."""
    diagnostics = []
    for node in nodes:
        if node.node_type != NodeType.DECISION.value:
            continue

        outgoing = [e for e in edges if e.source_id == node.id]
        if len(outgoing) < 2:
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.DECISION_BRANCHES,
                message=f'Decision node "{node.text}" should have at least 2 outgoing paths.',
                node_ids=(node.id,),
            ))
            continue

        unlabeled = [e for e in outgoing if not e.label]
        if unlabeled:
            diagnostics.append(Diagnostic(
                kind=DiagnosticKind.DECISION_UNLABELED,
                message=f'Decision node "{node.text}" has {len(unlabeled)} unlabeled outgoing paths.',
                node_ids=(node.id,),
            ))
    return diagnostics


def validation_summary(diagnostics: list[Diagnostic]) -> dict:
    """
    Create a summary of validation diagnostics.

    Args:
        diagnostics: List of diagnostics

    Returns:
        Dictionary with the total, counts by kind and a valid flag
    """
    by_kind: dict[str, int] = {}
    for diagnostic in diagnostics:
        by_kind[diagnostic.kind.value] = by_kind.get(diagnostic.kind.value, 0) + 1
    return {
        "total": len(diagnostics),
        "by_kind": by_kind,
        "valid": not diagnostics,
    }
