"""
Flowcharter Core - Shared models, shape geometry, validation and errors.

This module provides the pure functionality used by the editor backend,
the HTTP shell and the CLI, ensuring a single source of truth for all
flowchart logic.
"""

from .models import (
    # Enums
    NodeType,
    ItemKind,
    Corner,
    # Core models
    Point,
    ItemRef,
    Node,
    Edge,
    FlowchartSnapshot,
    Camera,
)

from .errors import (
    FlowchartError,
    MalformedSnapshotError,
    PersistenceError,
    StorageQuotaExceededError,
    StorageWriteError,
    FlowchartNotFoundError,
)

from .shapes import (
    SHAPES,
    ShapeSpec,
    get_shape,
    contains_point,
    connection_point,
    draw_node,
    edge_endpoints,
    distance_to_segment,
)

from .validation import (
    Diagnostic,
    DiagnosticKind,
    validate_flowchart,
    find_cycles,
    validation_summary,
)

__all__ = [
    # Enums
    "NodeType",
    "ItemKind",
    "Corner",
    # Models
    "Point",
    "ItemRef",
    "Node",
    "Edge",
    "FlowchartSnapshot",
    "Camera",
    # Errors
    "FlowchartError",
    "MalformedSnapshotError",
    "PersistenceError",
    "StorageQuotaExceededError",
    "StorageWriteError",
    "FlowchartNotFoundError",
    # Shapes
    "SHAPES",
    "ShapeSpec",
    "get_shape",
    "contains_point",
    "connection_point",
    "draw_node",
    "edge_endpoints",
    "distance_to_segment",
    # Validation
    "Diagnostic",
    "DiagnosticKind",
    "validate_flowchart",
    "find_cycles",
    "validation_summary",
]
