"""
Core data models for flowcharts.

These models define the canonical schema shared by the graph store, the
validator and persistence:
- Nodes are typed shapes positioned by their center in canvas space
- Edges are directed connections between two node ids
- Snapshots bundle nodes, edges and the id counters for save/load

Field Naming Convention:
- Python attributes are snake_case (node_type, source_id, ...)
- Serialized snapshots use camelCase (nodeType, sourceId, nodeCounter, ...)
  so saved flowcharts keep the storage format of the browser editor
"""

import math
from enum import Enum
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MalformedSnapshotError


class NodeType(str, Enum):
    """Flowchart node types. Each maps to one shape in the registry."""
    START = "start"
    END = "end"
    PROCESS = "process"
    DECISION = "decision"
    INPUT = "input"


class ItemKind(str, Enum):
    """Kinds of selectable graph entities."""
    NODE = "node"
    EDGE = "edge"


class Corner(str, Enum):
    """Node corners, used as resize anchors."""
    NW = "nw"
    NE = "ne"
    SE = "se"
    SW = "sw"

    @property
    def x_sign(self) -> int:
        """+1 when the corner is on the east side, -1 on the west side."""
        return 1 if self in (Corner.NE, Corner.SE) else -1

    @property
    def y_sign(self) -> int:
        """+1 when the corner is on the south side, -1 on the north side."""
        return 1 if self in (Corner.SE, Corner.SW) else -1

    @property
    def opposite(self) -> "Corner":
        return _OPPOSITE_CORNERS[self]


_OPPOSITE_CORNERS = {
    Corner.NW: Corner.SE,
    Corner.NE: Corner.SW,
    Corner.SE: Corner.NW,
    Corner.SW: Corner.NE,
}


class Point(NamedTuple):
    x: float
    y: float


class ItemRef(NamedTuple):
    """Reference to a node or edge by id. Never a copy of the entity."""
    kind: ItemKind
    id: str

    @classmethod
    def node(cls, node_id: str) -> "ItemRef":
        return cls(ItemKind.NODE, node_id)

    @classmethod
    def edge(cls, edge_id: str) -> "ItemRef":
        return cls(ItemKind.EDGE, edge_id)

    def to_dict(self) -> dict:
        return {"type": self.kind.value, "id": self.id}


class Node(BaseModel):
    """A flowchart step. (x, y) is the center of the shape."""
    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str
    node_type: str = Field(default=NodeType.PROCESS.value, alias="nodeType")
    x: float = 0.0
    y: float = 0.0
    width: float = Field(default=120.0, gt=0)
    height: float = Field(default=60.0, gt=0)
    text: str = ""

    def bounds(self) -> tuple[float, float, float, float]:
        """Get the bounding box (left, top, right, bottom)."""
        half_w = self.width / 2
        half_h = self.height / 2
        return (self.x - half_w, self.y - half_h, self.x + half_w, self.y + half_h)

    def corner(self, corner: Corner) -> Point:
        """Get the canvas position of one corner of the bounding box."""
        return Point(
            self.x + corner.x_sign * self.width / 2,
            self.y + corner.y_sign * self.height / 2,
        )

    def ref(self) -> ItemRef:
        return ItemRef.node(self.id)


class Edge(BaseModel):
    """A directed, optionally labeled connection between two nodes."""
    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str
    source_id: str = Field(alias="sourceId")
    target_id: str = Field(alias="targetId")
    label: str = ""

    def ref(self) -> ItemRef:
        return ItemRef.edge(self.id)


class FlowchartSnapshot(BaseModel):
    """
    The complete flowchart structure.
    This is what gets saved to/loaded from storage.
    """
    model_config = ConfigDict(populate_by_name=True)

    nodes: list[Node]
    edges: list[Edge]
    node_counter: int = Field(default=0, ge=0, alias="nodeCounter")
    edge_counter: int = Field(default=0, ge=0, alias="edgeCounter")

    def to_json_dict(self) -> dict:
        """Convert to JSON-serializable dict with the storage field names."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_json_dict(cls, data: Any) -> "FlowchartSnapshot":
        """
        Create a snapshot from a JSON dict.

        Raises MalformedSnapshotError when required collections are missing
        or any entity fails validation.
        """
        if not isinstance(data, dict):
            raise MalformedSnapshotError("Invalid flowchart data: expected an object")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise MalformedSnapshotError(f"Invalid flowchart data: {e.error_count()} problem(s)") from e


class Camera(BaseModel):
    """
    Pan/zoom transform from canvas space to device space.

    device = (canvas + offset) * scale
    """
    model_config = ConfigDict(validate_assignment=True)

    scale: float = Field(default=1.0, gt=0)
    offset_x: float = 0.0
    offset_y: float = 0.0

    def to_canvas(self, x: float, y: float) -> Point:
        """Convert a device-space point to canvas space."""
        return Point(x / self.scale - self.offset_x, y / self.scale - self.offset_y)

    def to_device(self, x: float, y: float) -> Point:
        """Convert a canvas-space point to device space."""
        return Point((x + self.offset_x) * self.scale, (y + self.offset_y) * self.scale)

    def pan_by_device(self, dx: float, dy: float):
        """Translate the view so content follows a device-space pointer delta."""
        self.offset_x += dx / self.scale
        self.offset_y += dy / self.scale

    def zoom_at(self, x: float, y: float, factor: float):
        """
        Multiply the scale by factor, keeping canvas point (x, y) at the same
        device position.
        """
        if factor <= 0 or not math.isfinite(factor):
            raise ValueError(f"Zoom factor must be a positive number, got {factor}")
        self.offset_x = (x + self.offset_x) / factor - x
        self.offset_y = (y + self.offset_y) / factor - y
        self.scale = self.scale * factor

    def zoom_in(self, step: float = 1.1):
        self.scale = self.scale * step

    def zoom_out(self, step: float = 0.9):
        self.scale = self.scale * step

    def reset(self):
        self.scale = 1.0
        self.offset_x = 0.0
        self.offset_y = 0.0


def default_node_text(node_type: str) -> str:
    """Default text for a new node: the capitalized type name."""
    return node_type[:1].upper() + node_type[1:]


def parse_counter_suffix(entity_id: str, prefix: str) -> Optional[int]:
    """Return n for ids shaped like '<prefix>_<n>', else None."""
    head, sep, tail = entity_id.rpartition("_")
    if not sep or head != prefix or not tail.isdigit():
        return None
    return int(tail)
