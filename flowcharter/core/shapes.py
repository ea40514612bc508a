"""
Shape registry - per node type geometry.

Each node type maps to a ShapeSpec carrying three operations that only look
at a node's center and size:
- draw: paint the outline onto a draw context
- contains_point: exact membership test for hit testing
- connection_point: where an edge toward another point meets the outline

Unknown node types have no entry. The module-level helpers return None /
False / do nothing for them so a bad node never breaks rendering or
hit testing.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

from .models import Node, NodeType, Point

logger = logging.getLogger(__name__)


class DrawContext(Protocol):
    """Minimal paint surface the shapes draw onto (canvas coordinates)."""

    def ellipse(self, cx: float, cy: float, rx: float, ry: float) -> None: ...

    def polygon(self, points: Sequence[tuple[float, float]]) -> None: ...


class HasPosition(Protocol):
    x: float
    y: float


@dataclass(frozen=True)
class ShapeSpec:
    """Geometry and styling for one node type."""
    name: str
    color: str
    default_width: float
    default_height: float
    draw: Callable[[DrawContext, float, float, float, float], None]
    contains_point: Callable[[Node, float, float], bool]
    connection_point: Callable[[Node, HasPosition], Point]


def _direction(node: Node, toward: HasPosition) -> tuple[float, float]:
    dx = toward.x - node.x
    dy = toward.y - node.y
    if dx == 0 and dy == 0:
        # atan2(0, 0) == 0: point due east
        return 1.0, 0.0
    return dx, dy


# --- Ellipse (start / end) ---

def _draw_ellipse(ctx: DrawContext, x: float, y: float, width: float, height: float):
    ctx.ellipse(x, y, width / 2, height / 2)


def _ellipse_contains(node: Node, x: float, y: float) -> bool:
    dx = (x - node.x) / (node.width / 2)
    dy = (y - node.y) / (node.height / 2)
    return dx * dx + dy * dy <= 1


def _ellipse_connection_point(node: Node, toward: HasPosition) -> Point:
    dx, dy = _direction(node, toward)
    angle = math.atan2(dy, dx)
    return Point(
        node.x + (node.width / 2) * math.cos(angle),
        node.y + (node.height / 2) * math.sin(angle),
    )


# --- Rectangle (process) ---

def _rectangle_vertices(x: float, y: float, width: float, height: float) -> list[tuple[float, float]]:
    half_w = width / 2
    half_h = height / 2
    return [
        (x - half_w, y - half_h),
        (x + half_w, y - half_h),
        (x + half_w, y + half_h),
        (x - half_w, y + half_h),
    ]


def _draw_rectangle(ctx: DrawContext, x: float, y: float, width: float, height: float):
    ctx.polygon(_rectangle_vertices(x, y, width, height))


def _rectangle_contains(node: Node, x: float, y: float) -> bool:
    return abs(x - node.x) <= node.width / 2 and abs(y - node.y) <= node.height / 2


def _rectangle_connection_point(node: Node, toward: HasPosition) -> Point:
    half_w = node.width / 2
    half_h = node.height / 2
    dx, dy = _direction(node, toward)

    # Steeper than the diagonal: the ray leaves through top or bottom
    if abs(dy) * half_w > abs(dx) * half_h:
        y = node.y + math.copysign(half_h, dy)
        x = node.x + half_h * dx / abs(dy)
    else:
        x = node.x + math.copysign(half_w, dx)
        y = node.y + half_w * dy / abs(dx)
    return Point(x, y)


# --- Rhombus (decision) ---

def _rhombus_vertices(x: float, y: float, width: float, height: float) -> list[tuple[float, float]]:
    return [
        (x, y - height / 2),
        (x + width / 2, y),
        (x, y + height / 2),
        (x - width / 2, y),
    ]


def _draw_rhombus(ctx: DrawContext, x: float, y: float, width: float, height: float):
    ctx.polygon(_rhombus_vertices(x, y, width, height))


def _rhombus_contains(node: Node, x: float, y: float) -> bool:
    dx = abs(x - node.x) / (node.width / 2)
    dy = abs(y - node.y) / (node.height / 2)
    return dx + dy <= 1


def _rhombus_connection_point(node: Node, toward: HasPosition) -> Point:
    half_w = node.width / 2
    half_h = node.height / 2
    dx, dy = _direction(node, toward)

    # The quadrant picks the edge between the side vertex and the
    # top/bottom vertex; s is the position along that edge.
    side = (node.x + math.copysign(half_w, dx), node.y)
    tip = (node.x, node.y + math.copysign(half_h, dy))
    horizontal = abs(dx) / half_w
    vertical = abs(dy) / half_h
    s = vertical / (horizontal + vertical)
    return Point(
        side[0] + s * (tip[0] - side[0]),
        side[1] + s * (tip[1] - side[1]),
    )


# --- Parallelogram (input/output) ---

def _parallelogram_vertices(x: float, y: float, width: float, height: float) -> list[tuple[float, float]]:
    half_w = width / 2
    half_h = height / 2
    offset = width / 4
    return [
        (x - half_w + offset, y - half_h),
        (x + half_w + offset, y - half_h),
        (x + half_w - offset, y + half_h),
        (x - half_w - offset, y + half_h),
    ]


def _draw_parallelogram(ctx: DrawContext, x: float, y: float, width: float, height: float):
    ctx.polygon(_parallelogram_vertices(x, y, width, height))


def _parallelogram_contains(node: Node, x: float, y: float) -> bool:
    half_w = node.width / 2
    half_h = node.height / 2
    offset = node.width / 4

    if abs(y - node.y) > half_h:
        return False

    # Horizontal extent of the sheared shape at this height
    rel_y = (y - node.y) / half_h
    left_x = node.x - half_w - offset * rel_y
    right_x = node.x + half_w - offset * rel_y
    return left_x <= x <= right_x


def _parallelogram_connection_point(node: Node, toward: HasPosition) -> Point:
    dx, dy = _direction(node, toward)
    vertices = _parallelogram_vertices(node.x, node.y, node.width, node.height)

    best: Optional[tuple[float, float]] = None
    for i, (ax, ay) in enumerate(vertices):
        bx, by = vertices[(i + 1) % len(vertices)]
        ex, ey = bx - ax, by - ay
        denom = dx * ey - dy * ex
        if denom == 0:
            continue
        # Solve center + t*d == a + s*e
        wx, wy = ax - node.x, ay - node.y
        t = (wx * ey - wy * ex) / denom
        s = (wx * dy - wy * dx) / denom
        if t > 0 and -1e-9 <= s <= 1 + 1e-9:
            s = min(1.0, max(0.0, s))
            best = (ax + s * ex, ay + s * ey)
            break

    if best is None:
        # Unreachable for a convex shape around its center
        return Point(node.x, node.y)
    return Point(*best)


SHAPES: dict[str, ShapeSpec] = {
    NodeType.START.value: ShapeSpec(
        name="ellipse",
        color="#2ecc71",
        default_width=100,
        default_height=50,
        draw=_draw_ellipse,
        contains_point=_ellipse_contains,
        connection_point=_ellipse_connection_point,
    ),
    NodeType.END.value: ShapeSpec(
        name="ellipse",
        color="#e74c3c",
        default_width=100,
        default_height=50,
        draw=_draw_ellipse,
        contains_point=_ellipse_contains,
        connection_point=_ellipse_connection_point,
    ),
    NodeType.PROCESS.value: ShapeSpec(
        name="rectangle",
        color="#3498db",
        default_width=120,
        default_height=60,
        draw=_draw_rectangle,
        contains_point=_rectangle_contains,
        connection_point=_rectangle_connection_point,
    ),
    NodeType.DECISION.value: ShapeSpec(
        name="rhombus",
        color="#f39c12",
        default_width=120,
        default_height=80,
        draw=_draw_rhombus,
        contains_point=_rhombus_contains,
        connection_point=_rhombus_connection_point,
    ),
    NodeType.INPUT.value: ShapeSpec(
        name="parallelogram",
        color="#9b59b6",
        default_width=120,
        default_height=60,
        draw=_draw_parallelogram,
        contains_point=_parallelogram_contains,
        connection_point=_parallelogram_connection_point,
    ),
}


def type_key(node_type) -> str:
    """Normalize a NodeType member or raw string to its registry key."""
    if isinstance(node_type, NodeType):
        return node_type.value
    return str(node_type)


def get_shape(node_type: str) -> Optional[ShapeSpec]:
    """Look up the shape for a node type (None for unknown types)."""
    shape = SHAPES.get(type_key(node_type))
    if shape is None:
        logger.debug("No shape registered for node type %r", node_type)
    return shape


def default_size(node_type: str) -> Optional[tuple[float, float]]:
    shape = get_shape(node_type)
    if shape is None:
        return None
    return (shape.default_width, shape.default_height)


def contains_point(node: Node, x: float, y: float) -> bool:
    """Whether canvas point (x, y) lies inside the node's shape."""
    shape = get_shape(node.node_type)
    if shape is None:
        return False
    return shape.contains_point(node, x, y)


def connection_point(node: Node, toward: HasPosition) -> Optional[Point]:
    """Point on the node's outline in the direction of `toward`."""
    shape = get_shape(node.node_type)
    if shape is None:
        return None
    return shape.connection_point(node, toward)


def draw_node(ctx: DrawContext, node: Node) -> bool:
    """Paint the node outline. Returns False when the type is unknown."""
    shape = get_shape(node.node_type)
    if shape is None:
        return False
    shape.draw(ctx, node.x, node.y, node.width, node.height)
    return True


def edge_endpoints(source: Node, target: Node) -> Optional[tuple[Point, Point]]:
    """Connection points anchoring an edge between two nodes."""
    start = connection_point(source, target)
    end = connection_point(target, source)
    if start is None or end is None:
        return None
    return start, end


def distance_to_segment(px: float, py: float, x1: float, y1: float, x2: float, y2: float) -> float:
    """Distance from (px, py) to the segment (x1, y1)-(x2, y2)."""
    cx = x2 - x1
    cy = y2 - y1
    len_sq = cx * cx + cy * cy

    if len_sq == 0:
        t = 0.0
    else:
        t = ((px - x1) * cx + (py - y1) * cy) / len_sq
        t = min(1.0, max(0.0, t))

    nearest_x = x1 + t * cx
    nearest_y = y1 + t * cy
    return math.hypot(px - nearest_x, py - nearest_y)
