"""
Renderer - Paints the flowchart with Pillow.

Two entry points:
- Renderer.render_frame(): the live view through the controller's camera,
  with grid, selection highlight, resize handles and the pending
  connection preview
- export_png(): a chrome-free image cropped to the nodes plus padding

Rendering only reads the store and controller. Entities with unknown node
types are skipped.
"""

import io
import logging
import math
from functools import lru_cache
from typing import Callable, Optional, Sequence

from PIL import Image, ImageDraw, ImageFont

from ..core.models import Camera, Corner, Edge, ItemKind, Node
from ..core.shapes import draw_node, edge_endpoints, get_shape
from . import config
from .graph_store import GraphStore

logger = logging.getLogger(__name__)

BACKGROUND = "#ffffff"
GRID_COLOR = (200, 200, 200, 51)
NODE_STROKE = "#333333"
SELECTED_STROKE = "#ff0000"
EDGE_STROKE = "#666666"
NODE_TEXT_COLOR = "#ffffff"
LABEL_TEXT_COLOR = "#333333"
LABEL_BACKGROUND = (255, 255, 255, 204)
PREVIEW_SNAPPED = "#999999"
PREVIEW_FREE = "#ff0000"
PREVIEW_DASH = (5, 3)

NODE_FONT_SIZE = 12
LABEL_FONT_SIZE = 11
LINE_HEIGHT = 14
TEXT_INSET = 10
ARROW_LENGTH = 10
ARROW_INSET = 5


@lru_cache(maxsize=32)
def _font(size: int) -> ImageFont.FreeTypeFont:
    return ImageFont.load_default(size=max(1, size))


class PillowContext:
    """
    Draw context over a Pillow image.

    All coordinates are canvas space; the camera maps them to pixels. Style
    is set through the fill / stroke / line_width / font_size attributes
    before calling a primitive.
    """

    def __init__(self, image: Image.Image, camera: Optional[Camera] = None):
        self.image = image
        self.draw = ImageDraw.Draw(image, "RGBA")
        self.camera = camera or Camera()
        self.fill = None
        self.stroke = NODE_STROKE
        self.line_width = 1.0
        self.font_size = NODE_FONT_SIZE

    def _device(self, x: float, y: float) -> tuple[float, float]:
        return tuple(self.camera.to_device(x, y))

    def _stroke_width(self) -> int:
        return max(1, round(self.line_width * self.camera.scale))

    def _current_font(self) -> ImageFont.FreeTypeFont:
        return _font(round(self.font_size * self.camera.scale))

    def ellipse(self, cx: float, cy: float, rx: float, ry: float):
        left, top = self._device(cx - rx, cy - ry)
        right, bottom = self._device(cx + rx, cy + ry)
        self.draw.ellipse([left, top, right, bottom], fill=self.fill,
                          outline=self.stroke, width=self._stroke_width())

    def polygon(self, points: Sequence[tuple[float, float]]):
        self.draw.polygon([self._device(x, y) for x, y in points], fill=self.fill,
                          outline=self.stroke, width=self._stroke_width())

    def line(self, x1: float, y1: float, x2: float, y2: float, dash: Optional[Sequence[float]] = None):
        start = self._device(x1, y1)
        end = self._device(x2, y2)
        width = self._stroke_width()
        if not dash:
            self.draw.line([start, end], fill=self.stroke, width=width)
            return

        # Dash lengths are device pixels, like a canvas line dash
        length = math.hypot(end[0] - start[0], end[1] - start[1])
        if length == 0:
            return
        ux = (end[0] - start[0]) / length
        uy = (end[1] - start[1]) / length
        pos = 0.0
        i = 0
        while pos < length:
            seg = dash[i % len(dash)]
            if i % 2 == 0:
                stop = min(length, pos + seg)
                self.draw.line(
                    [(start[0] + ux * pos, start[1] + uy * pos),
                     (start[0] + ux * stop, start[1] + uy * stop)],
                    fill=self.stroke, width=width,
                )
            pos += seg
            i += 1

    def rect(self, x: float, y: float, width: float, height: float):
        left, top = self._device(x, y)
        right, bottom = self._device(x + width, y + height)
        self.draw.rectangle([left, top, right, bottom], fill=self.fill,
                            outline=self.stroke, width=self._stroke_width() if self.stroke else 0)

    def text(self, text: str, x: float, y: float):
        """Draw text centered on canvas point (x, y)."""
        if not text:
            return
        font = self._current_font()
        left, top, right, bottom = self.draw.textbbox((0, 0), text, font=font)
        dx, dy = self._device(x, y)
        self.draw.text(
            (dx - (left + right) / 2, dy - (top + bottom) / 2),
            text,
            fill=self.fill,
            font=font,
        )

    def text_width(self, text: str) -> float:
        """Width of text in canvas units at the current font size."""
        if not text:
            return 0.0
        return self.draw.textlength(text, font=self._current_font()) / self.camera.scale


def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> list[str]:
    """
    Greedy word wrap on spaces.

    A single word wider than max_width gets its own line rather than being
    broken. Empty text yields one empty line.
    """
    if not text:
        return [""]

    words = text.split(" ")
    lines = []
    current = words[0]
    for word in words[1:]:
        candidate = f"{current} {word}"
        if measure(candidate) < max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    lines.append(current)
    return lines


# --- Shared drawing ---

def _draw_arrow(ctx: PillowContext, x1: float, y1: float, x2: float, y2: float):
    angle = math.atan2(y2 - y1, x2 - x1)
    tip_x = x2 - ARROW_INSET * math.cos(angle)
    tip_y = y2 - ARROW_INSET * math.sin(angle)
    ctx.fill = ctx.stroke
    ctx.polygon([
        (tip_x, tip_y),
        (tip_x - ARROW_LENGTH * math.cos(angle - math.pi / 6),
         tip_y - ARROW_LENGTH * math.sin(angle - math.pi / 6)),
        (tip_x - ARROW_LENGTH * math.cos(angle + math.pi / 6),
         tip_y - ARROW_LENGTH * math.sin(angle + math.pi / 6)),
    ])


def _draw_edge(ctx: PillowContext, store: GraphStore, edge: Edge, selected: bool = False):
    source = store.get_node(edge.source_id)
    target = store.get_node(edge.target_id)
    if source is None or target is None:
        return
    endpoints = edge_endpoints(source, target)
    if endpoints is None:
        return
    (x1, y1), (x2, y2) = endpoints

    ctx.stroke = SELECTED_STROKE if selected else EDGE_STROKE
    ctx.line_width = 2 if selected else 1.5
    ctx.line(x1, y1, x2, y2)
    _draw_arrow(ctx, x1, y1, x2, y2)

    if edge.label:
        mid_x = (x1 + x2) / 2
        mid_y = (y1 + y2) / 2
        ctx.font_size = LABEL_FONT_SIZE
        box_width = ctx.text_width(edge.label) + 6
        ctx.fill = LABEL_BACKGROUND
        ctx.stroke = None
        ctx.rect(mid_x - box_width / 2, mid_y - 8, box_width, 16)
        ctx.fill = LABEL_TEXT_COLOR
        ctx.text(edge.label, mid_x, mid_y)


def _draw_node(ctx: PillowContext, node: Node, selected: bool = False):
    shape = get_shape(node.node_type)
    if shape is None:
        return

    ctx.fill = shape.color
    ctx.stroke = SELECTED_STROKE if selected else NODE_STROKE
    ctx.line_width = 2 if selected else 1
    draw_node(ctx, node)

    ctx.fill = NODE_TEXT_COLOR
    ctx.font_size = NODE_FONT_SIZE
    lines = wrap_text(node.text, node.width - TEXT_INSET, ctx.text_width)
    first_y = node.y - (len(lines) - 1) * LINE_HEIGHT / 2
    for index, line in enumerate(lines):
        ctx.text(line, node.x, first_y + index * LINE_HEIGHT)


def _draw_handles(ctx: PillowContext, node: Node):
    # Sized in device pixels to match handle hit testing
    size = config.HANDLE_SIZE / ctx.camera.scale
    ctx.fill = "#ffffff"
    ctx.stroke = SELECTED_STROKE
    ctx.line_width = 1 / ctx.camera.scale
    for corner in Corner:
        cx, cy = node.corner(corner)
        ctx.rect(cx - size / 2, cy - size / 2, size, size)


class Renderer:
    """Read-only painter for the live editor view."""

    def __init__(self, store: GraphStore, controller):
        self.store = store
        self.controller = controller

    def render_frame(self, width: int, height: int) -> Image.Image:
        """Paint one frame of the current view."""
        image = Image.new("RGB", (max(1, int(width)), max(1, int(height))), BACKGROUND)
        ctx = PillowContext(image, self.controller.camera)
        selection = self.controller.selection

        self._draw_grid(ctx, width, height)

        for edge in self.store.edges:
            selected = selection is not None and selection.kind == ItemKind.EDGE and selection.id == edge.id
            _draw_edge(ctx, self.store, edge, selected)

        preview = self.controller.preview
        if preview is not None:
            ctx.stroke = PREVIEW_SNAPPED if preview.snapped else PREVIEW_FREE
            ctx.line_width = 1.5
            ctx.line(*preview.start, *preview.end, dash=PREVIEW_DASH)

        selected_node = None
        for node in self.store.nodes:
            selected = selection is not None and selection.kind == ItemKind.NODE and selection.id == node.id
            _draw_node(ctx, node, selected)
            if selected:
                selected_node = node

        # Handles go on top so overlapping nodes never hide them
        if selected_node is not None and get_shape(selected_node.node_type) is not None:
            _draw_handles(ctx, selected_node)

        return image

    def render_frame_png(self, width: int, height: int) -> bytes:
        return image_to_png(self.render_frame(width, height))

    def _draw_grid(self, ctx: PillowContext, width: int, height: int):
        camera = ctx.camera
        step = config.GRID_SIZE
        if step * camera.scale < 2:
            return

        left, top = camera.to_canvas(0, 0)
        right, bottom = camera.to_canvas(width, height)
        ctx.stroke = GRID_COLOR
        ctx.line_width = 0.5

        x = math.floor(left / step) * step
        while x <= right:
            ctx.line(x, top, x, bottom)
            x += step
        y = math.floor(top / step) * step
        while y <= bottom:
            ctx.line(left, y, right, y)
            y += step


def image_to_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def export_bounds(store: GraphStore, padding: float = config.EXPORT_PADDING) -> tuple[float, float, float, float]:
    """Canvas rectangle (left, top, right, bottom) covered by an export."""
    nodes = store.nodes
    if not nodes:
        return (-padding, -padding, padding, padding)
    boxes = [node.bounds() for node in nodes]
    return (
        min(b[0] for b in boxes) - padding,
        min(b[1] for b in boxes) - padding,
        max(b[2] for b in boxes) + padding,
        max(b[3] for b in boxes) + padding,
    )


def export_image(store: GraphStore, padding: float = config.EXPORT_PADDING) -> Image.Image:
    """Render every node and edge on white, without grid or selection chrome."""
    left, top, right, bottom = export_bounds(store, padding)
    width = max(1, math.ceil(right - left))
    height = max(1, math.ceil(bottom - top))

    image = Image.new("RGB", (width, height), BACKGROUND)
    ctx = PillowContext(image, Camera(scale=1.0, offset_x=-left, offset_y=-top))
    for edge in store.edges:
        _draw_edge(ctx, store, edge)
    for node in store.nodes:
        _draw_node(ctx, node)

    logger.debug("Exported %d nodes to a %dx%d image", len(store.nodes), width, height)
    return image


def export_png(store: GraphStore, padding: float = config.EXPORT_PADDING) -> bytes:
    """PNG bytes of export_image()."""
    return image_to_png(export_image(store, padding))
