"""
Interaction Controller - Turns pointer input into graph operations.

The controller owns the camera and all transient interaction state. Its
state is a single tagged value per mode:

- SelectState(gesture): gesture is None (idle) or one of DraggingNode,
  ResizingNode, Panning
- ConnectState(pending_source): pending_source is the node id a new edge
  will start from, or None
- DeleteState()

Gestures only exist inside SelectState, so combinations such as resizing
while in connect mode cannot be represented. Every event is handled
completely by dispatch() before the next one; handlers leave the store and
the controller consistent when they return.

Event coordinates are device space (pixels relative to the canvas origin);
graph geometry is canvas space. The camera converts between the two.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Sequence, Union

from ..core.models import Camera, Corner, ItemKind, ItemRef, Node, Point
from ..core.shapes import connection_point, contains_point, distance_to_segment, edge_endpoints
from . import config
from .graph_store import GraphStore

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    """User-selected tool. Persists across gestures."""
    SELECT = "select"
    CONNECT = "connect"
    DELETE = "delete"


class InteractionKind(str, Enum):
    """What the current gesture is doing."""
    IDLE = "idle"
    DRAGGING_NODE = "dragging-node"
    RESIZING_NODE = "resizing-node"
    PANNING = "panning"
    PENDING_CONNECTION = "pending-connection"


class HitKind(str, Enum):
    RESIZE_HANDLE = "resize-handle"
    NODE = "node"
    EDGE = "edge"


@dataclass(frozen=True)
class Hit:
    """Entity under a canvas point."""
    kind: HitKind
    id: str
    corner: Optional[Corner] = None

    def ref(self) -> ItemRef:
        if self.kind == HitKind.EDGE:
            return ItemRef.edge(self.id)
        return ItemRef.node(self.id)


# --- Gestures (select mode only) ---

@dataclass(frozen=True)
class DraggingNode:
    node_id: str
    last: Point  # canvas space


@dataclass(frozen=True)
class ResizingNode:
    node_id: str
    corner: Corner
    last: Point  # canvas space


@dataclass(frozen=True)
class Panning:
    last_x: float  # device space
    last_y: float


Gesture = Union[DraggingNode, ResizingNode, Panning]


# --- Mode states ---

@dataclass(frozen=True)
class SelectState:
    gesture: Optional[Gesture] = None


@dataclass(frozen=True)
class ConnectState:
    pending_source: Optional[str] = None


@dataclass(frozen=True)
class DeleteState:
    pass


ModeState = Union[SelectState, ConnectState, DeleteState]

_INITIAL_STATES = {
    Mode.SELECT: SelectState,
    Mode.CONNECT: ConnectState,
    Mode.DELETE: DeleteState,
}


# --- Input events (device space) ---

@dataclass(frozen=True)
class PointerDown:
    x: float
    y: float


@dataclass(frozen=True)
class PointerMove:
    x: float
    y: float


@dataclass(frozen=True)
class PointerUp:
    x: Optional[float] = None
    y: Optional[float] = None


@dataclass(frozen=True)
class Wheel:
    x: float
    y: float
    delta_y: float


@dataclass(frozen=True)
class TouchStart:
    touches: Sequence[Point]


@dataclass(frozen=True)
class TouchMove:
    touches: Sequence[Point]


@dataclass(frozen=True)
class TouchEnd:
    touches: Sequence[Point] = ()


InputEvent = Union[PointerDown, PointerMove, PointerUp, Wheel, TouchStart, TouchMove, TouchEnd]


@dataclass(frozen=True)
class PreviewEdge:
    """Dashed line shown while a connection is pending. Never stored."""
    start: Point
    end: Point
    snapped: bool  # True when the end sits on a hovered node's outline


class InteractionController:
    """
    Pointer/touch/wheel state machine over a GraphStore.

    Holds only ids of graph entities (selection, pending source, gesture
    targets); entities are always resolved through the store.
    """

    def __init__(self, store: GraphStore, camera: Optional[Camera] = None):
        self.store = store
        self.camera = camera or Camera()
        self._state: ModeState = SelectState()
        self._selection: Optional[ItemRef] = None
        self.hovered: Optional[Hit] = None
        self.pointer: Optional[Point] = None  # last pointer position, canvas space
        self.preview: Optional[PreviewEdge] = None
        self.cursor = "default"
        self._on_selection_callbacks: list[Callable[[Optional[ItemRef]], None]] = []

        store.on_change(self._on_store_change)

    # --- State ---

    @property
    def state(self) -> ModeState:
        return self._state

    @property
    def mode(self) -> Mode:
        if isinstance(self._state, ConnectState):
            return Mode.CONNECT
        if isinstance(self._state, DeleteState):
            return Mode.DELETE
        return Mode.SELECT

    @property
    def interaction(self) -> InteractionKind:
        state = self._state
        if isinstance(state, SelectState):
            if isinstance(state.gesture, DraggingNode):
                return InteractionKind.DRAGGING_NODE
            if isinstance(state.gesture, ResizingNode):
                return InteractionKind.RESIZING_NODE
            if isinstance(state.gesture, Panning):
                return InteractionKind.PANNING
        elif isinstance(state, ConnectState) and state.pending_source is not None:
            return InteractionKind.PENDING_CONNECTION
        return InteractionKind.IDLE

    @property
    def pending_source(self) -> Optional[str]:
        if isinstance(self._state, ConnectState):
            return self._state.pending_source
        return None

    def set_mode(self, mode: Mode | str):
        """Switch tools. Always clears selection and any pending connection."""
        mode = Mode(mode)
        self._state = _INITIAL_STATES[mode]()
        self.preview = None
        self.cursor = "default"
        self.select(None)
        logger.debug("Mode set to %s", mode.value)

    def reset(self):
        """Back to a fresh view of the current mode (used on load/clear)."""
        self._state = _INITIAL_STATES[self.mode]()
        self.camera.reset()
        self.hovered = None
        self.pointer = None
        self.preview = None
        self.cursor = "default"
        self.select(None)

    # --- Selection ---

    @property
    def selection(self) -> Optional[ItemRef]:
        return self._selection

    def on_selection_change(self, callback: Callable[[Optional[ItemRef]], None]):
        """Register a callback for selection changes."""
        self._on_selection_callbacks.append(callback)

    def select(self, ref: Optional[ItemRef]):
        """Select one node or edge, or nothing."""
        if ref is not None and self.store.resolve(ref) is None:
            ref = None
        if ref == self._selection:
            return
        self._selection = ref
        for callback in list(self._on_selection_callbacks):
            callback(ref)

    def selected_node(self) -> Optional[Node]:
        if self._selection is None or self._selection.kind != ItemKind.NODE:
            return None
        return self.store.get_node(self._selection.id)

    def delete_selection(self) -> bool:
        """Delete whatever is selected (keyboard Delete)."""
        return self.store.delete_item(self._selection)

    def _on_store_change(self):
        # Drop references to entities that no longer exist
        if self._selection is not None and self.store.resolve(self._selection) is None:
            self.select(None)
        if self.hovered is not None and self.store.resolve(self.hovered.ref()) is None:
            self.hovered = None

        state = self._state
        if isinstance(state, ConnectState) and state.pending_source is not None:
            if self.store.get_node(state.pending_source) is None:
                self._state = ConnectState()
                self.preview = None
        elif isinstance(state, SelectState) and isinstance(state.gesture, (DraggingNode, ResizingNode)):
            if self.store.get_node(state.gesture.node_id) is None:
                self._state = SelectState()

    # --- Hit Testing ---

    def resize_handle_at(self, node: Optional[Node], x: float, y: float) -> Optional[Corner]:
        """Corner whose handle square contains canvas point (x, y)."""
        if node is None:
            return None
        half = config.HANDLE_SIZE / 2 / self.camera.scale
        for corner in Corner:
            cx, cy = node.corner(corner)
            if abs(x - cx) <= half and abs(y - cy) <= half:
                return corner
        return None

    def hit_test(self, x: float, y: float) -> Optional[Hit]:
        """
        Find what is under canvas point (x, y).

        Priority: resize handles of the selected node (select mode only),
        then nodes topmost first, then edges.
        """
        if isinstance(self._state, SelectState):
            node = self.selected_node()
            corner = self.resize_handle_at(node, x, y)
            if corner is not None:
                return Hit(HitKind.RESIZE_HANDLE, node.id, corner)

        for node in reversed(self.store.nodes):
            if contains_point(node, x, y):
                return Hit(HitKind.NODE, node.id)

        tolerance = config.EDGE_HIT_TOLERANCE / self.camera.scale
        for edge in reversed(self.store.edges):
            source = self.store.get_node(edge.source_id)
            target = self.store.get_node(edge.target_id)
            if source is None or target is None:
                continue
            endpoints = edge_endpoints(source, target)
            if endpoints is None:
                continue
            (x1, y1), (x2, y2) = endpoints
            if distance_to_segment(x, y, x1, y1, x2, y2) <= tolerance:
                return Hit(HitKind.EDGE, edge.id)

        return None

    # --- Event Dispatch ---

    def dispatch(self, event: InputEvent):
        """Handle one input event to completion."""
        if isinstance(event, PointerDown):
            self._pointer_down(event.x, event.y)
        elif isinstance(event, PointerMove):
            self._pointer_move(event.x, event.y)
        elif isinstance(event, PointerUp):
            self._pointer_up(event.x, event.y)
        elif isinstance(event, Wheel):
            self._wheel(event.x, event.y, event.delta_y)
        elif isinstance(event, TouchStart):
            # Multi-touch (pinch) is not supported
            if len(event.touches) == 1:
                self._pointer_down(*event.touches[0])
        elif isinstance(event, TouchMove):
            if len(event.touches) == 1:
                self._pointer_move(*event.touches[0])
        elif isinstance(event, TouchEnd):
            if event.touches:
                self._pointer_up(*event.touches[0])
            else:
                self._pointer_up(None, None)
        else:
            raise TypeError(f"Unsupported input event: {event!r}")

    def pointer_down(self, x: float, y: float):
        self.dispatch(PointerDown(x, y))

    def pointer_move(self, x: float, y: float):
        self.dispatch(PointerMove(x, y))

    def pointer_up(self, x: Optional[float] = None, y: Optional[float] = None):
        self.dispatch(PointerUp(x, y))

    def wheel(self, x: float, y: float, delta_y: float):
        self.dispatch(Wheel(x, y, delta_y))

    def touch_start(self, touches: Sequence[Point]):
        self.dispatch(TouchStart(tuple(Point(*t) for t in touches)))

    def touch_move(self, touches: Sequence[Point]):
        self.dispatch(TouchMove(tuple(Point(*t) for t in touches)))

    def touch_end(self, touches: Sequence[Point] = ()):
        self.dispatch(TouchEnd(tuple(Point(*t) for t in touches)))

    # --- Handlers ---

    def _pointer_down(self, x: float, y: float):
        point = self.camera.to_canvas(x, y)
        self.pointer = point
        hit = self.hit_test(*point)
        state = self._state

        if isinstance(state, SelectState):
            if hit is None:
                self.select(None)
                self._state = SelectState(Panning(x, y))
                self.cursor = "grabbing"
            elif hit.kind == HitKind.RESIZE_HANDLE:
                self.select(hit.ref())
                self._state = SelectState(ResizingNode(hit.id, hit.corner, point))
            elif hit.kind == HitKind.NODE:
                self.select(hit.ref())
                self._state = SelectState(DraggingNode(hit.id, point))
            else:
                # Edges can be selected but not dragged
                self.select(hit.ref())

        elif isinstance(state, ConnectState):
            if hit is None or hit.kind != HitKind.NODE:
                return
            if state.pending_source is None:
                self._state = ConnectState(hit.id)
                self.cursor = "crosshair"
            elif hit.id != state.pending_source:
                self._complete_connection(state.pending_source, hit.id)

        elif isinstance(state, DeleteState):
            if hit is not None:
                self.store.delete_item(hit.ref())

    def _pointer_move(self, x: float, y: float):
        point = self.camera.to_canvas(x, y)
        self.pointer = point
        state = self._state
        gesture = state.gesture if isinstance(state, SelectState) else None

        if isinstance(gesture, DraggingNode):
            dx = point.x - gesture.last.x
            dy = point.y - gesture.last.y
            self._state = SelectState(replace(gesture, last=point))
            self.store.move_node(gesture.node_id, dx, dy)
        elif isinstance(gesture, ResizingNode):
            dx = point.x - gesture.last.x
            dy = point.y - gesture.last.y
            self._state = SelectState(replace(gesture, last=point))
            self.store.resize_node(gesture.node_id, gesture.corner, dx, dy)
        elif isinstance(gesture, Panning):
            self.camera.pan_by_device(x - gesture.last_x, y - gesture.last_y)
            self._state = SelectState(Panning(x, y))
        else:
            self.hovered = self.hit_test(*point)
            self._update_cursor()
            self._update_preview()

    def _pointer_up(self, x: Optional[float], y: Optional[float]):
        state = self._state

        if isinstance(state, ConnectState) and state.pending_source is not None:
            point = self.camera.to_canvas(x, y) if x is not None and y is not None else self.pointer
            hit = self.hit_test(*point) if point is not None else None
            if hit is not None and hit.kind == HitKind.NODE and hit.id != state.pending_source:
                self._complete_connection(state.pending_source, hit.id)
        elif isinstance(state, SelectState):
            self._state = SelectState()

        self.cursor = "default"

    def _wheel(self, x: float, y: float, delta_y: float):
        if delta_y == 0:
            return
        point = self.camera.to_canvas(x, y)
        factor = config.ZOOM_IN_STEP if delta_y < 0 else config.ZOOM_OUT_STEP
        self.camera.zoom_at(point.x, point.y, factor)

    def _complete_connection(self, source_id: str, target_id: str):
        edge = self.store.add_edge(source_id, target_id)
        if edge is None:
            logger.debug("Connection %s -> %s not created", source_id, target_id)
        self._state = ConnectState()
        self.preview = None
        self.cursor = "default"

    # --- Hover Feedback ---

    def _update_cursor(self):
        hovered = self.hovered
        if isinstance(self._state, ConnectState) and self._state.pending_source is not None:
            self.cursor = "crosshair" if hovered and hovered.kind == HitKind.NODE else "not-allowed"
        elif isinstance(self._state, DeleteState):
            self.cursor = "no-drop" if hovered else "default"
        elif hovered and hovered.kind == HitKind.RESIZE_HANDLE:
            self.cursor = "nwse-resize" if hovered.corner in (Corner.NW, Corner.SE) else "nesw-resize"
        else:
            self.cursor = "pointer" if hovered else "grab"

    def _update_preview(self):
        source_id = self.pending_source
        source = self.store.get_node(source_id) if source_id else None
        if source is None or self.pointer is None:
            self.preview = None
            return

        hovered = self.hovered
        target = None
        if hovered is not None and hovered.kind == HitKind.NODE and hovered.id != source_id:
            target = self.store.get_node(hovered.id)

        end = connection_point(target, source) if target is not None else None
        snapped = end is not None
        if end is None:
            end = self.pointer
        start = connection_point(source, end)
        if start is None:
            self.preview = None
            return
        self.preview = PreviewEdge(start=start, end=end, snapped=snapped)

    # --- Canvas Operations ---

    def drop(self, node_type: str, x: float, y: float) -> Optional[Node]:
        """Create a node from a palette drop at device point (x, y)."""
        point = self.camera.to_canvas(x, y)
        return self.store.add_node(node_type, point.x, point.y)

    def zoom_in(self):
        self.camera.zoom_in(config.ZOOM_IN_STEP)

    def zoom_out(self):
        self.camera.zoom_out(config.ZOOM_OUT_STEP)

    def reset_view(self):
        self.camera.reset()

    def get_state(self) -> dict:
        """Interaction state for API responses."""
        return {
            "mode": self.mode.value,
            "interaction": self.interaction.value,
            "selection": self._selection.to_dict() if self._selection else None,
            "pending_source": self.pending_source,
            "cursor": self.cursor,
            "camera": self.camera.model_dump(),
            "preview": {
                "start": list(self.preview.start),
                "end": list(self.preview.end),
                "snapped": self.preview.snapped,
            } if self.preview else None,
        }
