"""
Flowcharter Backend - FastAPI Application

HTTP shell around one editing session. It provides:
- REST API for pointer/wheel/touch input, palette drops, property edits
  and view operations
- Saved flowchart management (list, save, load, delete)
- Validation results and PNG rendering (live frame and export)
- WebSocket endpoint broadcasting flowchart_updated events

Run with: uvicorn --factory flowcharter.backend.main:create_app
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from .. import __version__
from ..core.errors import (
    FlowchartNotFoundError,
    MalformedSnapshotError,
    PersistenceError,
    StorageQuotaExceededError,
    StorageWriteError,
)
from ..core.models import ItemRef, NodeType
from . import config
from .editor import Editor
from .interaction import Mode
from .websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


# --- Request Models ---

class ModeRequest(BaseModel):
    mode: Mode


class PointerEventRequest(BaseModel):
    type: Literal["down", "move", "up"]
    x: Optional[float] = None
    y: Optional[float] = None


class WheelEventRequest(BaseModel):
    x: float
    y: float
    delta_y: float


class TouchEventRequest(BaseModel):
    type: Literal["start", "move", "end"]
    touches: list[tuple[float, float]] = []


class DropRequest(BaseModel):
    node_type: str
    x: float
    y: float


class NodeTextRequest(BaseModel):
    text: str


class EdgeLabelRequest(BaseModel):
    label: str


class SelectRequest(BaseModel):
    type: Optional[Literal["node", "edge"]] = None
    id: Optional[str] = None


def persistence_http_error(error: Exception) -> HTTPException:
    """Map storage failures to distinct HTTP statuses."""
    if isinstance(error, StorageQuotaExceededError):
        return HTTPException(status_code=507, detail=error.user_message)
    if isinstance(error, FlowchartNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, MalformedSnapshotError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, StorageWriteError):
        return HTTPException(status_code=500, detail=error.user_message)
    if isinstance(error, PersistenceError):
        return HTTPException(status_code=500, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


def create_app(editor: Optional[Editor] = None) -> FastAPI:
    """Build the API around an editing session (a fresh one by default)."""
    editor = editor if editor is not None else Editor()
    ws_manager = WebSocketManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Bridge between sync store callbacks and async WebSocket broadcasts
        change_event = asyncio.Event()

        def on_flowchart_change():
            change_event.set()

        async def change_broadcaster():
            while True:
                await change_event.wait()
                change_event.clear()
                await ws_manager.broadcast(editor.current_name, editor.validation.messages)

        editor.store.on_change(on_flowchart_change)
        broadcaster_task = asyncio.create_task(change_broadcaster())

        yield

        editor.store.remove_listener(on_flowchart_change)
        broadcaster_task.cancel()
        try:
            await broadcaster_task
        except asyncio.CancelledError:
            pass

    app = FastAPI(
        title="Flowcharter API",
        description="Backend API for the flowchart editor",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.editor = editor
    app.state.ws_manager = ws_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    controller = editor.controller
    store = editor.store

    # --- Health Check ---

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "ok",
            "connections": ws_manager.connection_count,
            "storage_available": editor.persistence.is_available(),
        }

    # --- Session State ---

    @app.get("/api/state")
    async def get_state():
        """Get the flowchart, interaction state and diagnostics."""
        return editor.state()

    @app.get("/api/enums/node-types")
    async def get_node_types():
        return {"types": [t.value for t in NodeType]}

    @app.put("/api/mode")
    async def set_mode(request: ModeRequest):
        controller.set_mode(request.mode)
        return {"success": True, "interaction": controller.get_state()}

    @app.put("/api/selection")
    async def set_selection(request: SelectRequest):
        """Select a node or edge by id, or clear the selection."""
        if request.type is None or request.id is None:
            controller.select(None)
        else:
            ref = ItemRef.node(request.id) if request.type == "node" else ItemRef.edge(request.id)
            if store.resolve(ref) is None:
                raise HTTPException(status_code=404, detail=f"{request.type.capitalize()} not found")
            controller.select(ref)
        return {"success": True, "interaction": controller.get_state()}

    # --- Input Events ---

    @app.post("/api/events/pointer")
    async def pointer_event(request: PointerEventRequest):
        if request.type != "up" and (request.x is None or request.y is None):
            raise HTTPException(status_code=400, detail="Pointer down/move events need x and y")
        if request.type == "down":
            controller.pointer_down(request.x, request.y)
        elif request.type == "move":
            controller.pointer_move(request.x, request.y)
        else:
            controller.pointer_up(request.x, request.y)
        return {"success": True, "interaction": controller.get_state()}

    @app.post("/api/events/wheel")
    async def wheel_event(request: WheelEventRequest):
        controller.wheel(request.x, request.y, request.delta_y)
        return {"success": True, "interaction": controller.get_state()}

    @app.post("/api/events/touch")
    async def touch_event(request: TouchEventRequest):
        if request.type == "start":
            controller.touch_start(request.touches)
        elif request.type == "move":
            controller.touch_move(request.touches)
        else:
            controller.touch_end(request.touches)
        return {"success": True, "interaction": controller.get_state()}

    @app.post("/api/drop")
    async def drop_node(request: DropRequest):
        """Create a node from the palette at a device-space position."""
        node = controller.drop(request.node_type, request.x, request.y)
        if node is None:
            raise HTTPException(status_code=400, detail=f"Unknown node type: {request.node_type}")
        return {"success": True, "node": node.model_dump(by_alias=True)}

    # --- Properties ---

    @app.patch("/api/nodes/{node_id}")
    async def update_node_text(node_id: str, request: NodeTextRequest):
        node = store.update_node_text(node_id, request.text)
        if node is None:
            raise HTTPException(status_code=404, detail="Node not found")
        return {"success": True, "node": node.model_dump(by_alias=True)}

    @app.delete("/api/nodes/{node_id}")
    async def delete_node(node_id: str):
        """Delete a node and its connected edges."""
        if not store.delete_item(ItemRef.node(node_id)):
            raise HTTPException(status_code=404, detail="Node not found")
        return {"success": True}

    @app.patch("/api/edges/{edge_id}")
    async def update_edge_label(edge_id: str, request: EdgeLabelRequest):
        edge = store.update_edge_label(edge_id, request.label)
        if edge is None:
            raise HTTPException(status_code=404, detail="Edge not found")
        return {"success": True, "edge": edge.model_dump(by_alias=True)}

    @app.delete("/api/edges/{edge_id}")
    async def delete_edge(edge_id: str):
        if not store.delete_item(ItemRef.edge(edge_id)):
            raise HTTPException(status_code=404, detail="Edge not found")
        return {"success": True}

    # --- View ---

    @app.post("/api/view/zoom-in")
    async def zoom_in():
        controller.zoom_in()
        return {"success": True, "camera": controller.camera.model_dump()}

    @app.post("/api/view/zoom-out")
    async def zoom_out():
        controller.zoom_out()
        return {"success": True, "camera": controller.camera.model_dump()}

    @app.post("/api/view/reset")
    async def reset_view():
        controller.reset_view()
        return {"success": True, "camera": controller.camera.model_dump()}

    # --- Saved Flowcharts ---

    @app.post("/api/flowchart/new")
    async def new_flowchart():
        editor.new()
        return {"success": True, "flowchart": store.get_state()}

    @app.get("/api/flowcharts")
    async def list_flowcharts():
        return {
            "success": True,
            "flowcharts": editor.list_saved(),
            "usage": editor.persistence.usage(),
        }

    @app.post("/api/flowcharts/{name}")
    async def save_flowchart(name: str):
        try:
            editor.save(name)
        except (PersistenceError, ValueError) as e:
            raise persistence_http_error(e)
        return {"success": True, "name": name}

    @app.post("/api/flowcharts/{name}/load")
    async def load_flowchart(name: str):
        try:
            editor.load(name)
        except (PersistenceError, ValueError) as e:
            raise persistence_http_error(e)
        return {"success": True, "name": name, "flowchart": store.get_state()}

    @app.delete("/api/flowcharts/{name}")
    async def delete_flowchart(name: str):
        try:
            editor.delete_saved(name)
        except (PersistenceError, ValueError) as e:
            raise persistence_http_error(e)
        return {"success": True}

    # --- Validation ---

    @app.get("/api/validate")
    async def validate_current_flowchart():
        """Validate the current flowchart. Results are advisory only."""
        diagnostics = editor.validation.diagnostics
        return {
            "success": True,
            "diagnostics": [d.to_dict() for d in diagnostics],
            "summary": editor.validation.summary(),
        }

    # --- Rendering ---

    @app.get("/api/frame.png")
    async def render_frame(
        width: int = Query(default=800, gt=0, le=8192),
        height: int = Query(default=600, gt=0, le=8192),
    ):
        return Response(content=editor.renderer.render_frame_png(width, height), media_type="image/png")

    @app.get("/api/export.png")
    async def export_flowchart():
        filename = f"{editor.current_name or 'flowchart'}.png"
        return Response(
            content=editor.export_png(),
            media_type="image/png",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    # --- WebSocket ---

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Clients connect here to receive flowchart_updated events."""
        await ws_manager.connect(websocket)
        try:
            while True:
                await ws_manager.handle_message(websocket, await websocket.receive_text())
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)

    return app
