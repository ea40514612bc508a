"""
Runtime configuration.

Values come from environment variables with sensible defaults, read once at
import time. Interaction constants live here too so the controller, the
renderer and the tests agree on them.
"""
import logging
import os
from pathlib import Path

# --- Storage ---

STORAGE_FILE = Path(os.environ.get(
    "FLOWCHARTER_STORAGE_FILE",
    str(Path.home() / ".flowcharter" / "storage.json")
))
STORAGE_QUOTA_BYTES = int(os.environ.get("FLOWCHARTER_STORAGE_QUOTA", 5 * 1024 * 1024))
STORAGE_PREFIX = "flowcharter_flowchart_"

# --- Server ---

HOST = os.environ.get("FLOWCHARTER_HOST", "127.0.0.1")
PORT = int(os.environ.get("FLOWCHARTER_PORT", 8765))
CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://127.0.0.1:5173"]

# --- Logging ---

LOG_LEVEL = os.environ.get("FLOWCHARTER_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# --- Interaction ---

HANDLE_SIZE = 8.0        # Resize handle square, device pixels
EDGE_HIT_TOLERANCE = 5.0  # Max pointer distance to an edge, device pixels
ZOOM_IN_STEP = 1.1
ZOOM_OUT_STEP = 0.9
MIN_NODE_WIDTH = 50.0
MIN_NODE_HEIGHT = 30.0

# --- Rendering ---

GRID_SIZE = 20
EXPORT_PADDING = 50


def configure_logging(level: str | None = None):
    """Configure root logging once for CLI and server entry points."""
    logging.basicConfig(level=(level or LOG_LEVEL), format=LOG_FORMAT)
