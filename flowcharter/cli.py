#!/usr/bin/env python3
"""Flowcharter CLI - serve the editor and manage saved flowcharts."""

import argparse
import json
import logging
import sys
from pathlib import Path

from .backend import config
from .backend.graph_store import GraphStore
from .backend.persistence import JsonFileKeyValueStore, PersistenceGateway
from .backend.renderer import export_png
from .core.errors import FlowchartError
from .core.models import FlowchartSnapshot
from .core.validation import validate_flowchart, validation_summary

logger = logging.getLogger(__name__)


def _json_out(data, code=0):
    print(json.dumps(data))
    sys.exit(code)


def _error_out(error):
    _json_out({"status": "error", "error": str(error) or type(error).__name__}, code=1)


def _gateway(args) -> PersistenceGateway:
    return PersistenceGateway(JsonFileKeyValueStore(args.storage_file))


def _load_store(gateway: PersistenceGateway, name: str) -> GraphStore:
    store = GraphStore()
    store.load_snapshot(gateway.load(name))
    return store


# ── Service ──────────────────────────────────────────────────────────────────

def cmd_serve(args):
    import uvicorn

    logger.info("Serving flowcharter on http://%s:%d", args.host, args.port)
    uvicorn.run(
        "flowcharter.backend.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )


# ── Saved flowcharts ─────────────────────────────────────────────────────────

def cmd_list(args):
    gateway = _gateway(args)
    _json_out({"success": True, "flowcharts": gateway.list()})


def cmd_validate(args):
    store = _load_store(_gateway(args), args.name)
    diagnostics = validate_flowchart(store.nodes, store.edges)
    _json_out({
        "success": True,
        "name": args.name,
        "diagnostics": [d.to_dict() for d in diagnostics],
        "summary": validation_summary(diagnostics),
    })


def cmd_export(args):
    store = _load_store(_gateway(args), args.name)
    output = Path(args.output) if args.output else Path(f"{args.name}.png")
    output.write_bytes(export_png(store, padding=args.padding))
    _json_out({"success": True, "name": args.name, "output": str(output)})


def cmd_delete(args):
    _gateway(args).delete(args.name)
    _json_out({"success": True, "name": args.name})


def cmd_import(args):
    path = Path(args.file)
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    snapshot = FlowchartSnapshot.from_json_dict(data)
    name = args.name or path.stem
    _gateway(args).save(name, snapshot)
    _json_out({
        "success": True,
        "name": name,
        "nodes": len(snapshot.nodes),
        "edges": len(snapshot.edges),
    })


def cmd_usage(args):
    gateway = _gateway(args)
    _json_out({"success": True, **gateway.usage()})


# ── Main ─────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Flowcharter CLI")
    parser.add_argument("--storage-file", default=str(config.STORAGE_FILE),
                        help="JSON file holding saved flowcharts")
    parser.add_argument("--log-level", default=config.LOG_LEVEL)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve")
    p.add_argument("--host", default=config.HOST)
    p.add_argument("--port", type=int, default=config.PORT)

    sub.add_parser("list")

    p = sub.add_parser("validate")
    p.add_argument("name")

    p = sub.add_parser("export")
    p.add_argument("name")
    p.add_argument("--output", default=None)
    p.add_argument("--padding", type=float, default=config.EXPORT_PADDING)

    p = sub.add_parser("delete")
    p.add_argument("name")

    p = sub.add_parser("import")
    p.add_argument("file")
    p.add_argument("--name", default=None)

    sub.add_parser("usage")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    config.configure_logging(args.log_level)

    cmd_map = {
        "serve": cmd_serve,
        "list": cmd_list,
        "validate": cmd_validate,
        "export": cmd_export,
        "delete": cmd_delete,
        "import": cmd_import,
        "usage": cmd_usage,
    }
    try:
        cmd_map[args.command](args)
    except (FlowchartError, ValueError, OSError) as e:
        _error_out(e)


if __name__ == "__main__":
    main()
