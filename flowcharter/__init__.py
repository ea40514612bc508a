"""Flowcharter - flowchart editor core and backend."""

__version__ = "1.0.0"
