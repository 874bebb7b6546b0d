"""
DocTree MCP - a hierarchical document store served over the Model Context Protocol.
This package keeps a tree of notes in SQLite: parent/child relationships,
dense sibling ordering, drag-and-drop moves that can never create cycles,
and cascading trash, restore and permanent delete.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("doctree-mcp")
except PackageNotFoundError:
    __version__ = "0.3.0"
