"""Storage layer for the DocTree MCP server."""

from doctree_mcp.storage.base import Repository
from doctree_mcp.storage.document_repository import DocumentRepository

__all__ = [
    "Repository",
    "DocumentRepository",
]
