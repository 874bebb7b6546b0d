"""MCP server implementation for the document tree."""

import json
import logging
import uuid
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from doctree_mcp.config import config
from doctree_mcp.exceptions import DocTreeError, DocumentNotFoundError
from doctree_mcp.observability import metrics, timed_operation
from doctree_mcp.services.document_service import DocumentService

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 5_000_000  # 5 MB
MAX_EMOJI_LENGTH = 32


def _validate_input_lengths(
    title: Optional[str] = None,
    content: Optional[str] = None,
    emoji: Optional[str] = None,
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValueError(
            f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters"
        )
    if content and len(content) > MAX_CONTENT_LENGTH:
        raise ValueError(
            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters"
        )
    if emoji and len(emoji) > MAX_EMOJI_LENGTH:
        raise ValueError(
            f"Emoji exceeds maximum length of {MAX_EMOJI_LENGTH} characters"
        )


def _dump(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False)


def _tree_to_dict(nodes) -> list:
    return [
        {
            "document": node["document"].to_dict(),
            "children": _tree_to_dict(node["children"]),
        }
        for node in nodes
    ]


class DocTreeMcpServer:
    """MCP server exposing the document tree."""

    def __init__(self, engine=None):
        """Initialize the MCP server.

        Args:
            engine: Pre-configured SQLAlchemy engine shared with the
                    document service. When None, the service creates its own.
        """
        self.mcp = FastMCP(config.server_name)
        self.document_service = DocumentService(engine=engine)
        self.initialize()
        self._register_tools()

    def initialize(self) -> None:
        """Initialize services."""
        logger.info("DocTree MCP server initialized")

    def format_error_response(self, error: Exception) -> str:
        """Format an error as a JSON payload.

        Domain errors carry their code and details. Anything else is
        logged in full and reported with a generic message and a short
        reference id.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, DocTreeError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return _dump(error.to_dict())
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return _dump({
                "error": "ValueError",
                "message": f"Invalid input: {error} (ref: {error_id})",
            })
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return _dump({
                "error": "InternalError",
                "message": f"An unexpected error occurred (ref: {error_id})",
            })

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="documents_create")
        def documents_create(
            title: str = "",
            content: str = "",
            parent_id: Optional[str] = None,
            emoji: Optional[str] = None,
        ) -> str:
            """Create a document at the top of its sibling group.
            Args:
                title: Document title (empty means untitled)
                content: Document body
                parent_id: Parent document ID, or omit for root level
                emoji: Optional icon shown next to the title
            """
            with timed_operation("documents_create", parent_id=parent_id) as op:
                try:
                    _validate_input_lengths(title=title, content=content, emoji=emoji)
                    doc = self.document_service.create_document(
                        title=title,
                        content=content,
                        parent_id=parent_id or None,
                        emoji=emoji or None,
                    )
                    op["document_id"] = doc.id
                    return _dump({"document": doc.to_dict()})
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="documents_get")
        def documents_get(id: str) -> str:
            """Get a document by ID, including trashed documents.
            Args:
                id: Document ID
            """
            try:
                doc = self.document_service.get_document(id)
                return _dump({"document": doc.to_dict() if doc else None})
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="documents_list")
        def documents_list(limit: Optional[int] = None, offset: Optional[int] = None) -> str:
            """List active documents ordered by position, newest edits first on ties.
            Args:
                limit: Page size (default 50, clamped to the configured maximum)
                offset: Number of documents to skip
            """
            try:
                docs = self.document_service.list_documents(limit=limit, offset=offset)
                return _dump({"documents": [d.to_dict() for d in docs]})
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="documents_list_trashed")
        def documents_list_trashed(
            limit: Optional[int] = None, offset: Optional[int] = None
        ) -> str:
            """List trashed documents, most recently trashed first.
            Args:
                limit: Page size (default 200, clamped to the configured maximum)
                offset: Number of documents to skip
            """
            try:
                docs = self.document_service.list_trashed(limit=limit, offset=offset)
                return _dump({"documents": [d.to_dict() for d in docs]})
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="documents_update")
        def documents_update(
            id: str,
            title: Optional[str] = None,
            content: Optional[str] = None,
            emoji: Optional[str] = None,
            clear_emoji: bool = False,
        ) -> str:
            """Update a document's title, content or emoji.

            Use documents_move to change parent or position.
            Args:
                id: Document ID
                title: New title (omit to keep)
                content: New content (omit to keep)
                emoji: New emoji (omit to keep)
                clear_emoji: Remove the emoji
            """
            with timed_operation("documents_update", document_id=id):
                try:
                    _validate_input_lengths(title=title, content=content, emoji=emoji)
                    patch: Dict[str, Any] = {}
                    if title is not None:
                        patch["title"] = title
                    if content is not None:
                        patch["content"] = content
                    if clear_emoji:
                        patch["emoji"] = None
                    elif emoji is not None:
                        patch["emoji"] = emoji
                    if not patch:
                        doc = self.document_service.get_document(id)
                        if doc is None:
                            raise DocumentNotFoundError(id)
                        return _dump({"document": doc.to_dict()})
                    doc = self.document_service.update_document(id, **patch)
                    return _dump({"document": doc.to_dict()})
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="documents_move")
        def documents_move(
            id: str,
            parent_id: Optional[str] = None,
            sort_order: Optional[int] = None,
            position: Optional[str] = None,
            reference_id: Optional[str] = None,
        ) -> str:
            """Move a document to a new parent and/or position.

            Give either an absolute sort_order inside parent_id, or a
            position relative to another document:
            "before"/"after" reference_id, or "inside" parent_id as its
            last child. Without either, the document becomes the last
            child of parent_id.
            Args:
                id: Document to move
                parent_id: Destination parent, or omit for root level
                sort_order: Zero-based target index within the destination
                position: before, after or inside
                reference_id: Sibling to drop next to (before/after)
            """
            with timed_operation("documents_move", document_id=id) as op:
                try:
                    parent = parent_id or None
                    if sort_order is not None:
                        if position is not None:
                            raise ValueError("Give either sort_order or position, not both")
                        result = self.document_service.move_document_to_index(
                            id, parent, sort_order
                        )
                    else:
                        result = self.document_service.move_document(
                            id,
                            target_parent_id=parent,
                            position=position or "inside",
                            reference_id=reference_id or None,
                        )
                    op["reordered"] = len(result.reordered_ids)
                    return _dump(result.to_dict())
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="documents_trash")
        def documents_trash(id: str) -> str:
            """Move a document and its active descendants to the trash.
            Args:
                id: Document ID
            """
            with timed_operation("documents_trash", document_id=id) as op:
                try:
                    result = self.document_service.trash_document(id)
                    op["trashed"] = len(result.trashed_ids)
                    return _dump(result.to_dict())
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="documents_restore")
        def documents_restore(id: str) -> str:
            """Restore a trashed document and the descendants trashed with it.

            The document returns to the end of its original parent's
            children, or to root level if that parent is gone or trashed.
            Args:
                id: Document ID
            """
            with timed_operation("documents_restore", document_id=id) as op:
                try:
                    result = self.document_service.restore_document(id)
                    op["restored"] = len(result.restored_ids)
                    return _dump(result.to_dict())
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="documents_permanent_delete")
        def documents_permanent_delete(id: str, confirm: bool = False) -> str:
            """Permanently delete a document and its whole subtree.

            This cannot be undone.
            Args:
                id: Document ID
                confirm: Must be true to proceed
            """
            if not confirm:
                return _dump({
                    "error": "ConfirmationRequired",
                    "message": "Permanent delete removes the whole subtree. "
                               "Call again with confirm=true.",
                })
            with timed_operation("documents_permanent_delete", document_id=id) as op:
                try:
                    result = self.document_service.permanently_delete_document(id)
                    op["deleted"] = len(result.deleted_ids)
                    return _dump(result.to_dict())
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="documents_tree")
        def documents_tree() -> str:
            """Return the active document tree as nested nodes, in display order."""
            try:
                tree = self.document_service.get_tree()
                return _dump({"tree": _tree_to_dict(tree)})
            except Exception as e:
                return self.format_error_response(e)

        @self.mcp.tool(name="documents_status")
        def documents_status(repair: bool = False) -> str:
            """Report document counts, tree integrity and operation metrics.
            Args:
                repair: Re-key sibling groups that have gaps before reporting
            """
            try:
                status: Dict[str, Any] = {"server_version": config.server_version}
                if repair:
                    status["repaired"] = self.document_service.repair_sort_orders()
                status["counts"] = self.document_service.count_documents()
                status["integrity"] = self.document_service.check_tree_integrity().to_dict()
                status["metrics"] = {
                    "summary": metrics.get_summary(),
                    "operations": metrics.get_metrics(),
                }
                return _dump(status)
            except Exception as e:
                return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
