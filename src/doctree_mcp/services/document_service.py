"""Service layer for document tree operations."""

import logging
from typing import Any, Dict, List, Optional

from doctree_mcp.exceptions import (
    DocumentNotFoundError,
    ErrorCode,
    ValidationError,
)
from doctree_mcp.models.schema import (
    DeleteResult,
    Document,
    MovePosition,
    MoveResult,
    RestoreResult,
    TrashResult,
)
from doctree_mcp.observability import traced
from doctree_mcp.storage.document_repository import DocumentRepository
from doctree_mcp.tree.cascade import CascadeOperations
from doctree_mcp.tree.cycle_guard import CycleGuard
from doctree_mcp.tree.integrity import IntegrityReport, assert_dense, audit
from doctree_mcp.tree.move_engine import TreeMoveEngine
from doctree_mcp.tree.sort_order import SortOrderAllocator, as_keys

logger = logging.getLogger(__name__)

# Fields the editor may change freely; tree fields go through move/cascade
EDITABLE_FIELDS = frozenset({"title", "content", "emoji"})


class DocumentService:
    """Service for managing the document tree."""

    def __init__(
        self,
        repository: Optional[DocumentRepository] = None,
        engine: Optional[Any] = None,
    ):
        """Initialize the service.

        Args:
            repository: Document storage backend. Created with defaults if None.
            engine: Pre-configured SQLAlchemy engine to pass to DocumentRepository.
                Only used when repository is None.
        """
        if repository is not None:
            self.repository = repository
        elif engine is not None:
            self.repository = DocumentRepository(engine=engine)
        else:
            self.repository = DocumentRepository()
        self.allocator = SortOrderAllocator()
        self.cycle_guard = CycleGuard(self.repository)
        self.move_engine = TreeMoveEngine(
            self.repository, cycle_guard=self.cycle_guard, allocator=self.allocator
        )
        self.cascade = CascadeOperations(self.repository, allocator=self.allocator)

    # =========================================================================
    # Create / read / update
    # =========================================================================

    @traced("create_document")
    def create_document(
        self,
        title: Optional[str] = "",
        content: str = "",
        parent_id: Optional[str] = None,
        emoji: Optional[str] = None,
    ) -> Document:
        """Create a document at the top of its sibling group.

        Existing active siblings shift down by one (newest first).

        Raises:
            DocumentNotFoundError: ``parent_id`` is missing or trashed.
        """
        with self.repository.transaction() as session:
            if parent_id is not None:
                parent = self.repository.get(parent_id, session=session)
                if parent is None:
                    raise DocumentNotFoundError(
                        parent_id,
                        message=f"Parent document not found: {parent_id}",
                        code=ErrorCode.PARENT_NOT_FOUND,
                    )
                if parent.is_trashed:
                    raise DocumentNotFoundError(
                        parent_id,
                        message=f"Parent document is in the trash: {parent_id}",
                        state="trashed",
                    )

            group = as_keys(self.repository.list_active_by_parent(parent_id, session=session))
            allocation = self.allocator.prepend(group)
            for sibling_id, order in allocation.changes(group).items():
                self.repository.update_fields(
                    sibling_id, {"sort_order": order}, session=session
                )
            doc = self.repository.create(
                parent_id,
                title=title,
                content=content,
                emoji=emoji,
                sort_order=allocation.key,
                session=session,
            )
            assert_dense(self.repository, session, [parent_id])

        logger.info(f"Created document {doc.id} under {parent_id or 'root'}")
        return doc

    def get_document(self, document_id: str) -> Optional[Document]:
        """Retrieve a document by ID, trashed or not."""
        return self.repository.get(document_id)

    def list_documents(
        self, limit: Optional[int] = None, offset: Optional[int] = None
    ) -> List[Document]:
        """Active documents, paginated."""
        return self.repository.list_active(limit=limit, offset=offset)

    def list_trashed(
        self, limit: Optional[int] = None, offset: Optional[int] = None
    ) -> List[Document]:
        """Trashed documents, most recently trashed first, paginated."""
        return self.repository.list_trashed(limit=limit, offset=offset)

    def count_documents(self) -> Dict[str, int]:
        """Active and trashed document counts."""
        return {
            "active": self.repository.count_active(),
            "trashed": self.repository.count_trashed(),
        }

    def list_children(self, parent_id: Optional[str]) -> List[Document]:
        """Active children of ``parent_id`` (None = root level), in order."""
        return self.repository.list_active_by_parent(parent_id)

    @traced("update_document")
    def update_document(self, document_id: str, **patch: Any) -> Document:
        """Update editor-owned fields (title, content, emoji).

        Works on trashed documents too. Structural fields are rejected;
        use :meth:`move_document` instead.

        Raises:
            DocumentNotFoundError: Missing document.
            ValidationError: A field outside title/content/emoji was given.
        """
        illegal = set(patch) - EDITABLE_FIELDS
        if illegal:
            raise ValidationError(
                f"Field(s) {', '.join(sorted(illegal))} cannot be updated directly; "
                "use move/trash/restore",
                field=sorted(illegal)[0],
                code=ErrorCode.INVALID_FIELD,
            )
        return self.repository.update_fields(document_id, patch)

    # =========================================================================
    # Tree operations
    # =========================================================================

    def move_document(
        self,
        document_id: str,
        target_parent_id: Optional[str] = None,
        position: MovePosition = MovePosition.INSIDE_AS_LAST_CHILD,
        reference_id: Optional[str] = None,
    ) -> MoveResult:
        """Move relative to a sibling or into a parent. See :class:`TreeMoveEngine`."""
        return self.move_engine.move(
            document_id, target_parent_id, position, reference_id=reference_id
        )

    def move_document_to_index(
        self, document_id: str, target_parent_id: Optional[str], sort_order: int
    ) -> MoveResult:
        """Move to an absolute position inside ``target_parent_id``."""
        return self.move_engine.move_to_index(document_id, target_parent_id, sort_order)

    def trash_document(self, document_id: str) -> TrashResult:
        """Trash a document and its active subtree."""
        return self.cascade.trash(document_id)

    def restore_document(self, document_id: str) -> RestoreResult:
        """Restore a trashed document and the descendants trashed with it."""
        return self.cascade.restore(document_id)

    def permanently_delete_document(self, document_id: str) -> DeleteResult:
        """Delete a document and its entire subtree from storage."""
        return self.cascade.permanently_delete(document_id)

    def get_ancestors(self, document_id: str) -> List[Document]:
        """Breadcrumb from the root-level ancestor down to the direct parent."""
        chain = self.cycle_guard.ancestors(document_id)
        return list(reversed(self.repository.get_many(chain)))

    def get_tree(self) -> List[Dict[str, Any]]:
        """Active documents as nested ``{"document", "children"}`` dicts, in order."""
        active = [d for d in self.repository.get_all() if not d.is_trashed]
        nodes = {d.id: {"document": d, "children": []} for d in active}
        roots = []
        for doc in sorted(active, key=lambda d: d.sort_order):
            node = nodes[doc.id]
            if doc.parent_id is None:
                roots.append(node)
            elif doc.parent_id in nodes:
                nodes[doc.parent_id]["children"].append(node)
        return roots

    # =========================================================================
    # Maintenance
    # =========================================================================

    def check_tree_integrity(self) -> IntegrityReport:
        """Audit every tree invariant against the current table contents."""
        report = audit(self.repository.get_all())
        if not report.healthy:
            logger.warning(f"Tree integrity issues found: {report.to_dict()}")
        return report

    @traced("repair_sort_orders")
    def repair_sort_orders(self) -> int:
        """Compact every sibling group in one transaction.

        Returns:
            Number of documents whose sort order changed.
        """
        changed = 0
        with self.repository.transaction() as session:
            parent_ids = self.repository.active_parent_ids(session=session)
            for parent_id in parent_ids:
                changed += len(self.cascade.compact_group(session, parent_id))
            assert_dense(self.repository, session, parent_ids)
        logger.info(f"Sort order repair re-keyed {changed} documents")
        return changed
