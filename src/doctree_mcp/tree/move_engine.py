"""Move engine: re-parenting and reordering documents in one transaction."""
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from doctree_mcp.exceptions import (
    DocumentNotFoundError,
    ErrorCode,
    ValidationError,
)
from doctree_mcp.models.schema import Document, MovePosition, MoveResult
from doctree_mcp.observability import traced
from doctree_mcp.storage.document_repository import DocumentRepository
from doctree_mcp.tree.cycle_guard import CycleGuard
from doctree_mcp.tree.integrity import assert_dense
from doctree_mcp.tree.sort_order import Allocation, SortOrderAllocator, as_keys

logger = logging.getLogger(__name__)


class TreeMoveEngine:
    """Applies resolved drag-and-drop intents to the document tree.

    Every move runs validate-then-commit inside a single repository
    transaction: existence checks and the cycle check read the same
    snapshot the writes land on, and any error rolls everything back.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        cycle_guard: Optional[CycleGuard] = None,
        allocator: Optional[SortOrderAllocator] = None,
    ):
        self.repository = repository
        self.cycle_guard = cycle_guard or CycleGuard(repository)
        self.allocator = allocator or SortOrderAllocator()

    @traced("move_document")
    def move(
        self,
        document_id: str,
        target_parent_id: Optional[str],
        position: MovePosition,
        reference_id: Optional[str] = None,
    ) -> MoveResult:
        """Move a document relative to a reference sibling or into a parent.

        Args:
            document_id: Document being moved.
            target_parent_id: Destination parent for ``INSIDE_AS_LAST_CHILD``
                (None = root level). For ``BEFORE``/``AFTER`` the parent is
                taken from the reference; a value here must agree with it.
            position: ``BEFORE``, ``AFTER`` or ``INSIDE_AS_LAST_CHILD``.
            reference_id: Sibling to drop next to (``BEFORE``/``AFTER`` only).

        Raises:
            DocumentNotFoundError: The document, reference or parent is missing
                or trashed.
            CircularReferenceError: The destination is the document itself or
                one of its descendants.
            ValidationError: Malformed intent.
        """
        position = self._coerce_position(position)
        with self.repository.transaction() as session:
            doc = self._require_active(session, document_id)

            if position is MovePosition.INSIDE_AS_LAST_CHILD:
                new_parent_id = target_parent_id
                self._require_parent(session, document_id, new_parent_id)
                group = self._destination_group(session, new_parent_id)
                allocation = self.allocator.append(group, moving_id=document_id)
            else:
                if not reference_id:
                    raise ValidationError(
                        f"Position '{position.value}' needs a reference document",
                        field="reference_id",
                        code=ErrorCode.INVALID_POSITION,
                    )
                reference = self._require_active(
                    session, reference_id, code=ErrorCode.REFERENCE_NOT_FOUND
                )
                new_parent_id = reference.parent_id
                if target_parent_id is not None and target_parent_id != new_parent_id:
                    raise ValidationError(
                        f"Reference '{reference_id}' is not a child of '{target_parent_id}'",
                        field="target_parent_id",
                        value=target_parent_id,
                        code=ErrorCode.INVALID_POSITION,
                    )
                self._require_parent(session, document_id, new_parent_id)
                group = self._destination_group(session, new_parent_id)
                if position is MovePosition.BEFORE:
                    allocation = self.allocator.insert_before(
                        group, reference_id, moving_id=document_id
                    )
                else:
                    allocation = self.allocator.insert_after(
                        group, reference_id, moving_id=document_id
                    )

            return self._apply(session, doc, new_parent_id, group, allocation)

    @traced("move_document_to_index")
    def move_to_index(
        self,
        document_id: str,
        target_parent_id: Optional[str],
        sort_order: int,
    ) -> MoveResult:
        """Move a document to an absolute position inside ``target_parent_id``.

        ``sort_order`` past the end of the group is clamped to the end.

        Raises:
            ValidationError: ``sort_order`` is negative or not an integer.
            DocumentNotFoundError, CircularReferenceError: As for :meth:`move`.
        """
        if isinstance(sort_order, bool) or not isinstance(sort_order, int):
            raise ValidationError(
                "sort_order must be an integer",
                field="sort_order",
                value=sort_order,
                code=ErrorCode.INVALID_SORT_ORDER,
            )
        if sort_order < 0:
            raise ValidationError(
                "sort_order must be non-negative",
                field="sort_order",
                value=sort_order,
                code=ErrorCode.INVALID_SORT_ORDER,
            )

        with self.repository.transaction() as session:
            doc = self._require_active(session, document_id)
            self._require_parent(session, document_id, target_parent_id)
            group = self._destination_group(session, target_parent_id)
            allocation = self.allocator.insert_at(group, sort_order, moving_id=document_id)
            return self._apply(session, doc, target_parent_id, group, allocation)

    # ========== Internals ==========

    @staticmethod
    def _coerce_position(position) -> MovePosition:
        if isinstance(position, MovePosition):
            return position
        value = str(position).strip().lower().replace("_", "")
        if value in ("insideaslastchild", "inside"):
            return MovePosition.INSIDE_AS_LAST_CHILD
        try:
            return MovePosition(value)
        except ValueError:
            raise ValidationError(
                f"Invalid position: {position}. Valid positions are: "
                f"{', '.join(p.value for p in MovePosition)}",
                field="position",
                value=position,
                code=ErrorCode.INVALID_POSITION,
            ) from None

    def _require_active(
        self,
        session: Session,
        document_id: str,
        code: ErrorCode = ErrorCode.DOCUMENT_NOT_FOUND,
    ) -> Document:
        doc = self.repository.get(document_id, session=session)
        if doc is None:
            raise DocumentNotFoundError(document_id, code=code)
        if doc.is_trashed:
            raise DocumentNotFoundError(
                document_id,
                message=f"Document is in the trash: {document_id}",
                state="trashed",
            )
        return doc

    def _require_parent(
        self, session: Session, document_id: str, parent_id: Optional[str]
    ) -> None:
        """Destination parent must be active and not inside the moving subtree."""
        if parent_id is None:
            return
        # Cycle check first so "move into itself" reports as circular, not missing
        self.cycle_guard.assert_no_cycle(document_id, parent_id, session=session)
        self._require_active(session, parent_id, code=ErrorCode.PARENT_NOT_FOUND)

    def _destination_group(self, session: Session, parent_id: Optional[str]):
        return as_keys(self.repository.list_active_by_parent(parent_id, session=session))

    def _apply(
        self,
        session: Session,
        doc: Document,
        new_parent_id: Optional[str],
        group,
        allocation: Allocation,
    ) -> MoveResult:
        """Write the allocation, close the gap in the old group, verify, return."""
        old_parent_id = doc.parent_id
        same_parent = old_parent_id == new_parent_id

        updates: Dict[str, int] = dict(allocation.changes(group))
        if not same_parent:
            old_group = [
                key for key in as_keys(
                    self.repository.list_active_by_parent(old_parent_id, session=session)
                )
                if key.id != doc.id
            ]
            current = {k.id: k.sort_order for k in old_group}
            for sibling_id, order in self.allocator.compact(old_group).items():
                if current[sibling_id] != order:
                    updates[sibling_id] = order

        if same_parent and allocation.key == doc.sort_order and not updates:
            logger.debug(f"Move of {doc.id} is a no-op")
            return MoveResult(document=doc, reordered_ids=[], changed=False)

        for sibling_id, order in updates.items():
            self.repository.update_fields(sibling_id, {"sort_order": order}, session=session)
        moved = self.repository.update_fields(
            doc.id,
            {"parent_id": new_parent_id, "sort_order": allocation.key},
            session=session,
        )

        touched = {new_parent_id, old_parent_id}
        assert_dense(self.repository, session, touched)

        logger.info(
            f"Moved {doc.id}: parent {old_parent_id} -> {new_parent_id}, "
            f"sort_order {doc.sort_order} -> {allocation.key} "
            f"({len(updates)} siblings re-keyed)"
        )
        return MoveResult(document=moved, reordered_ids=sorted(updates), changed=True)
