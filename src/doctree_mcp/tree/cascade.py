"""Cascading trash, restore and permanent delete over document subtrees."""
import datetime
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from doctree_mcp.exceptions import DocumentNotFoundError
from doctree_mcp.models.schema import (
    DeleteResult,
    Document,
    RestoreResult,
    TrashResult,
    utc_now,
)
from doctree_mcp.observability import traced
from doctree_mcp.storage.document_repository import DocumentRepository
from doctree_mcp.tree.integrity import assert_dense
from doctree_mcp.tree.sort_order import SortOrderAllocator, as_keys

logger = logging.getLogger(__name__)


class CascadeOperations:
    """Applies lifecycle changes to a document and its whole subtree.

    Trashing stamps every row of the subtree with the same ``deleted_at``.
    That shared stamp is what restore uses to tell which trashed
    descendants went into the trash together with the root, as opposed to
    ones the user had trashed on their own beforehand.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        allocator: Optional[SortOrderAllocator] = None,
    ):
        self.repository = repository
        self.allocator = allocator or SortOrderAllocator()

    @traced("trash_document")
    def trash(self, document_id: str) -> TrashResult:
        """Move an active document and its active descendants to the trash.

        The root's former sibling group is compacted; descendants keep their
        ``parent_id`` and ``sort_order`` for restore.

        Raises:
            DocumentNotFoundError: Missing, or already in the trash.
        """
        with self.repository.transaction() as session:
            doc = self.repository.get(document_id, session=session)
            if doc is None:
                raise DocumentNotFoundError(document_id)
            if doc.is_trashed:
                raise DocumentNotFoundError(
                    document_id,
                    message=f"Document is already in the trash: {document_id}",
                    state="trashed",
                )

            subtree = self.collect_subtree(
                session, doc, lambda child: not child.is_trashed
            )
            stamp = self.next_stamp(session)
            for member in subtree:
                self.repository.update_fields(
                    member.id, {"deleted_at": stamp}, session=session
                )

            self.compact_group(session, doc.parent_id)
            assert_dense(self.repository, session, [doc.parent_id])

            trashed = self.repository.get(document_id, session=session)
            trashed_ids = [member.id for member in subtree]
            logger.info(f"Trashed {document_id} with {len(trashed_ids) - 1} descendants")
            return TrashResult(document=trashed, trashed_ids=trashed_ids)

    @traced("restore_document")
    def restore(self, document_id: str) -> RestoreResult:
        """Bring a trashed document back together with its cascade.

        The restored root returns to its original parent when that parent
        still exists and is active, otherwise to root level. Either way it
        is appended to the end of the destination group.

        Raises:
            DocumentNotFoundError: Missing, or not in the trash.
        """
        with self.repository.transaction() as session:
            doc = self.repository.get(document_id, session=session)
            if doc is None:
                raise DocumentNotFoundError(document_id)
            if not doc.is_trashed:
                raise DocumentNotFoundError(
                    document_id,
                    message=f"Document is not in the trash: {document_id}",
                    state="active",
                )

            stamp = doc.deleted_at
            members = self.collect_subtree(
                session,
                doc,
                lambda child: child.is_trashed and child.deleted_at == stamp,
            )

            destination = doc.parent_id
            if destination is not None:
                parent = self.repository.get(destination, session=session)
                if parent is None or parent.is_trashed:
                    logger.info(
                        f"Parent {destination} of {document_id} is gone or trashed; "
                        "restoring to root level"
                    )
                    destination = None

            group = as_keys(self.repository.list_active_by_parent(destination, session=session))
            allocation = self.allocator.append(group)
            for sibling_id, order in allocation.changes(group).items():
                self.repository.update_fields(
                    sibling_id, {"sort_order": order}, session=session
                )

            for member in members[1:]:
                self.repository.update_fields(
                    member.id, {"deleted_at": None}, session=session
                )
            restored = self.repository.update_fields(
                document_id,
                {
                    "deleted_at": None,
                    "parent_id": destination,
                    "sort_order": allocation.key,
                },
                session=session,
            )

            # Descendants deleted from the trash meanwhile may have left gaps
            for member in members:
                self.compact_group(session, member.id)

            assert_dense(
                self.repository,
                session,
                [destination] + [member.id for member in members],
            )

            restored_ids = [member.id for member in members]
            logger.info(
                f"Restored {document_id} with {len(restored_ids) - 1} descendants "
                f"under {destination or 'root'} at {allocation.key}"
            )
            return RestoreResult(document=restored, restored_ids=restored_ids)

    @traced("permanently_delete_document")
    def permanently_delete(self, document_id: str) -> DeleteResult:
        """Remove a document and every descendant, active or trashed, from storage.

        Raises:
            DocumentNotFoundError: Missing.
        """
        with self.repository.transaction() as session:
            doc = self.repository.get(document_id, session=session)
            if doc is None:
                raise DocumentNotFoundError(document_id)

            subtree = self.collect_subtree(session, doc, lambda child: True)
            deleted_ids = [member.id for member in subtree]
            self.repository.delete_many(deleted_ids, session=session)

            if not doc.is_trashed:
                self.compact_group(session, doc.parent_id)
                assert_dense(self.repository, session, [doc.parent_id])

            logger.info(
                f"Permanently deleted {document_id} with {len(deleted_ids) - 1} descendants"
            )
            return DeleteResult(deleted_ids=deleted_ids)

    # ========== Helpers ==========

    def next_stamp(self, session: Session) -> datetime.datetime:
        """A ``deleted_at`` value later than every stamp already stored.

        Two trash calls landing on the same clock tick would otherwise share
        a stamp, and restoring either would bring back both cascades.
        """
        stamp = utc_now()
        latest = self.repository.latest_deleted_at(session=session)
        if latest is not None and stamp <= latest:
            stamp = latest + datetime.timedelta(microseconds=1)
        return stamp

    def collect_subtree(
        self,
        session: Session,
        root: Document,
        follow: Callable[[Document], bool],
    ) -> List[Document]:
        """Depth-first walk from ``root`` over children accepted by ``follow``.

        ``root`` is always first in the result. A child that ``follow``
        rejects is skipped together with everything below it.
        """
        collected: List[Document] = []
        seen = set()
        stack = [root]
        while stack:
            node = stack.pop()
            if node.id in seen:
                continue
            seen.add(node.id)
            collected.append(node)
            children = self.repository.list_children(
                node.id, include_trashed=True, session=session
            )
            # Reversed so siblings come off the stack in display order
            for child in reversed(children):
                if child.id not in seen and follow(child):
                    stack.append(child)
        return collected

    def compact_group(self, session: Session, parent_id: Optional[str]) -> List[str]:
        """Close gaps among the active children of ``parent_id``.

        Returns:
            IDs whose sort order changed.
        """
        group = as_keys(self.repository.list_active_by_parent(parent_id, session=session))
        current = {key.id: key.sort_order for key in group}
        changed = []
        for sibling_id, order in self.allocator.compact(group).items():
            if current[sibling_id] != order:
                self.repository.update_fields(
                    sibling_id, {"sort_order": order}, session=session
                )
                changed.append(sibling_id)
        return changed
