"""Cycle detection for re-parenting."""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from doctree_mcp.exceptions import (
    CircularReferenceError,
    DocumentNotFoundError,
    InvariantViolationError,
)
from doctree_mcp.storage.document_repository import DocumentRepository

logger = logging.getLogger(__name__)


class CycleGuard:
    """Rejects parent assignments that would make a document its own ancestor.

    The walk follows ``parent_id`` pointers through trashed rows as well:
    a trashed descendant still points at its parent and comes back on
    restore.
    """

    def __init__(self, repository: DocumentRepository):
        self.repository = repository

    def assert_no_cycle(
        self,
        document_id: str,
        proposed_parent_id: Optional[str],
        session: Optional[Session] = None,
    ) -> None:
        """Validate that ``document_id`` may live under ``proposed_parent_id``.

        Read-only. Pass the session of the enclosing write transaction so
        the check sees the same snapshot the write commits against.

        Raises:
            CircularReferenceError: Self-parenting, or the proposed parent is a
                descendant of the document at any depth.
            InvariantViolationError: The existing ancestor chain already loops.
        """
        if proposed_parent_id is None:
            return
        if proposed_parent_id == document_id:
            logger.info(f"Rejected self-parenting of {document_id}")
            raise CircularReferenceError(document_id, proposed_parent_id)

        visited = set()
        current: Optional[str] = proposed_parent_id
        while current is not None:
            if current == document_id:
                logger.info(
                    f"Rejected move of {document_id} under its descendant {proposed_parent_id}"
                )
                raise CircularReferenceError(document_id, proposed_parent_id)
            if current in visited:
                raise InvariantViolationError(
                    f"Ancestor chain of '{proposed_parent_id}' already contains a loop",
                    document_ids=list(visited),
                )
            visited.add(current)
            row = self.repository.get(current, session=session)
            if row is None:
                break
            current = row.parent_id

    def ancestors(self, document_id: str, session: Optional[Session] = None) -> List[str]:
        """IDs from the direct parent up to the root-level ancestor.

        Raises:
            DocumentNotFoundError: If ``document_id`` does not exist.
            InvariantViolationError: If the chain loops.
        """
        doc = self.repository.get(document_id, session=session)
        if doc is None:
            raise DocumentNotFoundError(document_id)

        chain: List[str] = []
        seen = {document_id}
        parent_id = doc.parent_id
        while parent_id is not None:
            if parent_id in seen:
                raise InvariantViolationError(
                    f"Ancestor chain of '{document_id}' contains a loop",
                    document_ids=chain,
                )
            seen.add(parent_id)
            row = self.repository.get(parent_id, session=session)
            if row is None:
                break
            chain.append(parent_id)
            parent_id = row.parent_id
        return chain
