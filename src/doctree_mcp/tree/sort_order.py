"""Dense sort-key allocation for sibling groups.

Everything here is pure: the allocator receives a sibling group as a list
of ``SiblingKey`` and returns the new keys; it never touches the database.

Keys inside a group are always ``0..N-1``. Inserting at index ``i`` gives
the new item key ``i`` and pushes every sibling at ``>= i`` up by one.
When the item being placed is already a member of the group (a reorder
within one parent), it is taken out of the list first. That removal shifts
every later sibling down by one, so the insertion index is computed
against the shortened list. Skipping this step lands a "move later" one
slot too far.
"""
from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Sequence

from doctree_mcp.exceptions import DocumentNotFoundError, ErrorCode


class SiblingKey(NamedTuple):
    """One member of a sibling group."""

    id: str
    sort_order: int


@dataclass(frozen=True)
class Allocation:
    """Result of placing one item into a sibling group.

    Attributes:
        key: Sort order for the item being placed.
        assignments: New sort order for every other sibling in the group.
    """

    key: int
    assignments: Dict[str, int] = field(default_factory=dict)

    def changes(self, group: Sequence[SiblingKey]) -> Dict[str, int]:
        """Only the siblings whose key actually differs from ``group``."""
        current = {s.id: s.sort_order for s in group}
        return {
            doc_id: order
            for doc_id, order in self.assignments.items()
            if current.get(doc_id) != order
        }


def as_keys(documents) -> List[SiblingKey]:
    """Build a sibling group from anything with ``id`` and ``sort_order``."""
    return [SiblingKey(d.id, d.sort_order) for d in documents]


class SortOrderAllocator:
    """Computes dense renumberings for a sibling group."""

    @staticmethod
    def ordered_ids(group: Sequence[SiblingKey]) -> List[str]:
        """IDs in display order.

        The sort is stable, so duplicate keys (legacy data) keep the order
        the caller supplied them in.
        """
        return [s.id for s in sorted(group, key=lambda s: s.sort_order)]

    def _remaining(
        self, group: Sequence[SiblingKey], moving_id: Optional[str]
    ) -> List[str]:
        ordered = self.ordered_ids(group)
        if moving_id is not None and moving_id in ordered:
            ordered.remove(moving_id)
        return ordered

    @staticmethod
    def _place(ordered: List[str], index: int) -> Allocation:
        assignments = {
            doc_id: (pos if pos < index else pos + 1)
            for pos, doc_id in enumerate(ordered)
        }
        return Allocation(key=index, assignments=assignments)

    @staticmethod
    def _index_of(ordered: List[str], target_id: str) -> int:
        try:
            return ordered.index(target_id)
        except ValueError:
            raise DocumentNotFoundError(
                target_id,
                message=f"Reference document '{target_id}' is not in the sibling group",
                code=ErrorCode.REFERENCE_NOT_FOUND,
            ) from None

    def insert_before(
        self,
        group: Sequence[SiblingKey],
        target_id: str,
        moving_id: Optional[str] = None,
    ) -> Allocation:
        """Place the item directly before ``target_id``.

        The item takes the target's key; the target and everything after it
        shift up by one.
        """
        if moving_id is not None and target_id == moving_id:
            return self._keep(group, moving_id)
        ordered = self._remaining(group, moving_id)
        return self._place(ordered, self._index_of(ordered, target_id))

    def insert_after(
        self,
        group: Sequence[SiblingKey],
        target_id: str,
        moving_id: Optional[str] = None,
    ) -> Allocation:
        """Place the item directly after ``target_id``.

        The item takes the target's key + 1; everything after the target
        shifts up by one.
        """
        if moving_id is not None and target_id == moving_id:
            return self._keep(group, moving_id)
        ordered = self._remaining(group, moving_id)
        return self._place(ordered, self._index_of(ordered, target_id) + 1)

    def append(
        self, group: Sequence[SiblingKey], moving_id: Optional[str] = None
    ) -> Allocation:
        """Place the item after the last sibling (key 0 in an empty group)."""
        ordered = self._remaining(group, moving_id)
        return self._place(ordered, len(ordered))

    def prepend(
        self, group: Sequence[SiblingKey], moving_id: Optional[str] = None
    ) -> Allocation:
        """Place the item at key 0; every other sibling shifts up by one."""
        ordered = self._remaining(group, moving_id)
        return self._place(ordered, 0)

    def insert_at(
        self,
        group: Sequence[SiblingKey],
        index: int,
        moving_id: Optional[str] = None,
    ) -> Allocation:
        """Place the item at an absolute index, clamped into the valid range."""
        ordered = self._remaining(group, moving_id)
        index = min(max(index, 0), len(ordered))
        return self._place(ordered, index)

    def compact(self, group: Sequence[SiblingKey]) -> Dict[str, int]:
        """Re-key a group to ``0..N-1`` preserving relative order.

        Idempotent: compacting an already dense group returns its current keys.
        """
        return {doc_id: pos for pos, doc_id in enumerate(self.ordered_ids(group))}

    def _keep(self, group: Sequence[SiblingKey], moving_id: str) -> Allocation:
        """Allocation that leaves ``moving_id`` where it is (dropped on itself)."""
        ordered = self.ordered_ids(group)
        index = self._index_of(ordered, moving_id)
        ordered.remove(moving_id)
        return self._place(ordered, index)
