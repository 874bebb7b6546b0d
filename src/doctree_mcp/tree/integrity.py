"""Tree invariant checks.

``assert_dense`` runs inside write transactions, right before commit, on
every sibling group the write touched. ``audit`` inspects a full snapshot
of the table and reports every violation it finds without raising.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from doctree_mcp.exceptions import InvariantViolationError
from doctree_mcp.models.schema import Document

logger = logging.getLogger(__name__)

ROOT_GROUP = "<root>"


def is_dense(orders: Iterable[int]) -> bool:
    """True when ``orders`` is exactly ``{0, 1, ..., N-1}``."""
    orders = sorted(orders)
    return orders == list(range(len(orders)))


def assert_dense(
    repository, session: Session, parent_ids: Iterable[Optional[str]]
) -> None:
    """Verify the active children of each parent form a dense ``0..N-1`` run.

    Raises:
        InvariantViolationError: On the first group with a gap or duplicate.
    """
    for parent_id in set(parent_ids):
        siblings = repository.list_active_by_parent(parent_id, session=session)
        orders = [d.sort_order for d in siblings]
        if not is_dense(orders):
            logger.error(
                f"Dense ordering violated under {parent_id or ROOT_GROUP}: {sorted(orders)}"
            )
            raise InvariantViolationError(
                f"Sibling order under '{parent_id or ROOT_GROUP}' is not dense",
                parent_id=parent_id,
                sort_orders=sorted(orders),
            )


@dataclass
class IntegrityReport:
    """Everything wrong with one snapshot of the tree."""

    document_count: int = 0
    active_count: int = 0
    gapped_groups: Dict[str, List[int]] = field(default_factory=dict)
    dangling_parents: List[str] = field(default_factory=list)
    cycles: List[List[str]] = field(default_factory=list)
    active_under_trashed: List[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not (
            self.gapped_groups
            or self.dangling_parents
            or self.cycles
            or self.active_under_trashed
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "document_count": self.document_count,
            "active_count": self.active_count,
            "gapped_groups": self.gapped_groups,
            "dangling_parents": self.dangling_parents,
            "cycles": self.cycles,
            "active_under_trashed": self.active_under_trashed,
        }


def audit(documents: Sequence[Document]) -> IntegrityReport:
    """Check all four tree invariants against a snapshot of every row.

    Active documents whose parent is trashed are reported separately: the
    tree is still acyclic, but the document is unreachable from the sidebar.
    """
    by_id = {d.id: d for d in documents}
    report = IntegrityReport(
        document_count=len(documents),
        active_count=sum(1 for d in documents if not d.is_trashed),
    )

    groups: Dict[Optional[str], List[int]] = {}
    for doc in documents:
        if doc.is_trashed:
            continue
        groups.setdefault(doc.parent_id, []).append(doc.sort_order)
        if doc.parent_id is None:
            continue
        parent = by_id.get(doc.parent_id)
        if parent is None:
            report.dangling_parents.append(doc.id)
        elif parent.is_trashed:
            report.active_under_trashed.append(doc.id)

    for parent_id, orders in groups.items():
        if not is_dense(orders):
            report.gapped_groups[parent_id or ROOT_GROUP] = sorted(orders)

    report.cycles = _find_cycles(by_id)
    return report


def _find_cycles(by_id: Dict[str, Document]) -> List[List[str]]:
    """Every parent-pointer loop, each reported once."""
    done = set()
    cycles: List[List[str]] = []
    for start in by_id:
        if start in done:
            continue
        path: List[str] = []
        on_path: Dict[str, int] = {}
        current: Optional[str] = start
        while current is not None and current in by_id and current not in done:
            if current in on_path:
                cycles.append(path[on_path[current]:])
                break
            on_path[current] = len(path)
            path.append(current)
            current = by_id[current].parent_id
        done.update(path)
    return cycles
