"""Tree engine: sort-order allocation, cycle detection, moves and cascades."""

from doctree_mcp.tree.cascade import CascadeOperations
from doctree_mcp.tree.cycle_guard import CycleGuard
from doctree_mcp.tree.move_engine import TreeMoveEngine
from doctree_mcp.tree.sort_order import Allocation, SiblingKey, SortOrderAllocator

__all__ = [
    "Allocation",
    "CascadeOperations",
    "CycleGuard",
    "SiblingKey",
    "SortOrderAllocator",
    "TreeMoveEngine",
]
