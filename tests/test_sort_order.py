"""Tests for the dense sort-key allocator."""
import pytest

from doctree_mcp.exceptions import DocumentNotFoundError, ErrorCode
from doctree_mcp.tree.sort_order import (
    Allocation,
    SiblingKey,
    SortOrderAllocator,
    as_keys,
)


def group(*ids):
    return [SiblingKey(doc_id, pos) for pos, doc_id in enumerate(ids)]


def final_order(allocation, moving_id):
    """Display order after applying an allocation."""
    keys = dict(allocation.assignments)
    keys[moving_id] = allocation.key
    return [doc_id for doc_id, _ in sorted(keys.items(), key=lambda kv: kv[1])]


class TestSortOrderAllocator:
    """Tests for SortOrderAllocator."""

    def setup_method(self):
        self.allocator = SortOrderAllocator()

    def test_append_to_empty_group(self):
        allocation = self.allocator.append([])
        assert allocation.key == 0
        assert allocation.assignments == {}

    def test_prepend_shifts_everyone(self):
        allocation = self.allocator.prepend(group("a", "b", "c"))
        assert allocation.key == 0
        assert allocation.assignments == {"a": 1, "b": 2, "c": 3}

    def test_insert_before_new_item(self):
        allocation = self.allocator.insert_before(group("a", "b", "c"), "b")
        assert allocation.key == 1
        assert allocation.assignments == {"a": 0, "b": 2, "c": 3}

    def test_insert_after_new_item(self):
        allocation = self.allocator.insert_after(group("a", "b", "c"), "b")
        assert allocation.key == 2
        assert allocation.assignments == {"a": 0, "b": 1, "c": 3}

    def test_move_later_within_group_lands_after_target(self):
        """Moving A after C in [A, B, C, D] gives [B, C, A, D]."""
        allocation = self.allocator.insert_after(
            group("a", "b", "c", "d"), "c", moving_id="a"
        )
        assert final_order(allocation, "a") == ["b", "c", "a", "d"]
        assert allocation.key == 2

    def test_move_earlier_within_group(self):
        """Moving D before B in [A, B, C, D] gives [A, D, B, C]."""
        allocation = self.allocator.insert_before(
            group("a", "b", "c", "d"), "b", moving_id="d"
        )
        assert final_order(allocation, "d") == ["a", "d", "b", "c"]

    def test_move_before_next_sibling_is_noop(self):
        allocation = self.allocator.insert_before(
            group("a", "b", "c"), "b", moving_id="a"
        )
        assert allocation.key == 0
        assert allocation.changes(group("a", "b", "c")) == {}

    def test_drop_on_itself_keeps_position(self):
        allocation = self.allocator.insert_after(
            group("a", "b", "c"), "b", moving_id="b"
        )
        assert allocation.key == 1
        assert final_order(allocation, "b") == ["a", "b", "c"]

    def test_append_existing_member_moves_to_end(self):
        allocation = self.allocator.append(group("a", "b", "c"), moving_id="a")
        assert final_order(allocation, "a") == ["b", "c", "a"]
        assert allocation.key == 2

    def test_insert_at_clamps_past_end(self):
        allocation = self.allocator.insert_at(group("a", "b"), 99)
        assert allocation.key == 2

    def test_insert_at_existing_member(self):
        allocation = self.allocator.insert_at(
            group("a", "b", "c", "d"), 3, moving_id="a"
        )
        assert final_order(allocation, "a") == ["b", "c", "d", "a"]

    def test_unknown_reference_raises(self):
        with pytest.raises(DocumentNotFoundError) as exc_info:
            self.allocator.insert_before(group("a", "b"), "zzz")
        assert exc_info.value.code == ErrorCode.REFERENCE_NOT_FOUND

    def test_compact_closes_gaps_preserving_order(self):
        gapped = [SiblingKey("a", 0), SiblingKey("b", 3), SiblingKey("c", 7)]
        assert self.allocator.compact(gapped) == {"a": 0, "b": 1, "c": 2}

    def test_compact_is_idempotent(self):
        once = self.allocator.compact([SiblingKey("x", 5), SiblingKey("y", 2)])
        again = self.allocator.compact([SiblingKey(k, v) for k, v in once.items()])
        assert once == again == {"y": 0, "x": 1}

    def test_compact_keeps_supplied_order_for_duplicates(self):
        dupes = [SiblingKey("first", 0), SiblingKey("second", 0)]
        assert self.allocator.compact(dupes) == {"first": 0, "second": 1}

    @pytest.mark.parametrize("moving,target,expected", [
        ("a", "d", ["b", "c", "d", "a"]),
        ("d", "a", ["d", "a", "b", "c"]),
        ("b", "c", ["a", "c", "b", "d"]),
    ])
    def test_results_stay_dense(self, moving, target, expected):
        g = group("a", "b", "c", "d")
        if expected.index(moving) > expected.index(target):
            allocation = self.allocator.insert_after(g, target, moving_id=moving)
        else:
            allocation = self.allocator.insert_before(g, target, moving_id=moving)
        assert final_order(allocation, moving) == expected
        keys = sorted(list(allocation.assignments.values()) + [allocation.key])
        assert keys == [0, 1, 2, 3]


def test_allocation_changes_reports_only_differences():
    allocation = Allocation(key=0, assignments={"a": 0, "b": 2})
    assert allocation.changes([SiblingKey("a", 0), SiblingKey("b", 1)]) == {"b": 2}


def test_as_keys_accepts_any_object_with_id_and_sort_order():
    class Row:
        def __init__(self, id, sort_order):
            self.id = id
            self.sort_order = sort_order

    assert as_keys([Row("a", 1)]) == [SiblingKey("a", 1)]
