"""Tests for TreeMoveEngine, driven through the document service."""
import pytest

from doctree_mcp.exceptions import (
    CircularReferenceError,
    DocumentNotFoundError,
    ErrorCode,
    ValidationError,
)
from doctree_mcp.models.schema import MovePosition


@pytest.fixture
def siblings(make_tree):
    """Root level [A, B, C, D], with A holding [A1, A2]."""
    return make_tree([
        ("A", [("A1", []), ("A2", [])]),
        ("B", []),
        ("C", []),
        ("D", []),
    ])


class TestReorderWithinParent:
    """Moves that keep the same parent."""

    def test_move_after_later_sibling(self, document_service, siblings, ordered_titles):
        result = document_service.move_document(
            siblings["A"], None, MovePosition.AFTER, reference_id=siblings["C"]
        )
        assert ordered_titles() == ["B", "C", "A", "D"]
        assert result.document.sort_order == 2
        assert result.changed

    def test_move_before_earlier_sibling(self, document_service, siblings, ordered_titles):
        document_service.move_document(
            siblings["D"], None, MovePosition.BEFORE, reference_id=siblings["B"]
        )
        assert ordered_titles() == ["A", "D", "B", "C"]

    def test_noop_move_writes_nothing(self, document_service, siblings):
        before = document_service.get_document(siblings["B"])
        result = document_service.move_document(
            siblings["B"], None, MovePosition.AFTER, reference_id=siblings["A"]
        )
        assert not result.changed
        assert result.reordered_ids == []
        after = document_service.get_document(siblings["B"])
        assert after.updated_at == before.updated_at

    def test_move_to_index(self, document_service, siblings, ordered_titles):
        document_service.move_document_to_index(siblings["A"], None, 3)
        assert ordered_titles() == ["B", "C", "D", "A"]

    def test_move_to_index_clamps(self, document_service, siblings, ordered_titles):
        result = document_service.move_document_to_index(siblings["B"], None, 42)
        assert ordered_titles() == ["A", "C", "D", "B"]
        assert result.document.sort_order == 3

    def test_negative_index_rejected(self, document_service, siblings):
        with pytest.raises(ValidationError) as exc_info:
            document_service.move_document_to_index(siblings["B"], None, -1)
        assert exc_info.value.code == ErrorCode.INVALID_SORT_ORDER


class TestReparent:
    """Moves that change the parent."""

    def test_inside_appends_and_compacts_old_group(
        self, document_service, siblings, ordered_titles
    ):
        result = document_service.move_document(
            siblings["C"], siblings["A"], MovePosition.INSIDE_AS_LAST_CHILD
        )
        assert ordered_titles(siblings["A"]) == ["A1", "A2", "C"]
        assert ordered_titles() == ["A", "B", "D"]
        assert document_service.get_document(siblings["D"]).sort_order == 2
        assert siblings["D"] in result.reordered_ids

    def test_before_reference_in_other_group(
        self, document_service, siblings, ordered_titles
    ):
        document_service.move_document(
            siblings["A2"], None, MovePosition.BEFORE, reference_id=siblings["B"]
        )
        assert ordered_titles() == ["A", "A2", "B", "C", "D"]
        assert ordered_titles(siblings["A"]) == ["A1"]
        assert document_service.get_document(siblings["A2"]).parent_id is None

    def test_move_to_root_level(self, document_service, siblings, ordered_titles):
        document_service.move_document(siblings["A1"], None, "inside")
        assert ordered_titles()[-1] == "A1"

    def test_move_under_own_descendant_rejected(self, document_service, siblings, ordered_titles):
        with pytest.raises(CircularReferenceError):
            document_service.move_document(
                siblings["A"], siblings["A1"], MovePosition.INSIDE_AS_LAST_CHILD
            )
        # Nothing changed
        assert ordered_titles() == ["A", "B", "C", "D"]
        assert ordered_titles(siblings["A"]) == ["A1", "A2"]

    def test_move_under_itself_rejected(self, document_service, siblings):
        with pytest.raises(CircularReferenceError) as exc_info:
            document_service.move_document(
                siblings["B"], siblings["B"], MovePosition.INSIDE_AS_LAST_CHILD
            )
        assert exc_info.value.code == ErrorCode.SELF_PARENT

    def test_before_own_descendant_rejected(self, document_service, siblings):
        with pytest.raises(CircularReferenceError):
            document_service.move_document(
                siblings["A"], None, MovePosition.BEFORE, reference_id=siblings["A2"]
            )


class TestMoveValidation:
    """Malformed or impossible move intents."""

    def test_missing_document(self, document_service, siblings):
        with pytest.raises(DocumentNotFoundError) as exc_info:
            document_service.move_document("missing", None, MovePosition.INSIDE_AS_LAST_CHILD)
        assert exc_info.value.code == ErrorCode.DOCUMENT_NOT_FOUND

    def test_missing_parent(self, document_service, siblings):
        with pytest.raises(DocumentNotFoundError) as exc_info:
            document_service.move_document(siblings["B"], "missing", "inside")
        assert exc_info.value.code == ErrorCode.PARENT_NOT_FOUND

    def test_missing_reference(self, document_service, siblings):
        with pytest.raises(DocumentNotFoundError) as exc_info:
            document_service.move_document(
                siblings["B"], None, MovePosition.AFTER, reference_id="missing"
            )
        assert exc_info.value.code == ErrorCode.REFERENCE_NOT_FOUND

    def test_reference_required_for_before(self, document_service, siblings):
        with pytest.raises(ValidationError) as exc_info:
            document_service.move_document(siblings["B"], None, MovePosition.BEFORE)
        assert exc_info.value.code == ErrorCode.INVALID_POSITION

    def test_reference_parent_mismatch(self, document_service, siblings):
        with pytest.raises(ValidationError):
            document_service.move_document(
                siblings["B"], siblings["A"], MovePosition.AFTER, reference_id=siblings["C"]
            )

    def test_unknown_position(self, document_service, siblings):
        with pytest.raises(ValidationError) as exc_info:
            document_service.move_document(siblings["B"], None, "sideways")
        assert exc_info.value.code == ErrorCode.INVALID_POSITION

    def test_position_aliases(self, document_service, siblings, ordered_titles):
        document_service.move_document(
            siblings["B"], siblings["A"], "INSIDE_AS_LAST_CHILD"
        )
        assert ordered_titles(siblings["A"]) == ["A1", "A2", "B"]

    def test_trashed_document_cannot_move(self, document_service, siblings):
        document_service.trash_document(siblings["B"])
        with pytest.raises(DocumentNotFoundError) as exc_info:
            document_service.move_document(siblings["B"], None, "inside")
        assert exc_info.value.state == "trashed"

    def test_cannot_move_into_trashed_parent(self, document_service, siblings):
        document_service.trash_document(siblings["C"])
        with pytest.raises(DocumentNotFoundError):
            document_service.move_document(siblings["B"], siblings["C"], "inside")
