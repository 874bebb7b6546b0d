"""Tests for the DocumentService facade."""
import pytest

from doctree_mcp.exceptions import (
    CircularReferenceError,
    DocumentNotFoundError,
    ErrorCode,
    ValidationError,
)
from doctree_mcp.models.schema import MovePosition


class TestDocumentService:
    """End-to-end flows through the service layer."""

    def test_create_prepends_newest_first(self, document_service):
        a = document_service.create_document(title="A")
        b = document_service.create_document(title="B")
        c = document_service.create_document(title="C")

        orders = {d.id: d.sort_order for d in document_service.list_documents()}
        assert orders == {c.id: 0, b.id: 1, a.id: 2}

    def test_nest_then_move_back_to_root(self, document_service, ordered_titles):
        a = document_service.create_document(title="A")
        b = document_service.create_document(title="B")
        document_service.create_document(title="C")

        document_service.move_document(b.id, a.id, MovePosition.INSIDE_AS_LAST_CHILD)
        root = document_service.list_children(None)
        assert [d.title for d in root] == ["C", "A"]
        assert [d.sort_order for d in root] == [0, 1]

        result = document_service.move_document(
            b.id, None, MovePosition.BEFORE, reference_id=a.id
        )
        assert result.document.parent_id is None
        assert ordered_titles() == ["C", "B", "A"]
        assert [d.sort_order for d in document_service.list_children(None)] == [0, 1, 2]
        assert ordered_titles(a.id) == []

    def test_cycle_rejected_and_tree_unchanged(self, document_service):
        root = document_service.create_document(title="root")
        mid = document_service.create_document(title="mid", parent_id=root.id)
        leaf = document_service.create_document(title="leaf", parent_id=mid.id)
        snapshot = {d.id: (d.parent_id, d.sort_order) for d in document_service.list_documents()}

        with pytest.raises(CircularReferenceError):
            document_service.move_document(root.id, leaf.id, MovePosition.INSIDE_AS_LAST_CHILD)

        after = {d.id: (d.parent_id, d.sort_order) for d in document_service.list_documents()}
        assert after == snapshot

    def test_trash_and_restore_chain(self, document_service):
        root = document_service.create_document(title="root")
        mid = document_service.create_document(title="mid", parent_id=root.id)
        leaf = document_service.create_document(title="leaf", parent_id=mid.id)
        ids = [root.id, mid.id, leaf.id]

        document_service.trash_document(root.id)
        assert all(document_service.get_document(i).deleted_at is not None for i in ids)

        document_service.restore_document(root.id)
        docs = [document_service.get_document(i) for i in ids]
        assert all(d.deleted_at is None for d in docs)
        assert docs[1].parent_id == root.id
        assert docs[2].parent_id == mid.id

    def test_create_under_missing_parent(self, document_service):
        with pytest.raises(DocumentNotFoundError) as exc_info:
            document_service.create_document(title="x", parent_id="missing")
        assert exc_info.value.code == ErrorCode.PARENT_NOT_FOUND

    def test_create_under_trashed_parent(self, document_service):
        parent = document_service.create_document(title="p")
        document_service.trash_document(parent.id)
        with pytest.raises(DocumentNotFoundError) as exc_info:
            document_service.create_document(title="x", parent_id=parent.id)
        assert exc_info.value.state == "trashed"
        assert document_service.count_documents()["active"] == 0

    def test_update_content_fields(self, document_service):
        doc = document_service.create_document(title="draft", emoji="📝")
        updated = document_service.update_document(doc.id, title="final", content="{}", emoji=None)
        assert updated.title == "final"
        assert updated.content == "{}"
        assert updated.emoji is None
        assert updated.sort_order == doc.sort_order

    def test_update_allowed_in_trash(self, document_service):
        doc = document_service.create_document(title="old")
        document_service.trash_document(doc.id)
        assert document_service.update_document(doc.id, title="renamed").title == "renamed"

    @pytest.mark.parametrize("field", ["parent_id", "sort_order", "deleted_at", "id"])
    def test_update_rejects_structural_fields(self, document_service, field):
        doc = document_service.create_document(title="x")
        with pytest.raises(ValidationError) as exc_info:
            document_service.update_document(doc.id, **{field: None})
        assert exc_info.value.code == ErrorCode.INVALID_FIELD

    def test_update_missing(self, document_service):
        with pytest.raises(DocumentNotFoundError):
            document_service.update_document("missing", title="x")

    def test_list_pagination(self, document_service):
        for i in range(5):
            document_service.create_document(title=f"d{i}")
        page = document_service.list_documents(limit=2, offset=2)
        assert [d.title for d in page] == ["d2", "d1"]

    def test_list_trashed(self, document_service):
        a = document_service.create_document(title="a")
        b = document_service.create_document(title="b")
        document_service.trash_document(a.id)
        document_service.trash_document(b.id)
        assert [d.id for d in document_service.list_trashed()] == [b.id, a.id]
        assert document_service.list_documents() == []

    def test_get_tree(self, document_service, make_tree):
        ids = make_tree([("A", [("A1", []), ("A2", [])]), ("B", [])])
        document_service.trash_document(ids["A2"])

        tree = document_service.get_tree()
        assert [n["document"].title for n in tree] == ["A", "B"]
        assert [n["document"].title for n in tree[0]["children"]] == ["A1"]
        assert tree[1]["children"] == []

    def test_get_ancestors(self, document_service, make_tree):
        ids = make_tree([("A", [("B", [("C", [])])])])
        crumbs = document_service.get_ancestors(ids["C"])
        assert [d.title for d in crumbs] == ["A", "B"]


class TestIntegrityMaintenance:
    """Tests for the audit and repair helpers."""

    def test_healthy_tree(self, document_service, make_tree):
        make_tree([("A", [("A1", [])]), ("B", [])])
        report = document_service.check_tree_integrity()
        assert report.healthy
        assert report.active_count == 3

    def test_repair_closes_gaps(self, document_service, make_tree, ordered_titles):
        ids = make_tree([("A", []), ("B", []), ("C", [])])
        # Simulate legacy data with gaps
        repo = document_service.repository
        repo.update_fields(ids["B"], {"sort_order": 5})
        repo.update_fields(ids["C"], {"sort_order": 9})

        report = document_service.check_tree_integrity()
        assert not report.healthy
        assert report.gapped_groups == {"<root>": [0, 5, 9]}

        assert document_service.repair_sort_orders() == 2
        assert ordered_titles() == ["A", "B", "C"]
        assert document_service.check_tree_integrity().healthy

    def test_audit_reports_dangling_and_orphaned(self, document_service):
        repo = document_service.repository
        repo.create("ghost", title="dangling")
        parent = repo.create(None, title="parent")
        repo.create(parent.id, title="child")
        repo.update_fields(parent.id, {"deleted_at": parent.created_at})

        report = document_service.check_tree_integrity()
        assert len(report.dangling_parents) == 1
        assert len(report.active_under_trashed) == 1
