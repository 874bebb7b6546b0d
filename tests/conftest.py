"""Common test fixtures for the DocTree MCP server."""

import tempfile
from pathlib import Path

import pytest

from doctree_mcp.config import config
from doctree_mcp.models.db_models import init_db
from doctree_mcp.observability import metrics
from doctree_mcp.services.document_service import DocumentService
from doctree_mcp.storage.document_repository import DocumentRepository


@pytest.fixture(autouse=True)
def _isolated_metrics(tmp_path, monkeypatch):
    """Keep metrics persistence out of the user's home directory."""
    monkeypatch.setattr(metrics, "_metrics_file", tmp_path / "metrics.json")
    monkeypatch.setattr(metrics, "_auto_save_interval", 0)
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def temp_db_dir():
    """Create a temporary directory for the database."""
    with tempfile.TemporaryDirectory() as db_dir:
        yield Path(db_dir)


@pytest.fixture
def test_config(temp_db_dir, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    database_path = temp_db_dir / "test_doctree.db"
    monkeypatch.setattr(config, "base_dir", temp_db_dir)
    monkeypatch.setattr(config, "database_path", database_path)
    monkeypatch.setattr(config, "in_memory_db", False)
    yield config


@pytest.fixture
def engine(test_config):
    """File-backed SQLite engine with the schema created."""
    database_path = test_config.get_absolute_path(test_config.database_path)
    engine = init_db(f"sqlite:///{database_path}")
    yield engine
    engine.dispose()


@pytest.fixture
def document_repository(engine):
    """Create a test document repository."""
    yield DocumentRepository(engine=engine)


@pytest.fixture
def document_service(document_repository):
    """Create a test DocumentService."""
    yield DocumentService(repository=document_repository)


@pytest.fixture
def make_tree(document_service):
    """Build a tree from a nested layout and return ``{title: id}``.

    The layout is a list of ``(title, children)`` tuples; children are created
    so that the final display order matches the layout order.
    """
    def build(layout, parent_id=None, ids=None):
        ids = {} if ids is None else ids
        # Creation prepends, so create in reverse to end up in layout order
        for title, children in reversed(layout):
            doc = document_service.create_document(title=title, parent_id=parent_id)
            ids[title] = doc.id
            build(children, parent_id=doc.id, ids=ids)
        return ids

    return build


@pytest.fixture
def ordered_titles(document_service):
    """Titles of the active children of a parent, in display order."""
    def titles(parent_id=None):
        return [d.title for d in document_service.list_children(parent_id)]

    return titles
