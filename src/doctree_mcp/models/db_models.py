"""SQLAlchemy database models for the DocTree MCP server."""
import datetime

from sqlalchemy import (Column, DateTime, Index, Integer, String, Text,
                        create_engine, event)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from doctree_mcp.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DBDocument(Base):
    """Database model for a document.

    ``parent_id`` is a plain self-reference without a SQL foreign key:
    trashed rows keep pointing at their parent, and parent existence is
    enforced by the tree engine instead.
    """
    __tablename__ = "documents"
    id = Column(String(36), primary_key=True)
    title = Column(Text, nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    emoji = Column(String(32), nullable=True)
    parent_id = Column(String(36), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_documents_parent_sort", "parent_id", "sort_order"),
        Index("ix_documents_deleted_at", "deleted_at"),
    )

    def __repr__(self) -> str:
        """Return string representation of document."""
        return (
            f"<Document(id='{self.id}', parent='{self.parent_id}', "
            f"sort_order={self.sort_order}, trashed={self.deleted_at is not None})>"
        )


def create_db_engine(db_url: str = None):
    """Create an engine with hardened SQLite configuration.

    Connection setup:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode (good balance of safety vs speed)
    - busy_timeout so a second process waits instead of failing
    - QueuePool for file databases, StaticPool for in-memory ones
    """
    db_url = db_url or config.get_db_url()
    in_memory = db_url in ("sqlite://", "sqlite:///:memory:")

    if in_memory:
        # One shared connection, otherwise every session sees an empty database
        engine = create_engine(
            db_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        # SQLite is single-writer, so a small pool is ideal
        engine = create_engine(
            db_url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            pool_pre_ping=True,
            connect_args={"timeout": config.busy_timeout, "check_same_thread": False},
        )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        if not in_memory:
            # WAL mode: writes go to separate journal, preventing corruption on crash
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute(f"PRAGMA busy_timeout={int(config.busy_timeout * 1000)}")
        cursor.close()

    return engine


def init_db(db_url: str = None):
    """Create the engine and make sure the schema exists.

    Returns:
        The configured SQLAlchemy engine.
    """
    engine = create_db_engine(db_url)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine=None):
    """Get a session factory for the database."""
    if engine is None:
        engine = create_db_engine()
    return sessionmaker(bind=engine, expire_on_commit=False)
