"""Repository for document storage and retrieval."""
import datetime
import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from doctree_mcp.config import config
from doctree_mcp.exceptions import (
    DocumentNotFoundError,
    ErrorCode,
    StorageError,
    ValidationError,
)
from doctree_mcp.models.db_models import DBDocument, get_session_factory, init_db
from doctree_mcp.models.schema import (
    Document,
    ensure_timezone_aware,
    generate_id,
    normalize_title,
    utc_now,
)
from doctree_mcp.storage.base import Repository

logger = logging.getLogger(__name__)

# One writer per engine, shared by every repository bound to it
_engine_write_locks: "weakref.WeakKeyDictionary[Any, threading.RLock]" = (
    weakref.WeakKeyDictionary()
)
_engine_write_locks_guard = threading.Lock()


def write_lock_for(engine) -> threading.RLock:
    """Return the write lock shared by all repositories on ``engine``."""
    with _engine_write_locks_guard:
        lock = _engine_write_locks.get(engine)
        if lock is None:
            lock = threading.RLock()
            _engine_write_locks[engine] = lock
        return lock


def _parent_clause(parent_id: Optional[str]):
    """WHERE clause for one sibling group; root level is ``parent_id IS NULL``."""
    if parent_id is None:
        return DBDocument.parent_id.is_(None)
    return DBDocument.parent_id == parent_id


class DocumentRepository(Repository[Document]):
    """Repository for document rows.

    Pure storage: CRUD primitives with no tree policy. Callers that touch
    more than one row open :meth:`transaction` and pass the session to
    every primitive so validation and writes share one snapshot and
    commit or roll back together.
    """

    UPDATABLE_FIELDS = frozenset(
        {"title", "content", "emoji", "parent_id", "sort_order", "deleted_at"}
    )

    def __init__(self, engine=None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, uses default from config.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)
        # Single-writer queue: one tree mutation at a time per engine
        self._write_lock = write_lock_for(self.engine)
        logger.info("DocumentRepository initialized")

    # ========== Sessions ==========

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Run a block of reads and writes as one atomic unit.

        Holds the write lock for the whole block. Commits on normal exit,
        rolls back on any exception and re-raises it. Database errors are
        wrapped in :class:`StorageError`. Do not nest.
        """
        with self._write_lock:
            session = self.session_factory()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Transaction rolled back: {e}")
                raise StorageError(
                    "Database write failed",
                    operation="transaction",
                    code=ErrorCode.STORAGE_WRITE_FAILED,
                    original_error=e,
                ) from e
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

    @contextmanager
    def _scope(self, session: Optional[Session], write: bool = False) -> Iterator[Session]:
        """Use the caller's session, or open a short-lived one."""
        if session is not None:
            yield session
            return
        if write:
            with self.transaction() as own:
                yield own
            return
        try:
            with self.session_factory() as own:
                yield own
        except SQLAlchemyError as e:
            raise StorageError(
                "Database read failed",
                operation="read",
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    # ========== Reads ==========

    def get(self, id: str, session: Optional[Session] = None) -> Optional[Document]:
        """Get a document by ID, trashed or not.

        Returns:
            Document if found, None otherwise.
        """
        with self._scope(session) as s:
            db_doc = s.get(DBDocument, id)
            if db_doc is None:
                return None
            return self._db_to_model(db_doc)

    def get_many(
        self, ids: Iterable[str], session: Optional[Session] = None
    ) -> List[Document]:
        """Get several documents at once; missing IDs are skipped."""
        ids = list(ids)
        if not ids:
            return []
        with self._scope(session) as s:
            rows = s.execute(
                select(DBDocument).where(DBDocument.id.in_(ids))
            ).scalars().all()
            by_id = {row.id: row for row in rows}
            return [self._db_to_model(by_id[i]) for i in ids if i in by_id]

    def get_all(self, session: Optional[Session] = None) -> List[Document]:
        """Get every row, active and trashed."""
        with self._scope(session) as s:
            rows = s.execute(
                select(DBDocument).order_by(DBDocument.created_at, DBDocument.id)
            ).scalars().all()
            return [self._db_to_model(row) for row in rows]

    def list_active_by_parent(
        self, parent_id: Optional[str], session: Optional[Session] = None
    ) -> List[Document]:
        """Active documents of one sibling group, in display order."""
        with self._scope(session) as s:
            rows = s.execute(
                select(DBDocument)
                .where(_parent_clause(parent_id), DBDocument.deleted_at.is_(None))
                .order_by(
                    DBDocument.sort_order.asc(),
                    DBDocument.updated_at.desc(),
                    DBDocument.id,
                )
            ).scalars().all()
            return [self._db_to_model(row) for row in rows]

    def list_children(
        self,
        parent_id: str,
        include_trashed: bool = False,
        session: Optional[Session] = None,
    ) -> List[Document]:
        """Direct children of a document."""
        with self._scope(session) as s:
            query = select(DBDocument).where(DBDocument.parent_id == parent_id)
            if not include_trashed:
                query = query.where(DBDocument.deleted_at.is_(None))
            query = query.order_by(DBDocument.sort_order.asc(), DBDocument.id)
            rows = s.execute(query).scalars().all()
            return [self._db_to_model(row) for row in rows]

    def list_active(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        session: Optional[Session] = None,
    ) -> List[Document]:
        """Page through active documents.

        Ordered by ``sort_order`` ascending, most recently updated first on
        ties. ``limit`` is clamped to ``1..list_max_limit`` and ``offset``
        to ``>= 0``.
        """
        limit = config.clamp_limit(limit, config.list_default_limit)
        offset = config.clamp_offset(offset)
        with self._scope(session) as s:
            rows = s.execute(
                select(DBDocument)
                .where(DBDocument.deleted_at.is_(None))
                .order_by(
                    DBDocument.sort_order.asc(),
                    DBDocument.updated_at.desc(),
                    DBDocument.id,
                )
                .limit(limit)
                .offset(offset)
            ).scalars().all()
            return [self._db_to_model(row) for row in rows]

    def list_trashed(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        session: Optional[Session] = None,
    ) -> List[Document]:
        """Page through trashed documents, most recently trashed first."""
        limit = config.clamp_limit(limit, config.trash_default_limit)
        offset = config.clamp_offset(offset)
        with self._scope(session) as s:
            rows = s.execute(
                select(DBDocument)
                .where(DBDocument.deleted_at.is_not(None))
                .order_by(DBDocument.deleted_at.desc(), DBDocument.id)
                .limit(limit)
                .offset(offset)
            ).scalars().all()
            return [self._db_to_model(row) for row in rows]

    def count_active(self, session: Optional[Session] = None) -> int:
        """Number of active documents."""
        with self._scope(session) as s:
            return s.scalar(
                select(func.count()).select_from(DBDocument)
                .where(DBDocument.deleted_at.is_(None))
            ) or 0

    def count_trashed(self, session: Optional[Session] = None) -> int:
        """Number of trashed documents."""
        with self._scope(session) as s:
            return s.scalar(
                select(func.count()).select_from(DBDocument)
                .where(DBDocument.deleted_at.is_not(None))
            ) or 0

    def latest_deleted_at(
        self, session: Optional[Session] = None
    ) -> Optional[datetime.datetime]:
        """Most recent trash stamp in the table, or None if nothing is trashed."""
        with self._scope(session) as s:
            return ensure_timezone_aware(s.scalar(select(func.max(DBDocument.deleted_at))))

    def active_parent_ids(self, session: Optional[Session] = None) -> List[Optional[str]]:
        """Every ``parent_id`` value that has at least one active child."""
        with self._scope(session) as s:
            return list(s.execute(
                select(DBDocument.parent_id)
                .where(DBDocument.deleted_at.is_(None))
                .distinct()
            ).scalars().all())

    def exists(self, id: str, session: Optional[Session] = None) -> bool:
        """Check whether a row exists, trashed or not."""
        with self._scope(session) as s:
            return s.get(DBDocument, id) is not None

    # ========== Writes ==========

    def create(
        self,
        parent_id: Optional[str],
        title: Optional[str] = "",
        content: str = "",
        emoji: Optional[str] = None,
        sort_order: int = 0,
        session: Optional[Session] = None,
    ) -> Document:
        """Insert a new active row.

        No sibling shifting happens here; the caller makes room first.

        Returns:
            The created document.
        """
        now = utc_now()
        db_doc = DBDocument(
            id=generate_id(),
            title=normalize_title(title),
            content=content or "",
            emoji=emoji,
            parent_id=parent_id,
            sort_order=sort_order,
            deleted_at=None,
            created_at=now,
            updated_at=now,
        )
        with self._scope(session, write=True) as s:
            s.add(db_doc)
            s.flush()
            logger.debug(f"Created document: {db_doc.id} (parent={parent_id})")
            return self._db_to_model(db_doc)

    def update_fields(
        self,
        id: str,
        patch: Dict[str, Any],
        session: Optional[Session] = None,
    ) -> Document:
        """Apply a partial update to one row and bump ``updated_at``.

        Raises:
            DocumentNotFoundError: If the row does not exist.
            ValidationError: If the patch names a field that cannot be written.
        """
        unknown = set(patch) - self.UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update field(s): {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
                code=ErrorCode.INVALID_FIELD,
            )
        if "sort_order" in patch and patch["sort_order"] < 0:
            raise ValidationError(
                "sort_order must be non-negative",
                field="sort_order",
                value=patch["sort_order"],
                code=ErrorCode.INVALID_SORT_ORDER,
            )

        with self._scope(session, write=True) as s:
            db_doc = s.get(DBDocument, id)
            if db_doc is None:
                raise DocumentNotFoundError(id)
            for key, value in patch.items():
                if key == "title":
                    value = normalize_title(value)
                elif key == "content":
                    value = value or ""
                setattr(db_doc, key, value)
            db_doc.updated_at = utc_now()
            s.flush()
            return self._db_to_model(db_doc)

    def delete(self, id: str, session: Optional[Session] = None) -> None:
        """Hard-delete a single row. Children are not touched; missing IDs are ignored."""
        with self._scope(session, write=True) as s:
            s.execute(delete(DBDocument).where(DBDocument.id == id))
            logger.debug(f"Deleted document row: {id}")

    def delete_many(self, ids: Iterable[str], session: Optional[Session] = None) -> int:
        """Hard-delete several rows.

        Returns:
            Number of rows removed.
        """
        ids = list(ids)
        if not ids:
            return 0
        with self._scope(session, write=True) as s:
            result = s.execute(delete(DBDocument).where(DBDocument.id.in_(ids)))
            return result.rowcount or 0

    def _db_to_model(self, db_doc: DBDocument) -> Document:
        """Convert DBDocument to Document model."""
        return Document(
            id=db_doc.id,
            title=db_doc.title or "",
            content=db_doc.content or "",
            emoji=db_doc.emoji,
            parent_id=db_doc.parent_id,
            sort_order=db_doc.sort_order,
            deleted_at=ensure_timezone_aware(db_doc.deleted_at),
            created_at=ensure_timezone_aware(db_doc.created_at),
            updated_at=ensure_timezone_aware(db_doc.updated_at),
        )
