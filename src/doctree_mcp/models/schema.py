"""Data models for the DocTree MCP server."""

import datetime
import uuid
from dataclasses import dataclass, field
from datetime import timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

# Placeholder the UI shows for an empty title; never stored
UNTITLED_PLACEHOLDER = "Untitled"


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    SQLite has no timezone type, so values read back from the database are
    naive; they were written as UTC.

    Args:
        dt_value: A datetime that may or may not have timezone info.

    Returns:
        The same datetime with UTC timezone if it was naive, otherwise unchanged.
    """
    if dt_value is None:
        return None
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


def generate_id() -> str:
    """Generate a new document ID (random UUID4 string)."""
    return str(uuid.uuid4())


def normalize_title(title: Optional[str]) -> str:
    """Trim a title at the write boundary.

    ``None`` and the UI placeholder ``"Untitled"`` are stored as the
    empty string so the placeholder never leaks into the database.
    """
    if title is None:
        return ""
    title = title.strip()
    if title == UNTITLED_PLACEHOLDER:
        return ""
    return title


class MovePosition(str, Enum):
    """Where a moved document lands relative to the drop target."""

    BEFORE = "before"  # Directly above the reference sibling
    AFTER = "after"  # Directly below the reference sibling
    INSIDE_AS_LAST_CHILD = "inside"  # Appended to the target parent's children


class Document(BaseModel):
    """A node in the document tree."""

    id: str = Field(default_factory=generate_id, description="Unique ID of the document")
    title: str = Field(default="", description="Title of the document")
    content: str = Field(default="", description="Opaque editor state")
    emoji: Optional[str] = Field(default=None, description="Icon glyph, None for default")
    parent_id: Optional[str] = Field(
        default=None, description="Parent document ID, None for root level"
    )
    sort_order: int = Field(default=0, ge=0, description="Position among active siblings")
    deleted_at: Optional[datetime.datetime] = Field(
        default=None, description="When the document was trashed (UTC)"
    )
    created_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the document was created (UTC)"
    )
    updated_at: datetime.datetime = Field(
        default_factory=utc_now, description="When the document was last written (UTC)"
    )

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Trim the title and drop the UI placeholder."""
        return normalize_title(v)

    @field_validator("created_at", "updated_at", "deleted_at")
    @classmethod
    def validate_timestamps(cls, v: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        """Treat naive timestamps as UTC."""
        return ensure_timezone_aware(v)

    @property
    def is_trashed(self) -> bool:
        """True when the document sits in the trash."""
        return self.deleted_at is not None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation (ISO 8601 timestamps)."""
        return self.model_dump(mode="json")


@dataclass
class MoveResult:
    """Outcome of a move.

    Attributes:
        document: The moved document as persisted.
        reordered_ids: IDs of siblings whose sort order changed.
        changed: False when the move was a no-op and nothing was written.
    """

    document: Document
    reordered_ids: List[str] = field(default_factory=list)
    changed: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document": self.document.to_dict(),
            "reordered_ids": list(self.reordered_ids),
            "changed": self.changed,
        }


@dataclass
class TrashResult:
    """Outcome of trashing a subtree."""

    document: Document
    trashed_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document": self.document.to_dict(),
            "trashed_ids": list(self.trashed_ids),
        }


@dataclass
class RestoreResult:
    """Outcome of restoring a subtree from the trash."""

    document: Document
    restored_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document": self.document.to_dict(),
            "restored_ids": list(self.restored_ids),
        }


@dataclass
class DeleteResult:
    """Outcome of a permanent delete."""

    deleted_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"deleted_ids": list(self.deleted_ids)}
