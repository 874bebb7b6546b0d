"""Configuration module for the DocTree MCP server."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from doctree_mcp import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls, lives alongside the database
_USER_ENV = Path.home() / ".doctree" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

# Hard ceiling for any page size, whatever the environment asks for
_ABSOLUTE_MAX_LIMIT = 10_000


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class DocTreeConfig(BaseModel):
    """Configuration for the DocTree server."""

    # Base directory for the project
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("DOCTREE_BASE_DIR", "."))
    )
    # Database configuration
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("DOCTREE_DATABASE_PATH", "data/db/doctree.db")
        )
    )
    # When True, uses a private in-memory SQLite database (tests, throwaway runs).
    # Nothing is persisted across restarts.
    in_memory_db: bool = Field(
        default_factory=lambda: _env_flag("DOCTREE_IN_MEMORY_DB", "false")
    )
    # Seconds SQLite waits on a locked database before giving up
    busy_timeout: float = Field(
        default_factory=lambda: float(os.getenv("DOCTREE_BUSY_TIMEOUT", "30"))
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("DOCTREE_SERVER_NAME", "doctree-mcp"))
    server_version: str = Field(default=__version__)
    # Pagination
    list_default_limit: int = Field(
        default_factory=lambda: int(os.getenv("DOCTREE_LIST_DEFAULT_LIMIT", "50"))
    )
    trash_default_limit: int = Field(
        default_factory=lambda: int(os.getenv("DOCTREE_TRASH_DEFAULT_LIMIT", "200"))
    )
    list_max_limit: int = Field(
        default_factory=lambda: int(os.getenv("DOCTREE_LIST_MAX_LIMIT", "500"))
    )
    # Logging
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("DOCTREE_LOG_DIR"))
            if os.getenv("DOCTREE_LOG_DIR")
            else None
        )
    )

    @model_validator(mode="after")
    def _validate_limits(self) -> "DocTreeConfig":
        """Validate pagination settings."""
        if self.list_max_limit < 1:
            raise ValueError("list_max_limit must be >= 1")
        if self.list_max_limit > _ABSOLUTE_MAX_LIMIT:
            logger.warning(
                "list_max_limit=%d is above %d; clamping",
                self.list_max_limit,
                _ABSOLUTE_MAX_LIMIT,
            )
            self.list_max_limit = _ABSOLUTE_MAX_LIMIT
        if self.list_default_limit < 1 or self.trash_default_limit < 1:
            raise ValueError("default page sizes must be >= 1")
        if self.busy_timeout < 0:
            raise ValueError("busy_timeout must be >= 0")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        if self.in_memory_db:
            return "sqlite://"
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def clamp_limit(self, limit: Optional[int], default: int) -> int:
        """Clamp a requested page size into ``1..list_max_limit``."""
        if limit is None:
            limit = default
        return min(max(int(limit), 1), self.list_max_limit)

    @staticmethod
    def clamp_offset(offset: Optional[int]) -> int:
        """Clamp a requested offset to be non-negative."""
        if offset is None:
            return 0
        return max(int(offset), 0)


# Create a global config instance
config = DocTreeConfig()
