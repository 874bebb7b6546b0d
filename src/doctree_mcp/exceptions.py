"""Custom exceptions for the DocTree MCP server.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Document errors (1xxx)
    DOCUMENT_NOT_FOUND = 1001
    DOCUMENT_WRONG_STATE = 1002
    REFERENCE_NOT_FOUND = 1003
    PARENT_NOT_FOUND = 1004

    # Tree structure errors (2xxx)
    CIRCULAR_REFERENCE = 2001
    SELF_PARENT = 2002
    INVARIANT_VIOLATION = 2003

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_CONNECTION_FAILED = 4004

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    CONFIG_MISSING = 6002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_POSITION = 7002
    INVALID_SORT_ORDER = 7003
    INVALID_FIELD = 7004


class DocTreeError(Exception):
    """Base exception for all DocTree errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class DocumentNotFoundError(DocTreeError):
    """Raised when a document does not exist or is in the wrong lifecycle state.

    ``state`` is set when the row exists but the operation needs the other
    state, e.g. restoring a document that is not in the trash.
    """

    def __init__(
        self,
        document_id: Optional[str],
        message: Optional[str] = None,
        state: Optional[str] = None,
        code: Optional[ErrorCode] = None
    ):
        details: Dict[str, Any] = {"document_id": document_id}
        if state:
            details["state"] = state
        if code is None:
            code = ErrorCode.DOCUMENT_WRONG_STATE if state else ErrorCode.DOCUMENT_NOT_FOUND
        super().__init__(
            message or f"Document not found: {document_id}",
            code=code,
            details=details
        )
        self.document_id = document_id
        self.state = state


class CircularReferenceError(DocTreeError):
    """Raised when a re-parenting would make a document its own ancestor."""

    def __init__(
        self,
        document_id: str,
        parent_id: str,
        message: Optional[str] = None
    ):
        self_parent = document_id == parent_id
        super().__init__(
            message or (
                f"Document '{document_id}' cannot be its own parent"
                if self_parent else
                f"Moving '{document_id}' under '{parent_id}' would create a circular reference"
            ),
            code=ErrorCode.SELF_PARENT if self_parent else ErrorCode.CIRCULAR_REFERENCE,
            details={"document_id": document_id, "parent_id": parent_id}
        )
        self.document_id = document_id
        self.parent_id = parent_id


class InvariantViolationError(DocTreeError):
    """Raised when a write would leave the tree inconsistent.

    Correct code never triggers this; it exists so corruption is surfaced
    and the transaction rolled back instead of being committed.
    """

    def __init__(
        self,
        message: str,
        parent_id: Optional[str] = None,
        sort_orders: Optional[List[int]] = None,
        document_ids: Optional[List[str]] = None
    ):
        details: Dict[str, Any] = {}
        if parent_id is not None:
            details["parent_id"] = parent_id
        if sort_orders is not None:
            details["sort_orders"] = sort_orders[:50]
        if document_ids:
            details["document_ids"] = document_ids[:50]

        super().__init__(message, code=ErrorCode.INVARIANT_VIOLATION, details=details)
        self.parent_id = parent_id
        self.sort_orders = sort_orders
        self.document_ids = document_ids


class ValidationError(DocTreeError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class StorageError(DocTreeError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class ConfigurationError(DocTreeError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key
