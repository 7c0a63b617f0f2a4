"""Exceptions for the Notetree MCP server.

Every error carries an ``ErrorCode`` and a ``details`` dict, so the
orchestrator can report a rejection or rollback without parsing messages.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Folder errors (1xxx)
    FOLDER_NOT_FOUND = 1001
    FOLDER_NAME_REQUIRED = 1002

    # Note errors (2xxx)
    NOTE_NOT_FOUND = 2001
    NOTE_TITLE_REQUIRED = 2002

    # Tag errors (3xxx)
    TAG_NOT_FOUND = 3001
    TAG_INVALID = 3002
    TAG_ALREADY_EXISTS = 3003

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    PERSISTENCE_REJECTED = 4004

    # Tree consistency errors (5xxx)
    SELF_PARENT = 5001
    CYCLE_DETECTED = 5002
    TARGET_NOT_FOUND = 5003

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_ID = 7002
    INVALID_POSITION = 7003
    INVALID_REORDER = 7004


class NotetreeError(Exception):
    """Base exception for all Notetree errors.

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


class ValidationError(NotetreeError):
    """Raised when input is rejected before any persistence attempt."""

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
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class ConsistencyError(NotetreeError):
    """Raised when a change would break the folder hierarchy.

    Covers self-parenting, cycles, and moves onto a nonexistent parent.
    """

    def __init__(
        self,
        message: str,
        item_id: Optional[int] = None,
        target_id: Optional[int] = None,
        code: ErrorCode = ErrorCode.CYCLE_DETECTED
    ):
        details: Dict[str, Any] = {}
        if item_id is not None:
            details["item_id"] = item_id
        if target_id is not None:
            details["target_id"] = target_id

        super().__init__(message, code=code, details=details)
        self.item_id = item_id
        self.target_id = target_id


class ItemNotFoundError(NotetreeError):
    """A stored folder or note is missing. Subclasses set the noun and code."""

    noun = "Item"
    id_key = "item_id"
    not_found_code = ErrorCode.VALIDATION_FAILED

    def __init__(self, item_id: int, message: Optional[str] = None):
        super().__init__(
            message or f"{self.noun} with ID '{item_id}' not found",
            code=self.not_found_code,
            details={self.id_key: item_id},
        )
        self.item_id = item_id


class FolderNotFoundError(ItemNotFoundError):
    noun = "Folder"
    id_key = "folder_id"
    not_found_code = ErrorCode.FOLDER_NOT_FOUND


class NoteNotFoundError(ItemNotFoundError):
    noun = "Note"
    id_key = "note_id"
    not_found_code = ErrorCode.NOTE_NOT_FOUND


class TagError(NotetreeError):
    """Raised for tag-related errors."""

    def __init__(
        self,
        message: str,
        tag_name: Optional[str] = None,
        code: ErrorCode = ErrorCode.TAG_INVALID
    ):
        details = {}
        if tag_name:
            details["tag_name"] = tag_name

        super().__init__(message, code=code, details=details)
        self.tag_name = tag_name


class PersistenceError(NotetreeError):
    """Raised when the persistence backend rejects or fails a call."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.PERSISTENCE_REJECTED,
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


class ConfigurationError(NotetreeError):
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
