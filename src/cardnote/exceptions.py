"""Custom exceptions for cardnote.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Card errors (1xxx)
    CARD_NOT_FOUND = 1001

    # Reference errors (2xxx)
    REFERENCE_MISSING_ID = 2001
    REFERENCE_ORPHAN_COMMENT = 2002

    # Tag errors (3xxx)
    TAG_NOT_FOUND = 3001

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class CardNoteError(Exception):
    """Base exception for all cardnote errors.

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


class InvalidReferenceError(CardNoteError):
    """Raised when card text violates the reference annotation invariant.

    Only validation mode raises this; repair mode fixes the text instead.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.REFERENCE_MISSING_ID,
        offset: Optional[int] = None,
        fragment: Optional[str] = None
    ):
        details: Dict[str, Any] = {}
        if offset is not None:
            details["offset"] = offset
        if fragment:
            details["fragment"] = fragment[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.offset = offset
        self.fragment = fragment


class CardNotFoundError(CardNoteError):
    """Raised when a card cannot be found."""

    def __init__(self, card_id: int, message: Optional[str] = None):
        super().__init__(
            message or f"Card with ID '{card_id}' not found",
            code=ErrorCode.CARD_NOT_FOUND,
            details={"card_id": card_id}
        )
        self.card_id = card_id


class TagNotFoundError(CardNoteError):
    """Raised when a tag cannot be found."""

    def __init__(self, tag_id: int, message: Optional[str] = None):
        super().__init__(
            message or f"Tag with ID '{tag_id}' not found",
            code=ErrorCode.TAG_NOT_FOUND,
            details={"tag_id": tag_id}
        )
        self.tag_id = tag_id


class StorageError(CardNoteError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class ValidationError(CardNoteError):
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
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
