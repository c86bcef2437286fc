"""Tests for the exception hierarchy."""
from cardnote.exceptions import (
    CardNoteError,
    CardNotFoundError,
    ErrorCode,
    InvalidReferenceError,
    StorageError,
    TagNotFoundError,
    ValidationError,
)


class TestExceptions:
    """Tests for error codes and serialization."""

    def test_base_error_defaults(self):
        error = CardNoteError("boom")
        assert error.code == ErrorCode.VALIDATION_FAILED
        assert error.details == {}
        assert str(error) == "[VALIDATION_FAILED] boom"

    def test_str_includes_details(self):
        error = CardNotFoundError(7)
        assert str(error) == "[CARD_NOT_FOUND] Card with ID '7' not found (card_id=7)"

    def test_to_dict(self):
        error = TagNotFoundError(3)
        assert error.to_dict() == {
            "error": "TagNotFoundError",
            "code": 3001,
            "code_name": "TAG_NOT_FOUND",
            "message": "Tag with ID '3' not found",
            "details": {"tag_id": 3},
        }

    def test_invalid_reference_truncates_fragment(self):
        fragment = "[[" + "x" * 200 + "]]()"
        error = InvalidReferenceError("missing ref id", offset=4, fragment=fragment)
        assert error.code == ErrorCode.REFERENCE_MISSING_ID
        assert error.details["offset"] == 4
        assert len(error.details["fragment"]) == 100
        assert error.fragment == fragment
        assert isinstance(error, CardNoteError)

    def test_storage_error_keeps_cause(self):
        cause = RuntimeError("disk full")
        error = StorageError(
            "write failed", operation="create_tag",
            code=ErrorCode.STORAGE_WRITE_FAILED, original_error=cause,
        )
        assert error.details == {"operation": "create_tag", "original_error": "disk full"}
        assert error.original_error is cause

    def test_validation_error_details(self):
        error = ValidationError("bad", field="project_id", value=9)
        assert error.details == {"field": "project_id", "value": "9"}
