"""Tests for the exception hierarchy and message sanitizing."""

from finrecon.utils.errors import (
    FileTooLargeError,
    FileValidationError,
    FinReconError,
    InvalidFileTypeError,
    InvalidTransitionError,
    ProfileNotFoundError,
    UnsupportedFormatError,
    sanitize_message,
)


class TestHierarchy:
    """All errors derive from FinReconError."""

    def test_subclasses(self) -> None:
        for cls in (
            UnsupportedFormatError,
            ProfileNotFoundError,
            FileValidationError,
            InvalidTransitionError,
        ):
            assert issubclass(cls, FinReconError)

    def test_validation_errors(self) -> None:
        assert issubclass(FileTooLargeError, FileValidationError)
        assert issubclass(InvalidFileTypeError, FileValidationError)


class TestSanitizeMessage:
    """Tests for sanitize_message."""

    def test_strips_control_characters(self) -> None:
        assert sanitize_message("bad\x00 value\x07") == "bad value"

    def test_collapses_whitespace(self) -> None:
        assert sanitize_message("line one\n\n  line two") == "line one line two"

    def test_truncates(self) -> None:
        result = sanitize_message("x" * 1000)
        assert len(result) == 500
        assert result.endswith("...")

    def test_custom_limit(self) -> None:
        assert sanitize_message("abcdefghij", limit=6) == "abc..."

    def test_accepts_exceptions(self) -> None:
        assert sanitize_message(ValueError("boom")) == "boom"
