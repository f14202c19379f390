"""Exception hierarchy and failure-message sanitizing."""

import re

MAX_ERROR_LENGTH = 500

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class FinReconError(Exception):
    """Base class for all errors raised by the reconciliation core."""


class UnsupportedFormatError(FinReconError):
    """The file extension or content type cannot be handled."""


class ProfileNotFoundError(FinReconError):
    """No bank format profile is registered for a bank/account-type pair."""


class FileValidationError(FinReconError):
    """An uploaded document failed validation before extraction."""


class FileTooLargeError(FileValidationError):
    """The document exceeds the configured size limit."""


class InvalidFileTypeError(FileValidationError):
    """The declared type is not allowed or does not match the file content."""


class InvalidTransitionError(FinReconError):
    """A document state change is not allowed from its current state."""


def sanitize_message(message: object, limit: int = MAX_ERROR_LENGTH) -> str:
    """Bound and clean a failure message before it leaves the core.

    Control characters are removed, whitespace is collapsed and the result
    is truncated to ``limit`` characters (with a trailing ellipsis).

    Args:
        message: Error text or exception instance.
        limit: Maximum length of the returned string.

    Returns:
        Sanitized single-line message.
    """
    text = _CONTROL_CHARS.sub("", str(message))
    text = " ".join(text.split())
    if len(text) > limit:
        text = text[: max(limit - 3, 0)] + "..."
    return text
