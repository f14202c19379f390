"""Upload checks for invoice documents: size, declared type and magic bytes."""

from finrecon.utils.config import ValidationConfig
from finrecon.utils.errors import FileTooLargeError, FileValidationError, InvalidFileTypeError
from finrecon.utils.logger import get_logger

logger = get_logger(__name__)

MAGIC_BYTES: dict[str, tuple[bytes, ...]] = {
    "application/pdf": (b"%PDF",),
    "image/png": (b"\x89PNG",),
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/jpg": (b"\xff\xd8\xff",),
}

ACTIVE_PDF_MARKERS: tuple[bytes, ...] = (
    b"/JavaScript",
    b"/JS",
    b"/AA",
    b"/OpenAction",
    b"/Launch",
)


class FileValidator:
    """Validates a document before any extraction work is done.

    Args:
        config: Size limit, allowed types and the active-content policy.
    """

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self.config = config or ValidationConfig()

    def validate(self, content: bytes, content_type: str, file_size: int | None = None) -> None:
        """Run every check in order.

        Args:
            content: Raw document bytes.
            content_type: Declared media type.
            file_size: Reported size; defaults to ``len(content)``.

        Raises:
            FileTooLargeError: If the file exceeds the size limit.
            InvalidFileTypeError: If the type is not allowed or the content
                does not start with the declared type's magic bytes.
            FileValidationError: If active PDF content is configured to be
                rejected and is present.
        """
        content_type = (content_type or "").lower()
        self._check_size(file_size if file_size is not None else len(content))
        self._check_content_type(content_type)
        self._check_magic_bytes(content, content_type)
        self._check_active_content(content, content_type)

    def is_valid(self, content: bytes, content_type: str) -> bool:
        try:
            self.validate(content, content_type)
        except FileValidationError:
            return False
        return True

    def _check_size(self, size: int) -> None:
        limit = self.config.max_file_size
        if size > limit:
            raise FileTooLargeError(f"File size {size} exceeds maximum {limit} bytes")

    def _check_content_type(self, content_type: str) -> None:
        if content_type not in self.config.allowed_content_types:
            raise InvalidFileTypeError(f"Content type {content_type or 'unknown'} not allowed")

    def _check_magic_bytes(self, content: bytes, content_type: str) -> None:
        expected = MAGIC_BYTES.get(content_type)
        if expected and not content[:10].startswith(expected):
            raise InvalidFileTypeError(
                f"File content does not match declared type {content_type}"
            )

    def _check_active_content(self, content: bytes, content_type: str) -> list[str]:
        if content_type != "application/pdf":
            return []

        found = [m.decode() for m in ACTIVE_PDF_MARKERS if m in content]
        for marker in found:
            logger.warning("Potentially malicious PDF detected with pattern: %s", marker)
        if found and self.config.reject_active_pdf_content:
            raise FileValidationError(f"PDF contains active content: {', '.join(found)}")
        return found
