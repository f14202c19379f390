"""Tests for document upload validation."""

import pytest

from finrecon.utils.config import ValidationConfig
from finrecon.utils.errors import FileTooLargeError, FileValidationError, InvalidFileTypeError
from finrecon.validation.file_validator import FileValidator

PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\n"


class TestFileValidator:
    """Tests for FileValidator."""

    def setup_method(self) -> None:
        self.validator = FileValidator()

    def test_valid_pdf(self) -> None:
        self.validator.validate(PDF, "application/pdf")
        assert self.validator.is_valid(PDF, "application/pdf")

    def test_valid_png(self) -> None:
        self.validator.validate(b"\x89PNG\r\n\x1a\n....", "image/png")

    def test_too_large(self) -> None:
        validator = FileValidator(ValidationConfig(max_file_size=10))
        with pytest.raises(FileTooLargeError):
            validator.validate(PDF, "application/pdf")

    def test_reported_size_is_used(self) -> None:
        with pytest.raises(FileTooLargeError):
            self.validator.validate(PDF, "application/pdf", file_size=50 * 1024 * 1024)

    def test_disallowed_type(self) -> None:
        with pytest.raises(InvalidFileTypeError, match="not allowed"):
            self.validator.validate(b"GIF89a", "image/gif")

    def test_magic_mismatch(self) -> None:
        with pytest.raises(InvalidFileTypeError, match="does not match"):
            self.validator.validate(b"\x89PNG\r\n", "application/pdf")

    def test_type_is_case_insensitive(self) -> None:
        self.validator.validate(PDF, "Application/PDF")

    def test_active_content_logged_by_default(self) -> None:
        content = PDF + b"<< /OpenAction << /JS (app.alert(1)) >> >>"
        self.validator.validate(content, "application/pdf")

    def test_active_content_rejected_when_configured(self) -> None:
        validator = FileValidator(ValidationConfig(reject_active_pdf_content=True))
        content = PDF + b"<< /JavaScript (x) >>"
        with pytest.raises(FileValidationError, match="active content"):
            validator.validate(content, "application/pdf")
        assert not validator.is_valid(content, "application/pdf")
