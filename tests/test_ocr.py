"""Tests for the OCR fallback: tesseract wrapper, PDF rendering and the service."""

import io
from unittest.mock import MagicMock, patch

import pytest
import pytesseract
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPopplerTimeoutError
from PIL import Image

from finrecon.ocr.ocr_service import PAGE_BREAK, OCRService
from finrecon.ocr.pdf_handler import PDFConversionError, PDFHandler
from finrecon.ocr.tesseract_engine import OCRUnavailableError, TesseractEngine, clean_ocr_text


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (120, 60), "white").save(buffer, format="PNG")
    return buffer.getvalue()


class TestCleanOcrText:
    """Tests for clean_ocr_text."""

    def test_collapses_whitespace(self) -> None:
        assert clean_ocr_text("Total   Rs 500\r\n\n\n\nThanks\f") == "Total Rs 500\n\nThanks"

    def test_keeps_rupee_and_devanagari(self) -> None:
        assert clean_ocr_text("कुल ₹500") == "कुल ₹500"

    def test_drops_control_characters(self) -> None:
        assert clean_ocr_text("Inv\x0coice\x07") == "Inv\noice"


class TestTesseractEngine:
    """Tests for TesseractEngine with pytesseract mocked."""

    def setup_method(self) -> None:
        self.engine = TesseractEngine(languages="eng+hin", fallback_language="eng", timeout=5)
        self.image = Image.new("RGB", (10, 10))

    @patch("finrecon.ocr.tesseract_engine.pytesseract.image_to_string")
    def test_primary_language(self, mock_ocr: MagicMock) -> None:
        mock_ocr.return_value = "Invoice  Total\n"
        text, lang = self.engine.extract_text(self.image)
        assert text == "Invoice Total"
        assert lang == "eng+hin"
        assert mock_ocr.call_args.kwargs["config"] == "--oem 3 --psm 3"
        assert mock_ocr.call_args.kwargs["timeout"] == 5

    @patch("finrecon.ocr.tesseract_engine.pytesseract.image_to_string")
    def test_fallback_language(self, mock_ocr: MagicMock) -> None:
        mock_ocr.side_effect = [pytesseract.TesseractError(1, "hin.traineddata missing"), "Total"]
        text, lang = self.engine.extract_text(self.image)
        assert text == "Total"
        assert lang == "eng"
        assert mock_ocr.call_args.kwargs["lang"] == "eng"

    @patch("finrecon.ocr.tesseract_engine.pytesseract.image_to_string")
    def test_both_languages_fail(self, mock_ocr: MagicMock) -> None:
        mock_ocr.side_effect = pytesseract.TesseractError(1, "boom")
        with pytest.raises(RuntimeError, match="Tesseract failed"):
            self.engine.extract_text(self.image)

    @patch("finrecon.ocr.tesseract_engine.pytesseract.image_to_string")
    def test_binary_missing(self, mock_ocr: MagicMock) -> None:
        mock_ocr.side_effect = pytesseract.TesseractNotFoundError()
        with pytest.raises(OCRUnavailableError):
            self.engine.extract_text(self.image)

    @patch("finrecon.ocr.tesseract_engine.pytesseract.get_tesseract_version")
    def test_is_available(self, mock_version: MagicMock) -> None:
        assert self.engine.is_available() is True
        mock_version.side_effect = pytesseract.TesseractNotFoundError()
        assert self.engine.is_available() is False


class TestPDFHandler:
    """Tests for PDFHandler with pdf2image mocked."""

    @patch("finrecon.ocr.pdf_handler.convert_from_bytes")
    def test_renders_leading_pages(self, mock_convert: MagicMock) -> None:
        mock_convert.return_value = [Image.new("RGB", (10, 10))] * 2
        images = PDFHandler(dpi=200, max_pages=2).pdf_to_images(b"%PDF")
        assert len(images) == 2
        kwargs = mock_convert.call_args.kwargs
        assert kwargs["dpi"] == 200
        assert kwargs["first_page"] == 1
        assert kwargs["last_page"] == 2

    @patch("finrecon.ocr.pdf_handler.convert_from_bytes")
    def test_poppler_missing(self, mock_convert: MagicMock) -> None:
        mock_convert.side_effect = PDFInfoNotInstalledError()
        with pytest.raises(PDFConversionError, match="poppler-utils"):
            PDFHandler().pdf_to_images(b"%PDF")

    @patch("finrecon.ocr.pdf_handler.convert_from_bytes")
    def test_poppler_timeout(self, mock_convert: MagicMock) -> None:
        mock_convert.side_effect = PDFPopplerTimeoutError("timeout")
        with pytest.raises(PDFConversionError, match="timed out after 30s"):
            PDFHandler(timeout=30).pdf_to_images(b"%PDF")


class TestOCRService:
    """Tests for OCRService with a stub engine and PDF handler."""

    def setup_method(self) -> None:
        self.engine = MagicMock(spec=TesseractEngine)
        self.engine.is_available.return_value = True
        self.pdf_handler = MagicMock(spec=PDFHandler)
        self.service = OCRService(engine=self.engine, pdf_handler=self.pdf_handler)

    def test_tesseract_missing(self) -> None:
        self.engine.is_available.return_value = False
        result = self.service.extract(b"%PDF", "scan.pdf")
        assert result.ocr_available is False
        assert result.text == ""

    def test_pdf_pages_joined(self) -> None:
        self.pdf_handler.pdf_to_images.return_value = ["page1", "page2"]
        self.engine.extract_text.side_effect = [("first", "eng+hin"), ("second", "eng+hin")]

        result = self.service.extract(b"%PDF", "scan.pdf")

        assert result.text == f"first{PAGE_BREAK}second"
        assert result.pages_processed == 2
        assert result.language == "eng+hin"
        assert result.error is None

    def test_failing_page_recorded(self) -> None:
        self.pdf_handler.pdf_to_images.return_value = ["page1", "page2"]
        self.engine.extract_text.side_effect = [RuntimeError("timeout"), ("second", "eng")]

        result = self.service.extract(b"%PDF", "scan.pdf")

        assert result.text == "second"
        assert "page 1: timeout" in result.error

    def test_conversion_error_is_soft(self) -> None:
        self.pdf_handler.pdf_to_images.side_effect = PDFConversionError("Install poppler-utils.")
        result = self.service.extract(b"%PDF", "scan.pdf")
        assert result.text == ""
        assert "poppler" in result.error

    def test_image(self) -> None:
        self.engine.extract_text.return_value = ("Receipt total 250", "eng+hin")
        result = self.service.extract(_png_bytes(), "receipt.png", "image/png")
        assert result.text == "Receipt total 250"
        assert result.pages_processed == 1
        self.pdf_handler.pdf_to_images.assert_not_called()

    def test_unsupported_type(self) -> None:
        result = self.service.extract(b"hello", "notes.txt", "text/plain")
        assert result.error == "Unsupported file type for OCR"

    @patch("finrecon.ocr.pdf_handler.convert_from_bytes")
    def test_render_timeout_is_soft(self, mock_convert: MagicMock) -> None:
        mock_convert.side_effect = PDFPopplerTimeoutError("timeout")
        service = OCRService(engine=self.engine, pdf_handler=PDFHandler(timeout=30))

        result = service.extract(b"%PDF", "scan.pdf")

        assert result.text == ""
        assert "timed out" in result.error
        self.engine.extract_text.assert_not_called()

    @patch("finrecon.ocr.ocr_service.Image.open")
    def test_oversized_image_is_soft(self, mock_open: MagicMock) -> None:
        mock_open.side_effect = Image.DecompressionBombError("image too large")

        result = self.service.extract(_png_bytes(), "receipt.png", "image/png")

        assert result.text == ""
        assert "image too large" in result.error
