"""Tests for embedded PDF text extraction."""

from unittest.mock import MagicMock, patch

from finrecon.extraction.pdf_text import PDFTextExtractor, clean_pdf_text, is_image, is_pdf


def _mock_pdf(page_texts: list) -> MagicMock:
    pages = []
    for text in page_texts:
        page = MagicMock()
        if isinstance(text, Exception):
            page.extract_text.side_effect = text
        else:
            page.extract_text.return_value = text
        pages.append(page)
    pdf = MagicMock()
    pdf.pages = pages
    opened = MagicMock()
    opened.__enter__.return_value = pdf
    return opened


class TestCleanPdfText:
    """Tests for clean_pdf_text."""

    def test_empty(self) -> None:
        assert clean_pdf_text(None) == ""
        assert clean_pdf_text("") == ""

    def test_whitespace(self) -> None:
        assert clean_pdf_text("a\r\nb\tc   d\n\n\n\ne") == "a\nb c d\n\ne"

    def test_splits_glued_words(self) -> None:
        assert clean_pdf_text("InvoiceDate") == "Invoice Date"
        assert clean_pdf_text("1,200Total") == "1,200 Total"

    def test_keeps_gstin(self) -> None:
        assert clean_pdf_text("GSTIN: 29ABCDE1234F1Z5") == "GSTIN: 29ABCDE1234F1Z5"


class TestTypeDetection:
    """Tests for is_pdf and is_image."""

    def test_by_extension(self) -> None:
        assert is_pdf(b"", "Invoice.PDF")
        assert is_image(b"", "scan.jpeg")

    def test_by_magic_bytes(self) -> None:
        assert is_pdf(b"%PDF-1.7 ...")
        assert is_image(b"\x89PNG\r\n")
        assert not is_pdf(b"hello")


class TestPDFTextExtractor:
    """Tests for PDFTextExtractor with pdfplumber mocked."""

    def setup_method(self) -> None:
        self.extractor = PDFTextExtractor()

    @patch("finrecon.extraction.pdf_text.pdfplumber")
    def test_good_text_layer(self, mock_pdfplumber: MagicMock, invoice_text: str) -> None:
        mock_pdfplumber.open.return_value = _mock_pdf([invoice_text, ""])

        result = self.extractor.extract(b"%PDF-1.4", "invoice.pdf")

        assert result.method == "pdf_text"
        assert result.page_count == 2
        assert "29ABCDE1234F1Z5" in result.text
        assert result.needs_ocr is False
        assert result.error is None

    @patch("finrecon.extraction.pdf_text.pdfplumber")
    def test_short_text_needs_ocr(self, mock_pdfplumber: MagicMock) -> None:
        mock_pdfplumber.open.return_value = _mock_pdf(["Scanned by CamScanner"])

        result = self.extractor.extract(b"%PDF-1.4", "scan.pdf")

        assert result.needs_ocr is True
        assert result.quality_level == "too_short"

    @patch("finrecon.extraction.pdf_text.pdfplumber")
    def test_failing_page_is_skipped(self, mock_pdfplumber: MagicMock, invoice_text: str) -> None:
        mock_pdfplumber.open.return_value = _mock_pdf([ValueError("bad page"), invoice_text])

        result = self.extractor.extract(b"%PDF-1.4", "invoice.pdf")

        assert result.page_count == 2
        assert "Grand Total" in result.text

    @patch("finrecon.extraction.pdf_text.pdfplumber")
    def test_unreadable_pdf(self, mock_pdfplumber: MagicMock) -> None:
        mock_pdfplumber.open.side_effect = Exception("No /Root object! - Is this really a PDF?")

        result = self.extractor.extract(b"%PDF-broken", "broken.pdf")

        assert result.text == ""
        assert result.needs_ocr is True
        assert result.error.startswith("Extraction error")

    def test_image_goes_to_ocr(self) -> None:
        result = self.extractor.extract(b"\x89PNG\r\n", "scan.png")
        assert result.method == "image"
        assert result.needs_ocr is True

    def test_unknown_type(self) -> None:
        result = self.extractor.extract(b"plain text", "notes.txt")
        assert result.method == "unknown"
        assert result.error == "Unsupported file type"
        assert result.text == ""
        assert result.needs_ocr is True
