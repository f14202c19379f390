"""Embedded text extraction for PDF invoices.

Reads the text layer with pdfplumber, cleans common PDF extraction
artifacts and scores the result so the orchestrator can decide whether
the document needs OCR.
"""

import io
import re

import pdfplumber

from finrecon.utils.errors import sanitize_message
from finrecon.utils.logger import get_logger

from .models import TextExtractionResult
from .text_quality import TextQualityAnalyzer

logger = get_logger(__name__)

IMAGE_EXTENSIONS: tuple[str, ...] = (".png", ".jpg", ".jpeg", ".gif", ".webp")
PDF_MAGIC = b"%PDF"
IMAGE_MAGIC: tuple[bytes, ...] = (b"\xff\xd8\xff", b"\x89PNG", b"GIF")

_CLEANUP_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\r\n?"), "\n"),
    (re.compile(r"\f"), "\n"),
    (re.compile(r"\t"), " "),
    (re.compile(r" {2,}"), " "),
    (re.compile(r"\n{3,}"), "\n\n"),
    # glued words such as "InvoiceDate" or "1,200Total"; GSTINs stay intact
    (re.compile(r"([a-z])([A-Z])"), r"\1 \2"),
    (re.compile(r"(\d)(?=[A-Z]?[a-z])"), r"\1 "),
]


def clean_pdf_text(text: str | None) -> str:
    """Normalize whitespace and split glued tokens in PDF text."""
    if not text:
        return ""
    for pattern, replacement in _CLEANUP_RULES:
        text = pattern.sub(replacement, text)
    return text.strip()


def is_pdf(content: bytes, filename: str | None = None) -> bool:
    if filename and filename.lower().endswith(".pdf"):
        return True
    return content.startswith(PDF_MAGIC)


def is_image(content: bytes, filename: str | None = None) -> bool:
    if filename and filename.lower().endswith(IMAGE_EXTENSIONS):
        return True
    return content.startswith(IMAGE_MAGIC)


class PDFTextExtractor:
    """Extracts and scores the embedded text layer of a document.

    Never raises: malformed or unsupported documents produce an empty
    result flagged ``needs_ocr`` with the reason in ``error``.

    Args:
        analyzer: Quality analyzer used to decide on OCR.
    """

    def __init__(self, analyzer: TextQualityAnalyzer | None = None) -> None:
        self.analyzer = analyzer or TextQualityAnalyzer()

    def extract(self, content: bytes, filename: str | None = None) -> TextExtractionResult:
        """Extract text from a PDF or flag an image for OCR.

        Args:
            content: Raw document bytes.
            filename: Original filename, used for type detection.

        Returns:
            Text extraction result with quality score and OCR decision.
        """
        if is_pdf(content, filename):
            return self._extract_pdf(content)
        if is_image(content, filename):
            return TextExtractionResult(
                text="",
                method="image",
                needs_ocr=True,
                quality_level="none",
            )
        return TextExtractionResult(
            text="",
            method="unknown",
            needs_ocr=True,
            quality_level="error",
            error="Unsupported file type",
        )

    def _extract_pdf(self, content: bytes) -> TextExtractionResult:
        try:
            with pdfplumber.open(io.BytesIO(content)) as pdf:
                page_count = len(pdf.pages)
                texts: list[str] = []
                for number, page in enumerate(pdf.pages, start=1):
                    try:
                        page_text = clean_pdf_text(page.extract_text())
                    except Exception as exc:
                        logger.warning("Failed to extract text from page %d: %s", number, exc)
                        continue
                    if page_text:
                        texts.append(page_text)
        except Exception as exc:
            logger.warning("PDF text extraction failed: %s", exc)
            return TextExtractionResult(
                text="",
                method="pdf_text",
                needs_ocr=True,
                quality_level="error",
                error=sanitize_message(f"Extraction error: {exc}"),
            )

        text = "\n\n".join(texts)
        report = self.analyzer.analyze(text)
        logger.info(
            "Extracted %d chars from %d PDF pages (quality=%s, score=%.2f)",
            len(text),
            page_count,
            report.quality,
            report.score,
        )
        return TextExtractionResult(
            text=text,
            method="pdf_text",
            needs_ocr=report.needs_ocr,
            quality_score=report.score,
            quality_level=report.quality,
            page_count=page_count,
        )
