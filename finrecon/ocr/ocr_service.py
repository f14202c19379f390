"""OCR fallback for scanned PDFs and invoice images."""

import io

from PIL import Image, UnidentifiedImageError

from finrecon.extraction.models import OCRExtractionResult
from finrecon.extraction.pdf_text import is_image, is_pdf
from finrecon.utils.config import OCRConfig
from finrecon.utils.errors import sanitize_message
from finrecon.utils.logger import get_logger

from .pdf_handler import PDFConversionError, PDFHandler
from .tesseract_engine import OCRUnavailableError, TesseractEngine

logger = get_logger(__name__)

PAGE_BREAK = "\n\n--- Page Break ---\n\n"


class OCRService:
    """Runs OCR over a document, degrading softly when tools are missing.

    A missing tesseract binary yields ``ocr_available=False``; a missing
    poppler install or an unreadable file yields an ``error`` string. Neither
    raises.

    Args:
        config: OCR configuration.
    """

    def __init__(
        self,
        config: OCRConfig | None = None,
        engine: TesseractEngine | None = None,
        pdf_handler: PDFHandler | None = None,
    ) -> None:
        self.config = config or OCRConfig()
        self.engine = engine or TesseractEngine(
            tesseract_cmd=self.config.tesseract_cmd,
            languages=self.config.languages,
            fallback_language=self.config.fallback_language,
            oem=self.config.oem,
            psm=self.config.psm,
            timeout=self.config.timeout_seconds,
        )
        self.pdf_handler = pdf_handler or PDFHandler(
            dpi=self.config.pdf_dpi,
            max_pages=self.config.max_pages,
            timeout=self.config.timeout_seconds,
        )

    def extract(
        self,
        content: bytes,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> OCRExtractionResult:
        """OCR a PDF (first pages) or a single image.

        Args:
            content: Raw document bytes.
            filename: Original filename, used for type detection.
            content_type: Declared media type, if known.

        Returns:
            OCR text and diagnostics.
        """
        if not self.engine.is_available():
            logger.warning("Tesseract is not available, skipping OCR")
            return OCRExtractionResult(
                text="", ocr_available=False, error="Tesseract OCR is not installed"
            )

        try:
            images = self._load_images(content, filename, content_type)
        except (
            PDFConversionError,
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
        ) as exc:
            logger.warning("Could not prepare document for OCR: %s", exc)
            return OCRExtractionResult(text="", error=sanitize_message(exc))

        if images is None:
            return OCRExtractionResult(text="", error="Unsupported file type for OCR")

        texts: list[str] = []
        language = None
        errors: list[str] = []
        for number, image in enumerate(images, start=1):
            try:
                page_text, language = self.engine.extract_text(image)
            except OCRUnavailableError as exc:
                return OCRExtractionResult(text="", ocr_available=False, error=str(exc))
            except RuntimeError as exc:
                logger.warning("OCR failed on page %d: %s", number, exc)
                errors.append(f"page {number}: {exc}")
                continue
            if page_text:
                texts.append(page_text)

        text = PAGE_BREAK.join(texts)
        logger.info("OCR extracted %d chars from %d pages", len(text), len(images))
        return OCRExtractionResult(
            text=text,
            pages_processed=len(images),
            language=language,
            error=sanitize_message("; ".join(errors)) if errors else None,
        )

    def _load_images(
        self,
        content: bytes,
        filename: str | None,
        content_type: str | None,
    ) -> list[Image.Image] | None:
        if content_type == "application/pdf" or is_pdf(content, filename):
            return self.pdf_handler.pdf_to_images(content)
        if (content_type or "").startswith("image/") or is_image(content, filename):
            image = Image.open(io.BytesIO(content))
            image.load()
            return [image]
        return None
