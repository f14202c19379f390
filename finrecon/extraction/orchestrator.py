"""Invoice extraction pipeline.

Runs the cheap stages first and escalates only when needed:

1. embedded text extraction with a quality check,
2. OCR, only when the text is missing or poor,
3. rule-based field extraction,
4. LLM disambiguation, only when the rules are uncertain.

Each run records which stages produced the result and why stages were
skipped, so results can be audited later.
"""

import mimetypes
from dataclasses import replace
from datetime import date
from typing import Any

from finrecon.ocr.ocr_service import OCRService
from finrecon.utils.config import AppConfig
from finrecon.utils.errors import FileValidationError, sanitize_message
from finrecon.utils.logger import get_logger
from finrecon.validation.file_validator import FileValidator

from .llm_extractor import LLMExtractor
from .models import (
    ExtractedInvoiceFields,
    InvoiceExtractionResult,
    InvoiceStatus,
    check_transition,
)
from .pdf_text import PDFTextExtractor
from .rule_extractor import RuleExtractor
from .text_quality import TextQualityAnalyzer

logger = get_logger(__name__)

NO_TEXT_MESSAGE = (
    "No readable text found in document. "
    "Document may be an image or scanned PDF requiring OCR."
)

_FIELD_NAMES: tuple[str, ...] = (
    "vendor_name",
    "invoice_number",
    "invoice_date",
    "total_amount",
    "vendor_gstin",
)

_MAGIC_TYPES: tuple[tuple[bytes, str], ...] = (
    (b"%PDF", "application/pdf"),
    (b"\x89PNG", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
)


def guess_content_type(content: bytes, filename: str | None = None) -> str:
    """Media type from the filename, falling back to magic bytes."""
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    for magic, content_type in _MAGIC_TYPES:
        if content.startswith(magic):
            return content_type
    return "application/octet-stream"


class ExtractionOrchestrator:
    """Sequences the extraction stages for one document at a time.

    Stage objects can be injected; by default they are built from the
    application config.

    Args:
        config: Application configuration.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        validator: FileValidator | None = None,
        text_extractor: PDFTextExtractor | None = None,
        ocr_service: OCRService | None = None,
        rule_extractor: RuleExtractor | None = None,
        llm_extractor: LLMExtractor | None = None,
    ) -> None:
        self.config = config or AppConfig()
        settings = self.config.extraction
        self.ambiguity_threshold = settings.ambiguity_threshold
        self.rules_confidence_threshold = settings.rules_confidence_threshold

        self.validator = validator or FileValidator(self.config.validation)
        self.text_extractor = text_extractor or PDFTextExtractor(
            TextQualityAnalyzer(self.config.text_quality)
        )
        self.ocr_service = ocr_service or OCRService(self.config.ocr)
        self.rule_extractor = rule_extractor or RuleExtractor(settings.default_currency)
        self.llm_extractor = llm_extractor or LLMExtractor(self.config.llm)

    def process(
        self,
        content: bytes,
        filename: str | None = None,
        content_type: str | None = None,
        status: InvoiceStatus = InvoiceStatus.PENDING,
        today: date | None = None,
    ) -> InvoiceExtractionResult:
        """Extract invoice fields from a document.

        Args:
            content: Raw document bytes.
            filename: Original filename.
            content_type: Declared media type; guessed when omitted.
            status: Current status of the invoice being processed.
            today: Reference date for date sanity checks.

        Returns:
            Result in the ``extracted`` or ``failed`` state.

        Raises:
            InvalidTransitionError: If ``status`` does not allow extraction.
        """
        check_transition(status, InvoiceStatus.PROCESSING)
        status = InvoiceStatus.PROCESSING
        metadata: dict[str, Any] = {}
        label = filename or "document"
        logger.info("Extracting invoice fields from %s", label)

        try:
            if not content:
                return self._fail(status, "File is empty", metadata)

            content_type = content_type or guess_content_type(content, filename)
            try:
                self.validator.validate(content, content_type)
            except FileValidationError as exc:
                logger.warning("File validation failed for %s: %s", label, exc)
                return self._fail(status, f"File validation failed: {exc}", metadata)

            text, methods = self._read_text(content, filename, content_type, metadata)
            if not text.strip():
                return self._fail(status, NO_TEXT_MESSAGE, metadata)

            fields = self.rule_extractor.parse(text, today=today)
            metadata["rules_extraction"] = {
                "confidence": fields.confidence,
                "fields_found": fields.fields_found,
            }
            methods.append("rules")

            if self.should_use_llm(fields):
                llm_result = self.llm_extractor.extract(
                    text, candidates=self.build_candidates(fields), today=today
                )
                if llm_result.success:
                    fields = self.merge(fields, llm_result.fields)
                    methods.append("llm")
                    metadata["llm_used"] = True
                else:
                    metadata["llm_used"] = False
                    metadata["llm_error"] = llm_result.error
            else:
                metadata["llm_used"] = False
                metadata["llm_skipped_reason"] = (
                    "Rules extraction sufficient"
                    if self.llm_extractor.is_available
                    else "LLM not configured"
                )
        except Exception as exc:
            logger.exception("Invoice extraction failed for %s", label)
            return self._fail(status, str(exc), metadata)

        fields.methods = methods
        check_transition(status, InvoiceStatus.EXTRACTED)
        logger.info(
            "Extracted %s via %s (confidence=%.2f)",
            label,
            fields.extraction_method,
            fields.confidence,
        )
        return InvoiceExtractionResult(
            status=InvoiceStatus.EXTRACTED,
            fields=fields,
            text_excerpt=text[: self.config.extraction.text_excerpt_length],
            metadata=metadata,
        )

    def _read_text(
        self,
        content: bytes,
        filename: str | None,
        content_type: str,
        metadata: dict[str, Any],
    ) -> tuple[str, list[str]]:
        methods: list[str] = []
        extraction = self.text_extractor.extract(content, filename)
        metadata["text_extraction"] = {
            "method": extraction.method,
            "quality": extraction.quality_level,
            "quality_score": extraction.quality_score,
        }
        if extraction.error:
            metadata["text_extraction"]["error"] = extraction.error
        if extraction.method == "pdf_text":
            methods.append("pdf_text")

        text = extraction.text
        if not extraction.needs_ocr:
            return text, methods

        ocr = self.ocr_service.extract(content, filename=filename, content_type=content_type)
        if ocr.text.strip():
            text = ocr.text
            methods.append("ocr")
            metadata["ocr_used"] = True
            metadata["ocr_result"] = {
                "pages_processed": ocr.pages_processed,
                "language": ocr.language,
                "error": ocr.error,
            }
        else:
            metadata["ocr_used"] = False
            metadata["ocr_available"] = ocr.ocr_available
            metadata["ocr_error"] = ocr.error
            logger.info("OCR produced no text, keeping embedded text (%d chars)", len(text))
        return text, methods

    def should_use_llm(self, fields: ExtractedInvoiceFields) -> bool:
        """Whether the rule result is uncertain enough to ask the LLM.

        True when an LLM is configured and the confidence is below the
        ambiguity threshold, the amount is missing, or the confidence is
        moderate and the vendor is unknown.
        """
        if not self.llm_extractor.is_available:
            return False
        if fields.confidence < self.ambiguity_threshold:
            return True
        if fields.total_amount is None:
            return True
        return fields.confidence < self.rules_confidence_threshold and fields.vendor_name is None

    @staticmethod
    def build_candidates(fields: ExtractedInvoiceFields) -> dict[str, list[str]]:
        """Non-empty rule values, offered to the LLM as hints."""
        candidates: dict[str, list[str]] = {}
        for name in _FIELD_NAMES:
            value = getattr(fields, name)
            if value is None:
                continue
            candidates[name] = [value.isoformat() if isinstance(value, date) else str(value)]
        return candidates

    @staticmethod
    def merge(
        rules: ExtractedInvoiceFields, llm: ExtractedInvoiceFields
    ) -> ExtractedInvoiceFields:
        """Fill fields the rules left empty; never overwrite a rule value.

        Confidence becomes the higher of the two stages, bounded to [0, 1].
        """
        updates = {
            name: getattr(llm, name)
            for name in _FIELD_NAMES
            if getattr(rules, name) is None and getattr(llm, name) is not None
        }
        confidence = min(max(rules.confidence, llm.confidence, 0.0), 1.0)
        return replace(rules, confidence=confidence, methods=list(rules.methods), **updates)

    def _fail(
        self,
        status: InvoiceStatus,
        message: str,
        metadata: dict[str, Any],
    ) -> InvoiceExtractionResult:
        check_transition(status, InvoiceStatus.FAILED)
        message = sanitize_message(message)
        logger.warning("Extraction failed: %s", message)
        return InvoiceExtractionResult(
            status=InvoiceStatus.FAILED,
            error_message=message,
            metadata=metadata,
        )
