"""Result types shared by the invoice extraction stages."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from finrecon.utils.errors import InvalidTransitionError


class InvoiceStatus(str, Enum):
    """Lifecycle of an invoice document."""

    PENDING = "pending"
    PROCESSING = "processing"
    EXTRACTED = "extracted"
    FAILED = "failed"
    MATCHED = "matched"
    UNMATCHED = "unmatched"


_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.PROCESSING}),
    InvoiceStatus.PROCESSING: frozenset({InvoiceStatus.EXTRACTED, InvoiceStatus.FAILED}),
    InvoiceStatus.EXTRACTED: frozenset(
        {InvoiceStatus.MATCHED, InvoiceStatus.UNMATCHED, InvoiceStatus.PROCESSING}
    ),
    InvoiceStatus.FAILED: frozenset({InvoiceStatus.PROCESSING}),
    InvoiceStatus.MATCHED: frozenset({InvoiceStatus.UNMATCHED}),
    InvoiceStatus.UNMATCHED: frozenset(
        {InvoiceStatus.MATCHED, InvoiceStatus.UNMATCHED, InvoiceStatus.PROCESSING}
    ),
}


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    return target in _TRANSITIONS[current]


def check_transition(current: InvoiceStatus, target: InvoiceStatus) -> None:
    """Raise if ``current -> target`` is not a legal state change.

    Raises:
        InvalidTransitionError: On an illegal transition.
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move invoice from {current.value} to {target.value}"
        )


@dataclass
class ExtractedInvoiceFields:
    """Structured invoice fields plus how confident the extraction is."""

    vendor_name: str | None = None
    vendor_gstin: str | None = None
    invoice_number: str | None = None
    invoice_date: date | None = None
    total_amount: Decimal | None = None
    currency: str = "INR"
    confidence: float = 0.0
    methods: list[str] = field(default_factory=list)

    @property
    def extraction_method(self) -> str:
        """Stages that produced this result, e.g. ``pdf_text+rules``."""
        return "+".join(self.methods)

    @property
    def fields_found(self) -> int:
        return sum(
            1
            for value in (
                self.vendor_name,
                self.vendor_gstin,
                self.invoice_number,
                self.invoice_date,
                self.total_amount,
            )
            if value is not None
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendor_name": self.vendor_name,
            "vendor_gstin": self.vendor_gstin,
            "invoice_number": self.invoice_number,
            "invoice_date": self.invoice_date.isoformat() if self.invoice_date else None,
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "currency": self.currency,
            "confidence": self.confidence,
            "extraction_method": self.extraction_method,
        }


@dataclass
class TextExtractionResult:
    """Outcome of reading embedded text from a document."""

    text: str
    method: str
    needs_ocr: bool
    quality_score: float = 0.0
    quality_level: str = "empty"
    page_count: int = 0
    error: str | None = None


@dataclass
class OCRExtractionResult:
    """Outcome of the OCR fallback. ``error`` is set on soft failures."""

    text: str
    pages_processed: int = 0
    ocr_available: bool = True
    language: str | None = None
    error: str | None = None


@dataclass
class LLMExtractionResult:
    """Outcome of an LLM call. ``fields`` is ``None`` when the call failed."""

    fields: ExtractedInvoiceFields | None = None
    provider: str | None = None
    model: str | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.fields is not None and self.error is None


@dataclass
class InvoiceExtractionResult:
    """Final orchestrator output for one document."""

    status: InvoiceStatus
    fields: ExtractedInvoiceFields | None = None
    error_message: str | None = None
    text_excerpt: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def extraction_method(self) -> str:
        return self.fields.extraction_method if self.fields else ""
