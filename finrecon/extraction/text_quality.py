"""Heuristic quality scoring for text pulled out of invoice documents.

Decides whether embedded PDF text is usable for rule extraction or whether
the document should go through OCR first.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from finrecon.utils.config import TextQualityConfig

INVOICE_KEYWORDS: tuple[str, ...] = (
    "invoice", "total", "amount", "date", "tax", "gst", "gstin", "bill",
    "receipt", "payment", "due", "subtotal", "grand", "net", "payable",
    "order", "quantity", "price", "rate", "discount", "cgst", "sgst", "igst",
    "rupee", "inr", "rs", "seller", "buyer", "vendor", "customer", "shipping",
    "address", "description", "item",
)  # fmt: skip

AMOUNT_PATTERN = re.compile(r"(?:Rs\.?|INR|₹)\s*[\d,]+(?:\.\d{2})?", re.IGNORECASE)
DATE_PATTERN = re.compile(r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}")
GSTIN_PATTERN = re.compile(r"\d{2}[A-Z]{5}\d{4}[A-Z][A-Z\d]Z[A-Z\d]")

MIN_ALPHA_RATIO = 0.5
MAX_GARBAGE_RATIO = 0.1
MIN_WORD_LENGTH_AVG = 2.5

_WHITESPACE_CONTROLS = frozenset("\n\r\t")


@dataclass
class QualityReport:
    """Quality assessment of a block of text."""

    quality: str
    score: float
    needs_ocr: bool
    recommendation: str
    signals: dict[str, Any] = field(default_factory=dict)


def _is_garbage(char: str) -> bool:
    if char in _WHITESPACE_CONTROLS:
        return False
    code = ord(char)
    return code <= 0x1F or 0x7F <= code <= 0x9F or code == 0xFFFD


class TextQualityAnalyzer:
    """Scores extracted text between 0 and 1.

    The score is a weighted sum of six signals: length (15%), alphanumeric
    ratio (20%), inverted garbage ratio (20%), average word length (15%),
    invoice keyword hits (15%) and amount/date/GSTIN shaped substrings (15%).

    Args:
        config: Length and score thresholds.
    """

    def __init__(self, config: TextQualityConfig | None = None) -> None:
        self.config = config or TextQualityConfig()

    def analyze(self, text: str | None) -> QualityReport:
        """Assess text quality and recommend whether to OCR.

        Args:
            text: Extracted text, possibly empty.

        Returns:
            Quality report with score, level and the OCR decision.
        """
        text = (text or "").strip()
        min_length = self.config.min_text_length

        if not text:
            return QualityReport(
                quality="empty",
                score=0.0,
                needs_ocr=True,
                recommendation="No text extracted. OCR required.",
                signals={"empty": True},
            )
        if len(text) < min_length:
            return QualityReport(
                quality="too_short",
                score=0.1,
                needs_ocr=True,
                recommendation=f"Text too short ({len(text)} chars). OCR recommended.",
                signals={"length": len(text), "min_required": min_length},
            )

        signals = self.signals(text)
        score = self.score(text, signals)
        return QualityReport(
            quality=self.quality_level(score),
            score=score,
            needs_ocr=score < self.config.ocr_score_threshold,
            recommendation=self._recommendation(score, signals["has_amount"]),
            signals=signals,
        )

    def needs_ocr(self, text: str | None) -> bool:
        return self.analyze(text).needs_ocr

    def signals(self, text: str) -> dict[str, Any]:
        """Raw measurements the score is built from."""
        length = len(text)
        words = text.split()
        lowered = text.lower()

        return {
            "text_length": length,
            "alpha_ratio": round(sum(c.isascii() and c.isalnum() for c in text) / length, 3),
            "garbage_ratio": round(sum(_is_garbage(c) for c in text) / length, 3),
            "average_word_length": (
                round(sum(len(w) for w in words) / len(words), 2) if words else 0.0
            ),
            "keyword_count": sum(1 for k in INVOICE_KEYWORDS if k in lowered),
            "has_amount": AMOUNT_PATTERN.search(text) is not None,
            "has_date": DATE_PATTERN.search(text) is not None,
            "has_gstin": GSTIN_PATTERN.search(text) is not None,
        }

    def score(self, text: str, signals: dict[str, Any] | None = None) -> float:
        if signals is None:
            signals = self.signals(text)

        length_score = min(signals["text_length"] / 1000.0, 1.0)

        alpha = signals["alpha_ratio"]
        alpha_score = 1.0 if alpha >= MIN_ALPHA_RATIO else alpha / MIN_ALPHA_RATIO

        garbage = signals["garbage_ratio"]
        garbage_score = 1.0 if garbage <= MAX_GARBAGE_RATIO else 1.0 - (garbage - MAX_GARBAGE_RATIO)
        garbage_score = max(garbage_score, 0.0)

        avg_word = signals["average_word_length"]
        word_score = 1.0 if avg_word >= MIN_WORD_LENGTH_AVG else avg_word / MIN_WORD_LENGTH_AVG

        hits = signals["keyword_count"]
        keyword_score = 0.0 if hits < self.config.min_keyword_hits else min(hits / 3.0, 1.0)

        pattern_score = (
            0.4 * signals["has_amount"] + 0.3 * signals["has_date"] + 0.3 * signals["has_gstin"]
        )

        total = (
            length_score * 0.15
            + alpha_score * 0.2
            + garbage_score * 0.2
            + word_score * 0.15
            + keyword_score * 0.15
            + pattern_score * 0.15
        )
        return round(min(max(total, 0.0), 1.0), 2)

    @staticmethod
    def quality_level(score: float) -> str:
        if score >= 0.8:
            return "high"
        if score >= 0.6:
            return "medium"
        if score >= 0.4:
            return "low"
        return "poor"

    @staticmethod
    def _recommendation(score: float, has_amount: bool) -> str:
        if score >= 0.7 and has_amount:
            return "Text quality is good. Proceed with rule-based extraction."
        if score >= 0.4 and has_amount:
            return "Text quality is acceptable. Rule extraction may work, OCR as fallback."
        if score >= 0.4:
            return "Text extracted but no amount found. Try OCR for better results."
        return "Poor text quality. OCR strongly recommended."
