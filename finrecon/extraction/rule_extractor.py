"""Rule-based invoice field extraction using regex patterns.

Extracts the total amount, invoice date, GSTIN, invoice number and vendor
name from invoice text. Each field has an ordered family of patterns, most
specific (labeled) first; the first match that passes the field's sanity
checks wins.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from finrecon.utils.logger import get_logger

from .models import ExtractedInvoiceFields

logger = get_logger(__name__)


@dataclass
class ExtractedField:
    """A candidate field value found by a regex rule."""

    field_name: str
    value: str
    confidence: float
    start_pos: int
    end_pos: int
    extraction_method: str


_CURRENCY = r"(?:\bRs\.?|\bINR|₹)"
_NUMBER = r"([\d,]+(?:\.\d{2})?)"

# Pattern definitions: (regex, base_confidence, flags)
_FINAL_AMOUNT_PATTERNS: list[tuple[str, float, int]] = [
    (rf"total\s*\((?:inr|₹)\)[:\s]*{_CURRENCY}?\s*{_NUMBER}", 0.95, re.IGNORECASE),
    (
        r"(?:grand\s*total|net\s*payable|payable\s*amount|amount\s*payable|final\s*amount"
        rf"|invoice\s*total)[:\s]*{_CURRENCY}?\s*{_NUMBER}",
        0.95,
        re.IGNORECASE,
    ),
    (rf"(?:total\s*due|amount\s*due|balance\s*due)[:\s]*{_CURRENCY}?\s*{_NUMBER}", 0.9, re.IGNORECASE),
]

_AMOUNT_PATTERNS: list[tuple[str, float, int]] = [
    (rf"(?:total)[:\s]*{_CURRENCY}\s*{_NUMBER}", 0.85, re.IGNORECASE),
    (rf"{_CURRENCY}\s*{_NUMBER}\s*(?:total|only|-/|-)", 0.8, re.IGNORECASE),
    (rf"(?:total\s*amount|invoice\s*amount)[:\s]*{_NUMBER}", 0.8, re.IGNORECASE),
    (rf"{_CURRENCY}\s*{_NUMBER}", 0.6, re.IGNORECASE),
]

_MONTHS = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*"

_DATE_PATTERNS: list[tuple[str, float, int]] = [
    (
        r"(?:invoice\s*date|date|dated|bill\s*date|order\s*date)[:\s]*"
        r"(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})",
        0.95,
        re.IGNORECASE,
    ),
    (rf"({_MONTHS}\s+\d{{1,2}},?\s+\d{{4}})", 0.85, re.IGNORECASE),
    (rf"(\d{{1,2}}\s+{_MONTHS}\s+\d{{2,4}})", 0.85, re.IGNORECASE),
    (r"(\d{4}-\d{2}-\d{2})", 0.8, 0),
    (r"(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})", 0.6, 0),
]

GSTIN_PATTERN = r"\d{2}[A-Z]{5}\d{4}[A-Z][A-Z\d]Z[A-Z\d]"

_GSTIN_PATTERNS: list[tuple[str, float, int]] = [
    (rf"({GSTIN_PATTERN})", 0.95, 0),
]

_INVOICE_PATTERNS: list[tuple[str, float, int]] = [
    (
        r"(?:invoice\s*no\.?|inv\.?\s*no\.?|invoice\s*#|invoice\s*number|bill\s*no\.?)"
        r"[:\s]*([A-Z0-9\-/]+)",
        0.9,
        re.IGNORECASE,
    ),
    (r"(?:receipt\s*no\.?|order\s*id|order\s*no\.?)[:\s]*([A-Z0-9\-/]+)", 0.8, re.IGNORECASE),
    (r"(?:ref\.?\s*no\.?|reference)[:\s]*([A-Z0-9\-/]+)", 0.6, re.IGNORECASE),
]

_VENDOR_NAME = r"([A-Za-z][A-Za-z &.]{2,40})"

_VENDOR_PATTERNS: list[tuple[str, float, int]] = [
    (rf"(?:sold\s*by|from|seller|merchant|vendor)[:\s]*{_VENDOR_NAME}", 0.7, re.IGNORECASE),
    (rf"(?:billed\s*by|invoice\s*from)[:\s]*{_VENDOR_NAME}", 0.7, re.IGNORECASE),
    (rf"(?:company\s*name|business\s*name)[:\s]*{_VENDOR_NAME}", 0.7, re.IGNORECASE),
]

KNOWN_VENDORS: dict[str, tuple[str, ...]] = {
    "Amazon": ("amazon.in", "amazon india", "cloudtail", "appario", "amazon seller"),
    "Flipkart": ("flipkart", "ekart", "flipkart india", "flipkart internet"),
    "Swiggy": ("swiggy", "bundl technologies", "swiggy instamart"),
    "Zomato": ("zomato", "zomato media", "zomato hyperpure"),
    "Uber": ("uber india", "uber b.v.", "uber eats"),
    "Ola": ("ola", "ani technologies", "ola cabs"),
    "BigBasket": ("bigbasket", "supermarket grocery", "innovative retail"),
    "Dunzo": ("dunzo", "dunzo digital"),
    "PhonePe": ("phonepe", "phonepe private"),
    "Razorpay": ("razorpay", "razorpay software"),
    "Paytm": ("paytm", "one97", "paytm mall"),
    "MakeMyTrip": ("makemytrip", "mmt", "make my trip"),
    "Goibibo": ("goibibo", "ibibo"),
    "BookMyShow": ("bookmyshow", "bigtree", "book my show"),
    "Urban Company": ("urbancompany", "urban company", "urbanclap"),
    "Practo": ("practo", "practo technologies"),
    "Myntra": ("myntra", "myntra designs"),
    "Nykaa": ("nykaa", "fsn e-commerce"),
    "Zepto": ("zepto", "kiranakart"),
    "Blinkit": ("blinkit", "grofers"),
    "Refrens": ("refrens", "refrens internet"),
}

# aliases must not sit inside a longer word ("ola" in "chocolate")
_KNOWN_VENDOR_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (name, re.compile(rf"(?<![a-z0-9]){re.escape(alias)}(?![a-z0-9])"))
    for name, aliases in KNOWN_VENDORS.items()
    for alias in aliases
]

_LEGAL_SUFFIXES = re.compile(r"\s*\b(?:Private|Pvt|Ltd|Limited|LLP|Inc|Corp)\b\.?\s*", re.IGNORECASE)

_CURRENCY_MARKERS: list[tuple[str, re.Pattern[str]]] = [
    ("INR", re.compile(r"₹|\bINR\b|\bRs\.?(?=\s|\d)")),
    ("USD", re.compile(r"\$|\bUSD\b")),
    ("EUR", re.compile(r"€|\bEUR\b")),
    ("GBP", re.compile(r"£|\bGBP\b")),
]

DATE_FORMATS: tuple[str, ...] = (
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d/%m/%y",
    "%d-%m-%y",
    "%Y-%m-%d",
    "%d %b %Y",
    "%d %B %Y",
    "%d%b%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
)

MAX_AMOUNT = Decimal("100000000")

FIELD_WEIGHTS: dict[str, float] = {
    "total_amount": 1.5,
    "invoice_date": 1.0,
    "vendor_name": 1.0,
    "invoice_number": 0.5,
    "vendor_gstin": 0.5,
}


def parse_amount(raw: str) -> Decimal | None:
    """Parse a matched amount, rejecting values outside (0, 100,000,000)."""
    try:
        amount = Decimal(raw.replace(",", "").strip())
    except InvalidOperation:
        return None
    if 0 < amount < MAX_AMOUNT:
        return amount
    return None


def parse_invoice_date(raw: str, today: date | None = None) -> date | None:
    """Parse a matched date string (day-first) within sane bounds.

    Accepts years from 2000 up to one year after ``today``.
    """
    today = today or date.today()
    try:
        latest = today.replace(year=today.year + 1)
    except ValueError:
        latest = today.replace(year=today.year + 1, day=28)

    cleaned = re.sub(r"\s+", " ", raw.strip())
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
        if parsed.year >= 2000 and parsed <= latest:
            return parsed
    return None


def is_valid_gstin(value: str | None) -> bool:
    return bool(value) and re.fullmatch(GSTIN_PATTERN, value) is not None


def clean_vendor_name(raw: str) -> str | None:
    """Title-case a captured vendor name and drop legal-entity suffixes."""
    vendor = " ".join(raw.split()).strip(" .&").title()
    vendor = _LEGAL_SUFFIXES.sub(" ", vendor)
    vendor = " ".join(vendor.split()).strip(" .&")
    return vendor if len(vendor) >= 2 else None


class RuleExtractor:
    """Regex-based extractor for invoice fields.

    Pure and deterministic: the same text (and ``today``) always produces
    the same fields.
    """

    def __init__(self, default_currency: str = "INR") -> None:
        self.default_currency = default_currency
        self.patterns: dict[str, list[tuple[str, float, int]]] = {
            "total_amount": _FINAL_AMOUNT_PATTERNS + _AMOUNT_PATTERNS,
            "invoice_date": _DATE_PATTERNS,
            "vendor_gstin": _GSTIN_PATTERNS,
            "invoice_number": _INVOICE_PATTERNS,
            "vendor_name": _VENDOR_PATTERNS,
        }

    def parse(self, text: str, today: date | None = None) -> ExtractedInvoiceFields:
        """Extract invoice fields from text.

        Args:
            text: Invoice text (embedded or OCR'd).
            today: Reference date for the future-date bound.

        Returns:
            Extracted fields with a weighted confidence in [0, 1].
        """
        text = text or ""
        fields = ExtractedInvoiceFields(
            vendor_name=self.extract_vendor_name(text),
            vendor_gstin=self.extract_gstin(text),
            invoice_number=self.extract_invoice_number(text),
            invoice_date=self.extract_date(text, today),
            total_amount=self.extract_total_amount(text),
            currency=self.detect_currency(text),
            methods=["rules"],
        )
        fields.confidence = self.confidence(fields)
        logger.info(
            "Rule extraction found %d fields (confidence=%.2f)",
            fields.fields_found,
            fields.confidence,
        )
        return fields

    def extract(self, text: str, fields: list[str] | None = None) -> list[ExtractedField]:
        """Find every pattern match for the requested fields.

        Args:
            text: Text to search.
            fields: Field names to extract. If ``None``, extracts all.

        Returns:
            All raw matches with their pattern confidence, in pattern order.
        """
        results: list[ExtractedField] = []
        for field_name in fields or list(self.patterns):
            for pattern, confidence, flags in self.patterns.get(field_name, []):
                for match in re.finditer(pattern, text, flags):
                    value = match.group(1) if match.groups() else match.group(0)
                    results.append(
                        ExtractedField(
                            field_name=field_name,
                            value=value.strip(),
                            confidence=confidence,
                            start_pos=match.start(),
                            end_pos=match.end(),
                            extraction_method="regex",
                        )
                    )
        return results

    def candidates(self, text: str, limit: int = 5) -> dict[str, list[str]]:
        """Distinct candidate values per field, best pattern first."""
        grouped: dict[str, list[str]] = {}
        for found in self.extract(text):
            values = grouped.setdefault(found.field_name, [])
            if found.value not in values and len(values) < limit:
                values.append(found.value)
        return grouped

    def extract_total_amount(self, text: str) -> Decimal | None:
        """Most likely invoice total: final-total labels before generic amounts."""
        for pattern, _, flags in self.patterns["total_amount"]:
            for match in re.finditer(pattern, text, flags):
                amount = parse_amount(match.group(1))
                if amount is not None:
                    logger.debug("Found total amount: %s", amount)
                    return amount
        return None

    def extract_date(self, text: str, today: date | None = None) -> date | None:
        for pattern, _, flags in _DATE_PATTERNS:
            for match in re.finditer(pattern, text, flags):
                parsed = parse_invoice_date(match.group(1), today)
                if parsed is not None:
                    return parsed
        return None

    def extract_gstin(self, text: str) -> str | None:
        match = re.search(GSTIN_PATTERN, text)
        return match.group(0) if match else None

    def extract_invoice_number(self, text: str) -> str | None:
        for pattern, _, flags in _INVOICE_PATTERNS:
            for match in re.finditer(pattern, text, flags):
                number = match.group(1).strip()
                if 3 <= len(number) <= 50:
                    return number
        return None

    def extract_vendor_name(self, text: str) -> str | None:
        """Known vendor aliases first, then labeled "sold by"/"vendor" lines."""
        lowered = text.lower()
        for name, pattern in _KNOWN_VENDOR_PATTERNS:
            if pattern.search(lowered):
                return name

        for pattern, _, flags in _VENDOR_PATTERNS:
            match = re.search(pattern, text, flags)
            if match:
                vendor = clean_vendor_name(match.group(1))
                if vendor:
                    return vendor
        return None

    def detect_currency(self, text: str) -> str:
        for code, pattern in _CURRENCY_MARKERS:
            if pattern.search(text):
                return code
        return self.default_currency

    @staticmethod
    def confidence(fields: ExtractedInvoiceFields) -> float:
        """Weighted share of fields found: amount 1.5, date 1, vendor 1, number 0.5, GSTIN 0.5."""
        found = sum(
            weight for name, weight in FIELD_WEIGHTS.items() if getattr(fields, name) is not None
        )
        return round(found / sum(FIELD_WEIGHTS.values()), 2)
