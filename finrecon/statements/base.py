"""Shared machinery for bank statement parsers.

``BaseStatementParser`` locates the header row, resolves logical fields to
physical columns once per file, walks the data rows and turns each one into
a ``CanonicalTransaction`` through the subclass's ``extract_row``. Date,
amount and description normalization live here so that adding a bank only
means writing one ``extract_row`` plus its column aliases and skip patterns.
"""

import math
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

from finrecon.utils.config import StatementConfig
from finrecon.utils.errors import UnsupportedFormatError, sanitize_message
from finrecon.utils.logger import get_logger

from .models import CanonicalTransaction, ParseResult, TransactionType
from .profile import BankFormatProfile
from .readers import Row, read_rows

logger = get_logger(__name__)

SPREADSHEET_EPOCH = date(1899, 12, 30)
# 9999-12-31 as a spreadsheet serial
_MAX_SPREADSHEET_SERIAL = 2_958_465

COMMON_DATE_FORMATS: tuple[str, ...] = (
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d/%m/%y",
    "%d-%m-%y",
    "%Y-%m-%d",
    "%d %b %Y",
    "%d-%b-%Y",
    "%d %B %Y",
    "%d-%b-%y",
    "%d %b %y",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%d.%m.%Y",
)

_TRAILING_TIME = re.compile(r"\s+\d{1,2}:\d{2}(?::\d{2})?(?:\s*[AaPp][Mm])?$")
_AMOUNT_NOISE = re.compile(r"(?:₹|\$|INR|Rs\.?|[,\s()])", re.IGNORECASE)
# "1,200.00 Dr", "500Cr."
_DR_CR_SUFFIX = re.compile(r"\s*(dr|cr)\.?$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

LOGICAL_FIELDS: tuple[str, ...] = (
    "date",
    "description",
    "reference",
    "amount",
    "withdrawal",
    "deposit",
    "balance",
    "cr_dr",
)


def normalize_header(name: Any) -> str:
    """Normalize a header cell for lookups: trimmed, lower-case, single spaces."""
    if name is None:
        return ""
    return _WHITESPACE.sub(" ", str(name).strip().lower())


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _indicator_matches(value: str, token: str) -> bool:
    if len(token) == 1:
        return value.rstrip(".") == token
    return value.startswith(token)


def truncate(text: str, limit: int) -> str:
    """Truncate with a trailing ellipsis so the result is at most ``limit`` long."""
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


class StatementRow:
    """One data row with O(1) access by logical field or raw header name."""

    def __init__(
        self,
        cells: Row,
        index: int,
        fields: dict[str, int],
        headers: dict[str, int],
    ) -> None:
        self.cells = cells
        self.index = index
        self._fields = fields
        self._headers = headers

    def _at(self, position: int | None) -> Any:
        if position is None or position >= len(self.cells):
            return None
        value = self.cells[position]
        return None if is_blank(value) else value

    def get(self, field: str) -> Any:
        """Value of a resolved logical field, or ``None``."""
        return self._at(self._fields.get(field))

    def cell(self, *names: str) -> Any:
        """First non-blank value among the given raw header names."""
        for name in names:
            value = self._at(self._headers.get(normalize_header(name)))
            if value is not None:
                return value
        return None

    def first_cell(self) -> Any:
        return self._at(0)

    def is_blank(self) -> bool:
        return all(is_blank(c) for c in self.cells)


class BaseStatementParser(ABC):
    """Base class for all (bank, account-type) statement parsers.

    Subclasses implement ``extract_row`` and may extend the class-level
    ``COLUMN_FALLBACKS``, ``HEADER_INDICATORS`` and ``EXTRA_SKIP_PATTERNS``.
    Values in the profile's ``parser_config`` override the class defaults.

    Args:
        profile: Bank format profile describing the export.
        config: Statement parsing limits.
    """

    HEADER_INDICATORS: ClassVar[tuple[str, ...]] = (
        "Date",
        "Transaction",
        "Amount",
        "Description",
        "Narration",
    )
    SKIP_PATTERNS: ClassVar[tuple[str, ...]] = (
        "opening balance",
        "closing balance",
        "statement summary",
        "total",
        "account number",
        "statement period",
    )
    EXTRA_SKIP_PATTERNS: ClassVar[tuple[str, ...]] = ()
    DATE_FORMATS: ClassVar[tuple[str, ...]] = ("%d/%m/%Y", "%d-%m-%Y")
    CREDIT_INDICATORS: ClassVar[tuple[str, ...]] = ("cr", "credit", "c")
    DEBIT_INDICATORS: ClassVar[tuple[str, ...]] = ("dr", "debit", "d")
    CREDIT_KEYWORDS: ClassVar[tuple[str, ...]] = (
        "payment received",
        "payment - thank you",
        "payment thank you",
        "refund",
        "cashback",
        "reversal",
        "credit adjustment",
    )
    COLUMN_FALLBACKS: ClassVar[dict[str, tuple[str, ...]]] = {
        "date": ("Value Date", "Transaction Date", "Date", "Txn Date", "Posting Date", "Tran Date"),
        "description": (
            "Transaction Remarks",
            "Description",
            "Narration",
            "Particulars",
            "Details",
            "Remarks",
            "Transaction Details",
        ),
        "reference": (
            "Cheque Number",
            "Chq No",
            "Transaction ID",
            "Reference",
            "Ref No",
            "Reference Number",
            "Txn ID",
            "Chq./Ref.No.",
        ),
        "amount": (
            "Transaction Amount(INR)",
            "Transaction Amount (INR)",
            "Transaction Amount",
            "Amount",
            "Amount (INR)",
            "Amount(INR)",
        ),
        "withdrawal": (
            "Withdrawal Amount(INR)",
            "Withdrawal Amount (INR)",
            "Withdrawal",
            "Withdrawal Amount",
            "Debit",
            "Dr",
            "Debit Amount",
            "Debit(INR)",
        ),
        "deposit": (
            "Deposit Amount(INR)",
            "Deposit Amount (INR)",
            "Deposit",
            "Deposit Amount",
            "Credit",
            "Cr",
            "Credit Amount",
            "Credit(INR)",
        ),
        "balance": (
            "Balance(INR)",
            "Balance (INR)",
            "Available Balance(INR)",
            "Balance",
            "Closing Balance",
            "Running Balance",
            "Available Balance",
        ),
        "cr_dr": ("Cr/Dr", "CR/DR", "Type", "Dr/Cr", "Transaction Type"),
    }

    def __init__(
        self,
        profile: BankFormatProfile,
        config: StatementConfig | None = None,
    ) -> None:
        self.profile = profile
        self.config = config or StatementConfig()
        settings = profile.parser_config

        self.header_indicators = tuple(settings.header_indicators or self.HEADER_INDICATORS)
        self.skip_patterns = tuple(
            p.lower() for p in (settings.skip_patterns or self.SKIP_PATTERNS + self.EXTRA_SKIP_PATTERNS)
        )
        self.date_formats = tuple(settings.date_formats or self.DATE_FORMATS)
        self.credit_indicators = tuple(
            i.lower() for i in (settings.credit_indicators or self.CREDIT_INDICATORS)
        )
        self.debit_indicators = tuple(
            i.lower() for i in (settings.debit_indicators or self.DEBIT_INDICATORS)
        )
        self.encoding = settings.encoding

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def parse(self, content: bytes, filename: str) -> ParseResult:
        """Parse a statement file into canonical transactions.

        Never raises: unreadable or unsupported files produce an empty
        transaction list with an entry in ``errors``; bad rows are logged,
        recorded in ``warnings`` and skipped.

        Args:
            content: Raw file bytes.
            filename: Original filename, used to pick the reader.

        Returns:
            Parsed transactions and diagnostics.
        """
        result = ParseResult()
        label = type(self).__name__

        try:
            rows = read_rows(
                content,
                filename,
                encoding=self.encoding,
                max_spreadsheet_bytes=self.config.max_spreadsheet_bytes,
            )
            transactions = list(self._iter_transactions(rows, result))
        except UnsupportedFormatError as exc:
            logger.error("%s cannot read %s: %s", label, filename, exc)
            result.errors.append(sanitize_message(exc))
            return result
        except Exception as exc:
            logger.error("%s failed to parse %s: %s", label, filename, exc)
            result.errors.append(sanitize_message(f"{label} parsing error: {exc}"))
            return result

        result.transactions = transactions
        logger.info(
            "%s parsed %d transactions from %s (%d rows seen, %d skipped)",
            label,
            len(transactions),
            filename,
            result.rows_seen,
            result.rows_skipped,
        )
        return result

    def _iter_transactions(
        self, rows: Iterable[Row], result: ParseResult
    ) -> Iterator[CanonicalTransaction]:
        iterator = iter(rows)
        buffered: list[Row] = []
        header_position: int | None = None

        for position, cells in enumerate(iterator):
            buffered.append(cells)
            if self.is_header_row(cells):
                header_position = position
                break
            if position + 1 >= self.config.header_scan_rows:
                break

        if header_position is None:
            header_position = next(
                (i for i, cells in enumerate(buffered) if not all(is_blank(c) for c in cells)),
                None,
            )
            if header_position is None:
                raise UnsupportedFormatError("Statement contains no rows")
            logger.warning(
                "%s: no header indicators found, using row %d as header",
                type(self).__name__,
                header_position,
            )

        headers = buffered[header_position]
        header_index = self._build_header_index(headers)
        fields = self._resolve_columns(header_index)
        if "date" not in fields:
            raise UnsupportedFormatError("Could not find a date column in the statement header")
        result.header_row = header_position
        logger.debug("Resolved columns %s from header row %d", fields, header_position)

        remaining = buffered[header_position + 1 :]
        index = header_position
        for cells in _chain(remaining, iterator):
            index += 1
            result.rows_seen += 1
            row = StatementRow(list(cells), index, fields, header_index)

            if row.is_blank() or self.should_skip(row):
                result.rows_skipped += 1
                continue

            try:
                transaction = self.extract_row(row)
            except Exception as exc:
                message = f"Row {index + 1}: {sanitize_message(exc, 200)}"
                logger.warning("%s skipped malformed row: %s", type(self).__name__, message)
                result.warnings.append(message)
                result.rows_skipped += 1
                continue

            if transaction is None or not self.is_valid(transaction):
                result.rows_skipped += 1
                continue
            yield transaction

    # ------------------------------------------------------------------
    # Subclass contract
    # ------------------------------------------------------------------

    @abstractmethod
    def extract_row(self, row: StatementRow) -> CanonicalTransaction | None:
        """Convert one data row into a transaction.

        Return ``None`` for rows that carry no transaction (e.g. no date).
        Raising marks the row as malformed; it is logged and skipped.
        """

    # ------------------------------------------------------------------
    # Header handling
    # ------------------------------------------------------------------

    def is_header_row(self, cells: Row) -> bool:
        """Whether a row looks like the column header row.

        Two indicator hits are required (one when only one indicator is
        configured); a row naming both a date and an amount-like column
        also qualifies.
        """
        text = " ".join(str(c) for c in cells if not is_blank(c)).lower()
        if not text:
            return False

        hits = sum(1 for ind in self.header_indicators if ind.lower() in text)
        if hits >= min(2, len(self.header_indicators)):
            return True

        has_date = "date" in text
        has_amount = any(w in text for w in ("amount", "withdrawal", "deposit", "debit", "credit"))
        return has_date and has_amount

    def _build_header_index(self, headers: Row) -> dict[str, int]:
        index: dict[str, int] = {}
        for position, name in enumerate(headers):
            key = normalize_header(name)
            if key and key not in index:
                index[key] = position
        return index

    def _resolve_columns(self, header_index: dict[str, int]) -> dict[str, int]:
        """Map each logical field to a column position, once per file.

        The profile's explicit mapping wins; otherwise the first fallback
        alias present in the header is used.
        """
        resolved: dict[str, int] = {}
        for field in LOGICAL_FIELDS:
            candidates: list[str] = []
            mapped = self.profile.mapping_for(field)
            if field == "description" and mapped is None:
                mapped = self.profile.mapping_for("narration")
            if mapped:
                candidates.append(mapped)
            candidates.extend(self.column_fallbacks(field))

            for name in candidates:
                position = header_index.get(normalize_header(name))
                if position is not None:
                    resolved[field] = position
                    break
        return resolved

    def column_fallbacks(self, field: str) -> tuple[str, ...]:
        """Ordered alias list for a logical field."""
        return self.COLUMN_FALLBACKS.get(field, ())

    # ------------------------------------------------------------------
    # Row filtering
    # ------------------------------------------------------------------

    def should_skip(self, row: StatementRow) -> bool:
        """Whether a row is a summary/metadata line rather than a transaction."""
        first = str(row.first_cell() or "").lower()
        description = str(row.get("description") or "").lower()
        return any(p in first or p in description for p in self.skip_patterns)

    def is_valid(self, transaction: CanonicalTransaction) -> bool:
        """A transaction needs a positive amount or a description."""
        return transaction.amount > 0 or bool(transaction.original_description)

    # ------------------------------------------------------------------
    # Value parsing
    # ------------------------------------------------------------------

    def parse_date(self, value: Any) -> date | None:
        """Parse a statement date cell.

        Tries native date cells, spreadsheet serial numbers (days since
        1899-12-30), then the profile's date formats followed by the common
        formats. Returns ``None`` for anything unparseable.
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if not math.isfinite(value):
                return None
            serial = int(value)
            if 0 < serial <= _MAX_SPREADSHEET_SERIAL:
                return SPREADSHEET_EPOCH + timedelta(days=serial)
            return None

        text = _WHITESPACE.sub(" ", str(value).strip())
        if not text:
            return None
        candidates = [text]
        without_time = _TRAILING_TIME.sub("", text)
        if without_time != text:
            candidates.append(without_time)

        for candidate in candidates:
            for fmt in (*self.date_formats, *COMMON_DATE_FORMATS):
                try:
                    return datetime.strptime(candidate, fmt).date()
                except ValueError:
                    continue

        logger.debug("Unparseable date value %r", value)
        return None

    @staticmethod
    def parse_signed_amount(value: Any) -> tuple[Decimal, bool] | None:
        """Parse an amount cell into ``(magnitude, was_negative)``.

        Currency symbols, thousands separators, parentheses and a trailing
        Dr/Cr marker are removed. A leading/trailing minus or surrounding
        parentheses mark a negative. Returns ``None`` for blank or
        unparseable cells.
        """
        if is_blank(value):
            return None
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float, Decimal)):
            amount = Decimal(str(value))
            if not amount.is_finite():
                return None
            return amount.copy_abs(), amount < 0

        text = _DR_CR_SUFFIX.sub("", str(value).strip())
        negative = "-" in text or (text.startswith("(") and text.endswith(")"))
        cleaned = _AMOUNT_NOISE.sub("", text).replace("-", "").replace("+", "")
        if not cleaned:
            return None
        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            logger.debug("Unparseable amount value %r", value)
            return None
        if not amount.is_finite():
            return None
        return amount.copy_abs(), negative

    def parse_amount(self, value: Any) -> Decimal:
        """Non-negative magnitude of an amount cell; zero when blank."""
        parsed = self.parse_signed_amount(value)
        return parsed[0] if parsed else Decimal("0")

    def parse_optional_amount(self, value: Any) -> Decimal | None:
        parsed = self.parse_signed_amount(value)
        return parsed[0] if parsed else None

    @staticmethod
    def clean_text(value: Any) -> str | None:
        if is_blank(value):
            return None
        return _WHITESPACE.sub(" ", str(value).strip())

    # ------------------------------------------------------------------
    # Transaction type derivation
    # ------------------------------------------------------------------

    def type_from_indicator(self, value: Any) -> TransactionType | None:
        """Read a credit/debit indicator cell against the configured tokens.

        Single-letter tokens (``c``, ``d``) must match the whole cell so that
        mode values such as ``CASH`` or ``CHQ`` are not read as indicators;
        longer tokens match as prefixes (``Cr.``, ``DEBIT``).
        """
        if is_blank(value):
            return None
        normalized = str(value).strip().lower()
        if any(_indicator_matches(normalized, ind) for ind in self.credit_indicators):
            return TransactionType.CREDIT
        if any(_indicator_matches(normalized, ind) for ind in self.debit_indicators):
            return TransactionType.DEBIT
        return None

    @staticmethod
    def type_from_amount_suffix(value: Any) -> TransactionType | None:
        """Polarity from a trailing Dr/Cr marker on an amount cell."""
        if is_blank(value) or not isinstance(value, str):
            return None
        match = _DR_CR_SUFFIX.search(value.strip())
        if match is None:
            return None
        if match.group(1).lower() == "cr":
            return TransactionType.CREDIT
        return TransactionType.DEBIT

    def type_from_description(self, description: str) -> TransactionType:
        """Keyword guess used when no indicator is available. Best effort."""
        lowered = description.lower()
        if any(keyword in lowered for keyword in self.CREDIT_KEYWORDS):
            return TransactionType.CREDIT
        return TransactionType.DEBIT

    def split_column_amount(self, row: StatementRow) -> tuple[Decimal, TransactionType]:
        """Amount and type from separate withdrawal/deposit columns.

        A non-zero deposit is a credit, a non-zero withdrawal a debit. When
        both are empty, a single amount column with an indicator is used.
        """
        withdrawal = self.parse_amount(row.get("withdrawal"))
        deposit = self.parse_amount(row.get("deposit"))

        if deposit > 0:
            return deposit, TransactionType.CREDIT
        if withdrawal > 0:
            return withdrawal, TransactionType.DEBIT

        amount = self.parse_amount(row.get("amount"))
        indicator = self.type_from_indicator(row.get("cr_dr"))
        if indicator is None:
            indicator = self.type_from_amount_suffix(row.get("amount"))
        if amount > 0 and indicator is not None:
            return amount, indicator
        return Decimal("0"), TransactionType.DEBIT

    def indicator_amount(
        self,
        row: StatementRow,
        description: str,
        indicator: Any = None,
    ) -> tuple[Decimal, TransactionType]:
        """Amount and type from one amount column plus a credit/debit indicator.

        Falls back to a Dr/Cr marker on the amount, then to description
        keywords, when the indicator is missing.
        """
        amount = self.parse_amount(row.get("amount"))
        if indicator is None:
            indicator = row.get("cr_dr")
        transaction_type = self.type_from_indicator(indicator)
        if transaction_type is None:
            transaction_type = self.type_from_amount_suffix(row.get("amount"))
        if transaction_type is None:
            transaction_type = self.type_from_description(description)
        return amount, transaction_type

    # ------------------------------------------------------------------
    # Record building
    # ------------------------------------------------------------------

    def build_transaction(
        self,
        *,
        transaction_date: date | None,
        description: Any,
        amount: Decimal,
        transaction_type: TransactionType,
        balance: Decimal | None = None,
        reference: Any = None,
        **extra_metadata: Any,
    ) -> CanonicalTransaction | None:
        """Assemble a canonical transaction, or ``None`` without a date."""
        if transaction_date is None:
            return None

        original = truncate(
            self.clean_text(description) or "",
            self.config.original_description_max_length,
        )
        metadata: dict[str, Any] = {
            "bank": self.profile.bank_code,
            "account_type": self.profile.account_type,
            "source": "statement_import",
        }
        metadata.update({k: v for k, v in extra_metadata.items() if v is not None})

        return CanonicalTransaction(
            transaction_date=transaction_date,
            description=truncate(original, self.config.description_max_length),
            original_description=original,
            amount=amount,
            transaction_type=transaction_type,
            balance=balance,
            reference=self.clean_text(reference),
            metadata=metadata,
        )


def _chain(first: list[Row], rest: Iterator[Row]) -> Iterator[Row]:
    yield from first
    yield from rest
