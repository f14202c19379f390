"""Canonical transaction records produced by the statement parsers."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any


class TransactionType(str, Enum):
    """Polarity of a transaction. Amounts themselves are never signed."""

    DEBIT = "debit"
    CREDIT = "credit"


@dataclass(frozen=True)
class CanonicalTransaction:
    """Normalized representation of one statement line."""

    transaction_date: date
    description: str
    original_description: str
    amount: Decimal
    transaction_type: TransactionType
    balance: Decimal | None = None
    reference: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("Transaction amount must be a non-negative magnitude")

    @property
    def is_debit(self) -> bool:
        return self.transaction_type is TransactionType.DEBIT

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON/CSV friendly dictionary."""
        return {
            "transaction_date": self.transaction_date.isoformat(),
            "description": self.description,
            "original_description": self.original_description,
            "amount": str(self.amount),
            "transaction_type": self.transaction_type.value,
            "balance": str(self.balance) if self.balance is not None else None,
            "reference": self.reference,
            "metadata": dict(self.metadata),
        }


@dataclass
class ParseResult:
    """Transactions parsed from one statement plus diagnostics.

    ``errors`` holds file-level failures (the transaction list is empty when
    any are present); ``warnings`` holds row-level problems that were skipped.
    """

    transactions: list[CanonicalTransaction] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    rows_seen: int = 0
    rows_skipped: int = 0
    header_row: int | None = None

    @property
    def success(self) -> bool:
        return not self.errors
