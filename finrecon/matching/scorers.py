"""Scoring strategies for invoice-to-transaction matching.

Each scorer rates one aspect of a candidate pair and reports how it got
there. Scores are points, not fractions: the default scorers add up to at
most 100 (amount 50, date 25, vendor 25).
"""

import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from finrecon.extraction.models import ExtractedInvoiceFields

from .store import StoredTransaction


class Scorer(ABC):
    """A single matching signal.

    Subclasses set ``name`` (the breakdown key) and ``nominal_weight`` (the
    most points the scorer can award).
    """

    name: str = ""
    nominal_weight: int = 0

    @abstractmethod
    def score(self, invoice: ExtractedInvoiceFields, transaction: StoredTransaction) -> int:
        """Points awarded to the pair, between 0 and ``nominal_weight``."""

    @abstractmethod
    def breakdown(
        self, invoice: ExtractedInvoiceFields, transaction: StoredTransaction
    ) -> dict[str, Any]:
        """Explanation of the score for review screens."""


class AmountScorer(Scorer):
    """Exact amount 50; within 1% 35; within 5% 20; otherwise 0."""

    name = "amount"
    nominal_weight = 50

    EXACT = 50
    WITHIN_1_PERCENT = 35
    WITHIN_5_PERCENT = 20

    @staticmethod
    def _difference(
        invoice: ExtractedInvoiceFields, transaction: StoredTransaction
    ) -> tuple[Decimal, Decimal] | None:
        total = invoice.total_amount
        if total is None or total <= 0:
            return None
        diff = abs(transaction.amount - total)
        return diff, diff / total

    def score(self, invoice: ExtractedInvoiceFields, transaction: StoredTransaction) -> int:
        difference = self._difference(invoice, transaction)
        if difference is None:
            return 0
        diff, ratio = difference
        if diff < Decimal("0.01"):
            return self.EXACT
        if ratio <= Decimal("0.01"):
            return self.WITHIN_1_PERCENT
        if ratio <= Decimal("0.05"):
            return self.WITHIN_5_PERCENT
        return 0

    def breakdown(
        self, invoice: ExtractedInvoiceFields, transaction: StoredTransaction
    ) -> dict[str, Any]:
        difference = self._difference(invoice, transaction)
        if difference is None:
            return {}
        diff, ratio = difference
        points = self.score(invoice, transaction)
        if diff < Decimal("0.01"):
            return {"match": "exact", "points": points}
        percent = (ratio * 100).quantize(Decimal("0.01"))
        return {"match": f"{percent}% diff", "points": points}


class DateScorer(Scorer):
    """Same day 25; 1 day 20; 2-3 days 15; 4-7 days 5; otherwise 0."""

    name = "date"
    nominal_weight = 25

    def score(self, invoice: ExtractedInvoiceFields, transaction: StoredTransaction) -> int:
        if invoice.invoice_date is None:
            return 0
        days = abs((transaction.transaction_date - invoice.invoice_date).days)
        if days == 0:
            return 25
        if days == 1:
            return 20
        if days <= 3:
            return 15
        if days <= 7:
            return 5
        return 0

    def breakdown(
        self, invoice: ExtractedInvoiceFields, transaction: StoredTransaction
    ) -> dict[str, Any]:
        if invoice.invoice_date is None:
            return {}
        days = abs((transaction.transaction_date - invoice.invoice_date).days)
        return {"days_apart": days, "points": self.score(invoice, transaction)}


_SEPARATORS = re.compile(r"[/\-_@.]")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_SPACES = re.compile(r"\s+")


def normalize_name(text: str) -> str:
    """Lower-case, turn separators into spaces, drop other punctuation."""
    text = _SEPARATORS.sub(" ", text.lower())
    text = _NON_ALNUM.sub("", text)
    return _SPACES.sub(" ", text).strip()


def _significant_words(text: str) -> set[str]:
    return {w for w in text.split() if len(w) > 2}


class VendorScorer(Scorer):
    """Vendor name against the transaction description and counterparty.

    Full points when the normalized vendor name appears in the normalized
    description or merchant text; partial points when they share a word
    longer than two characters.
    """

    name = "vendor"
    nominal_weight = 25

    EXACT = 25
    PARTIAL = 15

    @staticmethod
    def _merchant_text(transaction: StoredTransaction) -> str:
        return transaction.counterparty_name or transaction.original_description or ""

    def score(self, invoice: ExtractedInvoiceFields, transaction: StoredTransaction) -> int:
        if not invoice.vendor_name:
            return 0
        vendor = normalize_name(invoice.vendor_name)
        if not vendor:
            return 0
        description = normalize_name(transaction.description or "")
        merchant = normalize_name(self._merchant_text(transaction))

        if vendor in description or vendor in merchant:
            return self.EXACT
        shared = _significant_words(vendor) & _significant_words(f"{description} {merchant}")
        return self.PARTIAL if shared else 0

    def breakdown(
        self, invoice: ExtractedInvoiceFields, transaction: StoredTransaction
    ) -> dict[str, Any]:
        if not invoice.vendor_name:
            return {}
        return {
            "invoice_vendor": invoice.vendor_name,
            "txn_description": transaction.description,
            "points": self.score(invoice, transaction),
        }


def default_scorers() -> list[Scorer]:
    return [AmountScorer(), DateScorer(), VendorScorer()]
