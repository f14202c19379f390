"""Matching engine linking extracted invoices to bank transactions.

Candidates are the owner's unlinked debit transactions near the invoice's
amount and date. Each candidate is scored by an ordered list of scorers;
the best one is linked automatically when it clears the auto-match
threshold, otherwise the engine returns ranked suggestions for review.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from finrecon.extraction.models import ExtractedInvoiceFields, InvoiceStatus, check_transition
from finrecon.utils.config import MatchingConfig
from finrecon.utils.logger import get_logger

from .scorers import Scorer, default_scorers
from .store import StoredTransaction, TransactionStore

logger = get_logger(__name__)

MAX_SCORE = 100


class MatchTier(str, Enum):
    AUTO = "auto"
    SUGGEST = "suggest"
    NONE = "none"


@dataclass
class MatchCandidateScore:
    """Score of one candidate transaction for an invoice."""

    transaction: StoredTransaction
    score: int
    breakdown: dict[str, dict[str, Any]] = field(default_factory=dict)
    tier: MatchTier = MatchTier.NONE

    @property
    def transaction_id(self) -> int:
        return self.transaction.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction.id,
            "score": self.score,
            "tier": self.tier.value,
            "breakdown": self.breakdown,
            "transaction_date": self.transaction.transaction_date.isoformat(),
            "amount": str(self.transaction.amount),
            "description": self.transaction.description,
        }


@dataclass
class MatchDecision:
    """Outcome of a matching run for one invoice.

    ``status`` is the invoice's status after the run: ``matched`` when a
    transaction was linked, ``unmatched`` when nothing scored high enough
    to suggest, and unchanged (``extracted``) when suggestions await review.
    """

    invoice_id: str
    status: InvoiceStatus
    transaction_id: int | None = None
    confidence: float | None = None
    method: str | None = None
    suggestions: list[MatchCandidateScore] = field(default_factory=list)
    candidates_considered: int = 0
    error: str | None = None

    @property
    def matched(self) -> bool:
        return self.transaction_id is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoice_id": self.invoice_id,
            "status": self.status.value,
            "matched": self.matched,
            "transaction_id": self.transaction_id,
            "confidence": self.confidence,
            "method": self.method,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "candidates_considered": self.candidates_considered,
            "error": self.error,
        }


class MatchingEngine:
    """Scores candidate transactions and decides auto-match / suggest / none.

    Args:
        store: Transaction store to query and link through.
        scorers: Ordered scoring strategies. Defaults to amount, date and
            vendor scorers.
        config: Thresholds and candidate windows.
    """

    def __init__(
        self,
        store: TransactionStore,
        scorers: list[Scorer] | None = None,
        config: MatchingConfig | None = None,
    ) -> None:
        self.store = store
        self.scorers = scorers if scorers is not None else default_scorers()
        self.config = config or MatchingConfig()

    def match(
        self,
        invoice_id: str,
        owner_id: str,
        invoice: ExtractedInvoiceFields,
        status: InvoiceStatus = InvoiceStatus.EXTRACTED,
        today: date | None = None,
    ) -> MatchDecision:
        """Try to link an invoice to one of the owner's transactions.

        Args:
            invoice_id: Identifier stored on the linked transaction.
            owner_id: Owner whose transactions may be matched.
            invoice: Extracted invoice fields.
            status: Current invoice status; must allow matching.
            today: Reference date for the no-invoice-date window.

        Returns:
            The decision, including suggestions when not auto-matched.

        Raises:
            InvalidTransitionError: If the invoice cannot be matched from
                ``status``.
        """
        check_transition(status, InvoiceStatus.MATCHED)

        if invoice.total_amount is None:
            return MatchDecision(
                invoice_id=invoice_id,
                status=status,
                error="No amount found in invoice",
            )

        scored = self.score_candidates(invoice, self.find_candidates(owner_id, invoice, today))
        decision = MatchDecision(
            invoice_id=invoice_id,
            status=status,
            candidates_considered=len(scored),
        )

        lost: set[int] = set()
        for candidate in scored:
            if candidate.tier is not MatchTier.AUTO:
                break
            if self.store.link_invoice(candidate.transaction.id, invoice_id, owner_id):
                decision.status = InvoiceStatus.MATCHED
                decision.transaction_id = candidate.transaction.id
                decision.confidence = candidate.score / MAX_SCORE
                decision.method = "auto"
                logger.info(
                    "Auto-matched invoice %s to transaction %d (score %d)",
                    invoice_id,
                    candidate.transaction.id,
                    candidate.score,
                )
                return decision
            logger.info(
                "Transaction %d was linked concurrently, trying next candidate",
                candidate.transaction.id,
            )
            lost.add(candidate.transaction.id)

        decision.suggestions = self._suggestions(
            [c for c in scored if c.transaction.id not in lost]
        )
        if not decision.suggestions:
            check_transition(status, InvoiceStatus.UNMATCHED)
            decision.status = InvoiceStatus.UNMATCHED
            logger.info("No match for invoice %s among %d candidates", invoice_id, len(scored))
        else:
            logger.info(
                "Invoice %s has %d suggestions (best score %d)",
                invoice_id,
                len(decision.suggestions),
                decision.suggestions[0].score,
            )
        return decision

    def find_suggestions(
        self,
        owner_id: str,
        invoice: ExtractedInvoiceFields,
        today: date | None = None,
    ) -> list[MatchCandidateScore]:
        """Ranked suggestions without linking anything."""
        if invoice.total_amount is None:
            return []
        scored = self.score_candidates(invoice, self.find_candidates(owner_id, invoice, today))
        return self._suggestions(scored)

    def find_candidates(
        self,
        owner_id: str,
        invoice: ExtractedInvoiceFields,
        today: date | None = None,
    ) -> list[StoredTransaction]:
        min_amount, max_amount = self.amount_window(invoice.total_amount)
        start, end = self.date_window(invoice.invoice_date, today)
        return self.store.find_candidates(
            owner_id,
            min_amount,
            max_amount,
            start,
            end,
            limit=self.config.candidate_limit,
        )

    def amount_window(self, amount: Decimal) -> tuple[Decimal, Decimal]:
        """Invoice total plus or minus max(5%, 10)."""
        tolerance = max(
            amount * Decimal(str(self.config.amount_tolerance_pct)),
            Decimal(str(self.config.min_amount_tolerance)),
        )
        return amount - tolerance, amount + tolerance

    def date_window(self, invoice_date: date | None, today: date | None = None) -> tuple[date, date]:
        """Seven days either side of the invoice date, else the last 30 days."""
        if invoice_date is not None:
            days = timedelta(days=self.config.date_window_days)
            return invoice_date - days, invoice_date + days
        today = today or date.today()
        return today - timedelta(days=self.config.fallback_window_days), today

    def score_candidates(
        self,
        invoice: ExtractedInvoiceFields,
        candidates: list[StoredTransaction],
    ) -> list[MatchCandidateScore]:
        """Score and rank candidates, best first; ties keep candidate order."""
        scored = [self.score_candidate(invoice, txn) for txn in candidates]
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored

    def score_candidate(
        self, invoice: ExtractedInvoiceFields, transaction: StoredTransaction
    ) -> MatchCandidateScore:
        total = sum(scorer.score(invoice, transaction) for scorer in self.scorers)
        total = max(0, min(int(total), MAX_SCORE))
        breakdown = {
            scorer.name or type(scorer).__name__: scorer.breakdown(invoice, transaction)
            for scorer in self.scorers
        }
        return MatchCandidateScore(
            transaction=transaction,
            score=total,
            breakdown=breakdown,
            tier=self.tier_for(total),
        )

    def tier_for(self, score: int) -> MatchTier:
        if score >= self.config.auto_match_threshold:
            return MatchTier.AUTO
        if score >= self.config.suggest_threshold:
            return MatchTier.SUGGEST
        return MatchTier.NONE

    def _suggestions(self, scored: list[MatchCandidateScore]) -> list[MatchCandidateScore]:
        eligible = [c for c in scored if c.score >= self.config.suggest_threshold]
        return eligible[: self.config.max_suggestions]
