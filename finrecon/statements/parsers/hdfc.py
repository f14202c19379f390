"""HDFC Bank savings/current statement parser."""

from typing import ClassVar

from ..base import BaseStatementParser, StatementRow
from ..models import CanonicalTransaction


class HdfcParser(BaseStatementParser):
    HEADER_INDICATORS: ClassVar[tuple[str, ...]] = ("Date", "Narration", "Closing Balance")
    SKIP_PATTERNS: ClassVar[tuple[str, ...]] = (
        "opening balance",
        "closing balance",
        "total",
        "statement summary",
    )
    DATE_FORMATS: ClassVar[tuple[str, ...]] = ("%d/%m/%y", "%d/%m/%Y", "%d-%m-%Y")
    COLUMN_FALLBACKS: ClassVar[dict[str, tuple[str, ...]]] = {
        "date": ("Date", "Transaction Date", "Value Dt"),
        "description": ("Narration", "Description", "Particulars"),
        "reference": ("Chq./Ref.No.", "Chq/Ref No", "Ref No", "Reference"),
        "withdrawal": ("Withdrawal Amt.", "Withdrawal Amount", "Withdrawal Amt", "Dr", "Debit"),
        "deposit": ("Deposit Amt.", "Deposit Amount", "Deposit Amt", "Cr", "Credit"),
        "balance": ("Closing Balance", "Balance"),
    }

    def extract_row(self, row: StatementRow) -> CanonicalTransaction | None:
        amount, transaction_type = self.split_column_amount(row)
        return self.build_transaction(
            transaction_date=self.parse_date(row.get("date")),
            description=row.get("description"),
            amount=amount,
            transaction_type=transaction_type,
            balance=self.parse_optional_amount(row.get("balance")),
            reference=row.get("reference"),
            value_date=self.clean_text(row.cell("Value Dt", "Value Date")),
        )
