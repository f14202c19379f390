"""Axis Bank statement parser."""

from typing import ClassVar

from ..base import BaseStatementParser, StatementRow
from ..models import CanonicalTransaction


class AxisParser(BaseStatementParser):
    HEADER_INDICATORS: ClassVar[tuple[str, ...]] = ("Tran Date", "PARTICULARS", "DR", "CR", "BAL")
    SKIP_PATTERNS: ClassVar[tuple[str, ...]] = ("opening balance", "closing balance", "total")
    DATE_FORMATS: ClassVar[tuple[str, ...]] = ("%d-%m-%Y", "%d/%m/%Y")
    COLUMN_FALLBACKS: ClassVar[dict[str, tuple[str, ...]]] = {
        "date": ("Tran Date", "Transaction Date", "Date", "Value Date"),
        "description": ("PARTICULARS", "Description", "Narration"),
        "reference": ("CHQNO", "Chq No", "Cheque No", "Ref No"),
        "withdrawal": ("DR", "Debit", "Withdrawal"),
        "deposit": ("CR", "Credit", "Deposit"),
        "balance": ("BAL", "Balance"),
    }

    def extract_row(self, row: StatementRow) -> CanonicalTransaction | None:
        # rows without particulars are carry-forward lines
        if row.get("description") is None:
            return None

        amount, transaction_type = self.split_column_amount(row)
        return self.build_transaction(
            transaction_date=self.parse_date(row.get("date")),
            description=row.get("description"),
            amount=amount,
            transaction_type=transaction_type,
            balance=self.parse_optional_amount(row.get("balance")),
            reference=row.get("reference"),
            branch=self.clean_text(row.cell("SOL", "Init. Br")),
        )
