"""State Bank of India statement parser."""

from typing import ClassVar

from ..base import BaseStatementParser, StatementRow
from ..models import CanonicalTransaction


class SbiParser(BaseStatementParser):
    """SBI exports date cells as ``01 Mar 2024`` and splits debit/credit."""

    HEADER_INDICATORS: ClassVar[tuple[str, ...]] = (
        "Txn Date",
        "Transaction Date",
        "Value Date",
        "Description",
        "Debit",
        "Credit",
    )
    DATE_FORMATS: ClassVar[tuple[str, ...]] = ("%d %b %Y", "%d-%b-%Y", "%d/%m/%Y", "%d-%m-%Y")
    COLUMN_FALLBACKS: ClassVar[dict[str, tuple[str, ...]]] = {
        "date": ("Txn Date", "Transaction Date", "Value Date", "Date"),
        "description": ("Description", "Narration", "Particulars"),
        "reference": ("Ref No./Cheque No.", "Ref No.", "Cheque No.", "Reference", "Chq No"),
        "withdrawal": ("Debit", "Withdrawal"),
        "deposit": ("Credit", "Deposit"),
        "balance": ("Balance",),
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
            value_date=self.clean_text(row.cell("Value Date")),
        )
