"""ICICI Bank statement parsers: savings, current and credit card exports."""

from typing import ClassVar

from ..base import BaseStatementParser, StatementRow
from ..models import CanonicalTransaction, TransactionType


class IciciParser(BaseStatementParser):
    """Common ICICI layout knowledge shared by the account-specific parsers."""

    HEADER_INDICATORS: ClassVar[tuple[str, ...]] = (
        "Transaction ID",
        "Value Date",
        "S No.",
        "Transaction Remarks",
        "Withdrawal Amount",
    )
    SKIP_PATTERNS: ClassVar[tuple[str, ...]] = (
        "opening balance",
        "closing balance",
        "statement summary",
        "total",
        "transactions list",
        "account number",
        "statement period",
        "advanced search",
        "search",
    )
    DATE_FORMATS: ClassVar[tuple[str, ...]] = ("%d-%m-%Y", "%d/%m/%Y")

    def _common(self, row: StatementRow) -> dict:
        return {
            "transaction_date": self.parse_date(row.get("date")),
            "description": row.get("description"),
            "reference": row.get("reference"),
            "balance": self.parse_optional_amount(row.get("balance")),
            "value_date": self.clean_text(row.cell("Value Date")),
            "transaction_id": self.clean_text(row.cell("Transaction ID")),
        }


class IciciSavingsParser(IciciParser):
    """Savings exports: separate withdrawal and deposit columns."""

    def extract_row(self, row: StatementRow) -> CanonicalTransaction | None:
        amount, transaction_type = self.split_column_amount(row)
        return self.build_transaction(
            amount=amount,
            transaction_type=transaction_type,
            **self._common(row),
        )


class IciciCurrentParser(IciciParser):
    """Current account exports: one amount column plus a Cr/Dr indicator."""

    def extract_row(self, row: StatementRow) -> CanonicalTransaction | None:
        common = self._common(row)
        description = self.clean_text(common["description"]) or ""

        if row.get("amount") is None and (row.get("withdrawal") or row.get("deposit")):
            amount, transaction_type = self.split_column_amount(row)
        else:
            amount, transaction_type = self.indicator_amount(row, description)

        return self.build_transaction(
            amount=amount,
            transaction_type=transaction_type,
            **common,
        )


class IciciCreditCardParser(BaseStatementParser):
    """Credit card exports with a BillingAmountSign column.

    Running balances are not reported per line, so ``balance`` is always
    ``None``.
    """

    HEADER_INDICATORS: ClassVar[tuple[str, ...]] = (
        "Sr.No.",
        "Sr.No",
        "Transaction Details",
        "Amount(in Rs)",
        "BillingAmountSign",
        "Intl.Amount",
    )
    SKIP_PATTERNS: ClassVar[tuple[str, ...]] = IciciParser.SKIP_PATTERNS
    EXTRA_SKIP_PATTERNS: ClassVar[tuple[str, ...]] = (
        "transaction details:",
        "minimum amount due",
        "total amount due",
        "credit limit",
        "available credit",
        "statement date",
        "due date",
        "accountno",
        "customer name",
        "address",
    )
    DATE_FORMATS: ClassVar[tuple[str, ...]] = ("%d/%m/%Y", "%d-%m-%Y")
    COLUMN_FALLBACKS: ClassVar[dict[str, tuple[str, ...]]] = {
        "date": ("Date", "Transaction Date", "Txn Date", "Posting Date"),
        "description": ("Transaction Details", "Description", "Particulars", "Details"),
        "reference": ("Sr.No.", "Sr.No", "Reference Number", "Reference No", "Ref No"),
        "amount": (
            "Amount(in Rs)",
            "Amount (in Rs)",
            "Amount",
            "Billing Amount",
            "Transaction Amount",
        ),
        "cr_dr": ("BillingAmountSign", "Billing Amount Sign", "Sign", "Cr/Dr", "Type"),
    }

    def extract_row(self, row: StatementRow) -> CanonicalTransaction | None:
        description = self.clean_text(row.get("description")) or ""
        sign = row.cell("BillingAmountSign", "Billing Amount Sign")

        if sign is not None and str(sign).strip().upper() == "CR":
            amount = self.parse_amount(row.get("amount"))
            transaction_type = TransactionType.CREDIT
        else:
            amount, transaction_type = self.indicator_amount(row, description)

        return self.build_transaction(
            transaction_date=self.parse_date(row.get("date")),
            description=description,
            amount=amount,
            transaction_type=transaction_type,
            reference=row.get("reference"),
            international_amount=self.clean_text(row.cell("Intl.Amount", "International Amount")),
            reward_points=self.clean_text(row.cell("Reward Point Header", "Reward Points")),
        )
