"""Profile-driven parser for banks without a dedicated implementation."""

from ..base import BaseStatementParser, StatementRow
from ..models import CanonicalTransaction, TransactionType


class GenericParser(BaseStatementParser):
    """Reads any export whose columns are described by ``column_mappings``.

    Split withdrawal/deposit columns are preferred. With a single amount
    column the type comes from the Cr/Dr indicator (or a Dr/Cr marker on the
    amount), then the amount's sign (negative is a debit), then description
    keywords.
    """

    def extract_row(self, row: StatementRow) -> CanonicalTransaction | None:
        description = self.clean_text(row.get("description")) or ""

        if row.get("withdrawal") is not None or row.get("deposit") is not None:
            amount, transaction_type = self.split_column_amount(row)
        else:
            amount, transaction_type = self._signed_amount(row, description)

        return self.build_transaction(
            transaction_date=self.parse_date(row.get("date")),
            description=description,
            amount=amount,
            transaction_type=transaction_type,
            balance=self.parse_optional_amount(row.get("balance")),
            reference=row.get("reference"),
        )

    def _signed_amount(self, row: StatementRow, description: str):
        parsed = self.parse_signed_amount(row.get("amount"))
        indicator = self.type_from_indicator(row.get("cr_dr"))
        if indicator is None:
            indicator = self.type_from_amount_suffix(row.get("amount"))
        if parsed is None:
            return self.parse_amount(None), indicator or TransactionType.DEBIT

        amount, negative = parsed
        if indicator is not None:
            return amount, indicator
        if negative:
            return amount, TransactionType.DEBIT
        return amount, self.type_from_description(description)
