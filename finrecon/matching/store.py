"""Transaction stores used by the matching engine.

The matching engine only needs three things from persistence: a filtered
candidate query, and an at-most-once link/unlink of an invoice to a
transaction. Both stores re-check "still unlinked and same owner" at the
moment of writing, so two concurrent match attempts can never link two
invoices to the same transaction.
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

from finrecon.statements.models import CanonicalTransaction, TransactionType
from finrecon.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoredTransaction:
    """A persisted transaction as seen by the matching engine."""

    id: int
    owner_id: str
    transaction: CanonicalTransaction
    counterparty_name: str | None = None
    invoice_id: str | None = None
    version: int = 0

    @property
    def amount(self) -> Decimal:
        return self.transaction.amount

    @property
    def transaction_date(self) -> date:
        return self.transaction.transaction_date

    @property
    def description(self) -> str:
        return self.transaction.description

    @property
    def original_description(self) -> str:
        return self.transaction.original_description

    @property
    def is_linked(self) -> bool:
        return self.invoice_id is not None


class TransactionStore(ABC):
    """Queryable set of transactions, scoped by owner."""

    @abstractmethod
    def add(
        self,
        owner_id: str,
        transaction: CanonicalTransaction,
        counterparty_name: str | None = None,
    ) -> StoredTransaction:
        """Persist a transaction and return its stored form."""

    def add_many(
        self, owner_id: str, transactions: list[CanonicalTransaction]
    ) -> list[StoredTransaction]:
        return [self.add(owner_id, t) for t in transactions]

    @abstractmethod
    def get(self, transaction_id: int) -> StoredTransaction | None:
        """Fetch one transaction by id."""

    @abstractmethod
    def find_candidates(
        self,
        owner_id: str,
        min_amount: Decimal,
        max_amount: Decimal,
        start_date: date,
        end_date: date,
        limit: int = 50,
    ) -> list[StoredTransaction]:
        """Unlinked debit transactions of an owner inside both windows.

        Results are most recent first (ties broken by newest id) and capped
        at ``limit``. Both windows are inclusive.
        """

    @abstractmethod
    def link_invoice(self, transaction_id: int, invoice_id: str, owner_id: str) -> bool:
        """Link an invoice if the transaction is still unlinked and owned by ``owner_id``.

        Returns:
            ``True`` if this call performed the link, ``False`` otherwise.
        """

    @abstractmethod
    def unlink_invoice(self, transaction_id: int, owner_id: str) -> bool:
        """Clear the link of an owner's transaction.

        Returns:
            ``True`` if a link was removed.
        """


class InMemoryTransactionStore(TransactionStore):
    """Thread-safe in-process store guarded by a single lock."""

    def __init__(self) -> None:
        self._records: dict[int, StoredTransaction] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def add(
        self,
        owner_id: str,
        transaction: CanonicalTransaction,
        counterparty_name: str | None = None,
    ) -> StoredTransaction:
        with self._lock:
            record = StoredTransaction(
                id=self._next_id,
                owner_id=owner_id,
                transaction=transaction,
                counterparty_name=counterparty_name,
            )
            self._records[record.id] = record
            self._next_id += 1
        return record

    def get(self, transaction_id: int) -> StoredTransaction | None:
        with self._lock:
            return self._records.get(transaction_id)

    def find_candidates(
        self,
        owner_id: str,
        min_amount: Decimal,
        max_amount: Decimal,
        start_date: date,
        end_date: date,
        limit: int = 50,
    ) -> list[StoredTransaction]:
        with self._lock:
            records = list(self._records.values())

        matches = [
            r
            for r in records
            if r.owner_id == owner_id
            and r.invoice_id is None
            and r.transaction.transaction_type is TransactionType.DEBIT
            and min_amount <= r.amount <= max_amount
            and start_date <= r.transaction_date <= end_date
        ]
        matches.sort(key=lambda r: (r.transaction_date, r.id), reverse=True)
        return matches[:limit]

    def link_invoice(self, transaction_id: int, invoice_id: str, owner_id: str) -> bool:
        with self._lock:
            record = self._records.get(transaction_id)
            if record is None or record.owner_id != owner_id or record.invoice_id is not None:
                return False
            self._records[transaction_id] = replace(
                record, invoice_id=invoice_id, version=record.version + 1
            )
        logger.debug("Linked invoice %s to transaction %d", invoice_id, transaction_id)
        return True

    def unlink_invoice(self, transaction_id: int, owner_id: str) -> bool:
        with self._lock:
            record = self._records.get(transaction_id)
            if record is None or record.owner_id != owner_id or record.invoice_id is None:
                return False
            self._records[transaction_id] = replace(
                record, invoice_id=None, version=record.version + 1
            )
        return True

    def __len__(self) -> int:
        return len(self._records)


class SQLiteTransactionStore(TransactionStore):
    """SQLite-backed store.

    Linking is a single conditional ``UPDATE`` that only succeeds while the
    row is unlinked and owned by the caller; ``rowcount`` tells whether this
    call won. Each operation opens its own connection, so the store can be
    shared between threads.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id TEXT NOT NULL,
                    transaction_date TEXT NOT NULL,
                    description TEXT NOT NULL,
                    original_description TEXT NOT NULL,
                    amount TEXT NOT NULL,
                    transaction_type TEXT NOT NULL,
                    balance TEXT,
                    reference TEXT,
                    metadata TEXT,  -- JSON object
                    counterparty_name TEXT,
                    invoice_id TEXT,
                    version INTEGER NOT NULL DEFAULT 0
                )
            """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_transactions_owner_date
                ON transactions (owner_id, transaction_date)
            """
            )

    def add(
        self,
        owner_id: str,
        transaction: CanonicalTransaction,
        counterparty_name: str | None = None,
    ) -> StoredTransaction:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO transactions (
                    owner_id, transaction_date, description, original_description,
                    amount, transaction_type, balance, reference, metadata,
                    counterparty_name
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    owner_id,
                    transaction.transaction_date.isoformat(),
                    transaction.description,
                    transaction.original_description,
                    str(transaction.amount),
                    transaction.transaction_type.value,
                    str(transaction.balance) if transaction.balance is not None else None,
                    transaction.reference,
                    json.dumps(transaction.metadata, default=str),
                    counterparty_name,
                ),
            )
            transaction_id = cursor.lastrowid
        return StoredTransaction(
            id=transaction_id,
            owner_id=owner_id,
            transaction=transaction,
            counterparty_name=counterparty_name,
        )

    def get(self, transaction_id: int) -> StoredTransaction | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE id = ?", (transaction_id,)
            ).fetchone()
        return self._from_row(row) if row else None

    def find_candidates(
        self,
        owner_id: str,
        min_amount: Decimal,
        max_amount: Decimal,
        start_date: date,
        end_date: date,
        limit: int = 50,
    ) -> list[StoredTransaction]:
        with self._transaction() as conn:
            rows = conn.execute(
                """
                SELECT * FROM transactions
                WHERE owner_id = ?
                  AND invoice_id IS NULL
                  AND transaction_type = ?
                  AND transaction_date BETWEEN ? AND ?
                ORDER BY transaction_date DESC, id DESC
            """,
                (
                    owner_id,
                    TransactionType.DEBIT.value,
                    start_date.isoformat(),
                    end_date.isoformat(),
                ),
            ).fetchall()

        # amounts are stored as exact decimal text; compare in Python
        records = (self._from_row(row) for row in rows)
        matches = [r for r in records if min_amount <= r.amount <= max_amount]
        return matches[:limit]

    def link_invoice(self, transaction_id: int, invoice_id: str, owner_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE transactions
                SET invoice_id = ?, version = version + 1
                WHERE id = ? AND owner_id = ? AND invoice_id IS NULL
            """,
                (invoice_id, transaction_id, owner_id),
            )
            linked = cursor.rowcount > 0
        if linked:
            logger.debug("Linked invoice %s to transaction %d", invoice_id, transaction_id)
        return linked

    def unlink_invoice(self, transaction_id: int, owner_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE transactions
                SET invoice_id = NULL, version = version + 1
                WHERE id = ? AND owner_id = ? AND invoice_id IS NOT NULL
            """,
                (transaction_id, owner_id),
            )
            return cursor.rowcount > 0

    @staticmethod
    def _from_row(row: sqlite3.Row) -> StoredTransaction:
        metadata: dict[str, Any] = json.loads(row["metadata"]) if row["metadata"] else {}
        transaction = CanonicalTransaction(
            transaction_date=date.fromisoformat(row["transaction_date"]),
            description=row["description"],
            original_description=row["original_description"],
            amount=Decimal(row["amount"]),
            transaction_type=TransactionType(row["transaction_type"]),
            balance=Decimal(row["balance"]) if row["balance"] is not None else None,
            reference=row["reference"],
            metadata=metadata,
        )
        return StoredTransaction(
            id=row["id"],
            owner_id=row["owner_id"],
            transaction=transaction,
            counterparty_name=row["counterparty_name"],
            invoice_id=row["invoice_id"],
            version=row["version"],
        )
