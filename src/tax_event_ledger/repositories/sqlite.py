"""SQLite implementations of repository interfaces."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from uuid import UUID

from tax_event_ledger.domain.billing import (
    Allocation,
    BalanceAdjustment,
    BankTransaction,
    Client,
    Company,
    Credit,
    Invoice,
    Payment,
)
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import (
    AllocationType,
    EventKind,
    InvoiceStatus,
)
from tax_event_ledger.exceptions import (
    DatabaseError,
    IntegrityError,
    LockContentionError,
    PaymentNotFoundError,
)
from tax_event_ledger.logging_config import get_logger
from tax_event_ledger.repositories import rows
from tax_event_ledger.repositories.interfaces import (
    BalanceAdjustmentRepository,
    BankTransactionRepository,
    ClientRepository,
    CompanyRepository,
    CreditRepository,
    Database,
    InvoiceRepository,
    PaymentRepository,
    Repositories,
    TransactionEventRepository,
)

logger = get_logger(__name__)

SCHEMA = """
-- Companies table
CREATE TABLE IF NOT EXISTS companies (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    db TEXT NOT NULL,
    timezone TEXT NOT NULL DEFAULT 'UTC'
);
CREATE INDEX IF NOT EXISTS idx_companies_timezone ON companies(timezone);

-- Clients table
CREATE TABLE IF NOT EXISTS clients (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    name TEXT NOT NULL,
    balance TEXT NOT NULL DEFAULT '0',
    paid_to_date TEXT NOT NULL DEFAULT '0',
    credit_balance TEXT NOT NULL DEFAULT '0',
    state TEXT,
    country TEXT,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (company_id) REFERENCES companies(id)
);

-- Invoices table
CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    client_id TEXT NOT NULL,
    number TEXT NOT NULL,
    date TEXT NOT NULL,
    amount TEXT NOT NULL DEFAULT '0',
    balance TEXT NOT NULL DEFAULT '0',
    partial TEXT NOT NULL DEFAULT '0',
    paid_to_date TEXT NOT NULL DEFAULT '0',
    status_id INTEGER NOT NULL,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    deleted_at TEXT,
    tax_lines TEXT NOT NULL DEFAULT '[]',
    line_items TEXT NOT NULL DEFAULT '[]',
    nexus TEXT,
    country_nexus TEXT,
    FOREIGN KEY (company_id) REFERENCES companies(id),
    FOREIGN KEY (client_id) REFERENCES clients(id)
);
CREATE INDEX IF NOT EXISTS idx_invoices_company_date ON invoices(company_id, date);
CREATE INDEX IF NOT EXISTS idx_invoices_client ON invoices(client_id);

-- Credits table
CREATE TABLE IF NOT EXISTS credits (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    client_id TEXT NOT NULL,
    number TEXT NOT NULL,
    amount TEXT NOT NULL DEFAULT '0',
    balance TEXT NOT NULL DEFAULT '0',
    paid_to_date TEXT NOT NULL DEFAULT '0',
    status_id INTEGER NOT NULL,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    FOREIGN KEY (client_id) REFERENCES clients(id)
);

-- Payments table
CREATE TABLE IF NOT EXISTS payments (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    client_id TEXT NOT NULL,
    number TEXT NOT NULL,
    date TEXT NOT NULL,
    amount TEXT NOT NULL DEFAULT '0',
    refunded TEXT NOT NULL DEFAULT '0',
    applied TEXT NOT NULL DEFAULT '0',
    status_id INTEGER NOT NULL,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    deleted_at TEXT,
    FOREIGN KEY (client_id) REFERENCES clients(id)
);

-- Payment allocations (paymentables) table
CREATE TABLE IF NOT EXISTS payment_allocations (
    id TEXT PRIMARY KEY,
    payment_id TEXT NOT NULL,
    paymentable_type TEXT NOT NULL,
    paymentable_id TEXT NOT NULL,
    amount TEXT NOT NULL,
    refunded TEXT NOT NULL DEFAULT '0',
    created_at TEXT NOT NULL,
    FOREIGN KEY (payment_id) REFERENCES payments(id)
);
CREATE INDEX IF NOT EXISTS idx_allocations_payment ON payment_allocations(payment_id);
CREATE INDEX IF NOT EXISTS idx_allocations_target ON payment_allocations(paymentable_type, paymentable_id, created_at);

-- Bank transactions table
CREATE TABLE IF NOT EXISTS bank_transactions (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    amount TEXT NOT NULL,
    description TEXT,
    payment_id TEXT,
    invoice_ids TEXT,
    status_id INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_bank_transactions_payment ON bank_transactions(payment_id);

-- Client balance adjustments table
CREATE TABLE IF NOT EXISTS balance_adjustments (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    client_id TEXT NOT NULL,
    invoice_id TEXT,
    adjustment TEXT NOT NULL,
    balance TEXT NOT NULL,
    notes TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_balance_adjustments_client ON balance_adjustments(client_id);

-- Transaction events (ledger) table
CREATE TABLE IF NOT EXISTS transaction_events (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    invoice_id TEXT NOT NULL,
    client_id TEXT NOT NULL,
    client_balance TEXT NOT NULL,
    client_paid_to_date TEXT NOT NULL,
    client_credit_balance TEXT NOT NULL,
    invoice_balance TEXT NOT NULL,
    invoice_amount TEXT NOT NULL,
    invoice_partial TEXT NOT NULL,
    invoice_paid_to_date TEXT NOT NULL,
    invoice_status INTEGER NOT NULL,
    event_id INTEGER NOT NULL,
    timestamp INTEGER NOT NULL,
    period TEXT NOT NULL,
    metadata TEXT NOT NULL,
    payment_id TEXT,
    payment_amount TEXT,
    payment_refunded TEXT,
    payment_applied TEXT,
    payment_status INTEGER
);
CREATE INDEX IF NOT EXISTS idx_events_invoice ON transaction_events(invoice_id, event_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_events_period ON transaction_events(period, event_id);
"""


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def _translate(exc: sqlite3.Error) -> DatabaseError:
    message = str(exc)
    if isinstance(exc, sqlite3.IntegrityError):
        return IntegrityError(message)
    if isinstance(exc, sqlite3.OperationalError) and (
        "locked" in message or "busy" in message
    ):
        return LockContentionError(message)
    return DatabaseError(message)


class SQLiteDatabase(Database):
    """SQLite database connection manager.

    The connection runs in autocommit mode; ``transaction`` opens explicit
    ``BEGIN``/``SAVEPOINT`` blocks. One connection is shared per database, so
    transactions are serialized across threads of this process.
    """

    def __init__(
        self,
        path: str | Path = ":memory:",
        check_same_thread: bool = False,
        timeout: float = 5.0,
    ) -> None:
        self._path = str(path)
        self._check_same_thread = check_same_thread
        self._timeout = timeout
        self._connection: sqlite3.Connection | None = None
        self._tx_lock = threading.RLock()
        self._depth = 0

    def get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self._connection = sqlite3.connect(
                self._path,
                check_same_thread=self._check_same_thread,
                timeout=self._timeout,
                isolation_level=None,
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    def initialize(self) -> None:
        """Create all database tables."""
        conn = self.get_connection()
        conn.executescript(SCHEMA)

    @contextmanager
    def transaction(self, *, lock: bool = False) -> Iterator[None]:
        with self._tx_lock:
            conn = self.get_connection()
            if self._depth == 0:
                try:
                    conn.execute("BEGIN IMMEDIATE" if lock else "BEGIN")
                except sqlite3.Error as exc:
                    raise _translate(exc) from exc
                statement_end = "COMMIT"
                statement_abort = "ROLLBACK"
            else:
                name = f"sp_{self._depth}"
                conn.execute(f"SAVEPOINT {name}")
                statement_end = f"RELEASE SAVEPOINT {name}"
                statement_abort = f"ROLLBACK TO SAVEPOINT {name}"
            self._depth += 1
            try:
                yield
                conn.execute(statement_end)
            except sqlite3.Error as exc:
                self._abort(conn, statement_abort, statement_end)
                raise _translate(exc) from exc
            except BaseException:
                self._abort(conn, statement_abort, statement_end)
                raise
            finally:
                self._depth -= 1

    def _abort(self, conn: sqlite3.Connection, abort: str, end: str) -> None:
        if not conn.in_transaction:
            return
        conn.execute(abort)
        if abort.startswith("ROLLBACK TO"):
            conn.execute(end)

    def repositories(self) -> Repositories:
        return Repositories(
            companies=SQLiteCompanyRepository(self),
            clients=SQLiteClientRepository(self),
            invoices=SQLiteInvoiceRepository(self),
            credits=SQLiteCreditRepository(self),
            payments=SQLitePaymentRepository(self),
            bank_transactions=SQLiteBankTransactionRepository(self),
            balance_adjustments=SQLiteBalanceAdjustmentRepository(self),
            events=SQLiteTransactionEventRepository(self),
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class SQLiteCompanyRepository(CompanyRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, company: Company) -> None:
        conn = self._db.get_connection()
        conn.execute(
            "INSERT INTO companies (id, name, db, timezone) VALUES (?, ?, ?, ?)",
            (str(company.id), company.name, company.db, company.timezone),
        )

    def get(self, company_id: UUID) -> Company | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM companies WHERE id = ?", (str(company_id),)
        ).fetchone()
        return rows.company_from_row(row) if row else None

    def list_all(self) -> Iterable[Company]:
        conn = self._db.get_connection()
        result = conn.execute("SELECT * FROM companies ORDER BY name").fetchall()
        return [rows.company_from_row(row) for row in result]

    def list_in_timezones(self, timezones: Iterable[str]) -> Iterable[Company]:
        names = list(timezones)
        if not names:
            return []
        conn = self._db.get_connection()
        result = conn.execute(
            f"SELECT * FROM companies WHERE timezone IN ({_placeholders(len(names))}) "
            "ORDER BY name",
            names,
        ).fetchall()
        return [rows.company_from_row(row) for row in result]


class SQLiteClientRepository(ClientRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, client: Client) -> None:
        conn = self._db.get_connection()
        conn.execute(
            """
            INSERT INTO clients (id, company_id, name, balance, paid_to_date,
                                 credit_balance, state, country, is_deleted)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(client.id),
                str(client.company_id),
                client.name,
                str(client.balance),
                str(client.paid_to_date),
                str(client.credit_balance),
                client.state,
                client.country,
                1 if client.is_deleted else 0,
            ),
        )

    def get(self, client_id: UUID) -> Client | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM clients WHERE id = ?", (str(client_id),)
        ).fetchone()
        return rows.client_from_row(row) if row else None

    def update(self, client: Client) -> None:
        conn = self._db.get_connection()
        conn.execute(
            """
            UPDATE clients SET
                name = ?,
                balance = ?,
                paid_to_date = ?,
                credit_balance = ?,
                state = ?,
                country = ?,
                is_deleted = ?
            WHERE id = ?
            """,
            (
                client.name,
                str(client.balance),
                str(client.paid_to_date),
                str(client.credit_balance),
                client.state,
                client.country,
                1 if client.is_deleted else 0,
                str(client.id),
            ),
        )


class SQLiteInvoiceRepository(InvoiceRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, invoice: Invoice) -> None:
        conn = self._db.get_connection()
        conn.execute(
            f"INSERT INTO invoices ({', '.join(rows.INVOICE_COLUMNS)}) "
            f"VALUES ({_placeholders(len(rows.INVOICE_COLUMNS))})",
            rows.invoice_params(invoice),
        )

    def get(self, invoice_id: UUID, include_trashed: bool = True) -> Invoice | None:
        conn = self._db.get_connection()
        sql = "SELECT * FROM invoices WHERE id = ?"
        if not include_trashed:
            sql += " AND deleted_at IS NULL"
        row = conn.execute(sql, (str(invoice_id),)).fetchone()
        return rows.invoice_from_row(row) if row else None

    def get_many(self, invoice_ids: Iterable[UUID]) -> list[Invoice]:
        ids = [str(i) for i in invoice_ids]
        if not ids:
            return []
        conn = self._db.get_connection()
        result = conn.execute(
            f"SELECT * FROM invoices WHERE id IN ({_placeholders(len(ids))})", ids
        ).fetchall()
        by_id = {row["id"]: rows.invoice_from_row(row) for row in result}
        return [by_id[i] for i in ids if i in by_id]

    def update(self, invoice: Invoice) -> None:
        conn = self._db.get_connection()
        params = rows.invoice_params(invoice)
        assignments = ", ".join(f"{col} = ?" for col in rows.INVOICE_COLUMNS[1:])
        conn.execute(
            f"UPDATE invoices SET {assignments} WHERE id = ?",
            (*params[1:], params[0]),
        )

    def iter_for_accrual_sweep(
        self,
        company_id: UUID,
        start_date: date,
        end_date: date,
        statuses: Iterable[InvoiceStatus],
        window_start: int,
        window_end: int,
    ) -> Iterator[Invoice]:
        codes = [int(s) for s in statuses]
        conn = self._db.get_connection()
        result = conn.execute(
            f"""
            SELECT i.* FROM invoices i
            JOIN clients c ON c.id = i.client_id
            WHERE i.company_id = ?
            AND i.is_deleted = 0
            AND c.is_deleted = 0
            AND i.status_id IN ({_placeholders(len(codes))})
            AND i.date BETWEEN ? AND ?
            AND NOT EXISTS (
                SELECT 1 FROM transaction_events e
                WHERE e.invoice_id = i.id
                AND e.event_id = ?
                AND e.timestamp BETWEEN ? AND ?
            )
            ORDER BY i.date, i.number
            """,
            (
                str(company_id),
                *codes,
                start_date.isoformat(),
                end_date.isoformat(),
                int(EventKind.INVOICE_UPDATED),
                window_start,
                window_end,
            ),
        ).fetchall()
        for row in result:
            yield rows.invoice_from_row(row)

    def iter_for_cash_sweep(
        self,
        company_id: UUID,
        start: datetime,
        end: datetime,
        statuses: Iterable[InvoiceStatus],
        window_start: int,
        window_end: int,
    ) -> Iterator[Invoice]:
        codes = [int(s) for s in statuses]
        conn = self._db.get_connection()
        result = conn.execute(
            f"""
            SELECT i.* FROM invoices i
            JOIN clients c ON c.id = i.client_id
            WHERE i.company_id = ?
            AND i.is_deleted = 0
            AND c.is_deleted = 0
            AND i.status_id IN ({_placeholders(len(codes))})
            AND EXISTS (
                SELECT 1 FROM payment_allocations a
                WHERE a.paymentable_type = ?
                AND a.paymentable_id = i.id
                AND a.created_at BETWEEN ? AND ?
            )
            AND NOT EXISTS (
                SELECT 1 FROM transaction_events e
                WHERE e.invoice_id = i.id
                AND e.event_id = ?
                AND e.timestamp BETWEEN ? AND ?
            )
            ORDER BY i.date, i.number
            """,
            (
                str(company_id),
                *codes,
                AllocationType.INVOICE.value,
                rows.datetime_to_text(start),
                rows.datetime_to_text(end),
                int(EventKind.PAYMENT_CASH),
                window_start,
                window_end,
            ),
        ).fetchall()
        for row in result:
            invoice = rows.invoice_from_row(row)
            # Money is stored as text; compare as Decimal, not in SQL.
            if invoice.amount != invoice.balance:
                yield invoice

    def iter_without_events(
        self,
        company_id: UUID,
        end_date: date,
        statuses: Iterable[InvoiceStatus],
    ) -> Iterator[Invoice]:
        codes = [int(s) for s in statuses]
        conn = self._db.get_connection()
        result = conn.execute(
            f"""
            SELECT i.* FROM invoices i
            WHERE i.company_id = ?
            AND i.is_deleted = 0
            AND i.status_id IN ({_placeholders(len(codes))})
            AND i.date <= ?
            AND NOT EXISTS (
                SELECT 1 FROM transaction_events e WHERE e.invoice_id = i.id
            )
            ORDER BY i.date, i.number
            """,
            (str(company_id), *codes, end_date.isoformat()),
        ).fetchall()
        for row in result:
            yield rows.invoice_from_row(row)


class SQLiteCreditRepository(CreditRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, credit: Credit) -> None:
        conn = self._db.get_connection()
        conn.execute(
            """
            INSERT INTO credits (id, company_id, client_id, number, amount, balance,
                                 paid_to_date, status_id, is_deleted)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(credit.id),
                str(credit.company_id),
                str(credit.client_id),
                credit.number,
                str(credit.amount),
                str(credit.balance),
                str(credit.paid_to_date),
                int(credit.status),
                1 if credit.is_deleted else 0,
            ),
        )

    def get(self, credit_id: UUID) -> Credit | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM credits WHERE id = ?", (str(credit_id),)
        ).fetchone()
        return rows.credit_from_row(row) if row else None

    def update(self, credit: Credit) -> None:
        conn = self._db.get_connection()
        conn.execute(
            """
            UPDATE credits SET
                amount = ?,
                balance = ?,
                paid_to_date = ?,
                status_id = ?,
                is_deleted = ?
            WHERE id = ?
            """,
            (
                str(credit.amount),
                str(credit.balance),
                str(credit.paid_to_date),
                int(credit.status),
                1 if credit.is_deleted else 0,
                str(credit.id),
            ),
        )


class SQLitePaymentRepository(PaymentRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, payment: Payment) -> None:
        with self._db.transaction():
            conn = self._db.get_connection()
            conn.execute(
                f"INSERT INTO payments ({', '.join(rows.PAYMENT_COLUMNS)}) "
                f"VALUES ({_placeholders(len(rows.PAYMENT_COLUMNS))})",
                rows.payment_params(payment),
            )
            conn.executemany(
                f"INSERT INTO payment_allocations ({', '.join(rows.ALLOCATION_COLUMNS)}) "
                f"VALUES ({_placeholders(len(rows.ALLOCATION_COLUMNS))})",
                [rows.allocation_params(a) for a in payment.allocations],
            )

    def get(self, payment_id: UUID) -> Payment | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM payments WHERE id = ?", (str(payment_id),)
        ).fetchone()
        if row is None:
            return None
        return rows.payment_from_row(row, self._allocations(payment_id))

    def get_for_update(self, payment_id: UUID) -> Payment | None:
        # BEGIN IMMEDIATE already holds the database write lock.
        return self.get(payment_id)

    def update(self, payment: Payment) -> None:
        conn = self._db.get_connection()
        params = rows.payment_params(payment)
        assignments = ", ".join(f"{col} = ?" for col in rows.PAYMENT_COLUMNS[1:])
        conn.execute(
            f"UPDATE payments SET {assignments} WHERE id = ?",
            (*params[1:], params[0]),
        )

    def list_invoice_allocations(self, invoice_id: UUID) -> list[Allocation]:
        conn = self._db.get_connection()
        result = conn.execute(
            """
            SELECT * FROM payment_allocations
            WHERE paymentable_type = ? AND paymentable_id = ?
            ORDER BY created_at
            """,
            (AllocationType.INVOICE.value, str(invoice_id)),
        ).fetchall()
        return [rows.allocation_from_row(row) for row in result]

    def list_invoice_allocations_between(
        self, invoice_id: UUID, start: datetime, end: datetime
    ) -> list[Allocation]:
        conn = self._db.get_connection()
        result = conn.execute(
            """
            SELECT * FROM payment_allocations
            WHERE paymentable_type = ? AND paymentable_id = ?
            AND created_at BETWEEN ? AND ?
            ORDER BY created_at
            """,
            (
                AllocationType.INVOICE.value,
                str(invoice_id),
                rows.datetime_to_text(start),
                rows.datetime_to_text(end),
            ),
        ).fetchall()
        return [rows.allocation_from_row(row) for row in result]

    def payment_number(self, payment_id: UUID) -> str:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT number FROM payments WHERE id = ?", (str(payment_id),)
        ).fetchone()
        if row is None:
            raise PaymentNotFoundError(payment_id)
        return row["number"]

    def purge_allocations(self, payment_id: UUID) -> int:
        conn = self._db.get_connection()
        cursor = conn.execute(
            "DELETE FROM payment_allocations WHERE payment_id = ?", (str(payment_id),)
        )
        return cursor.rowcount

    def _allocations(self, payment_id: UUID) -> list[Allocation]:
        conn = self._db.get_connection()
        result = conn.execute(
            "SELECT * FROM payment_allocations WHERE payment_id = ? ORDER BY created_at",
            (str(payment_id),),
        ).fetchall()
        return [rows.allocation_from_row(row) for row in result]


class SQLiteBankTransactionRepository(BankTransactionRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, transaction: BankTransaction) -> None:
        conn = self._db.get_connection()
        conn.execute(
            """
            INSERT INTO bank_transactions (id, company_id, amount, description,
                                           payment_id, invoice_ids, status_id)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(transaction.id),
                str(transaction.company_id),
                str(transaction.amount),
                transaction.description,
                str(transaction.payment_id) if transaction.payment_id else None,
                rows.bank_transaction_invoice_ids(transaction),
                int(transaction.status),
            ),
        )

    def get(self, transaction_id: UUID) -> BankTransaction | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM bank_transactions WHERE id = ?", (str(transaction_id),)
        ).fetchone()
        return rows.bank_transaction_from_row(row) if row else None

    def iter_by_payment(self, payment_id: UUID) -> Iterator[BankTransaction]:
        conn = self._db.get_connection()
        result = conn.execute(
            "SELECT * FROM bank_transactions WHERE payment_id = ?",
            (str(payment_id),),
        ).fetchall()
        for row in result:
            yield rows.bank_transaction_from_row(row)

    def update(self, transaction: BankTransaction) -> None:
        conn = self._db.get_connection()
        conn.execute(
            """
            UPDATE bank_transactions SET
                amount = ?,
                description = ?,
                payment_id = ?,
                invoice_ids = ?,
                status_id = ?
            WHERE id = ?
            """,
            (
                str(transaction.amount),
                transaction.description,
                str(transaction.payment_id) if transaction.payment_id else None,
                rows.bank_transaction_invoice_ids(transaction),
                int(transaction.status),
                str(transaction.id),
            ),
        )


class SQLiteBalanceAdjustmentRepository(BalanceAdjustmentRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, adjustment: BalanceAdjustment) -> None:
        conn = self._db.get_connection()
        conn.execute(
            """
            INSERT INTO balance_adjustments (id, company_id, client_id, invoice_id,
                                             adjustment, balance, notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(adjustment.id),
                str(adjustment.company_id),
                str(adjustment.client_id),
                str(adjustment.invoice_id) if adjustment.invoice_id else None,
                str(adjustment.adjustment),
                str(adjustment.balance),
                adjustment.notes,
                rows.datetime_to_text(adjustment.created_at),
            ),
        )

    def list_by_client(self, client_id: UUID) -> list[BalanceAdjustment]:
        conn = self._db.get_connection()
        result = conn.execute(
            """
            SELECT * FROM balance_adjustments WHERE client_id = ?
            ORDER BY created_at, rowid
            """,
            (str(client_id),),
        ).fetchall()
        return [rows.balance_adjustment_from_row(row) for row in result]


class SQLiteTransactionEventRepository(TransactionEventRepository):
    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def add(self, event: TransactionEvent) -> None:
        conn = self._db.get_connection()
        conn.execute(
            f"INSERT INTO transaction_events ({', '.join(rows.EVENT_COLUMNS)}) "
            f"VALUES ({_placeholders(len(rows.EVENT_COLUMNS))})",
            rows.event_params(event),
        )

    def supersede(
        self, event: TransactionEvent, replaces: Iterable[EventKind]
    ) -> int:
        kinds = [int(k) for k in replaces]
        with self._db.transaction():
            conn = self._db.get_connection()
            deleted = 0
            if kinds:
                cursor = conn.execute(
                    f"""
                    DELETE FROM transaction_events
                    WHERE invoice_id = ? AND period = ?
                    AND event_id IN ({_placeholders(len(kinds))})
                    """,
                    (str(event.invoice_id), event.period.isoformat(), *kinds),
                )
                deleted = cursor.rowcount
            self.add(event)
        if deleted:
            logger.debug(
                "transaction_events_superseded",
                invoice_id=str(event.invoice_id),
                period=event.period.isoformat(),
                deleted=deleted,
            )
        return deleted

    def get(self, event_id: UUID) -> TransactionEvent | None:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM transaction_events WHERE id = ?", (str(event_id),)
        ).fetchone()
        return rows.event_from_row(row) if row else None

    def list_by_invoice(
        self, invoice_id: UUID, kinds: Iterable[EventKind] | None = None
    ) -> list[TransactionEvent]:
        return self.query(invoice_id=invoice_id, kinds=kinds)

    def list_by_period(
        self,
        period_start: date,
        period_end: date,
        kinds: Iterable[EventKind] | None = None,
    ) -> list[TransactionEvent]:
        return self.query(period_start=period_start, period_end=period_end, kinds=kinds)

    def list_by_kind(self, kind: EventKind) -> list[TransactionEvent]:
        return self.query(kinds=[kind])

    def query(
        self,
        *,
        invoice_id: UUID | None = None,
        company_id: UUID | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
        kinds: Iterable[EventKind] | None = None,
    ) -> list[TransactionEvent]:
        clauses: list[str] = []
        params: list[object] = []
        if invoice_id is not None:
            clauses.append("invoice_id = ?")
            params.append(str(invoice_id))
        if company_id is not None:
            clauses.append("company_id = ?")
            params.append(str(company_id))
        if period_start is not None:
            clauses.append("period >= ?")
            params.append(period_start.isoformat())
        if period_end is not None:
            clauses.append("period <= ?")
            params.append(period_end.isoformat())
        if kinds is not None:
            codes = [int(k) for k in kinds]
            if not codes:
                return []
            clauses.append(f"event_id IN ({_placeholders(len(codes))})")
            params.extend(codes)

        sql = "SELECT * FROM transaction_events"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY timestamp, rowid"

        conn = self._db.get_connection()
        result = conn.execute(sql, params).fetchall()
        return [rows.event_from_row(row) for row in result]

    def has_event_between(
        self, invoice_id: UUID, kind: EventKind, start_ts: int, end_ts: int
    ) -> bool:
        conn = self._db.get_connection()
        row = conn.execute(
            """
            SELECT 1 FROM transaction_events
            WHERE invoice_id = ? AND event_id = ?
            AND timestamp BETWEEN ? AND ?
            LIMIT 1
            """,
            (str(invoice_id), int(kind), start_ts, end_ts),
        ).fetchone()
        return row is not None
