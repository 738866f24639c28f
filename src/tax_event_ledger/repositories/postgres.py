"""PostgreSQL implementations of repository interfaces."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

import psycopg2
import psycopg2.errors
import psycopg2.extras

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

STREAM_BATCH_SIZE = 500

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
    company_id TEXT NOT NULL REFERENCES companies(id),
    name TEXT NOT NULL,
    balance TEXT NOT NULL DEFAULT '0',
    paid_to_date TEXT NOT NULL DEFAULT '0',
    credit_balance TEXT NOT NULL DEFAULT '0',
    state TEXT,
    country TEXT,
    is_deleted BOOLEAN NOT NULL DEFAULT FALSE
);

-- Invoices table
CREATE TABLE IF NOT EXISTS invoices (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL REFERENCES companies(id),
    client_id TEXT NOT NULL REFERENCES clients(id),
    number TEXT NOT NULL,
    date TEXT NOT NULL,
    amount TEXT NOT NULL DEFAULT '0',
    balance TEXT NOT NULL DEFAULT '0',
    partial TEXT NOT NULL DEFAULT '0',
    paid_to_date TEXT NOT NULL DEFAULT '0',
    status_id INTEGER NOT NULL,
    is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
    deleted_at TEXT,
    tax_lines TEXT NOT NULL DEFAULT '[]',
    line_items TEXT NOT NULL DEFAULT '[]',
    nexus TEXT,
    country_nexus TEXT
);
CREATE INDEX IF NOT EXISTS idx_invoices_company_date ON invoices(company_id, date);
CREATE INDEX IF NOT EXISTS idx_invoices_client ON invoices(client_id);

-- Credits table
CREATE TABLE IF NOT EXISTS credits (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    client_id TEXT NOT NULL REFERENCES clients(id),
    number TEXT NOT NULL,
    amount TEXT NOT NULL DEFAULT '0',
    balance TEXT NOT NULL DEFAULT '0',
    paid_to_date TEXT NOT NULL DEFAULT '0',
    status_id INTEGER NOT NULL,
    is_deleted BOOLEAN NOT NULL DEFAULT FALSE
);

-- Payments table
CREATE TABLE IF NOT EXISTS payments (
    id TEXT PRIMARY KEY,
    company_id TEXT NOT NULL,
    client_id TEXT NOT NULL REFERENCES clients(id),
    number TEXT NOT NULL,
    date TEXT NOT NULL,
    amount TEXT NOT NULL DEFAULT '0',
    refunded TEXT NOT NULL DEFAULT '0',
    applied TEXT NOT NULL DEFAULT '0',
    status_id INTEGER NOT NULL,
    is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
    deleted_at TEXT
);

-- Payment allocations (paymentables) table
CREATE TABLE IF NOT EXISTS payment_allocations (
    id TEXT PRIMARY KEY,
    payment_id TEXT NOT NULL REFERENCES payments(id),
    paymentable_type TEXT NOT NULL,
    paymentable_id TEXT NOT NULL,
    amount TEXT NOT NULL,
    refunded TEXT NOT NULL DEFAULT '0',
    created_at TEXT NOT NULL
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
    seq BIGSERIAL,
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
    seq BIGSERIAL,
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
    timestamp BIGINT NOT NULL,
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

_LOCK_ERRORS = (
    psycopg2.errors.LockNotAvailable,
    psycopg2.errors.DeadlockDetected,
    psycopg2.errors.SerializationFailure,
)


def _placeholders(count: int) -> str:
    return ", ".join("%s" for _ in range(count))


def _translate(exc: psycopg2.Error) -> DatabaseError:
    message = str(exc).strip()
    if isinstance(exc, _LOCK_ERRORS):
        return LockContentionError(message)
    if isinstance(exc, psycopg2.IntegrityError):
        return IntegrityError(message)
    return DatabaseError(message)


class PostgresDatabase(Database):
    """PostgreSQL database connection manager.

    The connection runs in autocommit mode and ``transaction`` issues
    ``BEGIN``/``SAVEPOINT`` itself, matching the SQLite backend.
    """

    def __init__(self, connection_string: str, lock_timeout_ms: int = 5000) -> None:
        self._connection_string = connection_string
        self._lock_timeout_ms = lock_timeout_ms
        self._connection: psycopg2.extensions.connection | None = None
        self._tx_lock = threading.RLock()
        self._depth = 0

    def get_connection(self) -> psycopg2.extensions.connection:
        """Get or create the database connection."""
        if self._connection is None or self._connection.closed:
            self._connection = psycopg2.connect(
                self._connection_string,
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
            self._connection.autocommit = True
        return self._connection

    def initialize(self) -> None:
        """Create all database tables."""
        conn = self.get_connection()
        with conn.cursor() as cur:
            cur.execute(SCHEMA)

    def execute(self, sql: str, params: Iterable[Any] = ()) -> None:
        conn = self.get_connection()
        with conn.cursor() as cur:
            cur.execute(sql, tuple(params))

    @contextmanager
    def transaction(self, *, lock: bool = False) -> Iterator[None]:
        with self._tx_lock:
            if self._depth == 0:
                try:
                    self.execute("BEGIN")
                    if lock:
                        self.execute(f"SET LOCAL lock_timeout = {int(self._lock_timeout_ms)}")
                except psycopg2.Error as exc:
                    raise _translate(exc) from exc
                statement_end = "COMMIT"
                statement_abort = "ROLLBACK"
            else:
                name = f"sp_{self._depth}"
                self.execute(f"SAVEPOINT {name}")
                statement_end = f"RELEASE SAVEPOINT {name}"
                statement_abort = f"ROLLBACK TO SAVEPOINT {name}"
            self._depth += 1
            try:
                yield
                self.execute(statement_end)
            except psycopg2.Error as exc:
                self._abort(statement_abort, statement_end)
                raise _translate(exc) from exc
            except BaseException:
                self._abort(statement_abort, statement_end)
                raise
            finally:
                self._depth -= 1

    def _abort(self, abort: str, end: str) -> None:
        self.execute(abort)
        if abort.startswith("ROLLBACK TO"):
            self.execute(end)

    def repositories(self) -> Repositories:
        return Repositories(
            companies=PostgresCompanyRepository(self),
            clients=PostgresClientRepository(self),
            invoices=PostgresInvoiceRepository(self),
            credits=PostgresCreditRepository(self),
            payments=PostgresPaymentRepository(self),
            bank_transactions=PostgresBankTransactionRepository(self),
            balance_adjustments=PostgresBalanceAdjustmentRepository(self),
            events=PostgresTransactionEventRepository(self),
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None


class _PostgresRepository:
    def __init__(self, database: PostgresDatabase) -> None:
        self._db = database

    def _fetchone(self, sql: str, params: Iterable[Any] = ()) -> Any:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(sql, tuple(params))
            return cur.fetchone()

    def _fetchall(self, sql: str, params: Iterable[Any] = ()) -> list[Any]:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(sql, tuple(params))
            return cur.fetchall()

    def _stream(self, sql: str, params: Iterable[Any] = ()) -> Iterator[Any]:
        """Iterate a query through a server-side cursor."""
        conn = self._db.get_connection()
        with conn.cursor(name=f"stream_{uuid4().hex}", withhold=True) as cur:
            cur.itersize = STREAM_BATCH_SIZE
            cur.execute(sql, tuple(params))
            yield from cur

    def _rowcount(self, sql: str, params: Iterable[Any] = ()) -> int:
        conn = self._db.get_connection()
        with conn.cursor() as cur:
            cur.execute(sql, tuple(params))
            return cur.rowcount


class PostgresCompanyRepository(_PostgresRepository, CompanyRepository):
    """PostgreSQL implementation of CompanyRepository."""

    def add(self, company: Company) -> None:
        self._db.execute(
            "INSERT INTO companies (id, name, db, timezone) VALUES (%s, %s, %s, %s)",
            (str(company.id), company.name, company.db, company.timezone),
        )

    def get(self, company_id: UUID) -> Company | None:
        row = self._fetchone("SELECT * FROM companies WHERE id = %s", (str(company_id),))
        return rows.company_from_row(row) if row else None

    def list_all(self) -> Iterable[Company]:
        return [
            rows.company_from_row(row)
            for row in self._fetchall("SELECT * FROM companies ORDER BY name")
        ]

    def list_in_timezones(self, timezones: Iterable[str]) -> Iterable[Company]:
        names = list(timezones)
        if not names:
            return []
        result = self._fetchall(
            f"SELECT * FROM companies WHERE timezone IN ({_placeholders(len(names))}) "
            "ORDER BY name",
            names,
        )
        return [rows.company_from_row(row) for row in result]


class PostgresClientRepository(_PostgresRepository, ClientRepository):
    """PostgreSQL implementation of ClientRepository."""

    def add(self, client: Client) -> None:
        self._db.execute(
            """
            INSERT INTO clients (id, company_id, name, balance, paid_to_date,
                                 credit_balance, state, country, is_deleted)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
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
                client.is_deleted,
            ),
        )

    def get(self, client_id: UUID) -> Client | None:
        row = self._fetchone("SELECT * FROM clients WHERE id = %s", (str(client_id),))
        return rows.client_from_row(row) if row else None

    def update(self, client: Client) -> None:
        self._db.execute(
            """
            UPDATE clients SET
                name = %s,
                balance = %s,
                paid_to_date = %s,
                credit_balance = %s,
                state = %s,
                country = %s,
                is_deleted = %s
            WHERE id = %s
            """,
            (
                client.name,
                str(client.balance),
                str(client.paid_to_date),
                str(client.credit_balance),
                client.state,
                client.country,
                client.is_deleted,
                str(client.id),
            ),
        )


class PostgresInvoiceRepository(_PostgresRepository, InvoiceRepository):
    """PostgreSQL implementation of InvoiceRepository."""

    def add(self, invoice: Invoice) -> None:
        self._db.execute(
            f"INSERT INTO invoices ({', '.join(rows.INVOICE_COLUMNS)}) "
            f"VALUES ({_placeholders(len(rows.INVOICE_COLUMNS))})",
            rows.invoice_params(invoice),
        )

    def get(self, invoice_id: UUID, include_trashed: bool = True) -> Invoice | None:
        sql = "SELECT * FROM invoices WHERE id = %s"
        if not include_trashed:
            sql += " AND deleted_at IS NULL"
        row = self._fetchone(sql, (str(invoice_id),))
        return rows.invoice_from_row(row) if row else None

    def get_many(self, invoice_ids: Iterable[UUID]) -> list[Invoice]:
        ids = [str(i) for i in invoice_ids]
        if not ids:
            return []
        result = self._fetchall(
            f"SELECT * FROM invoices WHERE id IN ({_placeholders(len(ids))})", ids
        )
        by_id = {row["id"]: rows.invoice_from_row(row) for row in result}
        return [by_id[i] for i in ids if i in by_id]

    def update(self, invoice: Invoice) -> None:
        params = rows.invoice_params(invoice)
        assignments = ", ".join(f"{col} = %s" for col in rows.INVOICE_COLUMNS[1:])
        self._db.execute(
            f"UPDATE invoices SET {assignments} WHERE id = %s",
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
        result = self._stream(
            f"""
            SELECT i.* FROM invoices i
            JOIN clients c ON c.id = i.client_id
            WHERE i.company_id = %s
            AND i.is_deleted = FALSE
            AND c.is_deleted = FALSE
            AND i.status_id IN ({_placeholders(len(codes))})
            AND i.date BETWEEN %s AND %s
            AND NOT EXISTS (
                SELECT 1 FROM transaction_events e
                WHERE e.invoice_id = i.id
                AND e.event_id = %s
                AND e.timestamp BETWEEN %s AND %s
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
        )
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
        result = self._stream(
            f"""
            SELECT i.* FROM invoices i
            JOIN clients c ON c.id = i.client_id
            WHERE i.company_id = %s
            AND i.is_deleted = FALSE
            AND c.is_deleted = FALSE
            AND i.status_id IN ({_placeholders(len(codes))})
            AND CAST(i.amount AS NUMERIC) <> CAST(i.balance AS NUMERIC)
            AND EXISTS (
                SELECT 1 FROM payment_allocations a
                WHERE a.paymentable_type = %s
                AND a.paymentable_id = i.id
                AND a.created_at BETWEEN %s AND %s
            )
            AND NOT EXISTS (
                SELECT 1 FROM transaction_events e
                WHERE e.invoice_id = i.id
                AND e.event_id = %s
                AND e.timestamp BETWEEN %s AND %s
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
        )
        for row in result:
            yield rows.invoice_from_row(row)

    def iter_without_events(
        self,
        company_id: UUID,
        end_date: date,
        statuses: Iterable[InvoiceStatus],
    ) -> Iterator[Invoice]:
        codes = [int(s) for s in statuses]
        result = self._stream(
            f"""
            SELECT i.* FROM invoices i
            WHERE i.company_id = %s
            AND i.is_deleted = FALSE
            AND i.status_id IN ({_placeholders(len(codes))})
            AND i.date <= %s
            AND NOT EXISTS (
                SELECT 1 FROM transaction_events e WHERE e.invoice_id = i.id
            )
            ORDER BY i.date, i.number
            """,
            (str(company_id), *codes, end_date.isoformat()),
        )
        for row in result:
            yield rows.invoice_from_row(row)


class PostgresCreditRepository(_PostgresRepository, CreditRepository):
    """PostgreSQL implementation of CreditRepository."""

    def add(self, credit: Credit) -> None:
        self._db.execute(
            """
            INSERT INTO credits (id, company_id, client_id, number, amount, balance,
                                 paid_to_date, status_id, is_deleted)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
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
                credit.is_deleted,
            ),
        )

    def get(self, credit_id: UUID) -> Credit | None:
        row = self._fetchone("SELECT * FROM credits WHERE id = %s", (str(credit_id),))
        return rows.credit_from_row(row) if row else None

    def update(self, credit: Credit) -> None:
        self._db.execute(
            """
            UPDATE credits SET
                amount = %s,
                balance = %s,
                paid_to_date = %s,
                status_id = %s,
                is_deleted = %s
            WHERE id = %s
            """,
            (
                str(credit.amount),
                str(credit.balance),
                str(credit.paid_to_date),
                int(credit.status),
                credit.is_deleted,
                str(credit.id),
            ),
        )


class PostgresPaymentRepository(_PostgresRepository, PaymentRepository):
    """PostgreSQL implementation of PaymentRepository."""

    def add(self, payment: Payment) -> None:
        with self._db.transaction():
            self._db.execute(
                f"INSERT INTO payments ({', '.join(rows.PAYMENT_COLUMNS)}) "
                f"VALUES ({_placeholders(len(rows.PAYMENT_COLUMNS))})",
                rows.payment_params(payment),
            )
            for allocation in payment.allocations:
                self._db.execute(
                    f"INSERT INTO payment_allocations ({', '.join(rows.ALLOCATION_COLUMNS)}) "
                    f"VALUES ({_placeholders(len(rows.ALLOCATION_COLUMNS))})",
                    rows.allocation_params(allocation),
                )

    def get(self, payment_id: UUID) -> Payment | None:
        row = self._fetchone("SELECT * FROM payments WHERE id = %s", (str(payment_id),))
        if row is None:
            return None
        return rows.payment_from_row(row, self._allocations(payment_id))

    def get_for_update(self, payment_id: UUID) -> Payment | None:
        row = self._fetchone(
            "SELECT * FROM payments WHERE id = %s FOR UPDATE", (str(payment_id),)
        )
        if row is None:
            return None
        return rows.payment_from_row(row, self._allocations(payment_id))

    def update(self, payment: Payment) -> None:
        params = rows.payment_params(payment)
        assignments = ", ".join(f"{col} = %s" for col in rows.PAYMENT_COLUMNS[1:])
        self._db.execute(
            f"UPDATE payments SET {assignments} WHERE id = %s",
            (*params[1:], params[0]),
        )

    def list_invoice_allocations(self, invoice_id: UUID) -> list[Allocation]:
        result = self._fetchall(
            """
            SELECT * FROM payment_allocations
            WHERE paymentable_type = %s AND paymentable_id = %s
            ORDER BY created_at
            """,
            (AllocationType.INVOICE.value, str(invoice_id)),
        )
        return [rows.allocation_from_row(row) for row in result]

    def list_invoice_allocations_between(
        self, invoice_id: UUID, start: datetime, end: datetime
    ) -> list[Allocation]:
        result = self._fetchall(
            """
            SELECT * FROM payment_allocations
            WHERE paymentable_type = %s AND paymentable_id = %s
            AND created_at BETWEEN %s AND %s
            ORDER BY created_at
            """,
            (
                AllocationType.INVOICE.value,
                str(invoice_id),
                rows.datetime_to_text(start),
                rows.datetime_to_text(end),
            ),
        )
        return [rows.allocation_from_row(row) for row in result]

    def payment_number(self, payment_id: UUID) -> str:
        row = self._fetchone(
            "SELECT number FROM payments WHERE id = %s", (str(payment_id),)
        )
        if row is None:
            raise PaymentNotFoundError(payment_id)
        return row["number"]

    def purge_allocations(self, payment_id: UUID) -> int:
        return self._rowcount(
            "DELETE FROM payment_allocations WHERE payment_id = %s", (str(payment_id),)
        )

    def _allocations(self, payment_id: UUID) -> list[Allocation]:
        result = self._fetchall(
            "SELECT * FROM payment_allocations WHERE payment_id = %s ORDER BY created_at",
            (str(payment_id),),
        )
        return [rows.allocation_from_row(row) for row in result]


class PostgresBankTransactionRepository(_PostgresRepository, BankTransactionRepository):
    """PostgreSQL implementation of BankTransactionRepository."""

    def add(self, transaction: BankTransaction) -> None:
        self._db.execute(
            """
            INSERT INTO bank_transactions (id, company_id, amount, description,
                                           payment_id, invoice_ids, status_id)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
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
        row = self._fetchone(
            "SELECT * FROM bank_transactions WHERE id = %s", (str(transaction_id),)
        )
        return rows.bank_transaction_from_row(row) if row else None

    def iter_by_payment(self, payment_id: UUID) -> Iterator[BankTransaction]:
        result = self._fetchall(
            "SELECT * FROM bank_transactions WHERE payment_id = %s", (str(payment_id),)
        )
        for row in result:
            yield rows.bank_transaction_from_row(row)

    def update(self, transaction: BankTransaction) -> None:
        self._db.execute(
            """
            UPDATE bank_transactions SET
                amount = %s,
                description = %s,
                payment_id = %s,
                invoice_ids = %s,
                status_id = %s
            WHERE id = %s
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


class PostgresBalanceAdjustmentRepository(
    _PostgresRepository, BalanceAdjustmentRepository
):
    """PostgreSQL implementation of BalanceAdjustmentRepository."""

    def add(self, adjustment: BalanceAdjustment) -> None:
        self._db.execute(
            """
            INSERT INTO balance_adjustments (id, company_id, client_id, invoice_id,
                                             adjustment, balance, notes, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
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
        result = self._fetchall(
            "SELECT * FROM balance_adjustments WHERE client_id = %s ORDER BY created_at, seq",
            (str(client_id),),
        )
        return [rows.balance_adjustment_from_row(row) for row in result]


class PostgresTransactionEventRepository(
    _PostgresRepository, TransactionEventRepository
):
    """PostgreSQL implementation of TransactionEventRepository."""

    def add(self, event: TransactionEvent) -> None:
        self._db.execute(
            f"INSERT INTO transaction_events ({', '.join(rows.EVENT_COLUMNS)}) "
            f"VALUES ({_placeholders(len(rows.EVENT_COLUMNS))})",
            rows.event_params(event),
        )

    def supersede(
        self, event: TransactionEvent, replaces: Iterable[EventKind]
    ) -> int:
        kinds = [int(k) for k in replaces]
        with self._db.transaction():
            deleted = 0
            if kinds:
                deleted = self._rowcount(
                    f"""
                    DELETE FROM transaction_events
                    WHERE invoice_id = %s AND period = %s
                    AND event_id IN ({_placeholders(len(kinds))})
                    """,
                    (str(event.invoice_id), event.period.isoformat(), *kinds),
                )
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
        row = self._fetchone(
            "SELECT * FROM transaction_events WHERE id = %s", (str(event_id),)
        )
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
            clauses.append("invoice_id = %s")
            params.append(str(invoice_id))
        if company_id is not None:
            clauses.append("company_id = %s")
            params.append(str(company_id))
        if period_start is not None:
            clauses.append("period >= %s")
            params.append(period_start.isoformat())
        if period_end is not None:
            clauses.append("period <= %s")
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
        sql += " ORDER BY timestamp, seq"
        return [rows.event_from_row(row) for row in self._fetchall(sql, params)]

    def has_event_between(
        self, invoice_id: UUID, kind: EventKind, start_ts: int, end_ts: int
    ) -> bool:
        row = self._fetchone(
            """
            SELECT 1 AS found FROM transaction_events
            WHERE invoice_id = %s AND event_id = %s
            AND timestamp BETWEEN %s AND %s
            LIMIT 1
            """,
            (str(invoice_id), int(kind), start_ts, end_ts),
        )
        return row is not None
