"""Tests for SQLite repository implementations."""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from tax_event_ledger.domain.billing import (
    BalanceAdjustment,
    BankTransaction,
    Client,
    Company,
    Credit,
    Invoice,
    LineItem,
    TaxLine,
)
from tax_event_ledger.domain.tax_report import TaxReport, TaxSummary
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import (
    BankTransactionStatus,
    CreditStatus,
    EventKind,
    InvoiceStatus,
)
from tax_event_ledger.exceptions import (
    IntegrityError,
    LockContentionError,
    PaymentNotFoundError,
)
from tax_event_ledger.repositories.sqlite import SQLiteDatabase
from tax_event_ledger.repositories.tenancy import Tenant


def _event(
    invoice: Invoice,
    kind: EventKind,
    period: date,
    timestamp: int = 1_710_000_000,
    total_paid: str = "0",
) -> TransactionEvent:
    return TransactionEvent(
        company_id=invoice.company_id,
        invoice_id=invoice.id,
        client_id=invoice.client_id,
        event_id=kind,
        period=period,
        timestamp=timestamp,
        metadata=TaxReport(
            tax_summary=TaxSummary(
                total_taxes=Decimal("10.00"), total_paid=Decimal(total_paid)
            ),
            amount=invoice.amount,
        ),
        invoice_amount=invoice.amount,
        invoice_status=int(invoice.status),
    )


class TestSQLiteDatabase:
    def test_initialize_is_idempotent(self, database: SQLiteDatabase) -> None:
        database.initialize()
        tables = {
            row["name"]
            for row in database.get_connection().execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            )
        }
        assert {"invoices", "payments", "payment_allocations", "transaction_events"} <= (
            tables
        )

    def test_transaction_rolls_back_on_error(
        self, tenant: Tenant, company: Company
    ) -> None:
        client = Client(company_id=company.id, name="Rollback Ltd")

        with pytest.raises(RuntimeError):
            with tenant.database.transaction():
                tenant.repos.clients.add(client)
                raise RuntimeError("boom")

        assert tenant.repos.clients.get(client.id) is None

    def test_nested_transaction_rolls_back_to_savepoint(
        self, tenant: Tenant, company: Company
    ) -> None:
        outer = Client(company_id=company.id, name="Outer")
        inner = Client(company_id=company.id, name="Inner")

        with tenant.database.transaction():
            tenant.repos.clients.add(outer)
            with pytest.raises(RuntimeError):
                with tenant.database.transaction():
                    tenant.repos.clients.add(inner)
                    raise RuntimeError("inner failure")

        assert tenant.repos.clients.get(outer.id) is not None
        assert tenant.repos.clients.get(inner.id) is None

    def test_integrity_errors_are_translated(
        self, tenant: Tenant, company: Company
    ) -> None:
        with pytest.raises(IntegrityError):
            with tenant.database.transaction():
                tenant.repos.companies.add(company)

    def test_contended_write_lock_raises_lock_contention(self, tmp_path) -> None:
        path = tmp_path / "ledger.db"
        first = SQLiteDatabase(path, timeout=0.05)
        first.initialize()
        second = SQLiteDatabase(path, timeout=0.05)

        try:
            with first.transaction(lock=True):
                with pytest.raises(LockContentionError):
                    with second.transaction(lock=True):
                        pass
        finally:
            first.close()
            second.close()


class TestInvoiceRepository:
    def test_round_trip(self, tenant: Tenant, make_invoice) -> None:
        invoice = make_invoice(
            line_items=[
                LineItem(
                    cost=Decimal("12.50"),
                    quantity=Decimal("4"),
                    description="Widgets",
                    tax_lines=[TaxLine("VAT", Decimal("20"))],
                )
            ],
            tax_lines=[TaxLine("City", Decimal("1.5"))],
            nexus="TX",
        )

        loaded = tenant.repos.invoices.get(invoice.id)

        assert loaded == invoice

    def test_trashed_invoice_hidden_on_request(
        self, tenant: Tenant, make_invoice
    ) -> None:
        invoice = make_invoice()
        invoice.trash()
        tenant.repos.invoices.update(invoice)

        assert tenant.repos.invoices.get(invoice.id) is not None
        assert tenant.repos.invoices.get(invoice.id, include_trashed=False) is None

    def test_unknown_status_code_is_preserved(
        self, tenant: Tenant, make_invoice
    ) -> None:
        invoice = make_invoice(status=8)

        assert tenant.repos.invoices.get(invoice.id).status == 8

    def test_get_many_keeps_requested_order(
        self, tenant: Tenant, make_invoice
    ) -> None:
        first, second = make_invoice(), make_invoice()

        loaded = tenant.repos.invoices.get_many([second.id, uuid4(), first.id])

        assert [i.id for i in loaded] == [second.id, first.id]

    def test_iter_without_events(self, tenant: Tenant, company: Company, make_invoice) -> None:
        untouched = make_invoice()
        snapshotted = make_invoice()
        make_invoice(status=InvoiceStatus.DRAFT)
        make_invoice(date=date(2024, 3, 2))
        tenant.repos.events.add(
            _event(snapshotted, EventKind.INVOICE_UPDATED, date(2024, 1, 31))
        )

        found = list(
            tenant.repos.invoices.iter_without_events(
                company.id, date(2024, 2, 29), [InvoiceStatus.SENT]
            )
        )

        assert [i.id for i in found] == [untouched.id]

    def test_cash_sweep_compares_money_exactly(
        self, tenant: Tenant, company: Company, make_invoice, make_payment
    ) -> None:
        # Cast to REAL, the first invoice's amount and balance are equal.
        part_paid = make_invoice(
            amount="1234567890123456.02",
            balance=Decimal("1234567890123456.01"),
            status=InvoiceStatus.PARTIAL,
        )
        unpaid = make_invoice(
            amount="110.00", balance=Decimal("110.0"), status=InvoiceStatus.PARTIAL
        )
        make_payment(
            [(part_paid, Decimal("0")), (unpaid, Decimal("0"))],
            created_at=datetime(2024, 2, 20, 8, 0, tzinfo=UTC),
            apply=False,
        )

        found = list(
            tenant.repos.invoices.iter_for_cash_sweep(
                company.id,
                datetime(2024, 2, 1, tzinfo=UTC),
                datetime(2024, 2, 29, 23, 59, 59, tzinfo=UTC),
                [InvoiceStatus.PARTIAL],
                0,
                0,
            )
        )

        assert [i.id for i in found] == [part_paid.id]


class TestPaymentRepository:
    def test_round_trip_with_allocations(
        self, tenant: Tenant, make_invoice, make_payment
    ) -> None:
        invoice = make_invoice()
        payment = make_payment([(invoice, Decimal("40.00"))])

        loaded = tenant.repos.payments.get(payment.id)

        assert loaded == payment
        assert loaded.invoice_allocations[0].target_id == invoice.id

    def test_allocations_between(self, tenant: Tenant, make_invoice, make_payment) -> None:
        invoice = make_invoice()
        make_payment(
            [(invoice, Decimal("10.00"))],
            created_at=datetime(2024, 1, 31, 23, 0, tzinfo=UTC),
        )
        make_payment(
            [(invoice, Decimal("20.00"))],
            created_at=datetime(2024, 2, 1, 0, 30, tzinfo=UTC),
        )

        january = tenant.repos.payments.list_invoice_allocations_between(
            invoice.id,
            datetime(2024, 1, 1, tzinfo=UTC),
            datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC),
        )

        assert [a.amount for a in january] == [Decimal("10.00")]
        assert len(tenant.repos.payments.list_invoice_allocations(invoice.id)) == 2

    def test_purge_allocations(self, tenant: Tenant, make_invoice, make_payment) -> None:
        invoice = make_invoice()
        payment = make_payment([(invoice, Decimal("10.00"))])

        assert tenant.repos.payments.purge_allocations(payment.id) == 1
        assert tenant.repos.payments.get(payment.id).allocations == []

    def test_payment_number(self, tenant: Tenant, make_invoice, make_payment) -> None:
        payment = make_payment([(make_invoice(), Decimal("1.00"))])

        assert tenant.repos.payments.payment_number(payment.id) == payment.number
        with pytest.raises(PaymentNotFoundError):
            tenant.repos.payments.payment_number(uuid4())


class TestOtherRepositories:
    def test_credit_round_trip(self, tenant: Tenant, company: Company, client: Client) -> None:
        credit = Credit(
            company_id=company.id,
            client_id=client.id,
            number="CR-1",
            amount=Decimal("25.00"),
            balance=Decimal("5.00"),
            paid_to_date=Decimal("20.00"),
            status=CreditStatus.PARTIAL,
        )
        tenant.repos.credits.add(credit)

        assert tenant.repos.credits.get(credit.id) == credit

    def test_bank_transactions_by_payment(
        self, tenant: Tenant, company: Company, make_invoice, make_payment
    ) -> None:
        invoice = make_invoice()
        payment = make_payment([(invoice, Decimal("10.00"))])
        transaction = BankTransaction(
            company_id=company.id,
            amount=Decimal("10.00"),
            payment_id=payment.id,
            invoice_ids=[invoice.id],
            status=BankTransactionStatus.MATCHED,
        )
        tenant.repos.bank_transactions.add(transaction)

        [found] = tenant.repos.bank_transactions.iter_by_payment(payment.id)

        assert found == transaction

    def test_balance_adjustments_by_client(
        self, tenant: Tenant, company: Company, client: Client
    ) -> None:
        adjustment = BalanceAdjustment(
            company_id=company.id,
            client_id=client.id,
            adjustment=Decimal("10.00"),
            balance=Decimal("110.00"),
            notes="Adjusting invoice INV-1",
        )
        tenant.repos.balance_adjustments.add(adjustment)

        assert tenant.repos.balance_adjustments.list_by_client(client.id) == [adjustment]

    def test_companies_in_timezones(self, tenant: Tenant, company: Company) -> None:
        sydney = Company(name="Bondi Co", db="db-ninja-01", timezone="Australia/Sydney")
        tenant.repos.companies.add(sydney)

        found = tenant.repos.companies.list_in_timezones(["Australia/Sydney"])

        assert [c.id for c in found] == [sydney.id]
        assert tenant.repos.companies.list_in_timezones([]) == []


class TestTransactionEventRepository:
    def test_round_trip(self, tenant: Tenant, make_invoice) -> None:
        event = _event(make_invoice(), EventKind.INVOICE_UPDATED, date(2024, 1, 31))
        tenant.repos.events.add(event)

        assert tenant.repos.events.get(event.id) == event

    def test_supersede_replaces_same_period_rows(
        self, tenant: Tenant, make_invoice
    ) -> None:
        invoice = make_invoice()
        events = tenant.repos.events
        period = date(2024, 3, 31)
        accrual = _event(invoice, EventKind.INVOICE_UPDATED, period)
        events.add(accrual)
        events.add(_event(invoice, EventKind.PAYMENT_REFUNDED, period, total_paid="1"))
        older = _event(invoice, EventKind.PAYMENT_REFUNDED, date(2024, 2, 29))
        events.add(older)

        replacement = _event(invoice, EventKind.PAYMENT_DELETED, period, total_paid="2")
        deleted = events.supersede(
            replacement, [EventKind.PAYMENT_REFUNDED, EventKind.PAYMENT_DELETED]
        )

        assert deleted == 1
        assert {e.id for e in events.list_by_invoice(invoice.id)} == {
            accrual.id,
            older.id,
            replacement.id,
        }

    def test_query_filters(self, tenant: Tenant, make_invoice) -> None:
        invoice, other = make_invoice(), make_invoice()
        events = tenant.repos.events
        events.add(_event(invoice, EventKind.INVOICE_UPDATED, date(2024, 1, 31), 1))
        events.add(_event(invoice, EventKind.PAYMENT_CASH, date(2024, 2, 29), 2))
        events.add(_event(other, EventKind.INVOICE_UPDATED, date(2024, 2, 29), 3))

        assert len(events.list_by_invoice(invoice.id)) == 2
        assert len(events.list_by_period(date(2024, 2, 1), date(2024, 2, 29))) == 2
        assert len(events.list_by_kind(EventKind.INVOICE_UPDATED)) == 2
        assert [
            e.event_id
            for e in events.query(invoice_id=invoice.id, kinds=[EventKind.PAYMENT_CASH])
        ] == [EventKind.PAYMENT_CASH]
        assert events.query(kinds=[]) == []

    def test_rows_come_back_in_timestamp_order(
        self, tenant: Tenant, make_invoice
    ) -> None:
        invoice = make_invoice()
        late = _event(invoice, EventKind.INVOICE_UPDATED, date(2024, 1, 31), 20)
        early = _event(invoice, EventKind.INVOICE_UPDATED, date(2024, 1, 31), 10)
        tenant.repos.events.add(late)
        tenant.repos.events.add(early)

        assert [e.id for e in tenant.repos.events.list_by_invoice(invoice.id)] == [
            early.id,
            late.id,
        ]

    def test_has_event_between(self, tenant: Tenant, make_invoice) -> None:
        invoice = make_invoice()
        tenant.repos.events.add(
            _event(invoice, EventKind.INVOICE_UPDATED, date(2024, 1, 31), 500)
        )

        assert tenant.repos.events.has_event_between(
            invoice.id, EventKind.INVOICE_UPDATED, 400, 600
        )
        assert not tenant.repos.events.has_event_between(
            invoice.id, EventKind.INVOICE_UPDATED, 600, 700
        )
        assert not tenant.repos.events.has_event_between(
            invoice.id, EventKind.PAYMENT_CASH, 400, 600
        )
