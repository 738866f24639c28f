from collections.abc import Callable, Iterator
from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from tax_event_ledger.domain.billing import (
    Allocation,
    Client,
    Company,
    Invoice,
    LineItem,
    Payment,
    TaxLine,
)
from tax_event_ledger.domain.value_objects import (
    AllocationType,
    InvoiceStatus,
    PaymentStatus,
)
from tax_event_ledger.repositories.sqlite import SQLiteDatabase
from tax_event_ledger.repositories.tenancy import Tenant, TenantRegistry
from tax_event_ledger.services.accrual import AccrualEventRecorder
from tax_event_ledger.services.cash import CashEventRecorder
from tax_event_ledger.services.cash_period import CashPeriodRecorder
from tax_event_ledger.services.payment_reversal import PaymentReversalService
from tax_event_ledger.services.periods import PeriodResolver
from tax_event_ledger.services.snapshots import TaxSnapshotBuilder
from tax_event_ledger.services.tasks import InlineTaskRunner
from tax_event_ledger.services.tax_calculator import InvoiceTaxCalculator
from tax_event_ledger.services.tax_summary import TaxSummaryService

TENANT_DB = "db-ninja-01"
FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def database() -> Iterator[SQLiteDatabase]:
    db = SQLiteDatabase(":memory:", check_same_thread=False)
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def tenants(database: SQLiteDatabase) -> TenantRegistry:
    registry = TenantRegistry()
    registry.register(TENANT_DB, database)
    return registry


@pytest.fixture
def tenant(tenants: TenantRegistry) -> Tenant:
    return tenants.get(TENANT_DB)


@pytest.fixture
def periods() -> PeriodResolver:
    return PeriodResolver(clock=lambda: FIXED_NOW)


@pytest.fixture
def builder() -> TaxSnapshotBuilder:
    return TaxSnapshotBuilder(InvoiceTaxCalculator())


@pytest.fixture
def runner() -> InlineTaskRunner:
    return InlineTaskRunner(sleep=lambda seconds: None)


@pytest.fixture
def accrual_recorder(
    builder: TaxSnapshotBuilder, periods: PeriodResolver
) -> AccrualEventRecorder:
    return AccrualEventRecorder(builder, periods)


@pytest.fixture
def cash_recorder(
    builder: TaxSnapshotBuilder,
    periods: PeriodResolver,
    tenants: TenantRegistry,
    runner: InlineTaskRunner,
) -> CashEventRecorder:
    return CashEventRecorder(builder, periods, tenants, runner)


@pytest.fixture
def cash_period_recorder(
    builder: TaxSnapshotBuilder, periods: PeriodResolver
) -> CashPeriodRecorder:
    return CashPeriodRecorder(builder, periods)


@pytest.fixture
def reversal_service(cash_recorder: CashEventRecorder) -> PaymentReversalService:
    return PaymentReversalService(cash_recorder, sleep=lambda seconds: None)


@pytest.fixture
def tax_summary_service(
    accrual_recorder: AccrualEventRecorder,
    cash_period_recorder: CashPeriodRecorder,
    periods: PeriodResolver,
) -> TaxSummaryService:
    return TaxSummaryService(accrual_recorder, cash_period_recorder, periods)


@pytest.fixture
def company(tenant: Tenant) -> Company:
    company = Company(name="Acme Widgets", db=TENANT_DB, timezone="UTC")
    tenant.repos.companies.add(company)
    return company


@pytest.fixture
def client(tenant: Tenant, company: Company) -> Client:
    client = Client(
        company_id=company.id, name="Northwind", state="CA", country="US"
    )
    tenant.repos.clients.add(client)
    return client


@pytest.fixture
def make_invoice(
    tenant: Tenant, company: Company, client: Client
) -> Callable[..., Invoice]:
    """Persist an invoice with sensible defaults; keyword overrides win."""
    counter = iter(range(1, 10_000))

    def factory(**overrides) -> Invoice:
        amount = Decimal(overrides.pop("amount", "110.00"))
        fields = {
            "company_id": company.id,
            "client_id": client.id,
            "number": f"INV-{next(counter):04d}",
            "date": date(2024, 1, 10),
            "amount": amount,
            "balance": amount,
            "status": InvoiceStatus.SENT,
            "line_items": [LineItem(cost=Decimal("100.00"))],
            "tax_lines": [TaxLine(name="VAT", rate=Decimal("10"))],
        }
        fields.update(overrides)
        invoice = Invoice(**fields)
        tenant.repos.invoices.add(invoice)
        return invoice

    return factory


@pytest.fixture
def make_payment(
    tenant: Tenant, company: Company, client: Client
) -> Callable[..., Payment]:
    """Persist a payment allocated to the given invoices, and apply it.

    Invoice and client balances are moved the way a payment application
    would move them, so deleting the payment can be checked against the
    values from before it was made.
    """
    counter = iter(range(1, 10_000))

    def factory(
        allocations: list[tuple[Invoice, Decimal]],
        *,
        amount: Decimal | None = None,
        created_at: datetime = datetime(2024, 1, 20, 9, 30, tzinfo=UTC),
        apply: bool = True,
    ) -> Payment:
        repos = tenant.repos
        total = sum((allocated for _, allocated in allocations), Decimal("0"))
        payment = Payment(
            company_id=company.id,
            client_id=client.id,
            number=f"PAY-{next(counter):04d}",
            amount=total if amount is None else amount,
            applied=total,
            status=PaymentStatus.COMPLETED,
        )
        for invoice, allocated in allocations:
            payment.allocations.append(
                Allocation(
                    payment_id=payment.id,
                    allocation_type=AllocationType.INVOICE,
                    target_id=invoice.id,
                    amount=allocated,
                    created_at=created_at,
                )
            )
            if apply:
                invoice.balance -= allocated
                invoice.paid_to_date += allocated
                invoice.status = (
                    InvoiceStatus.PAID if invoice.balance == 0 else InvoiceStatus.PARTIAL
                )
                repos.invoices.update(invoice)
        repos.payments.add(payment)

        if apply and total:
            stored = repos.clients.get(client.id)
            stored.balance -= total
            stored.paid_to_date += total
            repos.clients.update(stored)
        return payment

    return factory
