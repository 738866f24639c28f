"""Tests for FastAPI endpoints."""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import Client

from tax_event_ledger.api.app import create_app
from tax_event_ledger.container import get_tenant
from tax_event_ledger.domain.billing import Invoice
from tax_event_ledger.exceptions import PaymentLockError, UnknownTenantError
from tax_event_ledger.repositories.tenancy import Tenant
from tax_event_ledger.services.accrual import AccrualEventRecorder
from tax_event_ledger.services.cash_period import CashPeriodRecorder

JANUARY = (
    datetime(2024, 1, 1, tzinfo=UTC),
    datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC),
)


@pytest.fixture
def test_client(tenant: Tenant) -> Client:
    """Create a test client bound to the in-memory tenant."""
    from starlette.testclient import TestClient

    app = create_app()
    app.dependency_overrides[get_tenant] = lambda: tenant
    return TestClient(app)


@pytest.fixture
def ledgered_invoice(
    tenant: Tenant,
    accrual_recorder: AccrualEventRecorder,
    cash_period_recorder: CashPeriodRecorder,
    make_invoice,
    make_payment,
) -> Invoice:
    invoice = make_invoice()
    make_payment([(invoice, Decimal("55.00"))])
    accrual_recorder.record(tenant, invoice, date(2024, 1, 31))
    cash_period_recorder.record(tenant, invoice, *JANUARY)
    accrual_recorder.record(tenant, invoice, date(2024, 2, 29))
    return invoice


class TestHealthEndpoint:
    def test_health_check_returns_ok(self, test_client: Client) -> None:
        response = test_client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"


class TestInvoiceEvents:
    def test_lists_rows_in_insertion_order(
        self, test_client: Client, ledgered_invoice: Invoice
    ) -> None:
        response = test_client.get(f"/ledger/invoices/{ledgered_invoice.id}/events")

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 3
        assert [e["event_kind"] for e in data["events"]] == [
            "invoice_updated",
            "payment_cash",
            "invoice_updated",
        ]
        assert [e["period"] for e in data["events"]] == [
            "2024-01-31",
            "2024-01-31",
            "2024-02-29",
        ]

    def test_event_body(self, test_client: Client, ledgered_invoice: Invoice) -> None:
        response = test_client.get(
            f"/ledger/invoices/{ledgered_invoice.id}/events",
            params={"event_kind": "payment_cash"},
        )

        [event] = response.json()["events"]
        assert event["event_id"] == 4
        assert event["invoice_id"] == str(ledgered_invoice.id)
        assert event["invoice_status"] == 3
        metadata = event["metadata"]
        assert metadata["tax_summary"]["total_paid"] == "5.00"
        assert metadata["tax_details"][0]["tax_name"] == "VAT"
        assert metadata["payment_history"][0]["number"] == "PAY-0001"

    def test_filter_by_code(
        self, test_client: Client, ledgered_invoice: Invoice
    ) -> None:
        response = test_client.get(
            f"/ledger/invoices/{ledgered_invoice.id}/events",
            params={"event_kind": "1"},
        )

        assert response.json()["count"] == 2

    def test_unknown_kind_is_rejected(
        self, test_client: Client, ledgered_invoice: Invoice
    ) -> None:
        response = test_client.get(
            f"/ledger/invoices/{ledgered_invoice.id}/events",
            params={"event_kind": "payment_bounced"},
        )

        assert response.status_code == 422

    def test_unknown_invoice_has_no_rows(self, test_client: Client) -> None:
        response = test_client.get(f"/ledger/invoices/{uuid4()}/events")

        assert response.status_code == 200
        assert response.json() == {"count": 0, "events": []}

    def test_malformed_invoice_id(self, test_client: Client) -> None:
        response = test_client.get("/ledger/invoices/not-a-uuid/events")

        assert response.status_code == 422


class TestEventQuery:
    def test_period_bounds(self, test_client: Client, ledgered_invoice: Invoice) -> None:
        response = test_client.get(
            "/ledger/events",
            params={"period_start": "2024-02-01", "period_end": "2024-02-29"},
        )

        data = response.json()
        assert data["count"] == 1
        assert data["events"][0]["period"] == "2024-02-29"

    def test_kind_across_invoices(
        self,
        test_client: Client,
        tenant: Tenant,
        accrual_recorder: AccrualEventRecorder,
        make_invoice,
        ledgered_invoice: Invoice,
    ) -> None:
        other = make_invoice()
        accrual_recorder.record(tenant, other)

        response = test_client.get(
            "/ledger/events", params={"event_kind": "invoice_updated"}
        )

        invoice_ids = {e["invoice_id"] for e in response.json()["events"]}
        assert invoice_ids == {str(ledgered_invoice.id), str(other.id)}

    def test_inverted_bounds_are_rejected(self, test_client: Client) -> None:
        response = test_client.get(
            "/ledger/events",
            params={"period_start": "2024-03-01", "period_end": "2024-02-01"},
        )

        assert response.status_code == 422


class TestErrorHandling:
    def test_domain_errors_become_json(self) -> None:
        from starlette.testclient import TestClient

        def missing_tenant() -> Tenant:
            raise UnknownTenantError("db-ninja-42")

        app = create_app()
        app.dependency_overrides[get_tenant] = missing_tenant

        response = TestClient(app).get("/ledger/events")

        assert response.status_code == 404
        assert response.json() == {
            "error": "UNKNOWN_TENANT",
            "message": "Unknown tenant database: db-ninja-42",
            "context": {"db": "db-ninja-42"},
        }

    def test_lock_errors_carry_retry_after(self) -> None:
        from starlette.testclient import TestClient

        def locked() -> Tenant:
            raise PaymentLockError(uuid4(), 2)

        app = create_app()
        app.dependency_overrides[get_tenant] = locked

        response = TestClient(app).get("/ledger/events")

        assert response.status_code == 409
        assert response.headers["Retry-After"] == "1"

    def test_request_id_is_echoed(self, test_client: Client) -> None:
        response = test_client.get("/health", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"
