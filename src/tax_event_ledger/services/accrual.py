"""Accrual event recording (INVOICE_UPDATED rows)."""

from datetime import date
from uuid import UUID

from tax_event_ledger.domain.billing import Invoice
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import EventKind
from tax_event_ledger.exceptions import ClientNotFoundError, InvoiceNotFoundError
from tax_event_ledger.logging_config import get_logger
from tax_event_ledger.repositories.tenancy import Tenant
from tax_event_ledger.services.periods import PeriodResolver
from tax_event_ledger.services.snapshots import (
    TaxSnapshotBuilder,
    history_from_allocations,
)

logger = get_logger(__name__)


class AccrualEventRecorder:
    """Appends an INVOICE_UPDATED snapshot for an invoice.

    Callers are responsible for not recording twice in the same window; this
    recorder never supersedes earlier rows.
    """

    def __init__(self, builder: TaxSnapshotBuilder, periods: PeriodResolver) -> None:
        self._builder = builder
        self._periods = periods

    def record(
        self, tenant: Tenant, invoice: Invoice, period: date | None = None
    ) -> TransactionEvent:
        """Record the invoice's current tax position.

        Args:
            tenant: Tenant database holding the invoice.
            invoice: The invoice, as currently stored (trashed included).
            period: Period override for batch and backfill callers. Defaults
                to the end of the current UTC month.

        Raises:
            ClientNotFoundError: If the invoice's client does not exist.
            InvalidInvoiceStateError: If the invoice status is unknown.
        """
        repos = tenant.repos
        client = repos.clients.get(invoice.client_id)
        if client is None:
            raise ClientNotFoundError(invoice.client_id)

        history = history_from_allocations(
            repos.payments.list_invoice_allocations(invoice.id),
            repos.payments.payment_number,
        )
        report = self._builder.build_accrual_report(invoice, history, client)
        event = TransactionEvent.snapshot(
            event_id=EventKind.INVOICE_UPDATED,
            invoice=invoice,
            client=client,
            report=report,
            period=period or self._periods.current_period(),
            timestamp=int(self._periods.now().timestamp()),
        )
        repos.events.add(event)

        logger.info(
            "accrual_event_recorded",
            db=tenant.db,
            invoice_id=str(invoice.id),
            period=event.period.isoformat(),
            summary_status=report.tax_summary.status.value,
        )
        return event

    def record_by_id(
        self, tenant: Tenant, invoice_id: UUID, period: date | None = None
    ) -> TransactionEvent:
        invoice = tenant.repos.invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return self.record(tenant, invoice, period)
