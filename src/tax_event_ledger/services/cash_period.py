"""PAYMENT_CASH rows: tax collected on an invoice within one window."""

from datetime import datetime

from tax_event_ledger.domain.billing import Invoice
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import EventKind
from tax_event_ledger.exceptions import ClientNotFoundError
from tax_event_ledger.logging_config import get_logger
from tax_event_ledger.repositories.tenancy import Tenant
from tax_event_ledger.services.periods import PeriodResolver, end_of_month
from tax_event_ledger.services.snapshots import (
    TaxSnapshotBuilder,
    history_from_allocations,
)

logger = get_logger(__name__)


class CashPeriodRecorder:
    def __init__(self, builder: TaxSnapshotBuilder, periods: PeriodResolver) -> None:
        self._builder = builder
        self._periods = periods

    def record(
        self, tenant: Tenant, invoice: Invoice, start: datetime, end: datetime
    ) -> TransactionEvent:
        """Snapshot the cash received for the invoice between start and end.

        The row belongs to the period ending the month of ``end`` and replaces
        any earlier PAYMENT_CASH row of that period.
        """
        repos = tenant.repos
        client = repos.clients.get(invoice.client_id)
        if client is None:
            raise ClientNotFoundError(invoice.client_id)

        history = history_from_allocations(
            repos.payments.list_invoice_allocations_between(invoice.id, start, end),
            repos.payments.payment_number,
        )
        report = self._builder.build_cash_report(invoice, history, client)
        event = TransactionEvent.snapshot(
            event_id=EventKind.PAYMENT_CASH,
            invoice=invoice,
            client=client,
            report=report,
            period=end_of_month(end.date()),
            timestamp=int(self._periods.now().timestamp()),
        )
        superseded = repos.events.supersede(event, replaces=[EventKind.PAYMENT_CASH])

        logger.info(
            "cash_period_event_recorded",
            db=tenant.db,
            invoice_id=str(invoice.id),
            period=event.period.isoformat(),
            payments=len(history),
            superseded=superseded,
        )
        return event
