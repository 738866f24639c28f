from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from tax_event_ledger.domain.billing import Client, Invoice, Payment
from tax_event_ledger.domain.tax_report import TaxReport
from tax_event_ledger.domain.value_objects import (
    DELETED_INVOICE_STATUS,
    EventKind,
)


def _utc_timestamp() -> int:
    return int(datetime.now(UTC).timestamp())


@dataclass(frozen=True)
class TransactionEvent:
    """An immutable ledger row.

    Rows are never updated. The only removal path is superseding a
    same-period cash event for the same invoice right before its
    replacement is inserted.
    """

    company_id: UUID
    invoice_id: UUID
    client_id: UUID
    event_id: EventKind
    period: date
    metadata: TaxReport
    id: UUID = field(default_factory=uuid4)
    timestamp: int = field(default_factory=_utc_timestamp)
    client_balance: Decimal = Decimal("0")
    client_paid_to_date: Decimal = Decimal("0")
    client_credit_balance: Decimal = Decimal("0")
    invoice_balance: Decimal = Decimal("0")
    invoice_amount: Decimal = Decimal("0")
    invoice_partial: Decimal = Decimal("0")
    invoice_paid_to_date: Decimal = Decimal("0")
    invoice_status: int = 0
    payment_id: UUID | None = None
    payment_amount: Decimal | None = None
    payment_refunded: Decimal | None = None
    payment_applied: Decimal | None = None
    payment_status: int | None = None

    @classmethod
    def snapshot(
        cls,
        *,
        event_id: EventKind,
        invoice: Invoice,
        client: Client,
        report: TaxReport,
        period: date,
        timestamp: int,
        payment: Payment | None = None,
    ) -> "TransactionEvent":
        """Copy the current invoice, client and payment figures into a row."""
        payment_fields: dict = {}
        if payment is not None:
            payment_fields = {
                "payment_id": payment.id,
                "payment_amount": payment.amount,
                "payment_refunded": payment.refunded,
                "payment_applied": payment.applied,
                "payment_status": int(payment.status),
            }
        return cls(
            company_id=invoice.company_id,
            invoice_id=invoice.id,
            client_id=invoice.client_id,
            client_balance=client.balance,
            client_paid_to_date=client.paid_to_date,
            client_credit_balance=client.credit_balance,
            invoice_balance=invoice.balance,
            invoice_amount=invoice.amount,
            invoice_partial=invoice.partial,
            invoice_paid_to_date=invoice.paid_to_date,
            invoice_status=DELETED_INVOICE_STATUS
            if invoice.is_deleted
            else int(invoice.status),
            event_id=event_id,
            timestamp=timestamp,
            metadata=report,
            period=period,
            **payment_fields,
        )

    @property
    def is_payment_event(self) -> bool:
        return self.payment_id is not None
