"""Row mapping shared by the SQLite and PostgreSQL repositories.

Both backends store money as TEXT decimals, identifiers as TEXT UUIDs and
timestamps as fixed-width UTC ISO strings, so a row can be mapped the same
way whether it is a ``sqlite3.Row`` or a psycopg2 ``RealDictRow``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from tax_event_ledger.domain.billing import (
    Allocation,
    BalanceAdjustment,
    BankTransaction,
    Client,
    Company,
    Credit,
    Invoice,
    LineItem,
    Payment,
    TaxLine,
)
from tax_event_ledger.domain.tax_report import TaxReport, TaxSummary
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import (
    AllocationType,
    BankTransactionStatus,
    CreditStatus,
    EventKind,
    InvoiceStatus,
    PaymentStatus,
)

Row = Mapping[str, Any]

INVOICE_COLUMNS = (
    "id",
    "company_id",
    "client_id",
    "number",
    "date",
    "amount",
    "balance",
    "partial",
    "paid_to_date",
    "status_id",
    "is_deleted",
    "deleted_at",
    "tax_lines",
    "line_items",
    "nexus",
    "country_nexus",
)

EVENT_COLUMNS = (
    "id",
    "company_id",
    "invoice_id",
    "client_id",
    "client_balance",
    "client_paid_to_date",
    "client_credit_balance",
    "invoice_balance",
    "invoice_amount",
    "invoice_partial",
    "invoice_paid_to_date",
    "invoice_status",
    "event_id",
    "timestamp",
    "period",
    "metadata",
    "payment_id",
    "payment_amount",
    "payment_refunded",
    "payment_applied",
    "payment_status",
)

PAYMENT_COLUMNS = (
    "id",
    "company_id",
    "client_id",
    "number",
    "date",
    "amount",
    "refunded",
    "applied",
    "status_id",
    "is_deleted",
    "deleted_at",
)

ALLOCATION_COLUMNS = (
    "id",
    "payment_id",
    "paymentable_type",
    "paymentable_id",
    "amount",
    "refunded",
    "created_at",
)


def datetime_to_text(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def text_to_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _uuid_or_none(value: Any) -> UUID | None:
    return UUID(str(value)) if value else None


def _decimal_or_none(value: Any) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


def _invoice_status(value: Any) -> InvoiceStatus | int:
    # Unknown codes are kept raw so snapshot building can reject them loudly.
    try:
        return InvoiceStatus(int(value))
    except ValueError:
        return int(value)


def tax_lines_to_json(lines: list[TaxLine]) -> str:
    return json.dumps([{"name": line.name, "rate": str(line.rate)} for line in lines])


def tax_lines_from_json(raw: str | None) -> list[TaxLine]:
    if not raw:
        return []
    return [TaxLine(item["name"], Decimal(item["rate"])) for item in json.loads(raw)]


def line_items_to_json(items: list[LineItem]) -> str:
    return json.dumps(
        [
            {
                "cost": str(item.cost),
                "quantity": str(item.quantity),
                "description": item.description,
                "tax_lines": [
                    {"name": line.name, "rate": str(line.rate)}
                    for line in item.tax_lines
                ],
            }
            for item in items
        ]
    )


def line_items_from_json(raw: str | None) -> list[LineItem]:
    if not raw:
        return []
    return [
        LineItem(
            cost=Decimal(item["cost"]),
            quantity=Decimal(item.get("quantity", "1")),
            description=item.get("description", ""),
            tax_lines=[
                TaxLine(line["name"], Decimal(line["rate"]))
                for line in item.get("tax_lines", [])
            ],
        )
        for item in json.loads(raw)
    ]


# =============================================================================
# Row -> domain
# =============================================================================


def company_from_row(row: Row) -> Company:
    return Company(
        id=UUID(row["id"]),
        name=row["name"],
        db=row["db"],
        timezone=row["timezone"],
    )


def client_from_row(row: Row) -> Client:
    return Client(
        id=UUID(row["id"]),
        company_id=UUID(row["company_id"]),
        name=row["name"],
        balance=Decimal(row["balance"]),
        paid_to_date=Decimal(row["paid_to_date"]),
        credit_balance=Decimal(row["credit_balance"]),
        state=row["state"] or "",
        country=row["country"] or "",
        is_deleted=bool(row["is_deleted"]),
    )


def invoice_from_row(row: Row) -> Invoice:
    return Invoice(
        id=UUID(row["id"]),
        company_id=UUID(row["company_id"]),
        client_id=UUID(row["client_id"]),
        number=row["number"],
        date=date.fromisoformat(row["date"]),
        amount=Decimal(row["amount"]),
        balance=Decimal(row["balance"]),
        partial=Decimal(row["partial"]),
        paid_to_date=Decimal(row["paid_to_date"]),
        status=_invoice_status(row["status_id"]),
        is_deleted=bool(row["is_deleted"]),
        deleted_at=text_to_datetime(row["deleted_at"]),
        tax_lines=tax_lines_from_json(row["tax_lines"]),
        line_items=line_items_from_json(row["line_items"]),
        nexus=row["nexus"] or "",
        country_nexus=row["country_nexus"] or "",
    )


def invoice_params(invoice: Invoice) -> tuple:
    return (
        str(invoice.id),
        str(invoice.company_id),
        str(invoice.client_id),
        invoice.number,
        invoice.date.isoformat(),
        str(invoice.amount),
        str(invoice.balance),
        str(invoice.partial),
        str(invoice.paid_to_date),
        int(invoice.status),
        invoice.is_deleted,
        datetime_to_text(invoice.deleted_at),
        tax_lines_to_json(invoice.tax_lines),
        line_items_to_json(invoice.line_items),
        invoice.nexus,
        invoice.country_nexus,
    )


def credit_from_row(row: Row) -> Credit:
    return Credit(
        id=UUID(row["id"]),
        company_id=UUID(row["company_id"]),
        client_id=UUID(row["client_id"]),
        number=row["number"],
        amount=Decimal(row["amount"]),
        balance=Decimal(row["balance"]),
        paid_to_date=Decimal(row["paid_to_date"]),
        status=CreditStatus(int(row["status_id"])),
        is_deleted=bool(row["is_deleted"]),
    )


def allocation_from_row(row: Row) -> Allocation:
    return Allocation(
        id=UUID(row["id"]),
        payment_id=UUID(row["payment_id"]),
        allocation_type=AllocationType(row["paymentable_type"]),
        target_id=UUID(row["paymentable_id"]),
        amount=Decimal(row["amount"]),
        refunded=Decimal(row["refunded"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def allocation_params(allocation: Allocation) -> tuple:
    return (
        str(allocation.id),
        str(allocation.payment_id),
        allocation.allocation_type.value,
        str(allocation.target_id),
        str(allocation.amount),
        str(allocation.refunded),
        datetime_to_text(allocation.created_at),
    )


def payment_from_row(row: Row, allocations: list[Allocation]) -> Payment:
    return Payment(
        id=UUID(row["id"]),
        company_id=UUID(row["company_id"]),
        client_id=UUID(row["client_id"]),
        number=row["number"],
        date=date.fromisoformat(row["date"]),
        amount=Decimal(row["amount"]),
        refunded=Decimal(row["refunded"]),
        applied=Decimal(row["applied"]),
        status=PaymentStatus(int(row["status_id"])),
        is_deleted=bool(row["is_deleted"]),
        deleted_at=text_to_datetime(row["deleted_at"]),
        allocations=allocations,
    )


def payment_params(payment: Payment) -> tuple:
    return (
        str(payment.id),
        str(payment.company_id),
        str(payment.client_id),
        payment.number,
        payment.date.isoformat(),
        str(payment.amount),
        str(payment.refunded),
        str(payment.applied),
        int(payment.status),
        payment.is_deleted,
        datetime_to_text(payment.deleted_at),
    )


def bank_transaction_from_row(row: Row) -> BankTransaction:
    invoice_ids = row["invoice_ids"]
    return BankTransaction(
        id=UUID(row["id"]),
        company_id=UUID(row["company_id"]),
        amount=Decimal(row["amount"]),
        description=row["description"] or "",
        payment_id=_uuid_or_none(row["payment_id"]),
        invoice_ids=[UUID(i) for i in json.loads(invoice_ids)] if invoice_ids else None,
        status=BankTransactionStatus(int(row["status_id"])),
    )


def bank_transaction_invoice_ids(transaction: BankTransaction) -> str | None:
    if transaction.invoice_ids is None:
        return None
    return json.dumps([str(i) for i in transaction.invoice_ids])


def balance_adjustment_from_row(row: Row) -> BalanceAdjustment:
    return BalanceAdjustment(
        id=UUID(row["id"]),
        company_id=UUID(row["company_id"]),
        client_id=UUID(row["client_id"]),
        invoice_id=_uuid_or_none(row["invoice_id"]),
        adjustment=Decimal(row["adjustment"]),
        balance=Decimal(row["balance"]),
        notes=row["notes"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def event_from_row(row: Row) -> TransactionEvent:
    report = TaxReport.from_json(row["metadata"]) or TaxReport(
        tax_summary=TaxSummary(total_taxes=Decimal("0"), total_paid=Decimal("0")),
        amount=Decimal(row["invoice_amount"]),
    )
    payment_status = row["payment_status"]
    return TransactionEvent(
        id=UUID(row["id"]),
        company_id=UUID(row["company_id"]),
        invoice_id=UUID(row["invoice_id"]),
        client_id=UUID(row["client_id"]),
        client_balance=Decimal(row["client_balance"]),
        client_paid_to_date=Decimal(row["client_paid_to_date"]),
        client_credit_balance=Decimal(row["client_credit_balance"]),
        invoice_balance=Decimal(row["invoice_balance"]),
        invoice_amount=Decimal(row["invoice_amount"]),
        invoice_partial=Decimal(row["invoice_partial"]),
        invoice_paid_to_date=Decimal(row["invoice_paid_to_date"]),
        invoice_status=int(row["invoice_status"]),
        event_id=EventKind(int(row["event_id"])),
        timestamp=int(row["timestamp"]),
        period=date.fromisoformat(row["period"]),
        metadata=report,
        payment_id=_uuid_or_none(row["payment_id"]),
        payment_amount=_decimal_or_none(row["payment_amount"]),
        payment_refunded=_decimal_or_none(row["payment_refunded"]),
        payment_applied=_decimal_or_none(row["payment_applied"]),
        payment_status=int(payment_status) if payment_status is not None else None,
    )


def event_params(event: TransactionEvent) -> tuple:
    def _opt(value: Decimal | None) -> str | None:
        return str(value) if value is not None else None

    return (
        str(event.id),
        str(event.company_id),
        str(event.invoice_id),
        str(event.client_id),
        str(event.client_balance),
        str(event.client_paid_to_date),
        str(event.client_credit_balance),
        str(event.invoice_balance),
        str(event.invoice_amount),
        str(event.invoice_partial),
        str(event.invoice_paid_to_date),
        event.invoice_status,
        int(event.event_id),
        event.timestamp,
        event.period.isoformat(),
        event.metadata.to_json(),
        str(event.payment_id) if event.payment_id else None,
        _opt(event.payment_amount),
        _opt(event.payment_refunded),
        _opt(event.payment_applied),
        event.payment_status,
    )
