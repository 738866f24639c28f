"""API routes for the Tax Event Ledger.

The ledger surface is read only: rows are written by the recorders and the
payment reversal engine, never through HTTP.
"""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from tax_event_ledger import __version__
from tax_event_ledger.api.schemas import (
    HealthResponse,
    PaymentHistoryResponse,
    TaxDetailResponse,
    TaxReportResponse,
    TaxSummaryResponse,
    TransactionEventListResponse,
    TransactionEventResponse,
)
from tax_event_ledger.container import get_tenant
from tax_event_ledger.domain.tax_report import TaxReport
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import EventKind
from tax_event_ledger.repositories.tenancy import Tenant

# Create routers
health_router = APIRouter(tags=["health"])
ledger_router = APIRouter(prefix="/ledger", tags=["ledger"])


def parse_event_kind(value: str | None) -> EventKind | None:
    """Accept an event kind by name (``payment_cash``) or code (``4``)."""
    if value is None or value == "":
        return None
    try:
        if value.isdigit():
            return EventKind(int(value))
        return EventKind[value.upper()]
    except (KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown event kind: {value}",
        ) from None


# Helper functions
def _str_or_none(value) -> str | None:
    return None if value is None else str(value)


def _report_to_response(report: TaxReport) -> TaxReportResponse:
    summary = report.tax_summary
    return TaxReportResponse(
        tax_summary=TaxSummaryResponse(
            total_taxes=str(summary.total_taxes),
            total_paid=str(summary.total_paid),
            status=summary.status.value,
            adjustment=_str_or_none(summary.adjustment),
        ),
        tax_details=[
            TaxDetailResponse(**detail.to_dict()) for detail in report.tax_details
        ],
        amount=str(report.amount),
        payment_history=[
            PaymentHistoryResponse(**entry.to_dict()) for entry in report.payment_history
        ],
    )


def _event_to_response(event: TransactionEvent) -> TransactionEventResponse:
    """Convert a ledger row to its response schema."""
    return TransactionEventResponse(
        id=event.id,
        company_id=event.company_id,
        invoice_id=event.invoice_id,
        client_id=event.client_id,
        event_id=int(event.event_id),
        event_kind=event.event_id.name.lower(),
        timestamp=event.timestamp,
        period=event.period,
        client_balance=str(event.client_balance),
        client_paid_to_date=str(event.client_paid_to_date),
        client_credit_balance=str(event.client_credit_balance),
        invoice_balance=str(event.invoice_balance),
        invoice_amount=str(event.invoice_amount),
        invoice_partial=str(event.invoice_partial),
        invoice_paid_to_date=str(event.invoice_paid_to_date),
        invoice_status=event.invoice_status,
        payment_id=event.payment_id,
        payment_amount=_str_or_none(event.payment_amount),
        payment_refunded=_str_or_none(event.payment_refunded),
        payment_applied=_str_or_none(event.payment_applied),
        payment_status=event.payment_status,
        metadata=_report_to_response(event.metadata),
    )


def _list_response(events: list[TransactionEvent]) -> TransactionEventListResponse:
    return TransactionEventListResponse(
        count=len(events),
        events=[_event_to_response(event) for event in events],
    )


# Health endpoint
@health_router.get("/health", response_model=HealthResponse)
def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


# Ledger endpoints
@ledger_router.get(
    "/invoices/{invoice_id}/events", response_model=TransactionEventListResponse
)
def list_invoice_events(
    invoice_id: UUID,
    tenant: Annotated[Tenant, Depends(get_tenant)],
    event_kind: Annotated[str | None, Query()] = None,
) -> TransactionEventListResponse:
    """List the ledger rows of one invoice in insertion order."""
    kind = parse_event_kind(event_kind)
    events = tenant.repos.events.list_by_invoice(
        invoice_id, kinds=[kind] if kind else None
    )
    return _list_response(events)


@ledger_router.get("/events", response_model=TransactionEventListResponse)
def list_events(
    tenant: Annotated[Tenant, Depends(get_tenant)],
    period_start: Annotated[date | None, Query()] = None,
    period_end: Annotated[date | None, Query()] = None,
    event_kind: Annotated[str | None, Query()] = None,
) -> TransactionEventListResponse:
    """List ledger rows whose period falls within the given bounds."""
    if period_start and period_end and period_start > period_end:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="period_start must not be after period_end",
        )
    kind = parse_event_kind(event_kind)
    events = tenant.repos.events.query(
        period_start=period_start,
        period_end=period_end,
        kinds=[kind] if kind else None,
    )
    return _list_response(events)
