"""Pydantic v2 schemas for API response models."""

from datetime import date
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Schema for health check response."""

    status: str
    version: str = "0.1.0"


# Tax report schemas. Money is rendered as decimal strings, as stored.
class TaxSummaryResponse(BaseModel):
    total_taxes: str
    total_paid: str
    status: str
    adjustment: str | None = None


class TaxDetailResponse(BaseModel):
    tax_name: str
    tax_rate: str
    nexus: str
    country_nexus: str
    taxable_amount: str
    tax_amount: str
    tax_amount_paid: str
    tax_amount_remaining: str
    tax_status: str
    adjustment_reason: str | None = None


class PaymentHistoryResponse(BaseModel):
    number: str
    date: str
    amount: str
    refunded: str


class TaxReportResponse(BaseModel):
    """Schema for the tax report embedded in a ledger row."""

    tax_summary: TaxSummaryResponse
    tax_details: list[TaxDetailResponse]
    amount: str
    payment_history: list[PaymentHistoryResponse]


class TransactionEventResponse(BaseModel):
    """Schema for one ledger row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_id: UUID
    invoice_id: UUID
    client_id: UUID
    event_id: int
    event_kind: str
    timestamp: int
    period: date
    client_balance: str
    client_paid_to_date: str
    client_credit_balance: str
    invoice_balance: str
    invoice_amount: str
    invoice_partial: str
    invoice_paid_to_date: str
    invoice_status: int
    payment_id: UUID | None = None
    payment_amount: str | None = None
    payment_refunded: str | None = None
    payment_applied: str | None = None
    payment_status: int | None = None
    metadata: TaxReportResponse


class TransactionEventListResponse(BaseModel):
    count: int
    events: list[TransactionEventResponse]
