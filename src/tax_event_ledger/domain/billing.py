"""Billing records supplied by the surrounding system.

These are referenced by the ledger, not owned by it: the ledger reads them to
build snapshots and the payment reversal engine adjusts their balance fields.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from tax_event_ledger.domain.value_objects import (
    AllocationType,
    BankTransactionStatus,
    CreditStatus,
    InvoiceStatus,
    PaymentStatus,
)
from tax_event_ledger.exceptions import InvalidInvoiceStateError, ValidationError

MAX_TAX_LINES = 3


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Company:
    name: str
    db: str
    id: UUID = field(default_factory=uuid4)
    timezone: str = "UTC"

    def timezone_offset(self, now: datetime | None = None) -> int:
        """UTC offset of the company's timezone in seconds, DST included."""
        moment = now or _utc_now()
        offset = moment.astimezone(ZoneInfo(self.timezone)).utcoffset()
        return int(offset.total_seconds()) if offset is not None else 0


@dataclass
class Client:
    company_id: UUID
    name: str
    id: UUID = field(default_factory=uuid4)
    balance: Decimal = Decimal("0")
    paid_to_date: Decimal = Decimal("0")
    credit_balance: Decimal = Decimal("0")
    state: str = ""
    country: str = ""
    is_deleted: bool = False


@dataclass(frozen=True, slots=True)
class TaxLine:
    name: str
    rate: Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.rate, Decimal):
            object.__setattr__(self, "rate", Decimal(str(self.rate)))


@dataclass
class LineItem:
    cost: Decimal
    quantity: Decimal = Decimal("1")
    description: str = ""
    tax_lines: list[TaxLine] = field(default_factory=list)

    @property
    def line_total(self) -> Decimal:
        return self.cost * self.quantity


@dataclass
class Invoice:
    company_id: UUID
    client_id: UUID
    number: str
    date: date
    id: UUID = field(default_factory=uuid4)
    amount: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    partial: Decimal = Decimal("0")
    paid_to_date: Decimal = Decimal("0")
    status: InvoiceStatus | int = InvoiceStatus.DRAFT
    is_deleted: bool = False
    deleted_at: datetime | None = None
    tax_lines: list[TaxLine] = field(default_factory=list)
    line_items: list[LineItem] = field(default_factory=list)
    nexus: str = ""
    country_nexus: str = ""

    def __post_init__(self) -> None:
        if len(self.tax_lines) > MAX_TAX_LINES:
            raise ValidationError(
                f"An invoice carries at most {MAX_TAX_LINES} tax lines",
                context={"invoice_id": str(self.id), "count": len(self.tax_lines)},
            )

    @property
    def is_trashed(self) -> bool:
        return self.deleted_at is not None

    def restore(self) -> None:
        self.deleted_at = None

    def trash(self) -> None:
        self.deleted_at = _utc_now()


# Invoice lifecycle as a closed set of states. Snapshot building dispatches on
# these rather than on the raw status/deleted flags.


@dataclass(frozen=True, slots=True)
class ActiveInvoice:
    status: InvoiceStatus


@dataclass(frozen=True, slots=True)
class CancelledInvoice:
    pass


@dataclass(frozen=True, slots=True)
class DeletedInvoice:
    pass


InvoiceState = ActiveInvoice | CancelledInvoice | DeletedInvoice

ACTIVE_STATUSES = frozenset(
    {InvoiceStatus.DRAFT, InvoiceStatus.SENT, InvoiceStatus.PARTIAL, InvoiceStatus.PAID}
)


def invoice_state(invoice: Invoice) -> InvoiceState:
    """Classify an invoice for snapshot building.

    Cancellation takes precedence over the soft-deleted flag.

    Raises:
        InvalidInvoiceStateError: If the status is not a known lifecycle state.
    """
    match invoice.status:
        case InvoiceStatus.CANCELLED:
            return CancelledInvoice()
        case _ if invoice.is_deleted:
            return DeletedInvoice()
        case status if status in ACTIVE_STATUSES:
            return ActiveInvoice(InvoiceStatus(status))
        case status:
            raise InvalidInvoiceStateError(invoice.id, status)


@dataclass
class Credit:
    company_id: UUID
    client_id: UUID
    number: str
    id: UUID = field(default_factory=uuid4)
    amount: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    paid_to_date: Decimal = Decimal("0")
    status: CreditStatus = CreditStatus.DRAFT
    is_deleted: bool = False


@dataclass
class Allocation:
    """A payment applied to an invoice or credit (the paymentable pivot)."""

    payment_id: UUID
    allocation_type: AllocationType
    target_id: UUID
    amount: Decimal
    id: UUID = field(default_factory=uuid4)
    refunded: Decimal = Decimal("0")
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def net_amount(self) -> Decimal:
        return self.amount - self.refunded


@dataclass
class Payment:
    company_id: UUID
    client_id: UUID
    number: str
    id: UUID = field(default_factory=uuid4)
    date: date = field(default_factory=lambda: _utc_now().date())
    amount: Decimal = Decimal("0")
    refunded: Decimal = Decimal("0")
    applied: Decimal = Decimal("0")
    status: PaymentStatus = PaymentStatus.COMPLETED
    is_deleted: bool = False
    deleted_at: datetime | None = None
    allocations: list[Allocation] = field(default_factory=list)

    @property
    def invoice_allocations(self) -> list[Allocation]:
        return [
            a for a in self.allocations if a.allocation_type == AllocationType.INVOICE
        ]

    @property
    def credit_allocations(self) -> list[Allocation]:
        return [
            a for a in self.allocations if a.allocation_type == AllocationType.CREDIT
        ]


@dataclass
class BankTransaction:
    company_id: UUID
    amount: Decimal
    id: UUID = field(default_factory=uuid4)
    description: str = ""
    payment_id: UUID | None = None
    invoice_ids: list[UUID] | None = None
    status: BankTransactionStatus = BankTransactionStatus.UNMATCHED

    def unmatch(self) -> None:
        self.invoice_ids = None
        self.payment_id = None
        self.status = BankTransactionStatus.UNMATCHED


@dataclass
class BalanceAdjustment:
    """Client ledger note written when an invoice balance is adjusted."""

    company_id: UUID
    client_id: UUID
    adjustment: Decimal
    balance: Decimal
    notes: str
    id: UUID = field(default_factory=uuid4)
    invoice_id: UUID | None = None
    created_at: datetime = field(default_factory=_utc_now)
