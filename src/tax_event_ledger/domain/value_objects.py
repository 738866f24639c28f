from decimal import ROUND_HALF_UP, Decimal
from enum import Enum, IntEnum

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Ledger rows record this status code for soft-deleted invoices.
DELETED_INVOICE_STATUS = 7


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal | int | float | str | None) -> Decimal:
    """Round to cents, half away from zero."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class InvoiceStatus(IntEnum):
    DRAFT = 1
    SENT = 2
    PARTIAL = 3
    PAID = 4
    CANCELLED = 5


class PaymentStatus(IntEnum):
    PENDING = 1
    CANCELLED = 2
    FAILED = 3
    COMPLETED = 4
    PARTIALLY_REFUNDED = 5
    REFUNDED = 6


class CreditStatus(IntEnum):
    DRAFT = 1
    SENT = 2
    PARTIAL = 3
    APPLIED = 4


class BankTransactionStatus(IntEnum):
    UNMATCHED = 1
    MATCHED = 2
    CONVERTED = 3


class EventKind(IntEnum):
    INVOICE_UPDATED = 1
    PAYMENT_REFUNDED = 2
    PAYMENT_DELETED = 3
    PAYMENT_CASH = 4


class AllocationType(str, Enum):
    INVOICE = "invoice"
    CREDIT = "credit"


class TaxStatus(str, Enum):
    COLLECTED = "collected"
    PENDING = "pending"
    REFUNDABLE = "refundable"
    PARTIALLY_PAID = "partially_paid"
    ADJUSTMENT = "adjustment"
    PAYMENT_DELETED = "payment_deleted"


class SummaryStatus(str, Enum):
    UPDATED = "updated"
    CANCELLED = "cancelled"
    DELETED = "deleted"
    ADJUSTMENT = "adjustment"


class AdjustmentReason(str, Enum):
    INVOICE_CANCELLED = "invoice_cancelled"
    INVOICE_DELETED = "invoice_deleted"
    PAYMENT_REFUNDED = "payment_refunded"
    PAYMENT_DELETED = "payment_deleted"


__all__ = [
    "CENT",
    "DELETED_INVOICE_STATUS",
    "ZERO",
    "AdjustmentReason",
    "AllocationType",
    "BankTransactionStatus",
    "CreditStatus",
    "EventKind",
    "InvoiceStatus",
    "PaymentStatus",
    "SummaryStatus",
    "TaxStatus",
    "round_money",
    "to_decimal",
]
