from tax_event_ledger.domain.billing import (
    Client,
    Company,
    Credit,
    Invoice,
    LineItem,
    Payment,
    TaxLine,
)
from tax_event_ledger.domain.tax_report import TaxReport
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import EventKind, InvoiceStatus

__all__ = [
    "Client",
    "Company",
    "Credit",
    "EventKind",
    "Invoice",
    "InvoiceStatus",
    "LineItem",
    "Payment",
    "TaxLine",
    "TaxReport",
    "TransactionEvent",
]

__version__ = "0.1.0"
