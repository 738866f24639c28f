from tax_event_ledger.domain.billing import (
    ActiveInvoice,
    Allocation,
    BalanceAdjustment,
    BankTransaction,
    CancelledInvoice,
    Client,
    Company,
    Credit,
    DeletedInvoice,
    Invoice,
    InvoiceState,
    LineItem,
    Payment,
    TaxLine,
    invoice_state,
)
from tax_event_ledger.domain.tax_report import (
    PaymentHistory,
    TaxBreakdownLine,
    TaxDetail,
    TaxReport,
    TaxSummary,
)
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import (
    AllocationType,
    BankTransactionStatus,
    CreditStatus,
    EventKind,
    InvoiceStatus,
    PaymentStatus,
    SummaryStatus,
    TaxStatus,
    round_money,
)

__all__ = [
    "ActiveInvoice",
    "Allocation",
    "AllocationType",
    "BalanceAdjustment",
    "BankTransaction",
    "BankTransactionStatus",
    "CancelledInvoice",
    "Client",
    "Company",
    "Credit",
    "CreditStatus",
    "DeletedInvoice",
    "EventKind",
    "Invoice",
    "InvoiceState",
    "InvoiceStatus",
    "LineItem",
    "Payment",
    "PaymentHistory",
    "PaymentStatus",
    "SummaryStatus",
    "TaxBreakdownLine",
    "TaxDetail",
    "TaxLine",
    "TaxReport",
    "TaxStatus",
    "TaxSummary",
    "TransactionEvent",
    "invoice_state",
    "round_money",
]
