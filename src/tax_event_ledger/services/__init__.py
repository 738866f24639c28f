from tax_event_ledger.services.accrual import AccrualEventRecorder
from tax_event_ledger.services.allocation import (
    allocate,
    clamp_paid_to_date,
    net_payments,
    paid_ratio,
    total_tax_paid,
)
from tax_event_ledger.services.cash import CashEventRecorder, CashEventTask
from tax_event_ledger.services.cash_period import CashPeriodRecorder
from tax_event_ledger.services.interfaces import (
    Task,
    TaskRunner,
    TaxBreakdownCalculator,
)
from tax_event_ledger.services.payment_reversal import PaymentReversalService
from tax_event_ledger.services.periods import PeriodResolver, end_of_month
from tax_event_ledger.services.snapshots import TaxSnapshotBuilder
from tax_event_ledger.services.tasks import (
    InlineTaskRunner,
    KeyedMutex,
    ThreadPoolTaskRunner,
)
from tax_event_ledger.services.tax_calculator import InvoiceTaxCalculator
from tax_event_ledger.services.tax_summary import SweepResult, TaxSummaryService

__all__ = [
    "AccrualEventRecorder",
    "CashEventRecorder",
    "CashEventTask",
    "CashPeriodRecorder",
    "InlineTaskRunner",
    "InvoiceTaxCalculator",
    "KeyedMutex",
    "PaymentReversalService",
    "PeriodResolver",
    "SweepResult",
    "Task",
    "TaskRunner",
    "TaxBreakdownCalculator",
    "TaxSnapshotBuilder",
    "TaxSummaryService",
    "ThreadPoolTaskRunner",
    "allocate",
    "clamp_paid_to_date",
    "end_of_month",
    "net_payments",
    "paid_ratio",
    "total_tax_paid",
]
