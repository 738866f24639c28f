"""Scheduled tax summary sweep and ledger backfill.

The sweep runs hourly. Each run handles only the companies whose timezone has
just rolled into a new day, and snapshots their previous month's invoices.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tax_event_ledger.domain.billing import Company, Invoice
from tax_event_ledger.domain.value_objects import InvoiceStatus
from tax_event_ledger.exceptions import TaxEventLedgerError
from tax_event_ledger.logging_config import LogContext, get_logger
from tax_event_ledger.repositories.tenancy import Tenant
from tax_event_ledger.services.accrual import AccrualEventRecorder
from tax_event_ledger.services.cash_period import CashPeriodRecorder
from tax_event_ledger.services.periods import (
    PeriodResolver,
    end_of_month,
    start_of_month,
)

logger = get_logger(__name__)

ACCRUAL_SWEEP_STATUSES = (
    InvoiceStatus.SENT,
    InvoiceStatus.PARTIAL,
    InvoiceStatus.PAID,
    InvoiceStatus.CANCELLED,
)
CASH_SWEEP_STATUSES = (InvoiceStatus.PARTIAL, InvoiceStatus.PAID)
BACKFILL_STATUSES = (InvoiceStatus.SENT, InvoiceStatus.PARTIAL, InvoiceStatus.PAID)


@dataclass
class SweepResult:
    companies: int = 0
    accrual_events: int = 0
    cash_events: int = 0
    failures: list[str] = field(default_factory=list)

    def merge(self, other: "SweepResult") -> None:
        self.companies += other.companies
        self.accrual_events += other.accrual_events
        self.cash_events += other.cash_events
        self.failures.extend(other.failures)


def utc_offset(timezone: str, now: datetime) -> int:
    """Current UTC offset of a timezone in seconds, 0 for unknown names."""
    try:
        offset = now.astimezone(ZoneInfo(timezone)).utcoffset()
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_timezone", timezone=timezone)
        return 0
    return int(offset.total_seconds()) if offset is not None else 0


class TaxSummaryService:
    def __init__(
        self,
        accrual: AccrualEventRecorder,
        cash_period: CashPeriodRecorder,
        periods: PeriodResolver,
    ) -> None:
        self._accrual = accrual
        self._cash_period = cash_period
        self._periods = periods

    def transitioning_timezones(
        self, utc_hour: int, timezones: Iterable[str]
    ) -> list[str]:
        """Timezones that roll into the next day at the given UTC hour."""
        now = self._periods.now()
        return sorted(
            {
                name
                for name in timezones
                if PeriodResolver.transition_hour(utc_offset(name, now)) == utc_hour
            }
        )

    def run(self, tenants: Iterable[Tenant], utc_hour: int | None = None) -> SweepResult:
        hour = self._periods.now().hour if utc_hour is None else utc_hour
        result = SweepResult()
        for tenant in tenants:
            with LogContext(db=tenant.db):
                companies = list(tenant.repos.companies.list_all())
                timezones = self.transitioning_timezones(
                    hour, {company.timezone for company in companies}
                )
                for company in tenant.repos.companies.list_in_timezones(timezones):
                    result.merge(self.process_company(tenant, company))

        logger.info(
            "tax_summary_sweep_completed",
            utc_hour=hour,
            companies=result.companies,
            accrual_events=result.accrual_events,
            cash_events=result.cash_events,
            failures=len(result.failures),
        )
        return result

    def process_company(self, tenant: Tenant, company: Company) -> SweepResult:
        result = SweepResult(companies=1)
        start_date, end_date = self._periods.previous_month()
        start, end = self._periods.previous_month_bounds()
        window_start, window_end = self._periods.close_of_day_window()
        invoices = tenant.repos.invoices

        for invoice in invoices.iter_for_accrual_sweep(
            company.id,
            start_date,
            end_date,
            ACCRUAL_SWEEP_STATUSES,
            window_start,
            window_end,
        ):
            if self._guarded(result, tenant, invoice, self._accrual.record):
                result.accrual_events += 1

        for invoice in invoices.iter_for_cash_sweep(
            company.id, start, end, CASH_SWEEP_STATUSES, window_start, window_end
        ):
            if self._guarded(
                result, tenant, invoice, self._cash_period.record, start, end
            ):
                result.cash_events += 1

        logger.info(
            "company_tax_summary_processed",
            db=tenant.db,
            company_id=str(company.id),
            period_start=start_date.isoformat(),
            period_end=end_date.isoformat(),
            accrual_events=result.accrual_events,
            cash_events=result.cash_events,
        )
        return result

    def backfill(self, tenant: Tenant, company: Company) -> SweepResult:
        """Seed the ledger for invoices that have never been snapshotted.

        Sent invoices get an accrual row in their own month. Paid and part-paid
        invoices get one cash row per month in which payments were applied.
        """
        result = SweepResult(companies=1)
        _, last_month_end = self._periods.previous_month()
        repos = tenant.repos

        # Materialized so the writes below do not run under an open cursor.
        pending = list(
            repos.invoices.iter_without_events(company.id, last_month_end, BACKFILL_STATUSES)
        )
        for invoice in pending:
            if invoice.status == InvoiceStatus.SENT:
                if self._guarded(
                    result,
                    tenant,
                    invoice,
                    self._accrual.record,
                    end_of_month(invoice.date),
                ):
                    result.accrual_events += 1
                continue

            months = sorted(
                {
                    allocation.created_at.date().replace(day=1)
                    for allocation in repos.payments.list_invoice_allocations(invoice.id)
                }
            )
            for month in months:
                start = datetime.combine(start_of_month(month), time.min, tzinfo=UTC)
                end = datetime.combine(end_of_month(month), time.max, tzinfo=UTC)
                if self._guarded(
                    result, tenant, invoice, self._cash_period.record, start, end
                ):
                    result.cash_events += 1

        logger.info(
            "ledger_backfill_completed",
            db=tenant.db,
            company_id=str(company.id),
            invoices=len(pending),
            accrual_events=result.accrual_events,
            cash_events=result.cash_events,
        )
        return result

    @staticmethod
    def _guarded(
        result: SweepResult, tenant: Tenant, invoice: Invoice, record, *args
    ) -> bool:
        """Record one invoice in its own transaction.

        Driver errors surface as ``DatabaseError`` from the transaction. A
        failure rolls back that invoice's writes, is logged and counted, and
        the sweep goes on.
        """
        try:
            with tenant.database.transaction():
                record(tenant, invoice, *args)
        except TaxEventLedgerError as exc:
            logger.error(
                "invoice_snapshot_failed",
                invoice_id=str(invoice.id),
                error_code=exc.error_code,
                error=exc.message,
            )
            result.failures.append(str(invoice.id))
            return False
        return True
