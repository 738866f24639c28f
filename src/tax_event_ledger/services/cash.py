"""Cash event recording for refunded and deleted payments.

Recording is dispatched as a task keyed on payment and tenant database, so
two recorders never interleave the delete-then-insert for the same payment.
Only invoices whose accounting period has already closed get a row; activity
inside the open period is left to the next accrual snapshot.
"""

import copy
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from tax_event_ledger.domain.billing import Client, Invoice, Payment
from tax_event_ledger.domain.tax_report import PaymentHistory, TaxReport
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import ZERO, EventKind
from tax_event_ledger.exceptions import ClientNotFoundError, CompanyNotFoundError
from tax_event_ledger.logging_config import get_logger
from tax_event_ledger.repositories.tenancy import TenantRegistry
from tax_event_ledger.services.interfaces import Task, TaskRunner
from tax_event_ledger.services.periods import PeriodResolver
from tax_event_ledger.services.snapshots import TaxSnapshotBuilder

logger = get_logger(__name__)

LOCK_KEY_PREFIX = "payment_transaction_event_entry"


@dataclass
class CashEventTask(Task):
    """A queued cash event for one payment and the invoices it touched.

    The payment is captured with its allocations when the task is created, so
    the history survives the allocations being purged before the task runs.
    """

    recorder: "CashEventRecorder"
    payment: Payment
    invoice_ids: list[UUID]
    db: str
    invoice_adjustment: Decimal = ZERO
    is_deletion: bool = False
    release_after: float = 10.0
    expire_after: float = 30.0
    tries: int = 1
    recorded: list[TransactionEvent] = field(default_factory=list)

    @property
    def lock_key(self) -> str:
        return f"{LOCK_KEY_PREFIX}_{self.payment.id}_{self.db}"

    @property
    def is_payment_deleted(self) -> bool:
        return self.is_deletion or self.payment.is_deleted

    def handle(self) -> None:
        self.recorded = self.recorder.handle(self)

    def failed(self, exc: BaseException) -> None:
        self.recorder.failed(self, exc)


class CashEventRecorder:
    def __init__(
        self,
        builder: TaxSnapshotBuilder,
        periods: PeriodResolver,
        tenants: TenantRegistry,
        runner: TaskRunner,
        *,
        release_after: float = 10.0,
        expire_after: float = 30.0,
        tries: int = 1,
    ) -> None:
        self._builder = builder
        self._periods = periods
        self._tenants = tenants
        self._runner = runner
        self._release_after = release_after
        self._expire_after = expire_after
        self._tries = tries

    def record_cash_event(
        self,
        payment: Payment,
        invoice_ids: Iterable[UUID],
        db: str,
        invoice_adjustment: Decimal = ZERO,
        is_deletion: bool = False,
    ) -> CashEventTask:
        """Queue a cash event for the payment's invoices. Fire and forget."""
        task = self.prepare_cash_event(
            payment, invoice_ids, db, invoice_adjustment, is_deletion
        )
        self.dispatch(task)
        return task

    def prepare_cash_event(
        self,
        payment: Payment,
        invoice_ids: Iterable[UUID],
        db: str,
        invoice_adjustment: Decimal = ZERO,
        is_deletion: bool = False,
    ) -> CashEventTask:
        """Capture a cash event without queuing it.

        Callers writing inside a transaction hold the task and call
        ``dispatch`` once the transaction has committed.
        """
        return CashEventTask(
            recorder=self,
            payment=copy.deepcopy(payment),
            invoice_ids=list(invoice_ids),
            db=db,
            invoice_adjustment=invoice_adjustment,
            is_deletion=is_deletion,
            release_after=self._release_after,
            expire_after=self._expire_after,
            tries=self._tries,
        )

    def dispatch(self, task: CashEventTask) -> None:
        logger.debug(
            "cash_event_queued",
            payment_id=str(task.payment.id),
            db=task.db,
            invoices=len(task.invoice_ids),
            is_deletion=task.is_deletion,
        )
        self._runner.dispatch(task)

    def handle(self, task: CashEventTask) -> list[TransactionEvent]:
        """Write one cash event per closed-period invoice of the task.

        Raises:
            UnknownTenantError: If the task's database is not registered.
            CompanyNotFoundError: If the payment's company does not exist.
        """
        tenant = self._tenants.get(task.db)
        repos = tenant.repos
        payment = task.payment

        company = repos.companies.get(payment.company_id)
        if company is None:
            raise CompanyNotFoundError(payment.company_id)
        offset = company.timezone_offset(self._periods.now())

        invoices = [
            invoice
            for invoice in repos.invoices.get_many(task.invoice_ids)
            if self._periods.is_period_closed(invoice.date, offset)
        ]
        skipped = len(task.invoice_ids) - len(invoices)
        if skipped:
            logger.debug(
                "cash_event_open_period_skipped",
                payment_id=str(payment.id),
                skipped=skipped,
            )

        kind = (
            EventKind.PAYMENT_DELETED
            if task.is_payment_deleted
            else EventKind.PAYMENT_REFUNDED
        )
        period = self._periods.current_period()
        recorded = []
        for invoice in invoices:
            client = repos.clients.get(invoice.client_id)
            if client is None:
                raise ClientNotFoundError(invoice.client_id)

            report = self._build_report(task, invoice, client)
            event = TransactionEvent.snapshot(
                event_id=kind,
                invoice=invoice,
                client=client,
                report=report,
                period=period,
                timestamp=int(self._periods.now().timestamp()),
                payment=payment,
            )
            superseded = repos.events.supersede(
                event, replaces={EventKind.PAYMENT_REFUNDED, kind}
            )
            recorded.append(event)
            logger.info(
                "cash_event_recorded",
                db=task.db,
                payment_id=str(payment.id),
                invoice_id=str(invoice.id),
                event_kind=kind.name,
                period=period.isoformat(),
                superseded=superseded,
            )
        return recorded

    def failed(self, task: CashEventTask, exc: BaseException) -> None:
        logger.error(
            "cash_event_task_failed",
            db=task.db,
            payment_id=str(task.payment.id),
            lock_key=task.lock_key,
            error=str(exc),
            error_type=type(exc).__name__,
        )

    def _build_report(
        self, task: CashEventTask, invoice: Invoice, client: Client
    ) -> TaxReport:
        history = self._history(task.payment, invoice)
        if task.is_payment_deleted:
            return self._builder.build_payment_deleted_report(
                invoice, history, task.invoice_adjustment, client
            )
        return self._builder.build_refund_report(invoice, history, client)

    @staticmethod
    def _history(payment: Payment, invoice: Invoice) -> tuple[PaymentHistory, ...]:
        """The payment's allocations to this invoice only.

        ``invoice`` has already passed the closed-period filter, so allocations
        to open-period invoices never reach a row.
        """
        return tuple(
            PaymentHistory(
                number=payment.number,
                date=allocation.created_at.date().isoformat(),
                amount=allocation.amount,
                refunded=allocation.refunded,
            )
            for allocation in payment.invoice_allocations
            if allocation.target_id == invoice.id
        )
