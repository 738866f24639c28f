"""Payment deletion.

Undoes every financial effect of a payment inside one transaction that holds
a lock on the payment row: credits are handed back, touched invoices and the
client get their balances restored, compensating cash events are written for
closed periods, allocations are purged and bank-feed matches detached.
"""

import time
from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

from tax_event_ledger.domain.billing import (
    Allocation,
    BalanceAdjustment,
    Client,
    Invoice,
    Payment,
)
from tax_event_ledger.domain.value_objects import (
    ZERO,
    CreditStatus,
    InvoiceStatus,
    PaymentStatus,
)
from tax_event_ledger.exceptions import (
    ClientNotFoundError,
    LockContentionError,
    PaymentLockError,
    PaymentNotFoundError,
)
from tax_event_ledger.logging_config import get_logger
from tax_event_ledger.repositories.interfaces import Repositories
from tax_event_ledger.repositories.tenancy import Tenant
from tax_event_ledger.services.allocation import clamp_paid_to_date
from tax_event_ledger.services.cash import CashEventRecorder, CashEventTask

logger = get_logger(__name__)


class PaymentReversalService:
    def __init__(
        self,
        cash_recorder: CashEventRecorder,
        *,
        attempts: int = 2,
        backoff_seconds: float = 0.1,
        status_tolerance: Decimal = Decimal("0.005"),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._cash_recorder = cash_recorder
        self._attempts = max(1, attempts)
        self._backoff = backoff_seconds
        self._tolerance = status_tolerance
        self._sleep = sleep

    def delete_payment(
        self,
        tenant: Tenant,
        payment: Payment,
        update_client_paid_to_date: bool = True,
    ) -> Payment:
        """Delete a payment and reverse its effects.

        Lock contention is retried; nothing else is. Either every effect of
        the deletion is committed or none is. Compensating cash events are
        queued only once the deletion has committed.

        Args:
            tenant: Tenant database holding the payment.
            payment: The payment to delete. It is reloaded under lock.
            update_client_paid_to_date: Whether the client's paid-to-date may
                be reduced by the payment's unattributed amount.

        Returns:
            The cancelled, soft-deleted payment, or the stored payment
            unchanged if it was already deleted.

        Raises:
            PaymentNotFoundError: If the payment does not exist.
            PaymentLockError: If the payment could not be locked.
        """
        last_error: LockContentionError | None = None
        for attempt in range(1, self._attempts + 1):
            cash_events: list[CashEventTask] = []
            try:
                with tenant.database.transaction(lock=True):
                    deleted = self._delete(
                        tenant, payment.id, update_client_paid_to_date, cash_events
                    )
            except LockContentionError as exc:
                last_error = exc
                logger.warning(
                    "payment_lock_contention",
                    db=tenant.db,
                    payment_id=str(payment.id),
                    attempt=attempt,
                    error=exc.message,
                )
                if attempt < self._attempts:
                    self._sleep(self._backoff * attempt)
                continue

            for task in cash_events:
                self._cash_recorder.dispatch(task)
            return deleted
        raise PaymentLockError(payment.id, self._attempts) from last_error

    def delete_payment_by_id(
        self,
        tenant: Tenant,
        payment_id: UUID,
        update_client_paid_to_date: bool = True,
    ) -> Payment:
        payment = tenant.repos.payments.get(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return self.delete_payment(tenant, payment, update_client_paid_to_date)

    def _delete(
        self,
        tenant: Tenant,
        payment_id: UUID,
        update_client_paid_to_date: bool,
        cash_events: list[CashEventTask],
    ) -> Payment:
        repos = tenant.repos
        payment = repos.payments.get_for_update(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        if payment.is_deleted:
            logger.info("payment_already_deleted", db=tenant.db, payment_id=str(payment_id))
            return payment

        payment.status = PaymentStatus.CANCELLED
        self._reverse_credits(repos, payment)
        update_client_paid_to_date = self._reverse_invoices(
            tenant, payment, update_client_paid_to_date, cash_events
        )

        purged = repos.payments.purge_allocations(payment.id)
        detached = self._detach_bank_transactions(repos, payment)

        payment.is_deleted = True
        payment.deleted_at = datetime.now(UTC)
        payment.allocations = []
        repos.payments.update(payment)

        logger.info(
            "payment_deleted",
            db=tenant.db,
            payment_id=str(payment.id),
            amount=str(payment.amount),
            allocations_purged=purged,
            bank_transactions_detached=detached,
            client_paid_to_date_updated=update_client_paid_to_date,
        )
        return payment

    def _reverse_credits(self, repos: Repositories, payment: Payment) -> None:
        for allocation in payment.credit_allocations:
            credit = repos.credits.get(allocation.target_id)
            if credit is None or credit.is_deleted:
                continue
            applied = abs(allocation.amount)
            credit.balance += applied
            credit.paid_to_date -= applied
            credit.status = CreditStatus.SENT
            repos.credits.update(credit)

            client = self._client(repos, payment.client_id)
            client.credit_balance += allocation.amount
            repos.clients.update(client)

            logger.debug(
                "credit_reversed",
                payment_id=str(payment.id),
                credit_id=str(credit.id),
                amount=str(allocation.amount),
            )

    def _reverse_invoices(
        self,
        tenant: Tenant,
        payment: Payment,
        update_client_paid_to_date: bool,
        cash_events: list[CashEventTask],
    ) -> bool:
        """Reverse every invoice allocation, then apply the global reduction.

        A PAYMENT_DELETED cash event per reversed invoice is appended to
        ``cash_events`` for dispatch after commit. Returns the effective
        update_client_paid_to_date flag.
        """
        repos = tenant.repos
        invoice_allocations = payment.invoice_allocations
        paid_to_date_deleted = ZERO
        total_payment_amount = ZERO

        if invoice_allocations:
            credit_allocations = payment.credit_allocations
            total_payment_amount = (payment.amount - payment.refunded) + sum(
                (a.amount - a.refunded for a in credit_allocations), ZERO
            )
            for allocation in invoice_allocations:
                net_deletable = allocation.net_amount
                paid_to_date_deleted += net_deletable
                invoice = repos.invoices.get(allocation.target_id)
                if invoice is None:
                    logger.warning(
                        "payment_allocation_invoice_missing",
                        payment_id=str(payment.id),
                        invoice_id=str(allocation.target_id),
                    )
                    continue
                self._reverse_invoice(repos, payment, invoice, allocation)
                cash_events.append(
                    self._cash_recorder.prepare_cash_event(
                        payment,
                        [invoice.id],
                        tenant.db,
                        invoice_adjustment=net_deletable,
                        is_deletion=True,
                    )
                )
        elif payment.amount == payment.applied:
            # A payment with nothing attributed to invoices and fully applied
            # is the first payment of a reversed invoice; the credit note
            # created by the reversal already accounts for it.
            update_client_paid_to_date = False

        if update_client_paid_to_date:
            if payment.amount < 0:
                reduction = payment.amount * -1
            else:
                reduction = min(
                    ZERO, (payment.amount - payment.refunded - paid_to_date_deleted) * -1
                )
            if total_payment_amount != paid_to_date_deleted:
                reduction = min(ZERO, (total_payment_amount - paid_to_date_deleted) * -1)

            if reduction != 0:
                client = self._client(repos, payment.client_id)
                client.paid_to_date += reduction
                repos.clients.update(client)
                logger.debug(
                    "client_paid_to_date_reduced",
                    payment_id=str(payment.id),
                    client_id=str(client.id),
                    reduction=str(reduction),
                )

        return update_client_paid_to_date

    def _reverse_invoice(
        self,
        repos: Repositories,
        payment: Payment,
        invoice: Invoice,
        allocation: Allocation,
    ) -> None:
        net_deletable = allocation.net_amount
        client_delta = clamp_paid_to_date(net_deletable * -1)

        if invoice.status == InvoiceStatus.CANCELLED:
            invoice.paid_to_date -= net_deletable
            repos.invoices.update(invoice)

            client = self._client(repos, payment.client_id)
            client.paid_to_date += client_delta
            repos.clients.update(client)

        elif not invoice.is_deleted:
            invoice.restore()
            invoice.balance += net_deletable
            invoice.paid_to_date -= net_deletable
            invoice.status = self._derive_status(invoice)
            repos.invoices.update(invoice)

            client = self._client(repos, payment.client_id)
            client.balance += net_deletable
            client.paid_to_date += client_delta
            repos.clients.update(client)

            repos.balance_adjustments.add(
                BalanceAdjustment(
                    company_id=invoice.company_id,
                    client_id=client.id,
                    invoice_id=invoice.id,
                    adjustment=net_deletable,
                    balance=client.balance,
                    notes=(
                        f"Adjusting invoice {invoice.number} due to deletion of "
                        f"Payment {payment.number}"
                    ),
                )
            )

        else:
            invoice.paid_to_date -= net_deletable
            repos.invoices.update(invoice)

        logger.debug(
            "invoice_payment_reversed",
            payment_id=str(payment.id),
            invoice_id=str(invoice.id),
            net_deletable=str(net_deletable),
            status=int(invoice.status),
        )

    def _derive_status(self, invoice: Invoice) -> InvoiceStatus:
        if abs(invoice.balance - invoice.amount) < self._tolerance:
            return InvoiceStatus.SENT
        if invoice.balance == 0:
            return InvoiceStatus.PAID
        return InvoiceStatus.PARTIAL

    @staticmethod
    def _client(repos: Repositories, client_id: UUID) -> Client:
        client = repos.clients.get(client_id)
        if client is None:
            raise ClientNotFoundError(client_id)
        return client

    @staticmethod
    def _detach_bank_transactions(repos: Repositories, payment: Payment) -> int:
        detached = 0
        for transaction in list(repos.bank_transactions.iter_by_payment(payment.id)):
            transaction.unmatch()
            repos.bank_transactions.update(transaction)
            detached += 1
        return detached
