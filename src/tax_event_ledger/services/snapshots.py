"""Tax snapshot building.

Turns an invoice, its tax breakdown and a payment-history window into the
TaxReport stored on a ledger row. Accrual snapshots dispatch on the invoice
lifecycle state; cash snapshots describe a refund, a payment deletion, or the
cash collected inside a period.
"""

from collections.abc import Callable, Iterable
from decimal import Decimal
from uuid import UUID

from tax_event_ledger.domain.billing import (
    ActiveInvoice,
    Allocation,
    CancelledInvoice,
    Client,
    DeletedInvoice,
    Invoice,
    invoice_state,
)
from tax_event_ledger.domain.tax_report import (
    PaymentHistory,
    TaxBreakdownLine,
    TaxDetail,
    TaxReport,
    TaxSummary,
)
from tax_event_ledger.domain.value_objects import (
    ZERO,
    AdjustmentReason,
    SummaryStatus,
    TaxStatus,
    round_money,
)
from tax_event_ledger.services.allocation import (
    allocate,
    net_payments,
    paid_ratio,
    total_tax_paid,
)
from tax_event_ledger.services.interfaces import TaxBreakdownCalculator


def history_from_allocations(
    allocations: Iterable[Allocation], payment_number: Callable[[UUID], str]
) -> tuple[PaymentHistory, ...]:
    """Denormalize payment-to-invoice allocations into history entries."""
    return tuple(
        PaymentHistory(
            number=payment_number(allocation.payment_id),
            date=allocation.created_at.date().isoformat(),
            amount=allocation.amount,
            refunded=allocation.refunded,
        )
        for allocation in allocations
    )


def collection_status(total: Decimal, paid: Decimal) -> TaxStatus:
    if paid == 0:
        return TaxStatus.PENDING
    if paid >= total:
        return TaxStatus.COLLECTED
    return TaxStatus.PARTIALLY_PAID


class TaxSnapshotBuilder:
    def __init__(self, calculator: TaxBreakdownCalculator) -> None:
        self._calculator = calculator

    def build_accrual_report(
        self,
        invoice: Invoice,
        history: Iterable[PaymentHistory],
        client: Client | None = None,
    ) -> TaxReport:
        """Snapshot for an INVOICE_UPDATED row.

        Raises:
            InvalidInvoiceStateError: If the invoice status is not a known
                lifecycle state.
        """
        breakdown = self._calculator.breakdown(invoice)
        ratio = paid_ratio(invoice)
        details: list[TaxDetail] = []

        match invoice_state(invoice):
            case ActiveInvoice():
                for line in breakdown:
                    paid = allocate(line.total, ratio)
                    details.append(
                        self._detail(
                            line,
                            invoice,
                            client,
                            tax_amount=line.total,
                            paid=paid,
                            remaining=line.total - paid,
                            status=collection_status(line.total, paid),
                        )
                    )
                summary_status = SummaryStatus.UPDATED
            case CancelledInvoice():
                # The obligation is extinguished; what was collected stays.
                for line in breakdown:
                    paid = allocate(line.total, ratio)
                    details.append(
                        self._detail(
                            line,
                            invoice,
                            client,
                            tax_amount=paid,
                            paid=paid,
                            remaining=ZERO,
                            status=TaxStatus.ADJUSTMENT,
                            reason=AdjustmentReason.INVOICE_CANCELLED,
                        )
                    )
                summary_status = SummaryStatus.CANCELLED
            case DeletedInvoice():
                # Deleted invoices count as fully resolved, whatever the ratio.
                for line in breakdown:
                    details.append(
                        self._detail(
                            line,
                            invoice,
                            client,
                            tax_amount=line.total,
                            paid=line.total,
                            remaining=ZERO,
                            status=TaxStatus.ADJUSTMENT,
                            reason=AdjustmentReason.INVOICE_DELETED,
                        )
                    )
                summary_status = SummaryStatus.DELETED

        return self._report(invoice, breakdown, details, history, summary_status)

    def build_refund_report(
        self,
        invoice: Invoice,
        history: Iterable[PaymentHistory],
        client: Client | None = None,
    ) -> TaxReport:
        invoice_state(invoice)
        breakdown = self._calculator.breakdown(invoice)
        ratio = paid_ratio(invoice)
        details = []
        for line in breakdown:
            paid = allocate(line.total, ratio)
            details.append(
                self._detail(
                    line,
                    invoice,
                    client,
                    tax_amount=line.total,
                    paid=paid,
                    remaining=round_money(line.total - paid),
                    status=TaxStatus.REFUNDABLE,
                    reason=AdjustmentReason.PAYMENT_REFUNDED,
                )
            )
        return self._report(
            invoice, breakdown, details, history, SummaryStatus.ADJUSTMENT
        )

    def build_payment_deleted_report(
        self,
        invoice: Invoice,
        history: Iterable[PaymentHistory],
        invoice_adjustment: Decimal = ZERO,
        client: Client | None = None,
    ) -> TaxReport:
        """Snapshot written when a payment touching the invoice is deleted.

        ``invoice_adjustment`` is the net amount the deleted payment had
        attributed to this invoice. When positive, each tax line's paid share
        is that amount's proportion of the line's gross (base plus tax).
        """
        invoice_state(invoice)
        breakdown = self._calculator.breakdown(invoice)
        ratio = paid_ratio(invoice)
        details = []
        for line in breakdown:
            gross = line.base_amount + line.total
            if invoice_adjustment > 0 and gross != 0:
                paid = round_money(invoice_adjustment / gross * line.total)
            else:
                paid = allocate(line.total, ratio)
            details.append(
                self._detail(
                    line,
                    invoice,
                    client,
                    tax_amount=line.total,
                    paid=paid,
                    remaining=ZERO,
                    status=TaxStatus.PAYMENT_DELETED,
                    reason=AdjustmentReason.PAYMENT_DELETED,
                )
            )
        return self._report(
            invoice, breakdown, details, history, SummaryStatus.ADJUSTMENT
        )

    def build_cash_report(
        self,
        invoice: Invoice,
        history: Iterable[PaymentHistory],
        client: Client | None = None,
    ) -> TaxReport:
        """Snapshot of the cash collected inside a window (PAYMENT_CASH)."""
        invoice_state(invoice)
        history = tuple(history)
        breakdown = self._calculator.breakdown(invoice)
        ratio = net_payments(history) / invoice.amount if invoice.amount != 0 else ZERO
        details = []
        for line in breakdown:
            paid = allocate(line.total, ratio)
            details.append(
                self._detail(
                    line,
                    invoice,
                    client,
                    tax_amount=line.total,
                    paid=paid,
                    remaining=line.total - paid,
                    status=collection_status(line.total, paid),
                )
            )
        return self._report(invoice, breakdown, details, history, SummaryStatus.UPDATED)

    def _detail(
        self,
        line: TaxBreakdownLine,
        invoice: Invoice,
        client: Client | None,
        *,
        tax_amount: Decimal,
        paid: Decimal,
        remaining: Decimal,
        status: TaxStatus,
        reason: AdjustmentReason | None = None,
    ) -> TaxDetail:
        return TaxDetail(
            tax_name=line.name,
            tax_rate=line.rate,
            nexus=invoice.nexus or (client.state if client else ""),
            country_nexus=invoice.country_nexus or (client.country if client else ""),
            taxable_amount=line.base_amount,
            tax_amount=tax_amount,
            tax_amount_paid=paid,
            tax_amount_remaining=remaining,
            tax_status=status,
            adjustment_reason=reason,
        )

    def _report(
        self,
        invoice: Invoice,
        breakdown: list[TaxBreakdownLine],
        details: list[TaxDetail],
        history: Iterable[PaymentHistory],
        status: SummaryStatus,
    ) -> TaxReport:
        history = tuple(history)
        total_taxes = round_money(sum((line.total for line in breakdown), ZERO))
        total_paid = total_tax_paid(total_taxes, history, invoice.amount)
        adjustment = None
        if status == SummaryStatus.ADJUSTMENT:
            adjustment = round_money(total_taxes - total_paid) * -1
        return TaxReport(
            tax_summary=TaxSummary(
                total_taxes=total_taxes,
                total_paid=total_paid,
                status=status,
                adjustment=adjustment,
            ),
            amount=invoice.amount,
            tax_details=tuple(details),
            payment_history=history,
        )
