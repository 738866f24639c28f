"""Ratio allocation of tax amounts across partial payments.

The paid ratio is recomputed from the invoice at every snapshot, so two
snapshots of the same invoice can report different paid figures without any
allocation decision having been stored. The ledger reflects current state.
"""

from collections.abc import Iterable
from decimal import Decimal

from tax_event_ledger.domain.billing import Invoice
from tax_event_ledger.domain.tax_report import PaymentHistory
from tax_event_ledger.domain.value_objects import ZERO, round_money


def paid_ratio(invoice: Invoice) -> Decimal:
    """Share of the invoice amount already paid, 0 for a zero-amount invoice."""
    if invoice.amount == 0:
        return ZERO
    return invoice.paid_to_date / invoice.amount


def allocate(tax_amount: Decimal, ratio: Decimal) -> Decimal:
    return round_money(tax_amount * ratio)


def net_payments(history: Iterable[PaymentHistory]) -> Decimal:
    amount = ZERO
    refunded = ZERO
    for entry in history:
        amount += entry.amount
        refunded += entry.refunded
    return amount - refunded


def total_tax_paid(
    total_taxes: Decimal,
    history: Iterable[PaymentHistory],
    invoice_amount: Decimal,
) -> Decimal:
    if invoice_amount == 0:
        return ZERO
    return round_money(total_taxes * (net_payments(history) / invoice_amount))


def clamp_paid_to_date(delta: Decimal) -> Decimal:
    """Per-invoice client paid-to-date change, never positive.

    Increases caused by undoing a negative allocation are left to the global
    reduction at the end of a payment deletion.
    """
    return min(delta, ZERO)
