"""Invoice tax breakdown.

Merges line-item taxes and invoice-level taxes into one line per
``(name, rate)``. Only exclusive taxes are modelled: tax is charged on top of
the line totals.
"""

from decimal import Decimal

from tax_event_ledger.domain.billing import Invoice, TaxLine
from tax_event_ledger.domain.tax_report import TaxBreakdownLine
from tax_event_ledger.domain.value_objects import ZERO, round_money
from tax_event_ledger.services.interfaces import TaxBreakdownCalculator

HUNDRED = Decimal("100")


class InvoiceTaxCalculator(TaxBreakdownCalculator):
    def breakdown(self, invoice: Invoice) -> list[TaxBreakdownLine]:
        bases: dict[tuple[str, Decimal], Decimal] = {}
        totals: dict[tuple[str, Decimal], Decimal] = {}

        def accumulate(line: TaxLine, base: Decimal) -> None:
            if not line.name or line.rate == 0:
                return
            key = (line.name, line.rate)
            bases[key] = bases.get(key, ZERO) + base
            totals[key] = totals.get(key, ZERO) + round_money(base * line.rate / HUNDRED)

        for item in invoice.line_items:
            for line in item.tax_lines:
                accumulate(line, item.line_total)

        subtotal = self._subtotal(invoice)
        for line in invoice.tax_lines:
            accumulate(line, subtotal)

        return [
            TaxBreakdownLine(
                name=name,
                rate=rate,
                base_amount=round_money(bases[(name, rate)]),
                total=round_money(totals[(name, rate)]),
            )
            for name, rate in bases
        ]

    def _subtotal(self, invoice: Invoice) -> Decimal:
        if invoice.line_items:
            return sum((item.line_total for item in invoice.line_items), ZERO)
        # Without line items the amount is treated as subtotal plus
        # invoice-level tax.
        rate_sum = sum((line.rate for line in invoice.tax_lines), ZERO)
        return round_money(invoice.amount / (1 + rate_sum / HUNDRED))
