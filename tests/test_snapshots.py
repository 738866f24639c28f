"""Tests for tax snapshot building."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from tax_event_ledger.domain.billing import Client, Invoice, LineItem, TaxLine
from tax_event_ledger.domain.tax_report import PaymentHistory
from tax_event_ledger.domain.value_objects import (
    AdjustmentReason,
    InvoiceStatus,
    SummaryStatus,
    TaxStatus,
)
from tax_event_ledger.exceptions import InvalidInvoiceStateError
from tax_event_ledger.services.snapshots import (
    TaxSnapshotBuilder,
    collection_status,
)

THREE_TAXES = [
    TaxLine("GST", Decimal("10")),
    TaxLine("PST", Decimal("17.5")),
    TaxLine("City", Decimal("5")),
]


def _invoice(**kwargs) -> Invoice:
    fields = {
        "company_id": uuid4(),
        "client_id": uuid4(),
        "number": "INV-0001",
        "date": date(2024, 1, 10),
        "amount": Decimal("220.00"),
        "balance": Decimal("110.00"),
        "paid_to_date": Decimal("110.00"),
        "status": InvoiceStatus.PARTIAL,
        "line_items": [LineItem(cost=Decimal("200.00"))],
        "tax_lines": list(THREE_TAXES),
    }
    fields.update(kwargs)
    return Invoice(**fields)


def _history(*amounts: str) -> tuple[PaymentHistory, ...]:
    return tuple(
        PaymentHistory(number=f"P{i}", date="2024-01-20", amount=Decimal(amount))
        for i, amount in enumerate(amounts, start=1)
    )


def _paid(report) -> list[Decimal]:
    return [detail.tax_amount_paid for detail in report.tax_details]


def _remaining(report) -> list[Decimal]:
    return [detail.tax_amount_remaining for detail in report.tax_details]


class TestAccrualReport:
    def test_half_paid_invoice(self, builder: TaxSnapshotBuilder) -> None:
        report = builder.build_accrual_report(_invoice(), _history("110.00"))

        assert [d.tax_amount for d in report.tax_details] == [
            Decimal("20.00"),
            Decimal("35.00"),
            Decimal("10.00"),
        ]
        assert _paid(report) == [Decimal("10.00"), Decimal("17.50"), Decimal("5.00")]
        assert _remaining(report) == [
            Decimal("10.00"),
            Decimal("17.50"),
            Decimal("5.00"),
        ]
        assert all(
            d.tax_status == TaxStatus.PARTIALLY_PAID for d in report.tax_details
        )
        assert report.tax_summary.status == SummaryStatus.UPDATED
        assert report.tax_summary.total_taxes == Decimal("65.00")
        assert report.tax_summary.total_paid == Decimal("32.50")
        assert report.tax_summary.adjustment is None

    def test_cancelled_invoice_keeps_paid_and_zeroes_remaining(
        self, builder: TaxSnapshotBuilder
    ) -> None:
        invoice = _invoice(status=InvoiceStatus.CANCELLED)

        report = builder.build_accrual_report(invoice, _history("110.00"))

        assert _paid(report) == [Decimal("10.00"), Decimal("17.50"), Decimal("5.00")]
        assert _remaining(report) == [Decimal("0")] * 3
        assert [d.tax_amount for d in report.tax_details] == _paid(report)
        assert all(
            d.adjustment_reason == AdjustmentReason.INVOICE_CANCELLED
            for d in report.tax_details
        )
        assert report.tax_summary.status == SummaryStatus.CANCELLED

    def test_deleted_invoice_counts_full_tax_as_paid(
        self, builder: TaxSnapshotBuilder
    ) -> None:
        invoice = _invoice(is_deleted=True)

        report = builder.build_accrual_report(invoice, _history("110.00"))

        assert _paid(report) == [Decimal("20.00"), Decimal("35.00"), Decimal("10.00")]
        assert _remaining(report) == [Decimal("0")] * 3
        assert report.tax_summary.status == SummaryStatus.DELETED
        assert all(
            d.adjustment_reason == AdjustmentReason.INVOICE_DELETED
            for d in report.tax_details
        )

    def test_cancellation_wins_over_deletion(self, builder: TaxSnapshotBuilder) -> None:
        invoice = _invoice(status=InvoiceStatus.CANCELLED, is_deleted=True)

        report = builder.build_accrual_report(invoice, _history("110.00"))

        assert report.tax_summary.status == SummaryStatus.CANCELLED
        assert _paid(report) == [Decimal("10.00"), Decimal("17.50"), Decimal("5.00")]

    def test_unknown_status_fails_loudly(self, builder: TaxSnapshotBuilder) -> None:
        invoice = _invoice(status=9)

        with pytest.raises(InvalidInvoiceStateError):
            builder.build_accrual_report(invoice, ())

    @pytest.mark.parametrize("paid", ["0", "33.33", "110.00", "219.99", "220.00"])
    def test_paid_plus_remaining_equals_tax(
        self, builder: TaxSnapshotBuilder, paid: str
    ) -> None:
        invoice = _invoice(paid_to_date=Decimal(paid))

        report = builder.build_accrual_report(invoice, _history(paid))

        for detail in report.tax_details:
            assert abs(
                detail.tax_amount_paid + detail.tax_amount_remaining - detail.tax_amount
            ) <= Decimal("0.01")

    def test_paid_share_grows_with_paid_to_date(
        self, builder: TaxSnapshotBuilder
    ) -> None:
        earlier = builder.build_accrual_report(
            _invoice(paid_to_date=Decimal("50.00")), _history("50.00")
        )
        later = builder.build_accrual_report(
            _invoice(paid_to_date=Decimal("75.00")), _history("50.00", "25.00")
        )

        for before, after in zip(_paid(earlier), _paid(later), strict=True):
            assert after >= before

    def test_zero_amount_invoice(self, builder: TaxSnapshotBuilder) -> None:
        invoice = _invoice(
            amount=Decimal("0"),
            paid_to_date=Decimal("0"),
            line_items=[],
            tax_lines=[TaxLine("VAT", Decimal("10"))],
        )

        report = builder.build_accrual_report(invoice, _history("5.00"))

        assert report.tax_summary.total_paid == Decimal("0")
        assert all(d.tax_amount_paid == 0 for d in report.tax_details)

    def test_nexus_falls_back_to_client_address(
        self, builder: TaxSnapshotBuilder
    ) -> None:
        client = Client(company_id=uuid4(), name="Northwind", state="CA", country="US")
        invoice = _invoice(nexus="", country_nexus="")

        report = builder.build_accrual_report(invoice, (), client)

        assert {d.nexus for d in report.tax_details} == {"CA"}
        assert {d.country_nexus for d in report.tax_details} == {"US"}

    def test_history_is_embedded(self, builder: TaxSnapshotBuilder) -> None:
        history = _history("60.00", "50.00")

        report = builder.build_accrual_report(_invoice(), history)

        assert report.payment_history == history
        assert report.amount == Decimal("220.00")


class TestRefundReport:
    def test_refund_marks_lines_refundable(self, builder: TaxSnapshotBuilder) -> None:
        history = (
            PaymentHistory(
                number="P1",
                date="2024-01-20",
                amount=Decimal("110.00"),
                refunded=Decimal("55.00"),
            ),
        )
        invoice = _invoice(paid_to_date=Decimal("55.00"))

        report = builder.build_refund_report(invoice, history)

        assert all(d.tax_status == TaxStatus.REFUNDABLE for d in report.tax_details)
        assert all(
            d.adjustment_reason == AdjustmentReason.PAYMENT_REFUNDED
            for d in report.tax_details
        )
        assert report.tax_summary.status == SummaryStatus.ADJUSTMENT
        # 65.00 of tax, 55.00 of 220.00 collected net of the refund.
        assert report.tax_summary.total_paid == Decimal("16.25")
        assert report.tax_summary.adjustment == Decimal("-48.75")


class TestPaymentDeletedReport:
    def test_adjustment_drives_paid_share(self, builder: TaxSnapshotBuilder) -> None:
        invoice = _invoice(
            amount=Decimal("110.00"),
            balance=Decimal("110.00"),
            paid_to_date=Decimal("0"),
            status=InvoiceStatus.SENT,
            line_items=[LineItem(cost=Decimal("100.00"))],
            tax_lines=[TaxLine("VAT", Decimal("10"))],
        )

        report = builder.build_payment_deleted_report(
            invoice, _history("110.00"), invoice_adjustment=Decimal("110.00")
        )

        [detail] = report.tax_details
        assert detail.tax_amount_paid == Decimal("10.00")
        assert detail.tax_amount_remaining == 0
        assert detail.tax_status == TaxStatus.PAYMENT_DELETED
        assert detail.adjustment_reason == AdjustmentReason.PAYMENT_DELETED
        assert report.tax_summary.status == SummaryStatus.ADJUSTMENT
        assert report.tax_summary.total_paid == Decimal("10.00")
        assert report.tax_summary.adjustment == Decimal("0.00")

    def test_without_adjustment_uses_paid_ratio(
        self, builder: TaxSnapshotBuilder
    ) -> None:
        report = builder.build_payment_deleted_report(_invoice(), _history("110.00"))

        assert _paid(report) == [Decimal("10.00"), Decimal("17.50"), Decimal("5.00")]
        assert _remaining(report) == [Decimal("0")] * 3


class TestCashReport:
    def test_paid_share_comes_from_window_history(
        self, builder: TaxSnapshotBuilder
    ) -> None:
        invoice = _invoice(paid_to_date=Decimal("220.00"), balance=Decimal("0"))

        report = builder.build_cash_report(invoice, _history("55.00"))

        assert _paid(report) == [Decimal("5.00"), Decimal("8.75"), Decimal("2.50")]
        assert report.tax_summary.total_paid == Decimal("16.25")
        assert report.tax_summary.status == SummaryStatus.UPDATED


class TestCollectionStatus:
    @pytest.mark.parametrize(
        ("paid", "expected"),
        [
            ("0", TaxStatus.PENDING),
            ("5.00", TaxStatus.PARTIALLY_PAID),
            ("10.00", TaxStatus.COLLECTED),
        ],
    )
    def test_status(self, paid: str, expected: TaxStatus) -> None:
        assert collection_status(Decimal("10.00"), Decimal(paid)) == expected
