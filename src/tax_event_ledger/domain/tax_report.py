"""Value types embedded in every ledger row.

A TaxReport is a point-in-time copy of an invoice's tax position. Payment
history is denormalized into it so a stored row never depends on the
payment records it was built from.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from tax_event_ledger.domain.value_objects import (
    AdjustmentReason,
    SummaryStatus,
    TaxStatus,
    to_decimal,
)


def _decimal_or_none(value: Any) -> Decimal | None:
    return None if value is None else to_decimal(value)


def _str_or_none(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True, slots=True)
class TaxBreakdownLine:
    """One applicable tax on an invoice, as produced by a tax calculator."""

    name: str
    rate: Decimal
    base_amount: Decimal
    total: Decimal

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "rate": str(self.rate),
            "base_amount": str(self.base_amount),
            "total": str(self.total),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaxBreakdownLine":
        return cls(
            name=data["name"],
            rate=to_decimal(data["rate"]),
            base_amount=to_decimal(data["base_amount"]),
            total=to_decimal(data["total"]),
        )


@dataclass(frozen=True, slots=True)
class TaxDetail:
    tax_name: str
    tax_rate: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    tax_amount_paid: Decimal
    tax_amount_remaining: Decimal
    tax_status: TaxStatus = TaxStatus.PENDING
    nexus: str = ""
    country_nexus: str = ""
    adjustment_reason: AdjustmentReason | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tax_name": self.tax_name,
            "tax_rate": str(self.tax_rate),
            "nexus": self.nexus,
            "country_nexus": self.country_nexus,
            "taxable_amount": str(self.taxable_amount),
            "tax_amount": str(self.tax_amount),
            "tax_amount_paid": str(self.tax_amount_paid),
            "tax_amount_remaining": str(self.tax_amount_remaining),
            "tax_status": self.tax_status.value,
            "adjustment_reason": self.adjustment_reason.value
            if self.adjustment_reason
            else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaxDetail":
        reason = data.get("adjustment_reason")
        return cls(
            tax_name=data.get("tax_name", ""),
            tax_rate=to_decimal(data.get("tax_rate")),
            nexus=data.get("nexus", ""),
            country_nexus=data.get("country_nexus", ""),
            taxable_amount=to_decimal(data.get("taxable_amount")),
            tax_amount=to_decimal(data.get("tax_amount")),
            tax_amount_paid=to_decimal(data.get("tax_amount_paid")),
            tax_amount_remaining=to_decimal(data.get("tax_amount_remaining")),
            tax_status=TaxStatus(data.get("tax_status", TaxStatus.PENDING.value)),
            adjustment_reason=AdjustmentReason(reason) if reason else None,
        )


@dataclass(frozen=True, slots=True)
class TaxSummary:
    total_taxes: Decimal
    total_paid: Decimal
    status: SummaryStatus = SummaryStatus.UPDATED
    adjustment: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "total_taxes": str(self.total_taxes),
            "total_paid": str(self.total_paid),
            "status": self.status.value,
        }
        if self.adjustment is not None:
            data["adjustment"] = str(self.adjustment)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaxSummary":
        return cls(
            total_taxes=to_decimal(data.get("total_taxes")),
            total_paid=to_decimal(data.get("total_paid")),
            status=SummaryStatus(data.get("status", SummaryStatus.UPDATED.value)),
            adjustment=_decimal_or_none(data.get("adjustment")),
        )


@dataclass(frozen=True, slots=True)
class PaymentHistory:
    number: str
    date: str
    amount: Decimal
    refunded: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, str]:
        return {
            "number": self.number,
            "date": self.date,
            "amount": str(self.amount),
            "refunded": str(self.refunded),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentHistory":
        return cls(
            number=data.get("number", ""),
            date=data.get("date", ""),
            amount=to_decimal(data.get("amount")),
            refunded=to_decimal(data.get("refunded")),
        )


@dataclass(frozen=True, slots=True)
class TaxReport:
    tax_summary: TaxSummary
    amount: Decimal
    tax_details: tuple[TaxDetail, ...] = field(default_factory=tuple)
    payment_history: tuple[PaymentHistory, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tax_summary": self.tax_summary.to_dict(),
            "tax_details": [detail.to_dict() for detail in self.tax_details],
            "amount": str(self.amount),
            "payment_history": [entry.to_dict() for entry in self.payment_history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaxReport":
        return cls(
            tax_summary=TaxSummary.from_dict(data.get("tax_summary") or {}),
            amount=to_decimal(data.get("amount")),
            tax_details=tuple(
                TaxDetail.from_dict(detail) for detail in data.get("tax_details") or []
            ),
            payment_history=tuple(
                PaymentHistory.from_dict(entry)
                for entry in data.get("payment_history") or []
            ),
        )

    def to_json(self) -> str:
        """Serialize as the stored metadata document."""
        return json.dumps({"tax_report": self.to_dict()})

    @classmethod
    def from_json(cls, raw: str | None) -> "TaxReport | None":
        if not raw:
            return None
        data = json.loads(raw)
        if not isinstance(data, dict):
            return None
        return cls.from_dict(data.get("tax_report") or {})

    @property
    def net_payments(self) -> Decimal:
        return sum(
            (entry.amount - entry.refunded for entry in self.payment_history),
            Decimal("0"),
        )


__all__ = [
    "PaymentHistory",
    "TaxBreakdownLine",
    "TaxDetail",
    "TaxReport",
    "TaxSummary",
]
