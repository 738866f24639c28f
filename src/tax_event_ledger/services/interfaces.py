from __future__ import annotations

from abc import ABC, abstractmethod

from tax_event_ledger.domain.billing import Invoice
from tax_event_ledger.domain.tax_report import TaxBreakdownLine


class TaxBreakdownCalculator(ABC):
    @abstractmethod
    def breakdown(self, invoice: Invoice) -> list[TaxBreakdownLine]:
        """Return the invoice's applicable taxes, merged by name and rate."""


class Task(ABC):
    """A unit of work run by a TaskRunner under a per-key mutex."""

    tries: int = 1
    release_after: float = 10.0
    expire_after: float = 30.0

    @property
    @abstractmethod
    def lock_key(self) -> str:
        pass

    @abstractmethod
    def handle(self) -> None:
        pass

    @abstractmethod
    def failed(self, exc: BaseException) -> None:
        """Called once every attempt has failed. Must not raise."""


class TaskRunner(ABC):
    @abstractmethod
    def dispatch(self, task: Task) -> None:
        pass

    @abstractmethod
    def shutdown(self, wait: bool = True) -> None:
        pass
