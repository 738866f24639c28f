from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from tax_event_ledger.domain.billing import (
    Allocation,
    BalanceAdjustment,
    BankTransaction,
    Client,
    Company,
    Credit,
    Invoice,
    Payment,
)
from tax_event_ledger.domain.transaction_events import TransactionEvent
from tax_event_ledger.domain.value_objects import EventKind, InvoiceStatus


class Database(ABC):
    """Connection manager for one tenant database."""

    @abstractmethod
    def get_connection(self) -> Any:
        pass

    @abstractmethod
    def initialize(self) -> None:
        pass

    @abstractmethod
    def transaction(self, *, lock: bool = False) -> AbstractContextManager[None]:
        """Run the enclosed block atomically.

        Nested calls join the outer transaction through a savepoint. With
        ``lock=True`` the outermost transaction takes write locks eagerly.
        """

    @abstractmethod
    def repositories(self) -> "Repositories":
        pass

    @abstractmethod
    def close(self) -> None:
        pass


class CompanyRepository(ABC):
    @abstractmethod
    def add(self, company: Company) -> None:
        pass

    @abstractmethod
    def get(self, company_id: UUID) -> Company | None:
        pass

    @abstractmethod
    def list_all(self) -> Iterable[Company]:
        pass

    @abstractmethod
    def list_in_timezones(self, timezones: Iterable[str]) -> Iterable[Company]:
        pass


class ClientRepository(ABC):
    @abstractmethod
    def add(self, client: Client) -> None:
        pass

    @abstractmethod
    def get(self, client_id: UUID) -> Client | None:
        pass

    @abstractmethod
    def update(self, client: Client) -> None:
        pass


class InvoiceRepository(ABC):
    @abstractmethod
    def add(self, invoice: Invoice) -> None:
        pass

    @abstractmethod
    def get(self, invoice_id: UUID, include_trashed: bool = True) -> Invoice | None:
        pass

    @abstractmethod
    def get_many(self, invoice_ids: Iterable[UUID]) -> list[Invoice]:
        """Fetch invoices by id, trashed ones included."""

    @abstractmethod
    def update(self, invoice: Invoice) -> None:
        pass

    @abstractmethod
    def iter_for_accrual_sweep(
        self,
        company_id: UUID,
        start_date: date,
        end_date: date,
        statuses: Iterable[InvoiceStatus],
        window_start: int,
        window_end: int,
    ) -> Iterator[Invoice]:
        """Stream live invoices dated in the window without a recent accrual row."""

    @abstractmethod
    def iter_for_cash_sweep(
        self,
        company_id: UUID,
        start: datetime,
        end: datetime,
        statuses: Iterable[InvoiceStatus],
        window_start: int,
        window_end: int,
    ) -> Iterator[Invoice]:
        """Stream part-paid invoices with allocations created in the window."""

    @abstractmethod
    def iter_without_events(
        self,
        company_id: UUID,
        end_date: date,
        statuses: Iterable[InvoiceStatus],
    ) -> Iterator[Invoice]:
        pass


class CreditRepository(ABC):
    @abstractmethod
    def add(self, credit: Credit) -> None:
        pass

    @abstractmethod
    def get(self, credit_id: UUID) -> Credit | None:
        pass

    @abstractmethod
    def update(self, credit: Credit) -> None:
        pass


class PaymentRepository(ABC):
    @abstractmethod
    def add(self, payment: Payment) -> None:
        """Persist a payment together with its allocations."""

    @abstractmethod
    def get(self, payment_id: UUID) -> Payment | None:
        """Fetch a payment (soft-deleted included) with its allocations."""

    @abstractmethod
    def get_for_update(self, payment_id: UUID) -> Payment | None:
        """Like get, but holds a row lock until the transaction ends."""

    @abstractmethod
    def update(self, payment: Payment) -> None:
        pass

    @abstractmethod
    def list_invoice_allocations(self, invoice_id: UUID) -> list[Allocation]:
        pass

    @abstractmethod
    def list_invoice_allocations_between(
        self, invoice_id: UUID, start: datetime, end: datetime
    ) -> list[Allocation]:
        pass

    @abstractmethod
    def payment_number(self, payment_id: UUID) -> str:
        pass

    @abstractmethod
    def purge_allocations(self, payment_id: UUID) -> int:
        """Hard-delete every allocation of the payment. Returns rows removed."""


class BankTransactionRepository(ABC):
    @abstractmethod
    def add(self, transaction: BankTransaction) -> None:
        pass

    @abstractmethod
    def get(self, transaction_id: UUID) -> BankTransaction | None:
        pass

    @abstractmethod
    def iter_by_payment(self, payment_id: UUID) -> Iterator[BankTransaction]:
        pass

    @abstractmethod
    def update(self, transaction: BankTransaction) -> None:
        pass


class BalanceAdjustmentRepository(ABC):
    @abstractmethod
    def add(self, adjustment: BalanceAdjustment) -> None:
        pass

    @abstractmethod
    def list_by_client(self, client_id: UUID) -> list[BalanceAdjustment]:
        pass


class TransactionEventRepository(ABC):
    """The ledger store. Append-mostly: rows are never updated."""

    @abstractmethod
    def add(self, event: TransactionEvent) -> None:
        pass

    @abstractmethod
    def supersede(
        self, event: TransactionEvent, replaces: Iterable[EventKind]
    ) -> int:
        """Atomically delete same invoice+period rows of the given kinds, then add.

        Returns the number of rows deleted.
        """

    @abstractmethod
    def get(self, event_id: UUID) -> TransactionEvent | None:
        pass

    @abstractmethod
    def list_by_invoice(
        self, invoice_id: UUID, kinds: Iterable[EventKind] | None = None
    ) -> list[TransactionEvent]:
        pass

    @abstractmethod
    def list_by_period(
        self,
        period_start: date,
        period_end: date,
        kinds: Iterable[EventKind] | None = None,
    ) -> list[TransactionEvent]:
        pass

    @abstractmethod
    def list_by_kind(self, kind: EventKind) -> list[TransactionEvent]:
        pass

    @abstractmethod
    def query(
        self,
        *,
        invoice_id: UUID | None = None,
        company_id: UUID | None = None,
        period_start: date | None = None,
        period_end: date | None = None,
        kinds: Iterable[EventKind] | None = None,
    ) -> list[TransactionEvent]:
        pass

    @abstractmethod
    def has_event_between(
        self, invoice_id: UUID, kind: EventKind, start_ts: int, end_ts: int
    ) -> bool:
        pass


@dataclass(frozen=True)
class Repositories:
    companies: CompanyRepository
    clients: ClientRepository
    invoices: InvoiceRepository
    credits: CreditRepository
    payments: PaymentRepository
    bank_transactions: BankTransactionRepository
    balance_adjustments: BalanceAdjustmentRepository
    events: TransactionEventRepository
