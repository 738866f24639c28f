from tax_event_ledger.repositories.interfaces import (
    BalanceAdjustmentRepository,
    BankTransactionRepository,
    ClientRepository,
    CompanyRepository,
    CreditRepository,
    Database,
    InvoiceRepository,
    PaymentRepository,
    Repositories,
    TransactionEventRepository,
)
from tax_event_ledger.repositories.postgres import PostgresDatabase
from tax_event_ledger.repositories.sqlite import SQLiteDatabase
from tax_event_ledger.repositories.tenancy import Tenant, TenantRegistry

__all__ = [
    "BalanceAdjustmentRepository",
    "BankTransactionRepository",
    "ClientRepository",
    "CompanyRepository",
    "CreditRepository",
    "Database",
    "InvoiceRepository",
    "PaymentRepository",
    "PostgresDatabase",
    "Repositories",
    "SQLiteDatabase",
    "Tenant",
    "TenantRegistry",
    "TransactionEventRepository",
]
