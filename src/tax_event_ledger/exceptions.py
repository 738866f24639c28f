"""Domain exception hierarchy for the Tax Event Ledger.

All domain-specific exceptions inherit from TaxEventLedgerError.
This allows catching all application errors with a single base class
while preserving specificity for individual error types.
"""

from typing import Any
from uuid import UUID


class TaxEventLedgerError(Exception):
    """Base exception for all Tax Event Ledger errors.

    Includes optional error_code for API responses and extra context.
    """

    error_code: str = "TEL_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        if status_code:
            self.status_code = status_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Lookup Errors
# =============================================================================


class NotFoundError(TaxEventLedgerError):
    """Base exception for records that cannot be found."""

    error_code = "NOT_FOUND"
    status_code = 404


class CompanyNotFoundError(NotFoundError):
    error_code = "COMPANY_NOT_FOUND"

    def __init__(self, company_id: UUID | str) -> None:
        super().__init__(
            f"Company not found: {company_id}",
            context={"company_id": str(company_id)},
        )


class ClientNotFoundError(NotFoundError):
    error_code = "CLIENT_NOT_FOUND"

    def __init__(self, client_id: UUID | str) -> None:
        super().__init__(
            f"Client not found: {client_id}",
            context={"client_id": str(client_id)},
        )


class InvoiceNotFoundError(NotFoundError):
    error_code = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: UUID | str) -> None:
        super().__init__(
            f"Invoice not found: {invoice_id}",
            context={"invoice_id": str(invoice_id)},
        )


class PaymentNotFoundError(NotFoundError):
    error_code = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: UUID | str) -> None:
        super().__init__(
            f"Payment not found: {payment_id}",
            context={"payment_id": str(payment_id)},
        )


class UnknownTenantError(NotFoundError):
    """Raised when a task names a tenant database that is not registered."""

    error_code = "UNKNOWN_TENANT"

    def __init__(self, db: str) -> None:
        super().__init__(f"Unknown tenant database: {db}", context={"db": db})


# =============================================================================
# Ledger Errors
# =============================================================================


class LedgerError(TaxEventLedgerError):
    """Base exception for ledger-related errors."""

    error_code = "LEDGER_ERROR"
    status_code = 400


class InvalidInvoiceStateError(LedgerError):
    """Raised when an invoice is neither active, cancelled nor deleted.

    Snapshot arithmetic must not run against such an invoice.
    """

    error_code = "INVALID_INVOICE_STATE"
    status_code = 500

    def __init__(self, invoice_id: UUID | str, status: object) -> None:
        super().__init__(
            f"Invoice {invoice_id} has an unsupported status: {status!r}",
            context={"invoice_id": str(invoice_id), "status": str(status)},
        )


class PaymentLockError(LedgerError):
    """Raised when a payment row cannot be locked after all retries."""

    error_code = "PAYMENT_LOCK_FAILED"
    status_code = 409

    def __init__(self, payment_id: UUID | str, attempts: int) -> None:
        super().__init__(
            f"Could not lock payment {payment_id} after {attempts} attempts",
            context={"payment_id": str(payment_id), "attempts": attempts},
        )


# =============================================================================
# Database Errors
# =============================================================================


class DatabaseError(TaxEventLedgerError):
    """Base exception for database-related errors."""

    error_code = "DATABASE_ERROR"
    status_code = 500


class LockContentionError(DatabaseError):
    """Raised when a row or database lock could not be acquired."""

    error_code = "LOCK_CONTENTION"
    status_code = 409


class IntegrityError(DatabaseError):
    """Raised when a database integrity constraint is violated."""

    error_code = "DATABASE_INTEGRITY_ERROR"
    status_code = 409


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(TaxEventLedgerError):
    """Base exception for validation errors."""

    error_code = "VALIDATION_ERROR"
    status_code = 422

