"""
Finance-specific exceptions for ledger operations.

Every exception inherits from the core hierarchy so service callers see
the same message / error_code / details shape everywhere.

Exception Hierarchy:
    LedgerError (base)
    ├── LedgerValidationError - Malformed or out-of-range input
    │   └── InvalidSplit - PIX + cash does not add up to the total
    ├── TransactionNotFound / PropertyNotFound - Missing records
    ├── LedgerForbidden - Domain permission rules
    ├── InvalidState - Illegal transition from the current status
    ├── AlreadyProcessed - Approval or cash confirmation already recorded
    ├── DuplicateBilling - Unit already billed for the period
    ├── StaleTransaction - Optimistic lock version mismatch
    └── LockAcquisitionError - Batch lock held by another worker

Usage:
    from finance.exceptions import InvalidState

    raise InvalidState(
        "Only pending transactions can be cancelled",
        details={"status": tx.status, "action": "cancel"},
    )
"""

from __future__ import annotations

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


class LedgerError(BaseApplicationError):
    """
    Base exception for all ledger operations.

    LedgerService public methods catch this class and return a failed
    ServiceResult carrying the error code.
    """

    default_error_code: str = "LEDGER_ERROR"


class LedgerValidationError(LedgerError, ValidationError):
    """Raised when transaction fields are missing or out of range."""

    default_error_code: str = "VALIDATION_ERROR"


class InvalidSplit(LedgerValidationError):
    """
    Raised when a mixed payment's PIX and cash parts do not match the total.

    Example:
        raise InvalidSplit(
            "PIX + cash (90.00) must equal the total (100.00)",
            details={"expected_total": "100.00", "split_total": "90.00"},
        )
    """

    default_error_code: str = "INVALID_SPLIT"


class TransactionNotFound(LedgerError, NotFoundError):
    """Raised when a transaction id does not exist."""

    default_error_code: str = "NOT_FOUND"


class PropertyNotFound(LedgerError, NotFoundError):
    """Raised when a property id does not exist."""

    default_error_code: str = "NOT_FOUND"


class LedgerForbidden(LedgerError, PermissionDeniedError):
    """Raised when an actor may not perform an action on a transaction."""

    default_error_code: str = "FORBIDDEN"


class InvalidState(LedgerError, ConflictError):
    """
    Raised when the current status does not allow the requested action.

    Also raised to the loser of a concurrent transition on the same
    transaction.
    """

    default_error_code: str = "INVALID_STATE"


class AlreadyProcessed(LedgerError, ConflictError):
    """Raised when an approval or cash confirmation was already recorded."""

    default_error_code: str = "ALREADY_PROCESSED"


class DuplicateBilling(LedgerError, ConflictError):
    """Raised when a unit already has a fee for the reference period."""

    default_error_code: str = "CONFLICT"


class StaleTransaction(LedgerError, ConflictError):
    """Raised when an update was based on an outdated version."""

    default_error_code: str = "CONFLICT"


class LockAcquisitionError(LedgerError, ConflictError):
    """Raised when the batch generation lock for a property is held elsewhere."""

    default_error_code: str = "LOCK_ACQUISITION_FAILED"
