"""
Base exception classes for application-wide error handling.

Every domain error in the project derives from BaseApplicationError so
that callers can rely on a single shape: a human-readable message, a
machine-readable error code and an optional details mapping.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed or out-of-range input
    ├── NotFoundError - Referenced record does not exist
    ├── PermissionDeniedError - Domain permission rules violated
    └── ConflictError - State conflicts (duplicates, concurrent modifications)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    raise ValidationError("Amount must be positive")

    raise NotFoundError(
        "Property not found",
        error_code="PROPERTY_NOT_FOUND",
        details={"property_id": str(property_id)},
    )

    try:
        ...
    except BaseApplicationError as e:
        payload = e.to_dict()

Note:
    These exceptions describe business failures. Database faults and
    programming errors are left to propagate as-is.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, ids, states)

    Example:
        try:
            LedgerService.approve(transaction_id, actor)
        except NotFoundError as e:
            logger.warning("Lookup failed: %s", e.error_code)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a plain dictionary.

        Returns:
            Dict with error, error_code, and (when present) details keys
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for missing required fields, negative money values, unknown enum
    values and any other malformed input caught in the service layer.

    Example:
        raise ValidationError(
            "Validation failed",
            details={"amount": ["Must be greater than zero"]},
        )
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested record is not found.

    Example:
        unit = Unit.objects.filter(id=unit_id).first()
        if not unit:
            raise NotFoundError(
                f"Unit {unit_id} not found",
                details={"unit_id": str(unit_id)},
            )
    """

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when an actor lacks permission for an operation.

    This is a domain rule ("only the creator may delete"), not a
    transport-level authentication failure.
    """

    default_error_code: str = "PERMISSION_DENIED"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current record state.

    Use for:
    - Duplicate entries (unique constraint violations)
    - Concurrent modification conflicts
    - Invalid state transitions
    - Optimistic locking failures
    """

    default_error_code: str = "CONFLICT"
