"""
Data types for ledger operations.

Dataclasses used for type-safe data transfer between the service layer
and its callers.

Types:
    Actor: Already-authenticated user acting on the ledger
    TagStatistics: Count and amount per reporting tag
    BalanceReport: Authoritative balance plus tag statistics
    MonthlyBatchParams: Validated input for monthly batch generation
    SkippedUnit / BatchResult: Outcome of a batch run
    FinancialReport: Period report grouped by category, status and method

Usage:
    from finance.types import Actor, MonthlyBatchParams

    actor = Actor(id=user.id, role="manager", name="Dana", property_access=[building.id])

    params = MonthlyBatchParams(
        month=3,
        year=2025,
        due_date=date(2025, 3, 10),
        default_amount=Decimal("450.00"),
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from finance.exceptions import LedgerValidationError
from finance.states import Role, Tag

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class Actor:
    """
    A user acting on the ledger, as supplied by the authorization layer.

    Attributes:
        id: User identifier
        role: One of finance.states.Role
        name: Display name written into audit history
        property_access: Properties the user belongs to (ignored for admins)

    Example:
        actor = Actor(id=uuid.uuid4(), role=Role.SYNDIC, property_access=[pid])
        actor.label  # "Unnamed (syndic)"
    """

    id: uuid.UUID
    role: str
    name: str = ""
    property_access: frozenset = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.role not in Role.values:
            raise LedgerValidationError(
                f"Unknown role '{self.role}'",
                details={"role": [f"Must be one of: {', '.join(Role.values)}"]},
            )
        # Normalize to strings so int, str and UUID ids compare equal
        object.__setattr__(
            self,
            "property_access",
            frozenset(str(pid) for pid in self.property_access),
        )

    @property
    def label(self) -> str:
        """Actor description used in audit history lines."""
        return f"{self.name or 'Unnamed'} ({self.role})"

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def has_property_access(self, property_id: Any) -> bool:
        """Admins see every property, everyone else only their own."""
        return self.is_admin or str(property_id) in self.property_access


@dataclass
class TagStatistics:
    """
    Aggregated counts and amounts per reporting tag.

    Amounts are summed total_amount values (unsigned). The paid side is
    also split by direction so that paid_income - paid_expense equals the
    authoritative balance for the same scope.

    Attributes:
        counts: Number of transactions per tag
        amounts: Summed total_amount per tag
        paid_income: Sum of total_amount for paid income
        paid_expense: Sum of total_amount for paid expenses
    """

    counts: dict[str, int] = field(
        default_factory=lambda: {tag: 0 for tag in Tag.values}
    )
    amounts: dict[str, Decimal] = field(
        default_factory=lambda: {tag: ZERO for tag in Tag.values}
    )
    paid_income: Decimal = ZERO
    paid_expense: Decimal = ZERO

    @property
    def active_count(self) -> int:
        """Transactions still awaiting settlement (pending or overdue)."""
        return self.counts[Tag.PENDING] + self.counts[Tag.OVERDUE]

    @property
    def active_amount(self) -> Decimal:
        return self.amounts[Tag.PENDING] + self.amounts[Tag.OVERDUE]

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for tag in Tag.values:
            result[f"{tag}_count"] = self.counts[tag]
            result[f"{tag}_amount"] = self.amounts[tag]
        result["total_income"] = self.paid_income
        result["total_expenses"] = self.paid_expense
        return result


@dataclass
class BalanceReport:
    """
    Result of LedgerService.get_balance.

    Attributes:
        property_id: Property the report covers
        balance: Signed sum of paid transactions (authoritative)
        statistics: Tag statistics for the same property
    """

    property_id: uuid.UUID
    balance: Decimal
    statistics: TagStatistics


@dataclass
class MonthlyBatchParams:
    """
    Parameters for generating one fee per unit for a billing period.

    Required Attributes:
        month: Reference month (1-12)
        year: Reference year
        due_date: Due date for every generated transaction
        default_amount: Fee used when a unit has no monthly_fee of its own

    Optional Attributes:
        exclude_unit_ids: Units to leave out of this batch
        description: Description template, formatted with month/year/unit
        min_year / max_year: Accepted reference_year range

    Raises:
        LedgerValidationError: On out-of-range month, year or amount
    """

    month: int
    year: int
    due_date: date
    default_amount: Decimal
    exclude_unit_ids: frozenset = field(default_factory=frozenset)
    description: str = "Condominium fee {month:02d}/{year} - Unit {unit}"
    min_year: int = 2020
    max_year: int = 2050

    def __post_init__(self) -> None:
        """Validate params after initialization."""
        errors: dict[str, list[str]] = {}
        if not 1 <= int(self.month) <= 12:
            errors["month"] = ["Must be between 1 and 12"]
        if not self.min_year <= int(self.year) <= self.max_year:
            errors["year"] = [f"Must be between {self.min_year} and {self.max_year}"]
        try:
            self.default_amount = Decimal(str(self.default_amount))
        except ArithmeticError:
            errors["default_amount"] = ["Must be a valid decimal number"]
        else:
            if self.default_amount < Decimal("0.01"):
                errors["default_amount"] = ["Must be at least 0.01"]
        if self.due_date is None:
            errors["due_date"] = ["This field is required."]
        if errors:
            raise LedgerValidationError("Invalid batch parameters", details=errors)
        self.exclude_unit_ids = frozenset(str(uid) for uid in self.exclude_unit_ids)


@dataclass
class SkippedUnit:
    """A unit left out of a batch, with the reason and error code."""

    unit_id: uuid.UUID
    unit_number: str
    reason: str
    error_code: str


@dataclass
class BatchResult:
    """
    Outcome of LedgerService.generate_monthly_batch.

    A batch succeeds even when some units were skipped; only persistence
    faults abort it.
    """

    created: list = field(default_factory=list)
    skipped: list[SkippedUnit] = field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return sum((tx.total_amount for tx in self.created), ZERO)


@dataclass
class FinancialReport:
    """
    Period report for a property.

    Attributes:
        property_id: Property the report covers
        start / end: Inclusive creation-date range of the period
        by_category: {(direction, category): {"total", "count"}}
        by_status: {status: {"total", "count"}}
        by_payment_method: Paid transactions grouped by method
    """

    property_id: uuid.UUID
    start: date
    end: date
    by_category: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    by_status: dict[str, dict[str, Any]] = field(default_factory=dict)
    by_payment_method: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def total_income(self) -> Decimal:
        return sum(
            (row["total"] for (direction, _), row in self.by_category.items() if direction == "income"),
            ZERO,
        )

    @property
    def total_expense(self) -> Decimal:
        return sum(
            (row["total"] for (direction, _), row in self.by_category.items() if direction == "expense"),
            ZERO,
        )
