"""
Balance calculator.

The running balance of a property is the signed sum of its paid
transactions: income adds total_amount, expenses subtract it. It is
always computed by the database from committed rows; there is no stored
counter that could drift.

Usage:
    from finance.balance import calculate_balance, balance_snapshot

    calculate_balance(building.id)             # Decimal("1530.00")
    balance_snapshot(building.id, "expense", Decimal("200"))
    # (Decimal("1530.00"), Decimal("1330.00"))
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.db import DatabaseError, transaction

from finance.models import FinancialTransaction
from finance.states import Direction

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def calculate_balance(property_id) -> Decimal:
    """Signed sum of total_amount over the property's paid transactions."""
    return FinancialTransaction.objects.for_property(property_id).paid().signed_total()


def paid_totals(property_id) -> tuple[Decimal, Decimal]:
    """Paid income and paid expense totals (both positive)."""
    paid = FinancialTransaction.objects.for_property(property_id).paid()
    income = paid.filter(direction=Direction.INCOME).signed_total()
    expense = -paid.filter(direction=Direction.EXPENSE).signed_total()
    return income, expense


def apply_to_balance(balance: Decimal, direction: str, total: Decimal) -> Decimal:
    return balance + total if direction == Direction.INCOME else balance - total


def balance_snapshot(property_id, direction: str, total: Decimal) -> tuple[Decimal, Decimal]:
    """
    Balance before and after a new transaction, for audit metadata.

    The snapshot never blocks a write: if the balance cannot be computed
    the before value falls back to zero and a warning is logged. Runs in
    a savepoint so a failed query does not poison the caller's transaction.
    """
    try:
        with transaction.atomic():
            before = calculate_balance(property_id)
    except DatabaseError:
        logger.warning(
            "Balance snapshot failed, using 0",
            exc_info=True,
            extra={"property_id": str(property_id)},
        )
        before = ZERO
    return before, apply_to_balance(before, direction, total)
