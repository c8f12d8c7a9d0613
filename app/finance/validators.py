"""
Validation rules for transaction amounts and payment methods.

All functions are pure: they take plain values, return the computed
result and raise LedgerValidationError (or its InvalidSplit subclass)
on failure.

Rules:
    - amount must be greater than zero, late_fee and discount non-negative
    - total = amount + late_fee - discount, never negative
    - a mixed payment needs both parts, and PIX + cash must equal the
      total within 0.01
    - PIX methods need a PIX key; pix_a/pix_b/pix_c imply the PIX account

Usage:
    from finance.validators import validate_mixed_payment

    validate_mixed_payment(Decimal("100"), 0, 0, Decimal("60"), Decimal("40"))  # ok
    validate_mixed_payment(Decimal("100"), 0, 0, Decimal("60"), Decimal("30"))  # InvalidSplit
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from finance.exceptions import InvalidSplit, LedgerValidationError
from finance.states import PIX_METHODS, Category, Direction, PaymentMethod

if TYPE_CHECKING:
    from typing import Any

SPLIT_TOLERANCE = Decimal("0.01")
CENT = Decimal("0.01")


def to_money(value: Any, field_name: str, default: Decimal | None = None) -> Decimal:
    """
    Convert a value to a Decimal rounded to cents.

    Raises:
        LedgerValidationError: If the value is missing (and no default) or not numeric
    """
    if value is None or value == "":
        if default is not None:
            return default
        raise LedgerValidationError(
            f"{field_name} is required",
            details={field_name: ["This field is required."]},
        )
    try:
        return Decimal(str(value)).quantize(CENT)
    except (InvalidOperation, ValueError):
        raise LedgerValidationError(
            f"{field_name} must be a number",
            details={field_name: ["Must be a valid decimal number"]},
        ) from None


def compute_total(amount: Any, late_fee: Any = 0, discount: Any = 0) -> Decimal:
    """Total owed: amount + late_fee - discount."""
    return (
        to_money(amount, "amount")
        + to_money(late_fee, "late_fee", Decimal("0"))
        - to_money(discount, "discount", Decimal("0"))
    )


def validate_amounts(amount: Any, late_fee: Any = 0, discount: Any = 0) -> Decimal:
    """
    Validate the money fields of a transaction and return its total.

    Raises:
        LedgerValidationError: With one entry per offending field
    """
    errors: dict[str, list[str]] = {}
    amount = to_money(amount, "amount")
    late_fee = to_money(late_fee, "late_fee", Decimal("0"))
    discount = to_money(discount, "discount", Decimal("0"))

    if amount <= 0:
        errors["amount"] = ["Must be greater than zero"]
    if late_fee < 0:
        errors["late_fee"] = ["Cannot be negative"]
    if discount < 0:
        errors["discount"] = ["Cannot be negative"]
    if not errors and amount + late_fee - discount < 0:
        errors["discount"] = ["Cannot exceed amount plus late fee"]
    if errors:
        raise LedgerValidationError("Invalid transaction amounts", details=errors)
    return amount + late_fee - discount


def validate_mixed_payment(
    amount: Any,
    late_fee: Any,
    discount: Any,
    pix_amount: Any,
    cash_amount: Any,
) -> Decimal:
    """
    Check that a PIX + cash split adds up to the transaction total.

    Returns:
        The expected total

    Raises:
        InvalidSplit: If a part is missing or |(pix + cash) - total| > 0.01
    """
    missing = {
        name: ["This field is required."]
        for name, value in (("pix_amount", pix_amount), ("cash_amount", cash_amount))
        if value in (None, "")
    }
    if missing:
        raise InvalidSplit(
            "Mixed payments require both a PIX amount and a cash amount",
            details=missing,
        )

    expected = compute_total(amount, late_fee, discount)
    pix = to_money(pix_amount, "pix_amount")
    cash = to_money(cash_amount, "cash_amount")
    if pix < 0 or cash < 0:
        raise InvalidSplit(
            "PIX and cash amounts cannot be negative",
            details={"pix_amount": [str(pix)], "cash_amount": [str(cash)]},
        )

    split_total = pix + cash
    if abs(split_total - expected) > SPLIT_TOLERANCE:
        raise InvalidSplit(
            f"PIX + cash ({split_total:.2f}) must equal the total ({expected:.2f})",
            details={
                "expected_total": [f"{expected:.2f}"],
                "split_total": [f"{split_total:.2f}"],
            },
        )
    return expected


def validate_choices(fields: dict[str, Any]) -> None:
    """
    Reject unknown direction, category and payment method values.

    Raises:
        LedgerValidationError: With one entry per offending field
    """
    errors: dict[str, list[str]] = {}
    for field_name, enum in (
        ("direction", Direction),
        ("category", Category),
        ("payment_method", PaymentMethod),
    ):
        value = fields.get(field_name)
        if value in (None, ""):
            continue
        if value not in enum.values:
            errors[field_name] = [f"Must be one of: {', '.join(enum.values)}"]
    if errors:
        raise LedgerValidationError("Invalid choice", details=errors)


def validate_payment_method_fields(fields: dict[str, Any]) -> str | None:
    """
    Check method-specific required fields.

    Returns:
        The PIX account (A/B/C) implied by the method, or the explicit
        pix_type for plain "pix", or None for non-PIX methods

    Raises:
        LedgerValidationError: If a PIX method has no PIX key
    """
    method = fields.get("payment_method")
    if method not in PIX_METHODS:
        return None
    if not (fields.get("pix_key") or "").strip():
        raise LedgerValidationError(
            "PIX payments require a PIX key",
            details={"pix_key": ["This field is required for PIX payments."]},
        )
    implied = PIX_METHODS[method]
    return implied.value if implied is not None else (fields.get("pix_type") or None)
