"""
Enums for financial transactions.

These are Django TextChoices for database storage and admin integration.

Transaction lifecycle:
    pending → paid (approved or cash-confirmed)
    pending → cancelled
    pending/cancelled → deleted (soft delete)

"Approved" and "cash-confirmed" are transition labels into PAID, not
separate persisted statuses. DELETED is terminal.
"""

from django.db import models


class TransactionStatus(models.TextChoices):
    """
    Persisted status of a FinancialTransaction.

    Terminal states: DELETED
    PAID is immutable except under a privileged override.

    State Flow:
        PENDING → PAID (approve, confirm_cash)
        PENDING → CANCELLED
        PENDING → DELETED
        CANCELLED → DELETED
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"
    DELETED = "deleted", "Deleted"


class Direction(models.TextChoices):
    """Whether money enters (income) or leaves (expense) the property."""

    INCOME = "income", "Income"
    EXPENSE = "expense", "Expense"


class Category(models.TextChoices):
    """Accounting category of a transaction."""

    CONDOMINIUM_FEE = "condominium_fee", "Condominium Fee"
    WATER = "water", "Water"
    ELECTRICITY = "electricity", "Electricity"
    GAS = "gas", "Gas"
    MAINTENANCE = "maintenance", "Maintenance"
    SECURITY = "security", "Security"
    CLEANING = "cleaning", "Cleaning"
    INSURANCE = "insurance", "Insurance"
    RESERVE_FUND = "reserve_fund", "Reserve Fund"
    UTILITIES = "utilities", "Utilities"
    OTHER = "other", "Other"


class PaymentMethod(models.TextChoices):
    """
    How a transaction is (or will be) settled.

    PIX_A/PIX_B/PIX_C are instant transfers to one of the property's
    registered PIX accounts. MIXED splits settlement between PIX and cash.
    """

    CASH = "cash", "Cash"
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    PIX = "pix", "PIX"
    PIX_A = "pix_a", "PIX A"
    PIX_B = "pix_b", "PIX B"
    PIX_C = "pix_c", "PIX C"
    CREDIT_CARD = "credit_card", "Credit Card"
    DEBIT_CARD = "debit_card", "Debit Card"
    BANK_SLIP = "bank_slip", "Bank Slip"
    MIXED = "mixed", "Mixed (PIX + Cash)"


class PixType(models.TextChoices):
    """Which registered PIX account received the transfer."""

    A = "A", "PIX A"
    B = "B", "PIX B"
    C = "C", "PIX C"


class HistoryAction(models.TextChoices):
    """Privileged actions recorded in a transaction's audit history."""

    MODIFICATION = "MODIFICATION", "Modification"
    APPROVAL = "APPROVAL", "Approval"
    CANCELLATION = "CANCELLATION", "Cancellation"
    CONFIRMATION = "CONFIRMATION", "Confirmation"
    DELETION = "DELETION", "Deletion"


class Tag(models.TextChoices):
    """
    Derived reporting classification of a transaction.

    Never persisted: computed from status, due date and the current day.
    """

    PENDING = "pending", "Pending"
    OVERDUE = "overdue", "Overdue"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"


class Role(models.TextChoices):
    """Roles an actor can hold within a property."""

    ADMIN = "admin", "Administrator"
    MANAGER = "manager", "Manager"
    SYNDIC = "syndic", "Syndic"
    RESIDENT = "resident", "Resident"


class NotificationPriority(models.TextChoices):
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"


# Methods that can be settled by confirming cash at the front desk
CASH_CONFIRMABLE_METHODS = frozenset({PaymentMethod.CASH, PaymentMethod.MIXED})

# Methods that require a PIX key, with the PIX account they map to
PIX_METHODS = {
    PaymentMethod.PIX: None,
    PaymentMethod.PIX_A: PixType.A,
    PaymentMethod.PIX_B: PixType.B,
    PaymentMethod.PIX_C: PixType.C,
}
