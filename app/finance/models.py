"""
Financial transaction models.

FinancialTransaction is a single income or expense movement of a
property, tracked from creation through settlement. TransactionHistory
is its append-only audit log.

Usage:
    from finance.models import FinancialTransaction, TransactionHistory
    from finance.states import Category, Direction

    tx = FinancialTransaction.objects.create(
        property=building,
        direction=Direction.EXPENSE,
        category=Category.MAINTENANCE,
        description="Elevator repair",
        amount=Decimal("1200.00"),
        due_date=date(2025, 3, 10),
        created_by=actor.id,
    )

    # State transitions using django-fsm
    tx.approve(actor_id=manager.id)  # pending -> paid
    tx.save()

    TransactionHistory.record(tx, line, actor_id=manager.id)
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.db.models import Case, DecimalField, F, Max, Q, Sum, Value, When
from django.db.models.functions import Coalesce
from django.utils import timezone

from django_fsm import ConcurrentTransitionMixin, FSMField, transition

from core.managers import BaseQuerySet
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from finance.audit import HistoryLine
from finance.states import (
    CASH_CONFIRMABLE_METHODS,
    Category,
    Direction,
    HistoryAction,
    PaymentMethod,
    PixType,
    TransactionStatus,
)

MONEY = {"max_digits": 12, "decimal_places": 2}
ZERO = Decimal("0.00")


class TransactionQuerySet(BaseQuerySet):
    """Queryset helpers for financial transactions."""

    def for_property(self, property_id) -> TransactionQuerySet:
        return self.filter(property_id=property_id)

    def paid(self) -> TransactionQuerySet:
        return self.filter(status=TransactionStatus.PAID)

    def not_deleted(self) -> TransactionQuerySet:
        return self.exclude(status=TransactionStatus.DELETED)

    def public(self) -> TransactionQuerySet:
        return self.filter(is_private=False)

    def billed_for_period(self, unit_id, month: int, year: int) -> TransactionQuerySet:
        """Non-deleted condominium fees of a unit for one reference period."""
        return self.not_deleted().filter(
            unit_id=unit_id,
            category=Category.CONDOMINIUM_FEE,
            direction=Direction.INCOME,
            reference_month=month,
            reference_year=year,
        )

    def tagged(self, tags, today) -> TransactionQuerySet:
        """Database-side equivalent of finance.tags.filter_by_tag."""
        conditions = {
            "paid": Q(status=TransactionStatus.PAID),
            "cancelled": Q(status=TransactionStatus.CANCELLED),
            "overdue": Q(status=TransactionStatus.PENDING, due_date__lt=today),
            "pending": Q(status=TransactionStatus.PENDING, due_date__gte=today),
        }
        query = Q(pk__in=[])
        for tag in [tags] if isinstance(tags, str) else tags:
            query |= conditions[tag]
        return self.filter(query)

    def signed_total(self) -> Decimal:
        """
        Sum of total_amount, positive for income and negative for expenses.

        Computed by the database in one aggregate over committed rows.
        """
        result = self.aggregate(
            total=Coalesce(
                Sum(
                    Case(
                        When(direction=Direction.INCOME, then=F("total_amount")),
                        default=-F("total_amount"),
                        output_field=DecimalField(**MONEY),
                    )
                ),
                Value(ZERO),
                output_field=DecimalField(**MONEY),
            )
        )
        return Decimal(result["total"]).quantize(Decimal("0.01"))


class FinancialTransaction(
    ConcurrentTransitionMixin,
    UUIDPrimaryKeyMixin,
    VersionedMixin,
    BaseModel,
):
    """
    One income or expense movement of a property.

    Uses django-fsm for the status machine. ConcurrentTransitionMixin turns
    every save into a compare-and-swap on the status that was loaded, so
    two writers racing on the same row cannot both move it.

    State Flow:
        PENDING -> PAID (approve, confirm_cash)
        PENDING -> CANCELLED (cancel)
        PENDING/CANCELLED -> DELETED (soft_delete)

    Fields:
        property / unit / payer_id: Who the movement belongs to
        direction / category: Income or expense, and what for
        amount / late_fee / discount: Money inputs; total_amount is derived
        mixed_payment / pix_amount / cash_amount: PIX + cash split
        pix_type / pix_key / pix_recipient_name: PIX settlement details
        is_private: Owner-private expense, hidden from syndics
        *_by / *_at: Who performed each transition and when
        notes: Human notes (history lives in TransactionHistory)
        balance_before / balance_after: Snapshot taken at creation, advisory only

    Note:
        Actor ids are stored as plain UUIDs; users live in the identity
        service, not in this database.
    """

    # ==========================================================================
    # Ownership
    # ==========================================================================

    property = models.ForeignKey(
        "properties.Property",
        on_delete=models.PROTECT,
        related_name="transactions",
        help_text="Property this movement belongs to",
    )

    unit = models.ForeignKey(
        "properties.Unit",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
        help_text="Unit billed or paid for, if any",
    )

    payer_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="User responsible for paying, if any",
    )

    # ==========================================================================
    # Classification
    # ==========================================================================

    direction = models.CharField(
        max_length=10,
        choices=Direction.choices,
        help_text="Income or expense",
    )

    category = models.CharField(
        max_length=30,
        choices=Category.choices,
        help_text="Accounting category",
    )

    title = models.CharField(
        max_length=200,
        blank=True,
        default="",
        help_text="Optional short title",
    )

    description = models.CharField(
        max_length=500,
        help_text="What the movement is for",
    )

    reference_month = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Billing period month (1-12)",
    )

    reference_year = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Billing period year",
    )

    invoice_number = models.CharField(max_length=100, blank=True, default="")
    receipt_url = models.URLField(max_length=500, blank=True, default="")

    is_private = models.BooleanField(
        default=False,
        help_text="Owner-private expense, hidden from syndics",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.DecimalField(**MONEY, help_text="Base amount (positive)")
    late_fee = models.DecimalField(**MONEY, default=ZERO)
    discount = models.DecimalField(**MONEY, default=ZERO)
    total_amount = models.DecimalField(
        **MONEY,
        default=ZERO,
        help_text="amount + late_fee - discount, recomputed on every save",
    )

    due_date = models.DateField(db_index=True)
    paid_date = models.DateField(null=True, blank=True)

    # ==========================================================================
    # Payment Method
    # ==========================================================================

    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        blank=True,
        default="",
    )

    pix_type = models.CharField(max_length=1, choices=PixType.choices, blank=True, default="")
    pix_key = models.CharField(max_length=255, blank=True, default="")
    pix_recipient_name = models.CharField(max_length=255, blank=True, default="")

    mixed_payment = models.BooleanField(default=False)
    pix_amount = models.DecimalField(**MONEY, null=True, blank=True)
    cash_amount = models.DecimalField(**MONEY, null=True, blank=True)

    # ==========================================================================
    # Status
    # ==========================================================================

    status = FSMField(
        default=TransactionStatus.PENDING,
        choices=TransactionStatus.choices,
        db_index=True,
        protected=True,  # Prevent direct assignment outside transitions
        help_text="Current status (managed by FSM)",
    )

    created_by = models.UUIDField(help_text="User who registered the movement")

    approved_by = models.UUIDField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)

    cash_confirmed = models.BooleanField(default=False)
    cash_confirmed_by = models.UUIDField(null=True, blank=True)
    cash_confirmed_at = models.DateTimeField(null=True, blank=True)

    cancelled_by = models.UUIDField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    deleted_by = models.UUIDField(null=True, blank=True)
    deleted_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Notes & Snapshots
    # ==========================================================================

    notes = models.TextField(blank=True, default="")

    balance_before = models.DecimalField(**MONEY, default=ZERO)
    balance_after = models.DecimalField(**MONEY, default=ZERO)

    objects = TransactionQuerySet.as_manager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Financial Transaction"
        verbose_name_plural = "Financial Transactions"
        indexes = [
            models.Index(fields=["property", "status"]),
            models.Index(fields=["property", "due_date"]),
            models.Index(fields=["unit", "reference_year", "reference_month"]),
        ]
        constraints = [
            models.CheckConstraint(
                check=Q(amount__gt=0),
                name="financial_transaction_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["unit", "reference_year", "reference_month"],
                condition=Q(category=Category.CONDOMINIUM_FEE)
                & Q(direction=Direction.INCOME)
                & ~Q(status=TransactionStatus.DELETED),
                name="financial_transaction_one_fee_per_period",
            ),
        ]

    def __str__(self) -> str:
        return f"FinancialTransaction({self.id}, {self.direction}, {self.status}, {self.total_amount})"

    def compute_total(self) -> Decimal:
        return (self.amount or ZERO) + (self.late_fee or ZERO) - (self.discount or ZERO)

    def save(self, *args, **kwargs):
        """Recompute total_amount before every write."""
        self.total_amount = self.compute_total()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None:
            kwargs["update_fields"] = {*update_fields, "total_amount", "updated_at"}
        super().save(*args, **kwargs)

    def settles_in_cash(self) -> bool:
        return self.payment_method in CASH_CONFIRMABLE_METHODS

    def history_lines(self) -> list[HistoryLine]:
        return [entry.to_line() for entry in self.history_entries.all()]

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.PAID,
    )
    def approve(self, actor_id):
        """
        Authorize and settle the transaction.

        Transition: PENDING -> PAID
        """
        now = timezone.now()
        self.approved_by = actor_id
        self.approved_at = now
        self.paid_date = timezone.localdate(now)

    @transition(
        field=status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.PAID,
        conditions=[settles_in_cash],
    )
    def confirm_cash(self, actor_id):
        """
        Confirm cash received at the front desk.

        Transition: PENDING -> PAID (cash or mixed methods only)
        """
        now = timezone.now()
        self.cash_confirmed = True
        self.cash_confirmed_by = actor_id
        self.cash_confirmed_at = now
        self.paid_date = timezone.localdate(now)

    @transition(
        field=status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.CANCELLED,
    )
    def cancel(self, actor_id):
        """
        Cancel a transaction that was never settled.

        Transition: PENDING -> CANCELLED
        """
        self.cancelled_by = actor_id
        self.cancelled_at = timezone.now()

    @transition(
        field=status,
        source=[TransactionStatus.PENDING, TransactionStatus.CANCELLED],
        target=TransactionStatus.DELETED,
    )
    def soft_delete(self, actor_id):
        """
        Hide the transaction from the ledger while keeping the record.

        Transition: PENDING/CANCELLED -> DELETED
        """
        self.deleted_by = actor_id
        self.deleted_at = timezone.now()


class TransactionHistory(models.Model):
    """
    Append-only audit log of privileged actions on a transaction.

    Entries are numbered per transaction starting at 1. Callers append
    while holding the parent row lock, and the unique constraint on
    (transaction, sequence) rejects any interleaved writer.

    Fields:
        transaction: Transaction the entry belongs to
        sequence: 1-based position in the transaction's history
        action: One of HistoryAction
        actor_id / actor_label: Who acted, as id and display label
        details: What happened
        display_timestamp: Timestamp text as rendered in exports
        recorded_at: When the entry was written
    """

    transaction = models.ForeignKey(
        FinancialTransaction,
        on_delete=models.CASCADE,
        related_name="history_entries",
    )
    sequence = models.PositiveIntegerField()
    action = models.CharField(max_length=20, choices=HistoryAction.choices)
    actor_id = models.UUIDField(null=True, blank=True)
    actor_label = models.CharField(max_length=255)
    details = models.TextField(blank=True, default="")
    display_timestamp = models.CharField(max_length=40)
    recorded_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["transaction_id", "sequence"]
        verbose_name = "Transaction History Entry"
        verbose_name_plural = "Transaction History"
        constraints = [
            models.UniqueConstraint(
                fields=["transaction", "sequence"],
                name="transaction_history_unique_sequence",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.transaction_id}#{self.sequence} {self.action}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Transaction history entries are append-only")
        super().save(*args, **kwargs)

    def to_line(self) -> HistoryLine:
        return HistoryLine(
            action=self.action,
            timestamp=self.display_timestamp,
            actor=self.actor_label,
            details=self.details,
        )

    @classmethod
    def record(
        cls,
        transaction: FinancialTransaction,
        line: HistoryLine,
        actor_id=None,
    ) -> TransactionHistory:
        """Append one line after the transaction's last entry."""
        last = cls.objects.filter(transaction=transaction).aggregate(last=Max("sequence"))["last"]
        return cls.objects.create(
            transaction=transaction,
            sequence=(last or 0) + 1,
            action=line.action,
            actor_id=actor_id,
            actor_label=line.actor,
            details=line.details,
            display_timestamp=line.timestamp,
            recorded_at=line.recorded_at() or timezone.now(),
        )
