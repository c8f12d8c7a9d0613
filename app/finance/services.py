"""
Ledger service: the lifecycle of financial transactions.

LedgerService is the only entry point that mutates the ledger. Every
operation authorizes the actor against the capability table, runs in a
database transaction, re-reads the row under select_for_update before a
transition, appends to the transaction's audit history and signals
cache invalidation / notifications after commit.

Lifecycle:
    create_transaction -> PENDING
    approve            PENDING -> PAID
    confirm_cash       PENDING -> PAID (cash or mixed methods)
    cancel             PENDING -> CANCELLED
    soft_delete        PENDING/CANCELLED -> DELETED
    delete_transaction removes the row (never when PAID)

Usage:
    from finance.services import LedgerService
    from finance.types import Actor

    manager = Actor(id=user_id, role="manager", name="Dana", property_access=[building.id])

    result = LedgerService.create_transaction(
        building.id,
        manager,
        {
            "direction": "expense",
            "category": "maintenance",
            "description": "Elevator repair",
            "amount": "1200.00",
            "due_date": "2025-03-10",
        },
    )
    if result.success:
        LedgerService.approve(result.data.id, manager, note="Invoice checked")
    elif result.error_code == "VALIDATION_ERROR":
        ...

    balance = LedgerService.get_balance(building.id, manager).data.balance
"""

from __future__ import annotations

import calendar
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone
from django.utils.dateparse import parse_date

from django_fsm import ConcurrentTransition, TransitionNotAllowed

from core.services import BaseService, ServiceResult
from finance.audit import (
    BOOLEAN_FIELDS,
    FIELD_LABELS,
    INTEGER_FIELDS,
    MONEY_FIELDS,
    HistoryLine,
    build_modification_details,
    decode,
    diff_fields,
    encode,
    normalize_value,
)
from finance.balance import balance_snapshot
from finance.dispatch import CeleryCacheInvalidator, CeleryNotifier, emit_after_commit
from finance.exceptions import (
    AlreadyProcessed,
    DuplicateBilling,
    InvalidState,
    LedgerError,
    LedgerValidationError,
    PropertyNotFound,
    TransactionNotFound,
)
from finance.locks import DistributedLock, check_version
from finance.models import FinancialTransaction, TransactionHistory
from finance.permissions import Action, authorize, can, can_view_private
from finance.states import (
    Category,
    Direction,
    HistoryAction,
    NotificationPriority,
    PaymentMethod,
    Role,
    Tag,
    TransactionStatus,
)
from finance.tags import aggregate_statistics
from finance.types import (
    BalanceReport,
    BatchResult,
    FinancialReport,
    MonthlyBatchParams,
    SkippedUnit,
)
from finance.validators import (
    compute_total,
    to_money,
    validate_amounts,
    validate_choices,
    validate_mixed_payment,
    validate_payment_method_fields,
)
from properties.models import Property, Unit

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from core.protocols import CacheInvalidator, Notifier
    from finance.types import Actor

ZERO = Decimal("0.00")

# Fields callers may set on create and update
EDITABLE_FIELDS = frozenset(FIELD_LABELS) | {"pix_type", "notes"}

REQUIRED_FIELDS = ("direction", "category", "description", "amount", "due_date")

LIST_FILTERS = frozenset(
    {
        "status",
        "direction",
        "category",
        "payment_method",
        "unit_id",
        "tag",
        "due_from",
        "due_to",
        "search",
        "include_deleted",
    }
)

REPORT_PERIODS = ("month", "quarter", "year")

STAFF_ROLES = [Role.ADMIN.value, Role.MANAGER.value]


# =============================================================================
# Field Coercion & Validation
# =============================================================================


def _parse_day(value: Any, field_name: str) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise LedgerValidationError(
            f"{field_name} must be a date",
            details={field_name: ["Must be a valid date (YYYY-MM-DD)"]},
        )
    return parsed


def _parse_int(value: Any, field_name: str) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise LedgerValidationError(
            f"{field_name} must be an integer",
            details={field_name: ["Must be a whole number"]},
        ) from None


def coerce_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Convert caller input to model field values.

    Raises:
        LedgerValidationError: On unknown fields or unparseable values
    """
    unknown = sorted(set(fields) - EDITABLE_FIELDS)
    if unknown:
        raise LedgerValidationError(
            "Unknown transaction fields",
            details={name: ["Unknown field"] for name in unknown},
        )

    data: dict[str, Any] = {}
    for name, value in fields.items():
        if name in MONEY_FIELDS:
            if value in (None, ""):
                data[name] = ZERO if name in ("late_fee", "discount") else None
            else:
                data[name] = to_money(value, name)
        elif name == "due_date":
            data[name] = _parse_day(value, name)
        elif name in INTEGER_FIELDS:
            data[name] = _parse_int(value, name)
        elif name in BOOLEAN_FIELDS:
            data[name] = bool(normalize_value(name, value))
        elif name in ("unit_id", "payer_id"):
            data[name] = value or None
        else:
            data[name] = "" if value is None else str(value).strip()
    return data


def validate_fields(values: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate a complete set of transaction values.

    Returns:
        Derived values: pix_type and mixed_payment

    Raises:
        LedgerValidationError / InvalidSplit
    """
    missing = {
        name: ["This field is required."]
        for name in REQUIRED_FIELDS
        if values.get(name) in (None, "")
    }
    if missing:
        raise LedgerValidationError("Required fields missing", details=missing)

    validate_choices(values)
    validate_amounts(values["amount"], values.get("late_fee"), values.get("discount"))

    month = values.get("reference_month")
    if month is not None and not 1 <= month <= 12:
        raise LedgerValidationError(
            "Invalid reference month",
            details={"reference_month": ["Must be between 1 and 12"]},
        )

    pix_type = validate_payment_method_fields(values)
    mixed = bool(values.get("mixed_payment")) or values.get("payment_method") == PaymentMethod.MIXED
    if mixed:
        validate_mixed_payment(
            values["amount"],
            values.get("late_fee"),
            values.get("discount"),
            values.get("pix_amount"),
            values.get("cash_amount"),
        )
    return {"pix_type": pix_type or "", "mixed_payment": mixed}


def _current_values(tx: FinancialTransaction) -> dict[str, Any]:
    return {name: getattr(tx, name) for name in EDITABLE_FIELDS if name != "notes"}


def _report_range(year: int, month: int | None, period: str) -> tuple[date, date]:
    if period not in REPORT_PERIODS:
        raise LedgerValidationError(
            "Invalid report period",
            details={"period": [f"Must be one of: {', '.join(REPORT_PERIODS)}"]},
        )
    if period == "year":
        return date(year, 1, 1), date(year, 12, 31)
    if month is None or not 1 <= month <= 12:
        raise LedgerValidationError(
            "Invalid report month",
            details={"month": ["Must be between 1 and 12"]},
        )
    if period == "quarter":
        first = 3 * ((month - 1) // 3) + 1
        last = first + 2
        return date(year, first, 1), date(year, last, calendar.monthrange(year, last)[1])
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def _grouped(queryset, *fields: str) -> list[dict[str, Any]]:
    return list(
        queryset.order_by()
        .values(*fields)
        .annotate(total=Sum("total_amount"), count=Count("id"))
        .order_by(*fields)
    )


# =============================================================================
# Ledger Service
# =============================================================================


class LedgerService(BaseService):
    """
    Transaction lifecycle, queries and batch generation for a property ledger.

    All public methods return ServiceResult. Business failures (LedgerError
    subclasses) become failed results carrying the error code; database
    faults propagate after the surrounding transaction rolls back.

    Collaborators:
        cache_invalidator: Receives cache key patterns after each commit
        notifier: Receives property-wide notifications after commit

    Both default to Celery-backed adapters and can be replaced, e.g. in
    tests, by assigning any object satisfying core.protocols.
    """

    cache_invalidator: CacheInvalidator = CeleryCacheInvalidator()
    notifier: Notifier = CeleryNotifier()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    @classmethod
    def _get_property(cls, property_id) -> Property:
        prop = Property.objects.filter(pk=property_id).first()
        if prop is None:
            raise PropertyNotFound(
                f"Property {property_id} not found",
                details={"property_id": str(property_id)},
            )
        return prop

    @classmethod
    def _visible(cls, tx: FinancialTransaction | None, transaction_id, actor: Actor | None):
        """Hide missing and, from syndics, private transactions alike."""
        if tx is None or (actor is not None and tx.is_private and not can_view_private(actor)):
            raise TransactionNotFound(
                f"Transaction {transaction_id} not found",
                details={"id": str(transaction_id)},
            )
        return tx

    @classmethod
    def _lock(cls, transaction_id, actor: Actor) -> FinancialTransaction:
        """Re-read the row under a lock; call inside cls.atomic()."""
        tx = FinancialTransaction.objects.select_for_update().filter(pk=transaction_id).first()
        return cls._visible(tx, transaction_id, actor)

    @classmethod
    def _emit(cls, property_id, notification=None) -> None:
        emit_after_commit(cls.cache_invalidator, cls.notifier, property_id, notification)

    @classmethod
    def _record(cls, tx: FinancialTransaction, action: str, actor: Actor, details: str) -> TransactionHistory:
        return TransactionHistory.record(
            tx,
            HistoryLine.create(action, actor.label, details),
            actor_id=actor.id,
        )

    @classmethod
    def _check_unbilled(cls, values: Mapping[str, Any], exclude_pk=None) -> None:
        if not (
            values.get("unit_id")
            and values.get("category") == Category.CONDOMINIUM_FEE
            and values.get("direction") == Direction.INCOME
            and values.get("reference_month")
            and values.get("reference_year")
        ):
            return
        existing = FinancialTransaction.objects.billed_for_period(
            values["unit_id"], values["reference_month"], values["reference_year"]
        )
        if exclude_pk is not None:
            existing = existing.exclude(pk=exclude_pk)
        if existing.exists():
            raise DuplicateBilling(
                "Unit already has a condominium fee for this period",
                details={
                    "unit_id": str(values["unit_id"]),
                    "reference_month": values["reference_month"],
                    "reference_year": values["reference_year"],
                },
            )

    @classmethod
    def _check_unit(cls, values: Mapping[str, Any], property_id) -> None:
        unit_id = values.get("unit_id")
        if unit_id and not Unit.objects.for_property(property_id).filter(pk=unit_id).exists():
            raise LedgerValidationError(
                "Unit does not belong to this property",
                details={"unit_id": ["Unknown unit for this property"]},
            )

    # -------------------------------------------------------------------------
    # Create & Update
    # -------------------------------------------------------------------------

    @classmethod
    def create_transaction(
        cls,
        property_id,
        actor: Actor,
        fields: Mapping[str, Any],
    ) -> ServiceResult[FinancialTransaction]:
        """
        Register a new pending transaction.

        Notes carrying a legacy history block are split: the human part
        is stored as notes and each history line becomes a history entry.

        Args:
            property_id: Property the movement belongs to
            actor: Acting user (admin, manager or syndic)
            fields: Transaction fields (see EDITABLE_FIELDS)

        Returns:
            ServiceResult with the created FinancialTransaction
        """
        try:
            cls._get_property(property_id)
            authorize(actor, Action.CREATE, property_id)

            data = coerce_fields(fields)
            raw_notes = data.pop("notes", "")
            data.update(validate_fields(data))
            cls._check_unit(data, property_id)

            total = compute_total(data["amount"], data.get("late_fee"), data.get("discount"))
            decoded = decode(raw_notes)

            try:
                with cls.atomic():
                    cls._check_unbilled(data)
                    before, after = balance_snapshot(property_id, data["direction"], total)
                    tx = FinancialTransaction(
                        property_id=property_id,
                        created_by=actor.id,
                        notes=decoded.notes,
                        balance_before=before,
                        balance_after=after,
                        **data,
                    )
                    tx.save()
                    for line in decoded.history:
                        TransactionHistory.record(tx, line)

                    symbol = settings.FINANCE_CURRENCY_SYMBOL
                    cls._emit(
                        property_id,
                        (
                            f"New financial transaction: {tx.description} - {symbol} {tx.amount:,.2f}",
                            NotificationPriority.MEDIUM,
                            STAFF_ROLES,
                        ),
                    )
            except IntegrityError as exc:
                if data.get("category") != Category.CONDOMINIUM_FEE:
                    raise
                raise DuplicateBilling(
                    "Unit already has a condominium fee for this period",
                    details={"unit_id": str(data.get("unit_id"))},
                ) from exc

            cls.get_logger().info(
                f"Financial transaction created: {tx.id}",
                extra={
                    "transaction_id": str(tx.id),
                    "property_id": str(property_id),
                    "actor_id": str(actor.id),
                    "imported_history": len(decoded.history),
                },
            )
            return ServiceResult.success(tx)
        except LedgerError as exc:
            return cls.handle_exception(exc, "create_transaction")

    @classmethod
    def update_transaction(
        cls,
        transaction_id,
        actor: Actor,
        fields: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> ServiceResult[FinancialTransaction]:
        """
        Edit a transaction and log the field-level changes.

        Pending transactions are editable by staff, and by other roles
        when they created them. Paid transactions are editable only with
        the override capability; cancelled and deleted ones never.

        One MODIFICATION entry is appended when at least one recognized
        field actually changes. ``notes`` replaces the human notes and is
        not part of the diff.

        Args:
            transaction_id: Transaction to edit
            actor: Acting user
            fields: Changed fields
            expected_version: Version the caller last read; enables
                optimistic locking when given

        Returns:
            ServiceResult with the updated FinancialTransaction
        """
        try:
            updates = coerce_fields(fields)
            with cls.atomic():
                if expected_version is not None:
                    tx = cls._visible(
                        check_version(FinancialTransaction, transaction_id, expected_version),
                        transaction_id,
                        actor,
                    )
                else:
                    tx = cls._lock(transaction_id, actor)

                authorize(actor, Action.UPDATE, tx.property_id, created_by=tx.created_by)
                if tx.status == TransactionStatus.PAID and not can(actor, Action.OVERRIDE_PAID):
                    raise InvalidState(
                        "Paid transactions cannot be edited",
                        details={"status": tx.status, "action": "update"},
                    )
                if tx.status in (TransactionStatus.CANCELLED, TransactionStatus.DELETED):
                    raise InvalidState(
                        f"{TransactionStatus(tx.status).label} transactions cannot be edited",
                        details={"status": tx.status, "action": "update"},
                    )

                notes = updates.pop("notes", None)
                current = _current_values(tx)
                merged = {**current, **updates}
                derived = validate_fields(merged)
                cls._check_unit(merged, tx.property_id)
                cls._check_unbilled(merged, exclude_pk=tx.pk)

                changes = diff_fields(current, updates, settings.FINANCE_CURRENCY_SYMBOL)
                for name, value in {**updates, **derived}.items():
                    setattr(tx, name, value)
                if notes is not None:
                    tx.notes = decode(notes).notes
                tx.save()

                if changes:
                    cls._record(
                        tx,
                        HistoryAction.MODIFICATION,
                        actor,
                        build_modification_details(changes),
                    )
                cls._emit(tx.property_id)
        except LedgerError as exc:
            return cls.handle_exception(exc, "update_transaction")

        cls.get_logger().info(
            f"Financial transaction updated: {tx.id}",
            extra={"transaction_id": str(tx.id), "changes": len(changes), "actor_id": str(actor.id)},
        )
        return ServiceResult.success(tx)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    @classmethod
    def _transition(
        cls,
        transaction_id,
        actor: Actor,
        *,
        action: str,
        transition: str,
        history_action: str,
        details: str,
        guard: Callable[[FinancialTransaction], None] | None = None,
        notification: Callable[[FinancialTransaction], tuple | None] | None = None,
    ) -> FinancialTransaction:
        with cls.atomic():
            tx = cls._lock(transaction_id, actor)
            authorize(actor, action, tx.property_id, created_by=tx.created_by)
            if guard is not None:
                guard(tx)

            observed = tx.status
            try:
                getattr(tx, transition)(actor_id=actor.id)
                tx.save()
            except TransitionNotAllowed as exc:
                raise InvalidState(
                    f"Cannot {transition.replace('_', ' ')} a {observed} transaction",
                    details={"status": observed, "action": transition},
                ) from exc
            except ConcurrentTransition as exc:
                raise InvalidState(
                    "Transaction was changed by another request",
                    details={"status": observed, "action": transition},
                ) from exc

            cls._record(tx, history_action, actor, details)
            cls._emit(tx.property_id, notification(tx) if notification else None)

        cls.get_logger().info(
            f"Financial transaction {transition}: {tx.id}",
            extra={
                "transaction_id": str(tx.id),
                "from_status": observed,
                "to_status": tx.status,
                "actor_id": str(actor.id),
            },
        )
        return tx

    @classmethod
    def approve(cls, transaction_id, actor: Actor, note: str | None = None) -> ServiceResult[FinancialTransaction]:
        """
        Authorize and settle a pending transaction (PENDING -> PAID).

        Fails with ALREADY_PROCESSED when an approval is already recorded,
        whatever the current status.
        """

        def guard(tx: FinancialTransaction) -> None:
            if tx.approved_by is not None:
                raise AlreadyProcessed(
                    "Transaction was already approved",
                    details={"approved_by": str(tx.approved_by)},
                )

        try:
            tx = cls._transition(
                transaction_id,
                actor,
                action=Action.APPROVE,
                transition="approve",
                history_action=HistoryAction.APPROVAL,
                details=note or "Payment authorized and processed",
                guard=guard,
            )
        except LedgerError as exc:
            return cls.handle_exception(exc, "approve")
        return ServiceResult.success(tx)

    @classmethod
    def confirm_cash(
        cls,
        transaction_id,
        actor: Actor,
        note: str | None = None,
    ) -> ServiceResult[FinancialTransaction]:
        """
        Confirm a cash receipt (PENDING -> PAID, cash or mixed methods).

        The creator is notified when someone else confirms.
        """

        def guard(tx: FinancialTransaction) -> None:
            if tx.cash_confirmed:
                raise AlreadyProcessed(
                    "Cash payment was already confirmed",
                    details={"cash_confirmed_by": str(tx.cash_confirmed_by)},
                )
            if not tx.settles_in_cash():
                raise LedgerValidationError(
                    "Only cash or mixed payments can be confirmed in cash",
                    details={"payment_method": [f"Got '{tx.payment_method or 'none'}'"]},
                )

        def notification(tx: FinancialTransaction):
            if str(tx.created_by) == str(actor.id):
                return None
            return (
                f"Cash payment confirmed: {tx.description}",
                NotificationPriority.MEDIUM,
                None,
            )

        try:
            tx = cls._transition(
                transaction_id,
                actor,
                action=Action.CONFIRM_CASH,
                transition="confirm_cash",
                history_action=HistoryAction.CONFIRMATION,
                details=note or "Cash receipt confirmed",
                guard=guard,
                notification=notification,
            )
        except LedgerError as exc:
            return cls.handle_exception(exc, "confirm_cash")
        return ServiceResult.success(tx)

    @classmethod
    def cancel(cls, transaction_id, actor: Actor, note: str | None = None) -> ServiceResult[FinancialTransaction]:
        """Cancel a pending transaction (PENDING -> CANCELLED)."""
        try:
            tx = cls._transition(
                transaction_id,
                actor,
                action=Action.CANCEL,
                transition="cancel",
                history_action=HistoryAction.CANCELLATION,
                details=note or "Transaction cancelled",
            )
        except LedgerError as exc:
            return cls.handle_exception(exc, "cancel")
        return ServiceResult.success(tx)

    @classmethod
    def soft_delete(cls, transaction_id, actor: Actor, note: str | None = None) -> ServiceResult[FinancialTransaction]:
        """Hide a pending or cancelled transaction (-> DELETED). Paid ones are kept."""
        try:
            tx = cls._transition(
                transaction_id,
                actor,
                action=Action.SOFT_DELETE,
                transition="soft_delete",
                history_action=HistoryAction.DELETION,
                details=note or "Transaction deleted",
            )
        except LedgerError as exc:
            return cls.handle_exception(exc, "soft_delete")
        return ServiceResult.success(tx)

    @classmethod
    def delete_transaction(cls, transaction_id, actor: Actor) -> ServiceResult[uuid.UUID]:
        """
        Permanently remove a transaction and its history.

        Paid transactions can never be removed, whoever asks. Otherwise
        admins may remove any transaction and other roles only their own.

        Returns:
            ServiceResult with the removed transaction id
        """
        try:
            with cls.atomic():
                tx = cls._lock(transaction_id, actor)
                authorize(actor, Action.VIEW, tx.property_id)
                if tx.status == TransactionStatus.PAID:
                    raise InvalidState(
                        "Paid transactions cannot be deleted",
                        details={"status": tx.status, "action": "delete"},
                    )
                authorize(actor, Action.DELETE, tx.property_id, created_by=tx.created_by)

                removed_id, property_id, description = tx.id, tx.property_id, tx.description
                tx.delete()
                cls._emit(
                    property_id,
                    (
                        f"Financial transaction removed: {description}",
                        NotificationPriority.HIGH,
                        STAFF_ROLES,
                    ),
                )
        except LedgerError as exc:
            return cls.handle_exception(exc, "delete_transaction")

        cls.get_logger().info(
            f"Financial transaction deleted: {removed_id}",
            extra={"transaction_id": str(removed_id), "actor_id": str(actor.id)},
        )
        return ServiceResult.success(removed_id)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @classmethod
    def get_transaction(cls, transaction_id, actor: Actor) -> ServiceResult[FinancialTransaction]:
        try:
            tx = cls._visible(
                FinancialTransaction.objects.select_related("unit").filter(pk=transaction_id).first(),
                transaction_id,
                actor,
            )
            authorize(actor, Action.VIEW, tx.property_id)
        except LedgerError as exc:
            return cls.handle_exception(exc, "get_transaction")
        return ServiceResult.success(tx)

    @classmethod
    def list_transactions(
        cls,
        property_id,
        actor: Actor,
        filters: Mapping[str, Any] | None = None,
    ) -> ServiceResult:
        """
        List a property's transactions, newest first.

        Deleted transactions are left out unless ``include_deleted`` is set,
        and private expenses are never listed for syndics.

        Supported filters:
            status, direction, category, payment_method, unit_id: exact match
            tag: one tag or a list of tags (pending, overdue, paid, cancelled)
            due_from / due_to: inclusive due date range
            search: case-insensitive match on title, description or notes
            include_deleted: also list deleted transactions

        Returns:
            ServiceResult with a FinancialTransaction queryset
        """
        filters = dict(filters or {})
        try:
            cls._get_property(property_id)
            authorize(actor, Action.VIEW, property_id)

            unknown = sorted(set(filters) - LIST_FILTERS)
            if unknown:
                raise LedgerValidationError(
                    "Unknown filters",
                    details={name: ["Unknown filter"] for name in unknown},
                )

            queryset = FinancialTransaction.objects.for_property(property_id).select_related("unit")
            if not filters.pop("include_deleted", False):
                queryset = queryset.not_deleted()
            if not can_view_private(actor):
                queryset = queryset.public()

            for name in ("status", "direction", "category", "payment_method", "unit_id"):
                if filters.get(name):
                    queryset = queryset.filter(**{name: filters[name]})

            tags = filters.get("tag")
            if tags:
                wanted = [tags] if isinstance(tags, str) else list(tags)
                invalid = [tag for tag in wanted if tag not in Tag.values]
                if invalid:
                    raise LedgerValidationError(
                        "Invalid tag",
                        details={"tag": [f"Must be one of: {', '.join(Tag.values)}"]},
                    )
                queryset = queryset.tagged(wanted, timezone.localdate())

            due_from = _parse_day(filters.get("due_from"), "due_from")
            due_to = _parse_day(filters.get("due_to"), "due_to")
            if due_from:
                queryset = queryset.filter(due_date__gte=due_from)
            if due_to:
                queryset = queryset.filter(due_date__lte=due_to)

            search = (filters.get("search") or "").strip()
            if search:
                queryset = queryset.filter(
                    Q(title__icontains=search)
                    | Q(description__icontains=search)
                    | Q(notes__icontains=search)
                )
        except LedgerError as exc:
            return cls.handle_exception(exc, "list_transactions")
        return ServiceResult.success(queryset.newest())

    @classmethod
    def get_history(cls, transaction_id, actor: Actor | None = None) -> ServiceResult[list[TransactionHistory]]:
        """Ordered audit history of a transaction."""
        try:
            tx = cls._visible(
                FinancialTransaction.objects.filter(pk=transaction_id).first(),
                transaction_id,
                actor,
            )
            if actor is not None:
                authorize(actor, Action.VIEW, tx.property_id)
        except LedgerError as exc:
            return cls.handle_exception(exc, "get_history")
        return ServiceResult.success(list(tx.history_entries.all()))

    @classmethod
    def export_notes(cls, transaction_id, actor: Actor | None = None) -> ServiceResult[str]:
        """
        Render notes and history as one text block.

        The format is the one accepted by create_transaction, so an
        exported transaction can be re-imported with its history.
        """
        result = cls.get_history(transaction_id, actor)
        if not result:
            return result
        tx = FinancialTransaction.objects.get(pk=transaction_id)
        return ServiceResult.success(encode(tx.notes, [entry.to_line() for entry in result.data]))

    @classmethod
    def get_balance(cls, property_id, actor: Actor | None = None) -> ServiceResult[BalanceReport]:
        """
        Authoritative balance of a property plus tag statistics.

        The balance is recomputed from paid transactions on every call, from
        the same read as the statistics.
        """
        try:
            cls._get_property(property_id)
            if actor is not None:
                authorize(actor, Action.VIEW, property_id)
        except LedgerError as exc:
            return cls.handle_exception(exc, "get_balance")

        # Paid rows are never soft-deleted, so the paid side of one read
        # over live rows is the whole balance
        statistics = aggregate_statistics(
            FinancialTransaction.objects.for_property(property_id)
            .not_deleted()
            .only("status", "due_date", "direction", "total_amount")
            .iterator()
        )
        return ServiceResult.success(
            BalanceReport(
                property_id=property_id,
                balance=statistics.paid_income - statistics.paid_expense,
                statistics=statistics,
            )
        )

    @classmethod
    def get_report(
        cls,
        property_id,
        actor: Actor,
        year: int,
        month: int | None = None,
        period: str = "month",
    ) -> ServiceResult[FinancialReport]:
        """
        Period report grouped by direction and category, status and method.

        The period selects transactions by creation date: one month, the
        quarter containing ``month``, or the whole year. Deleted
        transactions are excluded; the payment method breakdown covers
        paid transactions only.
        """
        try:
            cls._get_property(property_id)
            authorize(actor, Action.REPORT, property_id)
            start, end = _report_range(int(year), month and int(month), period)
        except LedgerError as exc:
            return cls.handle_exception(exc, "get_report")

        tz = timezone.get_current_timezone()
        queryset = (
            FinancialTransaction.objects.for_property(property_id)
            .not_deleted()
            .created_between(
                datetime.combine(start, time.min, tzinfo=tz),
                datetime.combine(end, time.max, tzinfo=tz),
            )
        )
        if not can_view_private(actor):
            queryset = queryset.public()

        report = FinancialReport(property_id=property_id, start=start, end=end)
        for row in _grouped(queryset, "direction", "category"):
            report.by_category[(row["direction"], row["category"])] = {
                "total": row["total"] or ZERO,
                "count": row["count"],
            }
        for row in _grouped(queryset, "status"):
            report.by_status[row["status"]] = {"total": row["total"] or ZERO, "count": row["count"]}
        for row in _grouped(queryset.paid(), "payment_method"):
            report.by_payment_method[row["payment_method"]] = {
                "total": row["total"] or ZERO,
                "count": row["count"],
            }
        return ServiceResult.success(report)

    # -------------------------------------------------------------------------
    # Monthly Batch
    # -------------------------------------------------------------------------

    @classmethod
    def generate_monthly_batch(
        cls,
        property_id,
        actor: Actor,
        month: int,
        year: int,
        due_date: date,
        default_amount: Decimal,
        exclude_unit_ids: Iterable = (),
    ) -> ServiceResult[BatchResult]:
        """
        Create one pending condominium fee per active unit for a period.

        Each unit is billed its own monthly_fee, or default_amount when it
        has none. Units already billed for the period are skipped with a
        CONFLICT reason; the batch still succeeds. Any other database
        fault rolls back the whole batch.

        The run holds a per-property Redis lock so two batches for the
        same property never interleave.

        Returns:
            ServiceResult with BatchResult(created, skipped)
        """
        try:
            params = MonthlyBatchParams(
                month=month,
                year=year,
                due_date=_parse_day(due_date, "due_date"),
                default_amount=default_amount,
                exclude_unit_ids=frozenset(exclude_unit_ids),
                min_year=settings.FINANCE_MIN_REFERENCE_YEAR,
                max_year=settings.FINANCE_MAX_REFERENCE_YEAR,
            )
            cls._get_property(property_id)
            authorize(actor, Action.GENERATE_BATCH, property_id)

            with DistributedLock(
                f"finance:batch:{property_id}",
                ttl=settings.FINANCE_BATCH_LOCK_TTL,
                timeout=settings.FINANCE_BATCH_LOCK_TIMEOUT,
            ):
                result = cls._run_batch(property_id, actor, params)
        except LedgerError as exc:
            return cls.handle_exception(exc, "generate_monthly_batch")

        cls.get_logger().info(
            f"Monthly batch generated for property {property_id}",
            extra={
                "property_id": str(property_id),
                "month": params.month,
                "year": params.year,
                "created_count": len(result.created),
                "skipped_count": len(result.skipped),
            },
        )
        return ServiceResult.success(result)

    @classmethod
    def _run_batch(cls, property_id, actor: Actor, params: MonthlyBatchParams) -> BatchResult:
        units = [
            unit
            for unit in Unit.objects.for_property(property_id).active().order_by("block", "number")
            if str(unit.id) not in params.exclude_unit_ids
        ]
        if not units:
            raise LedgerValidationError(
                "No active units to bill for this property",
                details={"units": ["No active units found"]},
            )

        result = BatchResult()
        with cls.atomic():
            for unit in units:
                if FinancialTransaction.objects.billed_for_period(unit.id, params.month, params.year).exists():
                    result.skipped.append(cls._skip(unit, "Fee already exists for this period"))
                    continue

                amount = unit.monthly_fee or params.default_amount
                before, after = balance_snapshot(property_id, Direction.INCOME, compute_total(amount))
                try:
                    with transaction.atomic():
                        tx = FinancialTransaction.objects.create(
                            property_id=property_id,
                            unit=unit,
                            direction=Direction.INCOME,
                            category=Category.CONDOMINIUM_FEE,
                            description=params.description.format(
                                month=params.month, year=params.year, unit=unit.number
                            ),
                            amount=amount,
                            due_date=params.due_date,
                            reference_month=params.month,
                            reference_year=params.year,
                            created_by=actor.id,
                            balance_before=before,
                            balance_after=after,
                        )
                except IntegrityError:
                    cls.get_logger().debug(
                        "Fee insert hit the period constraint, skipping unit",
                        extra={"unit_id": str(unit.id)},
                    )
                    result.skipped.append(cls._skip(unit, "Fee already exists for this period"))
                    continue
                result.created.append(tx)

            if result.created:
                cls._emit(property_id)
        return result

    @staticmethod
    def _skip(unit: Unit, reason: str) -> SkippedUnit:
        return SkippedUnit(
            unit_id=unit.id,
            unit_number=unit.number,
            reason=reason,
            error_code=DuplicateBilling.default_error_code,
        )


__all__ = [
    "LedgerService",
    "coerce_fields",
    "validate_fields",
]
