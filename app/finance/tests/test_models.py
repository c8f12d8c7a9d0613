"""
Tests for FinancialTransaction and TransactionHistory models.

Covers:
- Derived total and database constraints
- Version counter
- Queryset helpers
- Append-only history sequencing
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from finance.audit import HistoryLine
from finance.models import FinancialTransaction, TransactionHistory
from finance.states import Category, Direction, HistoryAction, TransactionStatus
from finance.tests.factories import FinancialTransactionFactory, PaidIncomeFactory
from properties.tests.factories import UnitFactory


def fee(unit, **kwargs):
    return FinancialTransactionFactory(
        property=unit.property,
        unit=unit,
        direction=Direction.INCOME,
        category=Category.CONDOMINIUM_FEE,
        reference_month=3,
        reference_year=2025,
        **kwargs,
    )


# =============================================================================
# FinancialTransaction
# =============================================================================


class TestFinancialTransaction:
    """Tests for FinancialTransaction model."""

    def test_total_recomputed_on_save(self, db):
        """Should derive total_amount from amount, late fee and discount."""
        tx = FinancialTransactionFactory(
            amount=Decimal("100.00"),
            late_fee=Decimal("12.50"),
            discount=Decimal("2.50"),
        )

        assert tx.total_amount == Decimal("110.00")

        tx.discount = Decimal("10.00")
        tx.save(update_fields=["discount"])

        assert FinancialTransaction.objects.get(pk=tx.pk).total_amount == Decimal("102.50")

    def test_amount_must_be_positive(self, db):
        """Should reject zero amounts at the database level."""
        with pytest.raises(IntegrityError), transaction.atomic():
            FinancialTransactionFactory(amount=Decimal("0.00"))

    def test_version_increments_on_update(self, db):
        """Should bump the version on every update."""
        tx = FinancialTransactionFactory()
        assert tx.version == 1

        tx.description = "Changed"
        tx.save()

        assert tx.version == 2
        assert FinancialTransaction.objects.get(pk=tx.pk).version == 2

    def test_status_is_protected(self, db):
        """Should forbid assigning status outside transitions."""
        tx = FinancialTransactionFactory()

        with pytest.raises(AttributeError):
            tx.status = TransactionStatus.PAID

    def test_settles_in_cash(self, db):
        """Should only allow cash confirmation for cash or mixed methods."""
        assert FinancialTransactionFactory(payment_method="cash").settles_in_cash()
        assert FinancialTransactionFactory(payment_method="mixed").settles_in_cash()
        assert not FinancialTransactionFactory(payment_method="pix").settles_in_cash()
        assert not FinancialTransactionFactory(payment_method="").settles_in_cash()


class TestOneFeePerPeriod:
    """Tests for the one-fee-per-unit-and-period constraint."""

    def test_duplicate_fee_rejected(self, db):
        """Should reject a second live fee for the same unit and period."""
        unit = UnitFactory()
        fee(unit)

        with pytest.raises(IntegrityError), transaction.atomic():
            fee(unit)

    def test_deleted_fee_does_not_count(self, db):
        """Should allow re-billing once the previous fee was deleted."""
        unit = UnitFactory()
        fee(unit, status=TransactionStatus.DELETED)

        assert fee(unit).status == TransactionStatus.PENDING

    def test_other_periods_and_categories_allowed(self, db):
        """Should only constrain condominium fee income."""
        unit = UnitFactory()
        fee(unit)

        FinancialTransactionFactory(
            property=unit.property,
            unit=unit,
            direction=Direction.INCOME,
            category=Category.WATER,
            reference_month=3,
            reference_year=2025,
        )
        fee_april = FinancialTransactionFactory(
            property=unit.property,
            unit=unit,
            direction=Direction.INCOME,
            category=Category.CONDOMINIUM_FEE,
            reference_month=4,
            reference_year=2025,
        )

        assert fee_april.pk is not None


# =============================================================================
# Queryset
# =============================================================================


class TestTransactionQuerySet:
    """Tests for TransactionQuerySet helpers."""

    def test_billed_for_period(self, db):
        """Should find live fees of a unit for a period."""
        unit = UnitFactory()
        billed = fee(unit)

        assert list(FinancialTransaction.objects.billed_for_period(unit.id, 3, 2025)) == [billed]
        assert not FinancialTransaction.objects.billed_for_period(unit.id, 4, 2025).exists()

    def test_not_deleted_and_public(self, building):
        """Should filter out deleted and private transactions."""
        visible = FinancialTransactionFactory(property=building)
        FinancialTransactionFactory(property=building, status=TransactionStatus.DELETED)
        FinancialTransactionFactory(property=building, is_private=True)

        assert list(FinancialTransaction.objects.for_property(building.id).not_deleted().public()) == [visible]

    def test_tagged(self, building):
        """Should match the tag classifier in the database."""
        today = timezone.localdate()
        overdue = FinancialTransactionFactory(property=building, due_date=today - timedelta(days=1))
        pending = FinancialTransactionFactory(property=building, due_date=today)
        paid = PaidIncomeFactory(property=building)
        queryset = FinancialTransaction.objects.for_property(building.id)

        assert list(queryset.tagged("overdue", today)) == [overdue]
        assert set(queryset.tagged(["pending", "paid"], today)) == {pending, paid}
        assert not queryset.tagged([], today).exists()

    def test_signed_total(self, building):
        """Should sum income positive and expenses negative."""
        PaidIncomeFactory(property=building, amount=Decimal("50.00"))
        FinancialTransactionFactory(property=building, amount=Decimal("80.00"))

        assert FinancialTransaction.objects.for_property(building.id).signed_total() == Decimal("-30.00")


# =============================================================================
# TransactionHistory
# =============================================================================


class TestTransactionHistory:
    """Tests for TransactionHistory."""

    def test_record_numbers_entries(self, db):
        """Should append entries with consecutive sequence numbers."""
        tx = FinancialTransactionFactory()
        first = TransactionHistory.record(tx, HistoryLine.create(HistoryAction.APPROVAL, "Dana (manager)", "ok"))
        second = TransactionHistory.record(tx, HistoryLine.create(HistoryAction.MODIFICATION, "Dana (manager)", "x"))

        assert (first.sequence, second.sequence) == (1, 2)
        assert [line.action for line in tx.history_lines()] == ["APPROVAL", "MODIFICATION"]

    def test_sequences_are_per_transaction(self, db):
        """Should number each transaction's history from one."""
        line = HistoryLine.create(HistoryAction.CANCELLATION, "Ada (admin)", "dup")
        TransactionHistory.record(FinancialTransactionFactory(), line)

        entry = TransactionHistory.record(FinancialTransactionFactory(), line)

        assert entry.sequence == 1

    def test_imported_timestamp_kept(self, db):
        """Should keep the display timestamp and parse recorded_at from it."""
        line = HistoryLine("APPROVAL", "2024-12-01 10:00:00", "Dana (manager)", "Imported")

        entry = TransactionHistory.record(FinancialTransactionFactory(), line)

        assert entry.to_line() == line
        assert entry.recorded_at.year == 2024

    def test_append_only(self, db):
        """Should refuse to update an existing entry."""
        entry = TransactionHistory.record(
            FinancialTransactionFactory(),
            HistoryLine.create(HistoryAction.APPROVAL, "Dana (manager)", "ok"),
        )
        entry.details = "rewritten"

        with pytest.raises(ValueError):
            entry.save()

    def test_duplicate_sequence_rejected(self, db):
        """Should enforce unique sequence per transaction."""
        tx = FinancialTransactionFactory()
        line = HistoryLine.create(HistoryAction.APPROVAL, "Dana (manager)", "ok")
        TransactionHistory.record(tx, line)

        with pytest.raises(IntegrityError), transaction.atomic():
            TransactionHistory.objects.create(
                transaction=tx,
                sequence=1,
                action=line.action,
                actor_label=line.actor,
                display_timestamp=line.timestamp,
            )
