"""
Tests for the tag classifier.

Tags only need status, due_date, direction and total_amount, so most
tests use lightweight stand-ins instead of database rows.
"""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from finance.states import Tag
from finance.tags import (
    aggregate_statistics,
    bucket_for,
    filter_by_tag,
    is_active,
    is_overdue,
    tag_for,
)

TODAY = date(2025, 3, 15)


def tx(status="pending", due=TODAY, direction="expense", total="100.00"):
    return SimpleNamespace(
        status=status,
        due_date=due,
        direction=direction,
        total_amount=Decimal(total),
    )


class TestTagFor:
    """Tests for tag_for."""

    @pytest.mark.parametrize(
        ("transaction", "expected"),
        [
            (tx("pending", date(2025, 3, 14)), Tag.OVERDUE),
            (tx("pending", TODAY), Tag.PENDING),
            (tx("pending", date(2025, 4, 1)), Tag.PENDING),
            (tx("paid", date(2025, 1, 1)), Tag.PAID),
            (tx("cancelled", date(2025, 1, 1)), Tag.CANCELLED),
            (tx("deleted"), None),
        ],
    )
    def test_classification(self, transaction, expected):
        """Should derive the tag from status and due date."""
        assert tag_for(transaction, TODAY) == expected

    def test_pending_without_due_date(self):
        """Should never be overdue without a due date."""
        assert tag_for(tx(due=None), TODAY) == Tag.PENDING

    def test_accepts_datetime_reference(self):
        """Should use the calendar day of a datetime reference."""
        assert tag_for(tx(due=date(2025, 3, 14)), datetime(2025, 3, 14, 23, 59)) == Tag.PENDING

    def test_helpers(self):
        """Should expose overdue, active and bucket shortcuts."""
        late = tx(due=date(2025, 3, 1))

        assert is_overdue(late, TODAY)
        assert is_active(late, TODAY)
        assert not is_active(tx("paid"), TODAY)
        assert bucket_for(late, TODAY) == "urgent"
        assert bucket_for(tx("deleted"), TODAY) is None


class TestFilterByTag:
    """Tests for filter_by_tag."""

    def test_single_and_multiple_tags(self):
        """Should keep transactions with one of the requested tags."""
        late, current, paid = tx(due=date(2025, 3, 1)), tx(), tx("paid")
        items = [late, current, paid, tx("deleted")]

        assert filter_by_tag(items, "overdue", TODAY) == [late]
        assert filter_by_tag(items, ["pending", "paid"], TODAY) == [current, paid]


class TestAggregateStatistics:
    """Tests for aggregate_statistics."""

    def test_counts_and_amounts(self):
        """Should group counts and totals per tag, skipping deleted."""
        items = [
            tx("paid", direction="income", total="500.00"),
            tx("paid", direction="expense", total="120.00"),
            tx("pending", date(2025, 3, 1), total="80.00"),
            tx("pending", date(2025, 4, 1), total="30.00"),
            tx("cancelled", total="10.00"),
            tx("deleted", total="999.00"),
        ]

        stats = aggregate_statistics(items, TODAY)

        assert stats.counts == {"pending": 1, "overdue": 1, "paid": 2, "cancelled": 1}
        assert stats.amounts[Tag.PAID] == Decimal("620.00")
        assert stats.amounts[Tag.OVERDUE] == Decimal("80.00")
        assert stats.paid_income == Decimal("500.00")
        assert stats.paid_expense == Decimal("120.00")
        assert stats.active_count == 2
        assert stats.active_amount == Decimal("110.00")

    def test_empty(self):
        """Should return zeroed statistics."""
        stats = aggregate_statistics([], TODAY)

        assert sum(stats.counts.values()) == 0
        assert stats.to_dict()["total_income"] == Decimal("0.00")

    def test_accepts_generator(self):
        """Should work in a single pass over an iterator."""
        stats = aggregate_statistics((item for item in [tx("paid"), tx("paid")]), TODAY)

        assert stats.counts[Tag.PAID] == 2
