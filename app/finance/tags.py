"""
Tag classifier for reporting.

A tag is derived from a transaction's status and due date relative to
the current day; it is never stored:

    status paid       → paid
    status cancelled  → cancelled
    due date passed   → overdue
    otherwise         → pending

Deleted transactions carry no tag and are left out of statistics.

Tags group into reporting buckets:
    active    - pending
    urgent    - overdue
    completed - paid
    inactive  - cancelled

Usage:
    from finance.tags import aggregate_statistics, tag_for

    tag_for(tx)                       # Tag.OVERDUE
    stats = aggregate_statistics(txs)
    stats.counts[Tag.PAID], stats.amounts[Tag.PAID]
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from django.utils import timezone

from finance.states import Direction, Tag, TransactionStatus
from finance.types import TagStatistics

if TYPE_CHECKING:
    from collections.abc import Iterable

    from finance.models import FinancialTransaction

TAG_BUCKETS = {
    Tag.PENDING: "active",
    Tag.OVERDUE: "urgent",
    Tag.PAID: "completed",
    Tag.CANCELLED: "inactive",
}


def _today(now: datetime | date | None) -> date:
    if now is None:
        return timezone.localdate()
    if isinstance(now, datetime):
        return timezone.localtime(now).date() if timezone.is_aware(now) else now.date()
    return now


def tag_for(transaction: FinancialTransaction, now: datetime | date | None = None) -> Tag | None:
    """
    Derive the reporting tag of a transaction.

    Args:
        transaction: Any object with status and due_date attributes
        now: Reference moment (defaults to the current local day)

    Returns:
        The Tag, or None for deleted transactions
    """
    status = transaction.status
    if status == TransactionStatus.DELETED:
        return None
    if status == TransactionStatus.PAID:
        return Tag.PAID
    if status == TransactionStatus.CANCELLED:
        return Tag.CANCELLED
    due_date = transaction.due_date
    if due_date is not None and due_date < _today(now):
        return Tag.OVERDUE
    return Tag.PENDING


def bucket_for(transaction: FinancialTransaction, now: datetime | date | None = None) -> str | None:
    tag = tag_for(transaction, now)
    return TAG_BUCKETS[tag] if tag else None


def is_overdue(transaction: FinancialTransaction, now: datetime | date | None = None) -> bool:
    return tag_for(transaction, now) == Tag.OVERDUE


def is_active(transaction: FinancialTransaction, now: datetime | date | None = None) -> bool:
    """True while the transaction still awaits settlement (pending or overdue)."""
    return tag_for(transaction, now) in (Tag.PENDING, Tag.OVERDUE)


def filter_by_tag(
    transactions: Iterable[FinancialTransaction],
    tags: str | Iterable[str],
    now: datetime | date | None = None,
) -> list[FinancialTransaction]:
    """Keep only transactions whose tag is one of ``tags``."""
    wanted = {tags} if isinstance(tags, str) else set(tags)
    today = _today(now)
    return [tx for tx in transactions if tag_for(tx, today) in wanted]


def aggregate_statistics(
    transactions: Iterable[FinancialTransaction],
    now: datetime | date | None = None,
) -> TagStatistics:
    """
    Count transactions and sum total_amount per tag.

    Single pass over the iterable, so a queryset .iterator() can be
    passed for large ledgers. The paid side is additionally split by
    direction; paid_income - paid_expense equals the Balance Calculator
    result for the same scope.
    """
    stats = TagStatistics()
    today = _today(now)
    for tx in transactions:
        tag = tag_for(tx, today)
        if tag is None:
            continue
        stats.counts[tag] += 1
        stats.amounts[tag] += tx.total_amount
        if tag == Tag.PAID:
            if tx.direction == Direction.INCOME:
                stats.paid_income += tx.total_amount
            else:
                stats.paid_expense += tx.total_amount
    return stats
