"""
Post-commit side effects of ledger writes.

Cache invalidation and notifications are delivered only after the
database transaction commits, and a failure in either never affects the
write that triggered it.

Adapters:
    CeleryCacheInvalidator: CacheInvalidator that enqueues
        finance.tasks.invalidate_cache_pattern
    CeleryNotifier: Notifier that enqueues
        finance.tasks.broadcast_property_notification

Usage:
    from finance.dispatch import emit_after_commit, invalidation_patterns

    with transaction.atomic():
        tx.save()
        emit_after_commit(invalidator, notifier, tx.property_id, notification=(
            "New expense registered: Elevator repair", "medium", ["admin", "manager"],
        ))
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction

from finance.tasks import broadcast_property_notification, invalidate_cache_pattern

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Any

    from core.protocols import CacheInvalidator, Notifier

logger = logging.getLogger(__name__)


def invalidation_patterns(property_id: Any) -> list[str]:
    """Cache key patterns that depend on a property's ledger."""
    return [
        f"financial:*:{property_id}:*",
        f"condominium:stats:{property_id}",
        f"list:transactions:{property_id}:*",
    ]


class CeleryCacheInvalidator:
    """Queues one invalidation task per pattern."""

    def invalidate(self, pattern: str) -> None:
        invalidate_cache_pattern.delay(pattern)


class CeleryNotifier:
    """Queues a property-wide notification broadcast."""

    def notify(
        self,
        property_id: Any,
        message: str,
        priority: str = "medium",
        target_roles: Sequence[str] | None = None,
    ) -> None:
        broadcast_property_notification.delay(
            str(property_id),
            message,
            priority,
            list(target_roles) if target_roles else None,
        )


def _invalidate(invalidator: CacheInvalidator, property_id: Any) -> None:
    for pattern in invalidation_patterns(property_id):
        try:
            invalidator.invalidate(pattern)
        except Exception:
            logger.warning(
                "Cache invalidation failed",
                exc_info=True,
                extra={"property_id": str(property_id), "pattern": pattern},
            )


def _notify(
    notifier: Notifier,
    property_id: Any,
    message: str,
    priority: str,
    target_roles: Sequence[str] | None,
) -> None:
    try:
        notifier.notify(property_id, message, priority=priority, target_roles=target_roles)
    except Exception:
        logger.warning(
            "Notification dispatch failed",
            exc_info=True,
            extra={"property_id": str(property_id), "priority": priority},
        )


def emit_after_commit(
    invalidator: CacheInvalidator,
    notifier: Notifier,
    property_id: Any,
    notification: tuple[str, str, Sequence[str] | None] | None = None,
) -> None:
    """
    Register cache invalidation (and optionally a notification) to run
    once the current transaction commits.

    Outside an atomic block the callbacks run immediately. If the
    transaction rolls back nothing is sent.

    Args:
        invalidator: Cache collaborator
        notifier: Notification collaborator
        property_id: Property whose caches and members are affected
        notification: (message, priority, target_roles) or None
    """
    transaction.on_commit(lambda: _invalidate(invalidator, property_id))
    if notification is not None:
        message, priority, target_roles = notification
        transaction.on_commit(
            lambda: _notify(notifier, property_id, message, priority, target_roles)
        )
