"""
Celery tasks for ledger side effects.

The ledger never talks to the cache or the notification system inline.
After a write commits, finance.dispatch enqueues one of these tasks.

Tasks:
    invalidate_cache_pattern: Drop cached keys matching a glob pattern
    broadcast_property_notification: Hand a property-wide message to the
        notification delivery pipeline

Usage:
    from finance.tasks import invalidate_cache_pattern

    invalidate_cache_pattern.delay("financial:*:42:*")
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.core.cache import cache
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=10,
    ignore_result=True,
)
def invalidate_cache_pattern(self, pattern: str) -> int:
    """
    Delete every cache key matching pattern.

    Uses django-redis delete_pattern (SCAN based, non-blocking on the
    server). Connection failures are retried.

    Returns:
        Number of keys deleted
    """
    try:
        deleted = cache.delete_pattern(pattern)
    except RedisError as exc:
        logger.warning(f"Cache invalidation for {pattern} failed, retrying: {exc}")
        raise self.retry(exc=exc) from exc

    logger.debug(
        "Cache pattern invalidated",
        extra={"pattern": pattern, "deleted": deleted},
    )
    return deleted or 0


@shared_task(ignore_result=True)
def broadcast_property_notification(
    property_id: str,
    message: str,
    priority: str = "medium",
    target_roles: list[str] | None = None,
) -> dict:
    """
    Publish a notification addressed to members of a property.

    Delivery (push, email, in-app) belongs to the notification service;
    this task is the hand-off point and records what was sent.

    Returns:
        The notification payload
    """
    payload = {
        "property_id": str(property_id),
        "message": message,
        "priority": priority,
        "target_roles": list(target_roles) if target_roles else None,
    }
    logger.info(
        f"Property notification queued for {property_id}: {message}",
        extra={"notification": payload},
    )
    return payload
