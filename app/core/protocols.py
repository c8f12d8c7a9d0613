"""
Protocol definitions for generic infrastructure collaborators.

Services depend on these contracts instead of concrete Redis or Celery
clients, which keeps them testable with simple in-memory fakes.

Available Protocols:
    CacheInvalidator: Drop cached entries matching a key pattern
    Notifier: Broadcast a message to members of a property

Usage:
    from core.protocols import CacheInvalidator

    class RecordingInvalidator:
        def __init__(self):
            self.patterns = []

        def invalidate(self, pattern):
            self.patterns.append(pattern)

    assert isinstance(RecordingInvalidator(), CacheInvalidator)

Note:
    - Both contracts are fire-and-forget: implementations may raise,
      callers are expected to log and carry on
    - @runtime_checkable allows isinstance() checks
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Any


@runtime_checkable
class CacheInvalidator(Protocol):
    """
    Protocol for cache invalidation.

    Implementations remove every cached key matching a glob-style
    pattern such as "financial:*:42:*".
    """

    def invalidate(self, pattern: str) -> None:
        """
        Remove cached entries matching pattern.

        Args:
            pattern: Glob-style key pattern
        """
        ...


@runtime_checkable
class Notifier(Protocol):
    """
    Protocol for property-wide notifications.

    Example:
        notifier.notify(
            property_id,
            "New expense registered: Elevator repair",
            priority="medium",
            target_roles=["admin", "manager"],
        )
    """

    def notify(
        self,
        property_id: Any,
        message: str,
        priority: str = "medium",
        target_roles: Sequence[str] | None = None,
    ) -> None:
        """
        Deliver a notification to members of a property.

        Args:
            property_id: Property whose members are addressed
            message: Human-readable message
            priority: "low", "medium" or "high"
            target_roles: Restrict delivery to these roles (None for all)
        """
        ...
