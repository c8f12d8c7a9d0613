"""
Base queryset with common utility methods.

Usage:
    class InvoiceQuerySet(BaseQuerySet):
        def open(self):
            return self.filter(status="open")

    class Invoice(BaseModel):
        objects = InvoiceQuerySet.as_manager()

    Invoice.objects.open().created_between(start, end).newest()

Note:
    All methods assume the model has created_at and updated_at fields
    (provided by BaseModel).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    from datetime import date, datetime


class BaseQuerySet(models.QuerySet):
    """Chainable helpers shared by domain querysets."""

    def created_between(
        self,
        start: datetime | date,
        end: datetime | date,
    ) -> BaseQuerySet:
        """
        Filter records created within date range.

        Args:
            start: Start date/datetime (inclusive)
            end: End date/datetime (inclusive)
        """
        return self.filter(created_at__gte=start, created_at__lte=end)

    def newest(self) -> BaseQuerySet:
        """Order by creation date descending (newest first)."""
        return self.order_by("-created_at")
