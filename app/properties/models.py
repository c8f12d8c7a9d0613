"""
Property and Unit models.

A Property is a managed building or condominium. Units are the billable
subdivisions of a property; monthly batch generation creates one
transaction per active unit.

Usage:
    from properties.models import Property, Unit

    building = Property.objects.create(name="Green Towers")
    Unit.objects.create(property=building, number="101", monthly_fee=Decimal("450.00"))

    building.units.active().count()
"""

from __future__ import annotations

from django.db import models

from core.managers import BaseQuerySet
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Property(UUIDPrimaryKeyMixin, BaseModel):
    """
    A managed property whose finances are tracked by the ledger.

    Fields:
        name: Display name used in notifications
        address: Free-form postal address
        is_active: Inactive properties keep their history but accept no new billing
    """

    name = models.CharField(
        max_length=200,
        help_text="Display name of the property",
    )

    address = models.CharField(
        max_length=300,
        blank=True,
        default="",
        help_text="Postal address",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether the property is currently managed",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Property"
        verbose_name_plural = "Properties"

    def __str__(self) -> str:
        return self.name


class UnitQuerySet(BaseQuerySet):
    """Queryset helpers for units."""

    def active(self) -> UnitQuerySet:
        return self.filter(is_active=True)

    def for_property(self, property_id) -> UnitQuerySet:
        return self.filter(property_id=property_id)


class Unit(UUIDPrimaryKeyMixin, BaseModel):
    """
    A billable unit (apartment, shop, parking slot) inside a property.

    Fields:
        property: Owning property
        number: Unit number as displayed to residents
        block: Optional block or tower identifier
        monthly_fee: Unit-specific condominium fee (falls back to the batch default)
        is_active: Inactive units are skipped by batch generation
    """

    property = models.ForeignKey(
        Property,
        on_delete=models.CASCADE,
        related_name="units",
        help_text="Property this unit belongs to",
    )

    number = models.CharField(
        max_length=20,
        help_text="Unit number (e.g., '101')",
    )

    block = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Block or tower identifier",
    )

    monthly_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Unit-specific monthly fee; empty uses the batch default",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether the unit is billed",
    )

    objects = UnitQuerySet.as_manager()

    class Meta:
        ordering = ["block", "number"]
        verbose_name = "Unit"
        verbose_name_plural = "Units"
        constraints = [
            models.UniqueConstraint(
                fields=["property", "block", "number"],
                name="unit_unique_number_per_block",
            ),
        ]

    def __str__(self) -> str:
        label = f"{self.block}-{self.number}" if self.block else self.number
        return f"Unit {label}"
