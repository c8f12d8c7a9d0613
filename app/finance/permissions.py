"""
Capability table for ledger actions.

Every (role, action) pair maps to a scope:

    ANY  - the role may act on any transaction of a property it can access
    OWN  - only on transactions the actor created
    (absent) - never

The table is evaluated once per service call by ``authorize``. Rules that
depend on the transaction's state (paid transactions cannot be hard
deleted, cancellation only from pending) are enforced by the state
machine, not here.

Usage:
    from finance.permissions import Action, authorize

    authorize(actor, Action.APPROVE, property_id=tx.property_id)
    authorize(actor, Action.DELETE, property_id=tx.property_id, created_by=tx.created_by)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

from finance.exceptions import LedgerForbidden
from finance.states import Role

if TYPE_CHECKING:
    from finance.types import Actor


class Action(models.TextChoices):
    """Ledger operations subject to authorization."""

    VIEW = "view", "View transactions and balance"
    VIEW_PRIVATE = "view_private", "View private expenses"
    CREATE = "create", "Create transaction"
    UPDATE = "update", "Update pending transaction"
    OVERRIDE_PAID = "override_paid", "Update paid transaction"
    APPROVE = "approve", "Approve transaction"
    CONFIRM_CASH = "confirm_cash", "Confirm cash payment"
    CANCEL = "cancel", "Cancel transaction"
    SOFT_DELETE = "soft_delete", "Soft delete transaction"
    DELETE = "delete", "Delete transaction permanently"
    REPORT = "report", "Generate financial report"
    GENERATE_BATCH = "generate_batch", "Generate monthly fees"


class Scope(models.TextChoices):
    ANY = "any", "Any transaction"
    OWN = "own", "Own transactions only"


_STAFF = (Role.ADMIN, Role.MANAGER)

CAPABILITIES: dict[tuple[str, str], str] = {
    **{(role, Action.VIEW): Scope.ANY for role in Role.values},
    **{(role, Action.VIEW_PRIVATE): Scope.ANY for role in (*_STAFF, Role.RESIDENT)},
    **{(role, Action.CREATE): Scope.ANY for role in (*_STAFF, Role.SYNDIC)},
    **{(role, Action.UPDATE): Scope.ANY for role in _STAFF},
    (Role.SYNDIC, Action.UPDATE): Scope.OWN,
    (Role.RESIDENT, Action.UPDATE): Scope.OWN,
    (Role.ADMIN, Action.OVERRIDE_PAID): Scope.ANY,
    **{(role, Action.APPROVE): Scope.ANY for role in _STAFF},
    **{(role, Action.CONFIRM_CASH): Scope.ANY for role in (*_STAFF, Role.SYNDIC)},
    **{(role, Action.CANCEL): Scope.ANY for role in _STAFF},
    **{(role, Action.SOFT_DELETE): Scope.ANY for role in _STAFF},
    (Role.ADMIN, Action.DELETE): Scope.ANY,
    **{(role, Action.DELETE): Scope.OWN for role in (Role.MANAGER, Role.SYNDIC, Role.RESIDENT)},
    **{(role, Action.REPORT): Scope.ANY for role in (*_STAFF, Role.SYNDIC)},
    **{(role, Action.GENERATE_BATCH): Scope.ANY for role in _STAFF},
}


def scope_for(role: str, action: str) -> str | None:
    return CAPABILITIES.get((role, action))


def can(actor: Actor, action: str, created_by=None) -> bool:
    """True if the capability table lets the actor perform the action."""
    scope = scope_for(actor.role, action)
    if scope == Scope.ANY:
        return True
    if scope == Scope.OWN:
        return created_by is not None and str(created_by) == str(actor.id)
    return False


def authorize(actor: Actor, action: str, property_id=None, created_by=None) -> None:
    """
    Raise unless the actor may perform the action.

    Args:
        actor: Acting user
        action: One of Action
        property_id: Property the action targets (checked against access list)
        created_by: Creator of the target transaction, for OWN-scoped actions

    Raises:
        LedgerForbidden: If property access or the capability is missing
    """
    if property_id is not None and not actor.has_property_access(property_id):
        raise LedgerForbidden(
            "Access denied to this property",
            details={"property_id": str(property_id), "role": actor.role},
        )
    if not can(actor, action, created_by=created_by):
        raise LedgerForbidden(
            f"Role '{actor.role}' may not {Action(action).label.lower()}",
            details={"action": str(action), "role": actor.role},
        )


def can_view_private(actor: Actor) -> bool:
    """Syndics never see owner-private expenses."""
    return can(actor, Action.VIEW_PRIVATE)
