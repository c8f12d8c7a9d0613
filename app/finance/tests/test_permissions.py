"""
Tests for the ledger capability table.
"""

import uuid

import pytest

from finance.exceptions import LedgerForbidden
from finance.permissions import CAPABILITIES, Action, Scope, authorize, can, can_view_private, scope_for
from finance.states import Role
from finance.types import Actor

PROPERTY_ID = uuid.uuid4()


def actor(role, access=(PROPERTY_ID,)):
    return Actor(id=uuid.uuid4(), role=role, property_access=access)


class TestCapabilityTable:
    """Tests for the (role, action) table."""

    def test_every_key_is_known(self):
        """Should only reference known roles, actions and scopes."""
        for (role, action), scope in CAPABILITIES.items():
            assert role in Role.values
            assert action in Action.values
            assert scope in Scope.values

    @pytest.mark.parametrize(
        ("role", "action", "expected"),
        [
            (Role.ADMIN, Action.OVERRIDE_PAID, Scope.ANY),
            (Role.MANAGER, Action.OVERRIDE_PAID, None),
            (Role.SYNDIC, Action.CREATE, Scope.ANY),
            (Role.RESIDENT, Action.CREATE, None),
            (Role.SYNDIC, Action.APPROVE, None),
            (Role.SYNDIC, Action.CONFIRM_CASH, Scope.ANY),
            (Role.SYNDIC, Action.UPDATE, Scope.OWN),
            (Role.MANAGER, Action.DELETE, Scope.OWN),
            (Role.ADMIN, Action.DELETE, Scope.ANY),
            (Role.RESIDENT, Action.REPORT, None),
            (Role.SYNDIC, Action.GENERATE_BATCH, None),
            (Role.SYNDIC, Action.VIEW_PRIVATE, None),
        ],
    )
    def test_scopes(self, role, action, expected):
        """Should grant the documented scope per role."""
        assert scope_for(role, action) == expected


class TestCan:
    """Tests for can."""

    def test_own_scope_requires_creator(self):
        """Should allow OWN-scoped actions only on the actor's transactions."""
        syndic = actor(Role.SYNDIC)

        assert can(syndic, Action.UPDATE, created_by=syndic.id)
        assert can(syndic, Action.UPDATE, created_by=str(syndic.id))
        assert not can(syndic, Action.UPDATE, created_by=uuid.uuid4())
        assert not can(syndic, Action.UPDATE)

    def test_private_visibility(self):
        """Should hide private expenses from syndics only."""
        assert not can_view_private(actor(Role.SYNDIC))
        assert can_view_private(actor(Role.MANAGER))
        assert can_view_private(actor(Role.ADMIN))


class TestAuthorize:
    """Tests for authorize."""

    def test_allows(self):
        """Should return silently when allowed."""
        authorize(actor(Role.MANAGER), Action.APPROVE, PROPERTY_ID)

    def test_property_access(self):
        """Should reject actors outside the property."""
        with pytest.raises(LedgerForbidden) as exc_info:
            authorize(actor(Role.MANAGER, access=()), Action.VIEW, PROPERTY_ID)

        assert exc_info.value.error_code == "FORBIDDEN"
        assert exc_info.value.details["property_id"] == str(PROPERTY_ID)

    def test_admin_bypasses_property_access(self):
        """Should let admins act on any property."""
        authorize(actor(Role.ADMIN, access=()), Action.APPROVE, PROPERTY_ID)

    def test_missing_capability(self):
        """Should reject roles without the capability."""
        with pytest.raises(LedgerForbidden) as exc_info:
            authorize(actor(Role.RESIDENT), Action.APPROVE, PROPERTY_ID)

        assert exc_info.value.details == {"action": "approve", "role": "resident"}

    def test_property_ids_compare_as_text(self):
        """Should match access lists given as strings."""
        authorize(actor(Role.SYNDIC, access=(str(PROPERTY_ID),)), Action.VIEW, PROPERTY_ID)
