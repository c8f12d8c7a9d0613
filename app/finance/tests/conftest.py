"""
Pytest fixtures for ledger tests.

Collaborators are replaced by in-memory recorders for every test, so
service tests can assert on invalidations and notifications without
Celery or Redis.

Usage:
    def test_approve_notifies(manager, pending_tx, recorder, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            LedgerService.approve(pending_tx.id, manager)
        assert recorder.patterns
"""

import uuid
from unittest.mock import MagicMock

import pytest

from finance.services import LedgerService
from finance.states import Role
from finance.tests.factories import FinancialTransactionFactory
from finance.types import Actor
from properties.tests.factories import PropertyFactory, UnitFactory


class RecordingCollaborators:
    """CacheInvalidator and Notifier fake that remembers every call."""

    def __init__(self):
        self.patterns = []
        self.notifications = []

    def invalidate(self, pattern):
        self.patterns.append(pattern)

    def notify(self, property_id, message, priority="medium", target_roles=None):
        self.notifications.append(
            {
                "property_id": property_id,
                "message": message,
                "priority": priority,
                "target_roles": target_roles,
            }
        )


@pytest.fixture(autouse=True)
def recorder(mocker):
    """Replace the Celery-backed collaborators with a recorder."""
    fake = RecordingCollaborators()
    mocker.patch.object(LedgerService, "cache_invalidator", fake)
    mocker.patch.object(LedgerService, "notifier", fake)
    return fake


@pytest.fixture
def mock_redis(mocker):
    """Mock Redis connection used by DistributedLock."""
    redis = MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    mocker.patch("finance.locks.get_redis_connection", return_value=redis)
    return redis


# =============================================================================
# Property Fixtures
# =============================================================================


@pytest.fixture
def building(db):
    """Create a property."""
    return PropertyFactory(name="Green Towers")


@pytest.fixture
def units(building):
    """Create three active units without their own fee."""
    return [UnitFactory(property=building, number=number) for number in ("101", "102", "103")]


# =============================================================================
# Actor Fixtures
# =============================================================================


def make_actor(role, building=None, name=""):
    access = [building.id] if building is not None else []
    return Actor(id=uuid.uuid4(), role=role, name=name, property_access=access)


@pytest.fixture
def admin():
    """Admin without explicit property access (admins see every property)."""
    return make_actor(Role.ADMIN, name="Ada")


@pytest.fixture
def manager(building):
    return make_actor(Role.MANAGER, building, name="Dana")


@pytest.fixture
def syndic(building):
    return make_actor(Role.SYNDIC, building, name="Sam")


@pytest.fixture
def resident(building):
    return make_actor(Role.RESIDENT, building, name="Rui")


@pytest.fixture
def outsider():
    """Manager of some other property."""
    return make_actor(Role.MANAGER, name="Otto")


# =============================================================================
# Transaction Fixtures
# =============================================================================


@pytest.fixture
def pending_tx(building, manager):
    """Pending expense created by the manager."""
    return FinancialTransactionFactory(property=building, created_by=manager.id)


@pytest.fixture
def expense_fields():
    return {
        "direction": "expense",
        "category": "maintenance",
        "description": "Elevator repair",
        "amount": "1200.00",
        "due_date": "2025-03-10",
    }
