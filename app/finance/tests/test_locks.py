"""
Tests for ledger concurrency utilities.

Covers the Redis DistributedLock (with a mocked connection) and the
check_version optimistic lock.
"""

import uuid

import pytest
from django.db import transaction

from finance.exceptions import LockAcquisitionError, StaleTransaction, TransactionNotFound
from finance.locks import DistributedLock, check_version
from finance.models import FinancialTransaction
from finance.tests.factories import FinancialTransactionFactory


class TestDistributedLock:
    """Tests for DistributedLock."""

    def test_acquire_sets_key_with_ttl(self, mock_redis):
        """Should SET NX with the prefixed key and TTL."""
        lock = DistributedLock("finance:batch:1", ttl=120, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held

        args, kwargs = mock_redis.set.call_args
        assert args[0] == "lock:finance:batch:1"
        assert kwargs == {"nx": True, "ex": 120}

    def test_tokens_are_unique(self, mock_redis):
        """Should use a fresh token per lock."""
        first = DistributedLock("a", blocking=False)
        second = DistributedLock("b", blocking=False)
        first.acquire()
        second.acquire()

        assert first._token != second._token

    def test_non_blocking_raises_when_held(self, mock_redis):
        """Should fail immediately when another holder has the key."""
        mock_redis.set.return_value = False
        lock = DistributedLock("finance:batch:1", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.error_code == "LOCK_ACQUISITION_FAILED"
        assert exc_info.value.details["key"] == "lock:finance:batch:1"
        assert not lock.is_held

    def test_blocking_retries_until_free(self, mock_redis, mocker):
        """Should poll until the key frees up."""
        mocker.patch("finance.locks.time.sleep")
        mock_redis.set.side_effect = [False, False, True]

        assert DistributedLock("k", timeout=5.0).acquire() is True
        assert mock_redis.set.call_count == 3

    def test_blocking_times_out(self, mock_redis):
        """Should raise once the timeout elapses."""
        mock_redis.set.return_value = False

        with pytest.raises(LockAcquisitionError, match="within 0.1s"):
            DistributedLock("k", timeout=0.1).acquire()

    def test_release_uses_token(self, mock_redis):
        """Should release through the compare-and-delete script."""
        lock = DistributedLock("k", blocking=False)
        lock.acquire()
        token = lock._token

        assert lock.release() is True
        mock_redis.eval.assert_called_once_with(DistributedLock.RELEASE_SCRIPT, 1, "lock:k", token)
        assert not lock.is_held

    def test_release_without_acquire(self, mock_redis):
        """Should be a no-op when the lock is not held."""
        assert DistributedLock("k").release() is False
        mock_redis.eval.assert_not_called()

    def test_context_manager_releases_on_error(self, mock_redis):
        """Should release even when the body raises."""
        with pytest.raises(RuntimeError), DistributedLock("k", blocking=False):
            raise RuntimeError("boom")

        mock_redis.eval.assert_called_once()


class TestCheckVersion:
    """Tests for check_version."""

    def test_matching_version(self, db):
        """Should return the locked row when versions match."""
        tx = FinancialTransactionFactory()

        with transaction.atomic():
            locked = check_version(FinancialTransaction, tx.pk, expected_version=1)

        assert locked.pk == tx.pk

    def test_stale_version(self, db):
        """Should raise with both versions when the row moved on."""
        tx = FinancialTransactionFactory()
        tx.description = "Edited elsewhere"
        tx.save()

        with pytest.raises(StaleTransaction) as exc_info, transaction.atomic():
            check_version(FinancialTransaction, tx.pk, expected_version=1)

        assert exc_info.value.error_code == "CONFLICT"
        assert exc_info.value.details["current_version"] == 2

    def test_missing_row(self, db):
        """Should raise not found for unknown ids."""
        with pytest.raises(TransactionNotFound), transaction.atomic():
            check_version(FinancialTransaction, uuid.uuid4(), expected_version=1)
