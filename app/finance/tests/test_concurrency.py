"""
Tests for racing lifecycle operations on the same transaction.

Exactly one of two conflicting operations may win; the loser observes
INVALID_STATE (or CONFLICT for version-checked updates) and leaves no
history behind.
"""

import threading

import pytest
from django.db import connection

from finance.models import FinancialTransaction, TransactionHistory
from finance.services import LedgerService
from finance.states import HistoryAction, TransactionStatus
from finance.tests.factories import FinancialTransactionFactory


class TestSequentialRace:
    """The second of two conflicting calls loses."""

    def test_approve_then_cancel(self, pending_tx, manager, admin):
        """Should reject a cancel that arrives after the approval."""
        assert LedgerService.approve(pending_tx.id, manager).success

        result = LedgerService.cancel(pending_tx.id, admin)

        assert result.error_code == "INVALID_STATE"
        entries = TransactionHistory.objects.filter(transaction_id=pending_tx.pk)
        assert [entry.action for entry in entries] == [HistoryAction.APPROVAL]

    def test_cancel_then_approve(self, pending_tx, manager, admin):
        """Should reject an approval that arrives after the cancel."""
        assert LedgerService.cancel(pending_tx.id, admin).success

        assert LedgerService.approve(pending_tx.id, manager).error_code == "INVALID_STATE"
        assert FinancialTransaction.objects.get(pk=pending_tx.pk).status == TransactionStatus.CANCELLED

    def test_stale_read_loses(self, pending_tx, manager, admin, mocker):
        """Should reject a transition whose row changed between read and write."""
        stale = FinancialTransaction.objects.get(pk=pending_tx.pk)
        LedgerService.approve(pending_tx.id, manager)
        mocker.patch.object(LedgerService, "_lock", return_value=stale)

        result = LedgerService.cancel(pending_tx.id, admin)

        assert result.error_code == "INVALID_STATE"
        assert result.error == "Transaction was changed by another request"
        assert FinancialTransaction.objects.get(pk=pending_tx.pk).status == TransactionStatus.PAID

    def test_write_between_read_and_save_loses(self, pending_tx, admin, mocker):
        """Should reject a cancel when the row is paid right after it was read."""
        real_lock = LedgerService._lock

        def read_then_pay_elsewhere(transaction_id, actor):
            tx = real_lock(transaction_id, actor)
            FinancialTransaction.objects.filter(pk=transaction_id).update(status=TransactionStatus.PAID)
            return tx

        mocker.patch.object(LedgerService, "_lock", side_effect=read_then_pay_elsewhere)

        result = LedgerService.cancel(pending_tx.id, admin)

        assert result.error_code == "INVALID_STATE"
        assert FinancialTransaction.objects.get(pk=pending_tx.pk).status == TransactionStatus.PAID
        assert not TransactionHistory.objects.filter(
            transaction_id=pending_tx.pk, action=HistoryAction.CANCELLATION
        ).exists()

    def test_concurrent_edits_with_versions(self, pending_tx, manager, admin):
        """Should let only the first of two edits based on the same version through."""
        first = LedgerService.update_transaction(pending_tx.id, manager, {"title": "A"}, expected_version=1)
        second = LedgerService.update_transaction(pending_tx.id, admin, {"title": "B"}, expected_version=1)

        assert first.success
        assert second.error_code == "CONFLICT"


@pytest.mark.django_db(transaction=True)
class TestThreadedRace:
    """
    Two threads race on separate database connections.

    PostgreSQL serializes them with row locks, SQLite with the write lock
    taken at BEGIN.
    """

    def test_approve_and_cancel_race(self, building, manager, admin):
        """Should let exactly one of approve and cancel win."""
        tx = FinancialTransactionFactory(property=building)
        barrier = threading.Barrier(2)
        results = {}

        def run(name, operation, actor):
            barrier.wait()
            try:
                results[name] = operation(tx.id, actor)
            finally:
                connection.close()

        threads = [
            threading.Thread(target=run, args=("approve", LedgerService.approve, manager)),
            threading.Thread(target=run, args=("cancel", LedgerService.cancel, admin)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        outcomes = sorted(bool(result) for result in results.values())
        assert outcomes == [False, True]
        loser = next(result for result in results.values() if not result)
        assert loser.error_code == "INVALID_STATE"
        assert TransactionHistory.objects.filter(transaction_id=tx.pk).count() == 1
