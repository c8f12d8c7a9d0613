"""
Concurrency control for ledger writes.

Two mechanisms, used at different grain:

1. **DistributedLock** - Redis mutual exclusion across worker processes.
   Guards monthly batch generation so two batches for the same property
   never interleave.

2. **check_version** - Optimistic locking for single-transaction edits.
   Combines the version check with select_for_update so the row stays
   locked for the rest of the caller's atomic block.

Usage:
    from finance.locks import DistributedLock, check_version

    with DistributedLock(f"finance:batch:{property_id}", ttl=120):
        generate_fees(property_id)

    with transaction.atomic():
        tx = check_version(FinancialTransaction, tx_id, expected_version=3)
        tx.description = "Updated"
        tx.save()  # version -> 4
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.db import models, transaction

from django_redis import get_redis_connection

from finance.exceptions import LockAcquisitionError, StaleTransaction, TransactionNotFound

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    The lock value is a random token so only the holder can release it,
    through an atomic Lua script.

    Example:
        lock = DistributedLock("finance:batch:42", ttl=60, timeout=5.0)
        try:
            with lock:
                run_batch()
        except LockAcquisitionError:
            # Another worker is generating this property's batch
            ...

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds until Redis drops the lock on its own
        blocking: If True, acquire() polls until the lock frees up
        timeout: Maximum wait in seconds (blocking mode only)
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    POLL_INTERVAL = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Take the lock.

        Returns:
            True once the lock is held

        Raises:
            LockAcquisitionError: If the lock is held elsewhere (non-blocking)
                or did not free up within the timeout (blocking)
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            deadline = time.monotonic() + self.timeout
            while time.monotonic() < deadline:
                if self._try_acquire(redis):
                    return True
                time.sleep(self.POLL_INTERVAL)
            self._token = None
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis):
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Release the lock if this instance holds it.

        Returns:
            True if the key was deleted, False otherwise
        """
        if self._token is None:
            return False
        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.release()
        return False


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(model_class: type[T], pk: Any, expected_version: int) -> T:
    """
    Lock a row for update, failing if its version moved on.

    Must be called inside transaction.atomic(); the row lock is held
    until the caller's transaction ends.

    Args:
        model_class: Model with a ``version`` field
        pk: Primary key
        expected_version: Version the caller last read

    Returns:
        The locked instance

    Raises:
        TransactionNotFound: If the row does not exist
        StaleTransaction: If the stored version differs from expected_version
    """
    instance = (
        model_class.objects.select_for_update()
        .filter(pk=pk, version=expected_version)
        .first()
    )
    if instance is not None:
        return instance

    current = model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
    if current is None:
        raise TransactionNotFound(
            f"{model_class.__name__} {pk} not found",
            details={"id": str(pk)},
        )
    raise StaleTransaction(
        f"{model_class.__name__} {pk} has been modified "
        f"(expected version {expected_version}, current {current})",
        details={
            "id": str(pk),
            "expected_version": expected_version,
            "current_version": current,
        },
    )


__all__ = [
    "DistributedLock",
    "check_version",
]
