"""
Distributed locks for refund operations.

Row locks (select_for_update) serialize database writes, but the Stripe
call in refund processing happens outside any transaction. A Redis lock
keyed by refund id keeps two workers from sending the same refund to
Stripe at the same time, and a global lock keeps reconciliation runs from
overlapping.

Usage:
    from payments.locks import refund_process_lock

    with refund_process_lock(refund_id):
        RefundProcessingService._process_locked(...)
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from payments.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed processes
        - Token-based ownership prevents accidental release by other processes
        - Blocking and non-blocking acquisition modes
        - Context manager support

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until the lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
        error_class: LockAcquisitionError subclass raised on contention

    Note:
        The TTL should be longer than the Stripe timeout plus the local
        commit, otherwise the lock may expire mid-operation.
    """

    # Atomic check-and-delete so we never release someone else's lock
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
        error_class: type[LockAcquisitionError] = LockAcquisitionError,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self.error_class = error_class
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True if lock was acquired

        Raises:
            LockAcquisitionError (or error_class): If the lock is held elsewhere
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.time() + self.timeout
            while time.time() < end_time:
                if self._try_acquire(redis):
                    return True
                time.sleep(0.05)
            self._token = None
            raise self.error_class(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis):
            self._token = None
            raise self.error_class(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Safe to call multiple times.
        """
        if self._token is None:
            return False
        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, additional_ttl: int | None = None) -> bool:
        """
        Reset the lock TTL if we hold it.

        Used by the reconciliation job between batches.
        """
        if self._token is None:
            return False
        ttl = additional_ttl or self.ttl
        result = self._get_redis().eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl)
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False  # Don't suppress exceptions


# Longer than the Stripe timeout plus the local commit
PROCESS_LOCK_TTL = 120


def refund_process_lock(refund_id: Any) -> DistributedLock:
    """
    Non-blocking lock held while a refund is with Stripe.

    Taken by processing and by cancellation, so a refund can never be
    deleted while its Stripe call is in flight.
    """
    return DistributedLock(
        f"refund:process:{refund_id}",
        ttl=PROCESS_LOCK_TTL,
        blocking=False,
    )


__all__ = [
    "DistributedLock",
    "PROCESS_LOCK_TTL",
    "refund_process_lock",
]
