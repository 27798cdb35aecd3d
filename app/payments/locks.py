"""
Distributed locking for refund settlement.

Refund initiation checks "does this order already have a live refund?"
and then inserts one; processing reads a refund, calls the gateway and
writes the outcome. Both sequences must not interleave across worker
processes, so they run under a Redis lock keyed by order or refund.

The database stays the source of truth (row locks and the partial
unique constraint on Refund); the lock only keeps competing processes
from doing wasted or duplicate gateway work.

Usage:
    from payments.locks import DistributedLock, order_lock_key

    with DistributedLock(order_lock_key(order.id), ttl=120, timeout=10):
        # Only one process can initiate a refund for this order
        ...

    lock = DistributedLock("refund:sweep", blocking=False)
    if lock.acquire():
        try:
            sweep()
        finally:
            lock.release()
"""

from __future__ import annotations

import logging
import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from payments.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

logger = logging.getLogger(__name__)

# Pause between attempts while waiting for a held lock
LOCK_POLL_INTERVAL_SECONDS = 0.05


def order_lock_key(order_id: Any) -> str:
    """Lock key serialising refund initiation for one order."""
    return f"refund:order:{order_id}"


def refund_lock_key(refund_id: Any) -> str:
    """Lock key serialising process/approve/cancel/retry of one refund."""
    return f"refund:{refund_id}"


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Acquisition is a single `SET key token NX EX ttl`; release and
    extension run a Lua script that compares the token first, so a
    process can never free a lock that expired and was re-taken by
    someone else.

    Example:
        # Context manager (recommended)
        with DistributedLock("refund:order:123", ttl=120):
            initiate()

        # Fail fast instead of waiting
        lock = DistributedLock("refund:456", blocking=False)
        try:
            with lock:
                process()
        except LockAcquisitionError:
            # Another process holds the lock
            skip()

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)

    Note:
        The TTL must outlive the slowest expected gateway call, otherwise
        the lock can lapse while the holder is still working.
    """

    # Lua script for atomic check-and-delete (release)
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
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
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        """Get Redis connection (lazy initialization)."""
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Acquire the lock, waiting up to `timeout` in blocking mode.

        Returns:
            True once the lock is held

        Raises:
            LockAcquisitionError: If the lock could not be acquired
        """
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            deadline = time.monotonic() + self.timeout
            while True:
                if self._try_acquire(redis, token):
                    return True
                if time.monotonic() >= deadline:
                    break
                time.sleep(LOCK_POLL_INTERVAL_SECONDS)

            logger.warning(
                "Lock wait timed out",
                extra={"lock_key": self.key, "timeout": self.timeout},
            )
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis, token):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis, token: str) -> bool:
        """Try once to acquire the lock."""
        if redis.set(self.key, token, nx=True, ex=self.ttl):
            self._token = token
            return True
        return False

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if lock was released, False if we didn't hold it
            (never acquired, already released, or expired and re-taken)
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        if not result:
            logger.warning(
                "Lock expired before release",
                extra={"lock_key": self.key, "ttl": self.ttl},
            )
        return bool(result)

    def __enter__(self) -> DistributedLock:
        """Context manager entry - acquire the lock."""
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        """Context manager exit - always release the lock."""
        self.release()
        return False  # Don't suppress exceptions


__all__ = [
    "DistributedLock",
    "order_lock_key",
    "refund_lock_key",
]
