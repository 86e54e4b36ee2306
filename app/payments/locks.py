"""
Concurrency control for escrow operations.

Two mechanisms are used together:

1. DistributedLock: Redis mutual exclusion across workers. The release
   sweep and the manual release endpoint both take the per-order lock, so
   one order is never paid out by two processes at once.

2. check_version: compare-and-swap on ``VersionedMixin`` rows. Used where a
   client sends back the version it read (order cancellation, seller status
   updates).

Usage:
    from payments.locks import DistributedLock, order_lock

    with order_lock(order.id):
        EscrowReleaseService.release_order(order.id)

    with transaction.atomic():
        order = check_version(Order, order_id, expected_version=3)
        order.status = OrderStatus.CANCELLED
        order.save()
"""

from __future__ import annotations

import logging
import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.db import models, transaction
from django_redis import get_redis_connection

from core.exceptions import NotFoundError
from payments.exceptions import LockAcquisitionError, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=models.Model)

# TTL covers capture + account check + transfer for every seller of an order
ORDER_LOCK_TTL_SECONDS = 120


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis lock with a TTL and an ownership token.

    The TTL frees the lock if the holder crashes; the token ensures only the
    holder can release it.

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds before the lock expires on its own
        blocking: Wait for the lock instead of failing immediately
        timeout: Maximum wait in blocking mode

    Raises:
        LockAcquisitionError: from ``acquire`` when the lock is held elsewhere
    """

    # Delete only if we still own the key
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
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.time() + self.timeout
            while time.time() < end_time:
                if redis.set(self.key, token, nx=True, ex=self.ttl):
                    self._token = token
                    return True
                time.sleep(0.05)

            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not redis.set(self.key, token, nx=True, ex=self.ttl):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        self._token = token
        return True

    def release(self) -> bool:
        """
        Release the lock if this instance holds it.

        Returns False when the lock was never acquired or had already
        expired and been taken by someone else.
        """
        if self._token is None:
            return False

        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        if not result:
            logger.warning("Lock expired before release", extra={"key": self.key})
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
        return False


def order_lock(order_id: Any, blocking: bool = False, timeout: float = 10.0) -> DistributedLock:
    """Lock guarding every money movement for one order."""
    return DistributedLock(
        f"escrow:order:{order_id}",
        ttl=ORDER_LOCK_TTL_SECONDS,
        blocking=blocking,
        timeout=timeout,
    )


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Lock a row for update, failing if its version moved on.

    Must run inside ``transaction.atomic()``; the row lock is held until the
    caller's transaction ends.

    Raises:
        NotFoundError: No row with this pk
        StaleRecordError: Row exists but ``version != expected_version``
    """
    model_name = model_class.__name__
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )
        if instance is not None:
            return instance

        current = model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
        if current is None:
            raise NotFoundError(
                f"{model_name} {pk} not found",
                error_code=f"{model_name.upper()}_NOT_FOUND",
                details={"pk": str(pk)},
            )

        raise StaleRecordError(
            f"{model_name} {pk} has been modified "
            f"(expected version {expected_version}, current {current})",
            details={
                "pk": str(pk),
                "expected_version": expected_version,
                "current_version": current,
            },
        )


__all__ = [
    "ORDER_LOCK_TTL_SECONDS",
    "DistributedLock",
    "check_version",
    "order_lock",
]
