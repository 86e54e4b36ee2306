"""
Tests for the Redis distributed lock and row version checks.

Redis is mocked; the lock's contract is the SET NX EX call and the
ownership-checked release script.
"""

import uuid

import pytest
from django.db import transaction

from core.exceptions import NotFoundError
from orders.models import Order
from orders.tests.factories import OrderFactory
from payments.exceptions import LockAcquisitionError, StaleRecordError
from payments.locks import ORDER_LOCK_TTL_SECONDS, DistributedLock, check_version, order_lock


class TestDistributedLock:
    def test_acquire_sets_key_with_nx_and_ttl(self, mock_redis):
        mock_redis.set.return_value = True

        lock = DistributedLock("escrow:order:1", ttl=30, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held
        args, kwargs = mock_redis.set.call_args
        assert args[0] == "lock:escrow:order:1"
        assert kwargs == {"nx": True, "ex": 30}

    def test_non_blocking_raises_when_held(self, mock_redis):
        mock_redis.set.return_value = False

        lock = DistributedLock("escrow:order:1", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.details["key"] == "lock:escrow:order:1"
        assert not lock.is_held

    def test_blocking_retries_until_free(self, mock_redis):
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("escrow:order:1", blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_blocking_times_out(self, mock_redis):
        mock_redis.set.return_value = False

        lock = DistributedLock("escrow:order:1", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.details["timeout"] == 0.1

    def test_release_runs_ownership_script(self, mock_redis):
        mock_redis.set.return_value = True
        mock_redis.eval.return_value = 1

        lock = DistributedLock("escrow:order:1", blocking=False)
        lock.acquire()
        token = lock._token

        assert lock.release() is True
        assert not lock.is_held
        args = mock_redis.eval.call_args[0]
        assert args[2] == "lock:escrow:order:1"
        assert args[3] == token

    def test_release_after_expiry_returns_false(self, mock_redis):
        mock_redis.set.return_value = True
        mock_redis.eval.return_value = 0

        lock = DistributedLock("escrow:order:1", blocking=False)
        lock.acquire()

        assert lock.release() is False

    def test_release_without_acquire(self, mock_redis):
        lock = DistributedLock("escrow:order:1")

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_context_manager_releases_on_exception(self, mock_redis):
        mock_redis.set.return_value = True
        mock_redis.eval.return_value = 1

        with pytest.raises(ValueError, match="boom"):
            with DistributedLock("escrow:order:1"):
                raise ValueError("boom")

        mock_redis.eval.assert_called_once()


class TestOrderLock:
    def test_order_lock_key_and_ttl(self, mock_redis):
        mock_redis.set.return_value = True

        with order_lock("abc"):
            pass

        args, kwargs = mock_redis.set.call_args
        assert args[0] == "lock:escrow:order:abc"
        assert kwargs["ex"] == ORDER_LOCK_TTL_SECONDS


@pytest.mark.django_db
class TestCheckVersion:
    def test_returns_locked_row(self):
        order = OrderFactory()

        with transaction.atomic():
            locked = check_version(Order, order.pk, order.version)

        assert locked.pk == order.pk

    def test_stale_version(self):
        order = OrderFactory()
        order.delivery_notes = "Call on arrival"
        order.save()

        with pytest.raises(StaleRecordError) as exc_info:
            with transaction.atomic():
                check_version(Order, order.pk, order.version - 1)

        assert exc_info.value.details["current_version"] == order.version
        assert exc_info.value.details["expected_version"] == order.version - 1

    def test_missing_row(self):
        with pytest.raises(NotFoundError) as exc_info:
            with transaction.atomic():
                check_version(Order, uuid.uuid4(), 1)

        assert exc_info.value.error_code == "ORDER_NOT_FOUND"
