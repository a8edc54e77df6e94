"""Tests for the Redis-backed lock."""

import pytest
from redis.exceptions import LockError

from yieldcycle.utils.distributed_lock import LOCK_PREFIX, DistributedLock
from yieldcycle.utils.exceptions import LockNotAcquired


@pytest.mark.asyncio
async def test_lock_acquired_and_released(mock_redis_client):
    lock = mock_redis_client.lock.return_value

    async with DistributedLock(mock_redis_client).lock(
        "monthly_accrual:2026-09", timeout=300, blocking_timeout=5
    ):
        lock.acquire.assert_awaited_once()
        lock.release.assert_not_awaited()

    lock.release.assert_awaited_once()
    mock_redis_client.lock.assert_called_once_with(
        f"{LOCK_PREFIX}monthly_accrual:2026-09", timeout=300, blocking_timeout=5
    )


@pytest.mark.asyncio
async def test_busy_lock_raises(mock_redis_client):
    lock = mock_redis_client.lock.return_value
    lock.acquire.return_value = False

    with pytest.raises(LockNotAcquired):
        async with DistributedLock(mock_redis_client).lock("busy", timeout=10):
            pytest.fail("body must not run")

    lock.release.assert_not_awaited()


@pytest.mark.asyncio
async def test_released_when_body_raises(mock_redis_client):
    lock = mock_redis_client.lock.return_value

    with pytest.raises(RuntimeError):
        async with DistributedLock(mock_redis_client).lock("job", timeout=10):
            raise RuntimeError("job failed")

    lock.release.assert_awaited_once()


@pytest.mark.asyncio
async def test_expired_lock_release_tolerated(mock_redis_client):
    lock = mock_redis_client.lock.return_value
    lock.release.side_effect = LockError("lock expired")

    async with DistributedLock(mock_redis_client).lock("job", timeout=1):
        pass
