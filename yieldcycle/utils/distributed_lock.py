"""
Distributed lock.

Cross-worker mutual exclusion on top of redis-py's Lock, used so that
only one worker runs a given period's accrual at a time.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import LockError

from yieldcycle.utils.exceptions import LockNotAcquired


LOCK_PREFIX = "yieldcycle:lock:"


class DistributedLock:
    """Redis-backed named lock."""

    def __init__(self, redis_client: redis.Redis) -> None:
        """
        Initialize lock helper.

        Args:
            redis_client: Async Redis client
        """
        self.redis_client = redis_client

    @asynccontextmanager
    async def lock(
        self,
        name: str,
        timeout: float,
        blocking_timeout: float | None = None,
    ) -> AsyncIterator[None]:
        """
        Hold lock ``name`` for the duration of the block.

        Args:
            name: Lock name (prefixed)
            timeout: Lock expiry in seconds; protects against dead workers
            blocking_timeout: Seconds to wait for the lock (None waits forever)

        Raises:
            LockNotAcquired: Lock is held elsewhere after blocking_timeout
        """
        key = f"{LOCK_PREFIX}{name}"
        lock = self.redis_client.lock(
            key, timeout=timeout, blocking_timeout=blocking_timeout
        )

        if not await lock.acquire():
            logger.warning("Lock busy", extra={"lock": key})
            raise LockNotAcquired(f"Lock {key} is held by another worker")

        logger.debug("Lock acquired", extra={"lock": key, "timeout": timeout})
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Expired before release; the next holder already owns it
                logger.warning(
                    f"Lock release failed: {e}", extra={"lock": key}
                )
