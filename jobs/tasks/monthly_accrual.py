"""
Monthly accrual job.

Runs the periodic income batch for one period. A Redis lock keyed by the
period keeps a second worker from running the same period concurrently.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import run_async
from jobs.broker import broker  # noqa: F401
from jobs.utils.database import task_session_maker
from yieldcycle.config.operational_constants import (
    ACCRUAL_LOCK_BLOCKING_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DRAMATIQ_TIME_LIMIT_ACCRUAL,
)
from yieldcycle.config.settings import settings
from yieldcycle.tasks.monthly_accrual_task import (
    default_period,
    run_monthly_accrual as run_accrual,
)
from yieldcycle.utils.distributed_lock import DistributedLock
from yieldcycle.utils.exceptions import LockNotAcquired
from yieldcycle.utils.redis_utils import get_redis_client


@dramatiq.actor(
    max_retries=DEFAULT_MAX_RETRIES,
    time_limit=DRAMATIQ_TIME_LIMIT_ACCRUAL,
)
def run_monthly_accrual(period: str | None = None, retry_only: bool = False) -> None:
    """
    Accrue periodic income for ``period`` (default: last month).

    Exceptions propagate so dramatiq retries the run; a rerun skips users
    already accrued and retries FAILED ones.

    Args:
        period: YYYY-MM
        retry_only: Only retry FAILED users
    """
    period = period or default_period()
    logger.info(f"Starting monthly accrual job for {period}...")

    try:
        summary = run_async(_run_monthly_accrual_async(period, retry_only))
    except LockNotAcquired:
        logger.warning(f"Monthly accrual for {period} already running, skipped")
        return

    logger.info(
        f"Monthly accrual job complete for {period}: "
        f"{summary['completed']} users accrued, {summary['failed']} failed, "
        f"total: {summary['total_accrued']}"
    )


async def _run_monthly_accrual_async(period: str, retry_only: bool) -> dict:
    """Async implementation of the monthly accrual job."""
    redis_client = await get_redis_client()
    lock = DistributedLock(redis_client=redis_client)

    try:
        async with lock.lock(
            f"monthly_accrual:{period}",
            timeout=settings.accrual_lock_timeout,
            blocking_timeout=ACCRUAL_LOCK_BLOCKING_TIMEOUT,
        ):
            result = await run_accrual(
                period,
                retry_only=retry_only,
                session_maker=task_session_maker,
            )
    finally:
        await redis_client.aclose()

    return {
        "completed": result.completed,
        "skipped": result.skipped,
        "failed": result.failed,
        "total_accrued": str(result.total_accrued),
    }
