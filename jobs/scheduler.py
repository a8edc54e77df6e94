"""
Job scheduler.

Enqueues the monthly accrual run when a period elapses and serves the
health endpoints for the scheduler process.
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from jobs.health import set_scheduler, start_health_server, stop_health_server
from jobs.tasks.monthly_accrual import run_monthly_accrual
from yieldcycle.config.logging import setup_logging
from yieldcycle.tasks.monthly_accrual_task import default_period


MONTHLY_ACCRUAL_JOB_ID = "monthly_accrual"


def enqueue_monthly_accrual() -> None:
    """Send the accrual run for the period that just ended."""
    period = default_period()
    run_monthly_accrual.send(period)
    logger.info(f"Monthly accrual enqueued for {period}")


def create_scheduler() -> AsyncIOScheduler:
    """
    Build the scheduler.

    The accrual job fires at 00:05 UTC on the first day of each month;
    misfires within a day are still run (reruns are idempotent).
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        enqueue_monthly_accrual,
        CronTrigger(day=1, hour=0, minute=5, timezone="UTC"),
        id=MONTHLY_ACCRUAL_JOB_ID,
        name="Monthly accrual",
        misfire_grace_time=86400,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler


async def main() -> None:
    """Run scheduler and health server until SIGINT/SIGTERM."""
    setup_logging()

    scheduler = create_scheduler()
    scheduler.start()
    set_scheduler(scheduler)
    runner, _ = await start_health_server()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    logger.info("Scheduler started")
    try:
        await stop_event.wait()
    finally:
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    asyncio.run(main())
