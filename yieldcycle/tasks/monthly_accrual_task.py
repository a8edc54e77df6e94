"""
Monthly accrual task.

Runs the periodic income batch for one period. The scheduler calls it
once a month for the period that just ended; operators may call it for a
specific period or with ``retry_only`` to retry FAILED users.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yieldcycle.services.accrual.accrual_engine import AccrualEngine, AccrualRunResult
from yieldcycle.utils.datetime_utils import current_period, previous_period


def default_period() -> str:
    """The period that ended most recently."""
    return previous_period(current_period())


async def run_monthly_accrual(
    period: str | None = None,
    retry_only: bool = False,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> AccrualRunResult:
    """
    Run accrual for ``period`` (default: last month).

    Args:
        period: YYYY-MM
        retry_only: Only retry users whose record is FAILED
        session_maker: Session factory (defaults to the shared one)

    Returns:
        AccrualRunResult
    """
    if session_maker is None:
        from yieldcycle.config.database import async_session_maker

        session_maker = async_session_maker

    period = period or default_period()
    engine = AccrualEngine(session_maker)

    logger.info(
        "Starting monthly accrual task",
        extra={"period": period, "retry_only": retry_only},
    )

    try:
        if retry_only:
            result = await engine.retry_failed(period)
        else:
            result = await engine.run_period(period)
    except Exception as e:
        logger.error(
            f"Fatal error in monthly accrual task: {e}",
            extra={"period": period, "error": str(e)},
        )
        raise

    if result.failed:
        logger.warning(
            f"Monthly accrual finished with {result.failed} failed users",
            extra={"period": period, "failed_users": sorted(result.errors)},
        )
    else:
        logger.info(
            "Monthly accrual completed successfully",
            extra={
                "period": period,
                "completed": result.completed,
                "total_accrued": str(result.total_accrued),
            },
        )
    return result
