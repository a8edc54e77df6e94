"""
Commission distribution job.

Consumes confirmed deposits from the payments platform: activates the
deposit and fans its commissions out to the upline.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import run_async
from jobs.broker import broker  # noqa: F401
from jobs.utils.database import task_session_maker
from yieldcycle.config.operational_constants import (
    DEFAULT_MAX_RETRIES,
    DRAMATIQ_TIME_LIMIT_COMMISSION,
)
from yieldcycle.tasks.commission_distribution_task import (
    distribute_deposit_commissions as distribute,
)
from yieldcycle.utils.exceptions import DuplicateError, ValidationError


@dramatiq.actor(
    max_retries=DEFAULT_MAX_RETRIES,
    time_limit=DRAMATIQ_TIME_LIMIT_COMMISSION,
)
def distribute_deposit_commissions(user_id: str, deposit_id: str, amount: str) -> None:
    """
    Handle a confirmed deposit.

    Amounts travel as strings to keep Decimal precision through JSON.
    Bad input is logged and dropped; anything else is retried.

    Args:
        user_id: Depositor
        deposit_id: Deposit id
        amount: Deposit amount as a decimal string
    """
    logger.info(f"Distributing commissions for deposit {deposit_id}...")

    try:
        outcome = run_async(
            distribute(
                user_id, deposit_id, amount, session_maker=task_session_maker
            )
        )
    except (ValidationError, DuplicateError) as e:
        logger.error(f"Deposit {deposit_id} rejected: {e}")
        return

    distribution = outcome.distribution
    if distribution is None:
        logger.info(
            f"Deposit {deposit_id} is {outcome.deposit.status}, "
            f"no commissions distributed"
        )
        return

    logger.info(
        f"Commission distribution complete for deposit {deposit_id}: "
        f"{distribution.created} created, {distribution.skipped} skipped, "
        f"{distribution.failed} failed, "
        f"{distribution.process_failed} failed to process"
    )
    if distribution.failed or distribution.process_failed:
        # Raise so dramatiq redelivers; completed units are skipped on rerun
        # and PENDING records of the batch are processed again
        raise RuntimeError(
            f"{distribution.failed + distribution.process_failed} commission "
            f"units failed for deposit {deposit_id}"
        )
