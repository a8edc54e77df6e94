"""
Commission distribution task.

Fans out commissions of a confirmed deposit. Safe to redeliver: only
ancestor units still missing are written.
"""

from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yieldcycle.services.events import (
    DepositConfirmed,
    DepositConfirmedOutcome,
    EventDispatcher,
)


async def distribute_deposit_commissions(
    user_id: str,
    deposit_id: str,
    amount: Decimal | str,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> DepositConfirmedOutcome:
    """
    Handle a confirmed deposit: activate it and distribute commissions.

    Args:
        user_id: Depositor
        deposit_id: Deposit id from the payments platform
        amount: Deposit amount
        session_maker: Session factory (defaults to the shared one)

    Returns:
        DepositConfirmedOutcome
    """
    if session_maker is None:
        from yieldcycle.config.database import async_session_maker

        session_maker = async_session_maker

    dispatcher = EventDispatcher(session_maker)
    event = DepositConfirmed(
        user_id=user_id, deposit_id=deposit_id, amount=Decimal(str(amount))
    )

    try:
        outcome = await dispatcher.handle_deposit_confirmed(event)
    except Exception as e:
        logger.error(
            f"Commission distribution task failed: {e}",
            extra={"deposit_id": deposit_id, "user_id": user_id, "error": str(e)},
        )
        raise

    distribution = outcome.distribution
    if distribution is not None and not distribution.success:
        logger.warning(
            "Commission distribution incomplete",
            extra={
                "deposit_id": deposit_id,
                "failed": distribution.failed,
                "process_failed": distribution.process_failed,
                "errors": distribution.errors,
            },
        )
    return outcome
