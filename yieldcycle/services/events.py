"""
Inbound events.

The ledger core consumes two events from the surrounding platform:
a confirmed deposit and an elapsed accrual period.
"""

from dataclasses import dataclass
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yieldcycle.models.deposit import Deposit
from yieldcycle.models.enums import DepositStatus
from yieldcycle.services.accrual.accrual_engine import AccrualEngine, AccrualRunResult
from yieldcycle.services.audit import AuditSink
from yieldcycle.services.commission.distribution import (
    CommissionEngine,
    DistributionResult,
)
from yieldcycle.services.deposit_service import DepositService
from yieldcycle.utils.exceptions import ValidationError


@dataclass(frozen=True)
class DepositConfirmed:
    """Funds of a deposit were confirmed."""

    user_id: str
    deposit_id: str
    amount: Decimal


@dataclass(frozen=True)
class PeriodElapsed:
    """An accrual period (YYYY-MM) has ended."""

    period: str


@dataclass
class DepositConfirmedOutcome:
    """Result of handling DepositConfirmed."""

    deposit: Deposit
    activated: bool
    distribution: DistributionResult | None


# Deposits past confirmation; distribution may run (or resume) for them
_DISTRIBUTABLE = frozenset(
    {DepositStatus.ACTIVE, DepositStatus.DORMANT, DepositStatus.COMPLETED}
)


class EventDispatcher:
    """Routes inbound events to the deposit registry and the engines."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        commission_engine: CommissionEngine | None = None,
        accrual_engine: AccrualEngine | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        """
        Initialize dispatcher.

        Args:
            session_maker: Session factory
            commission_engine: Engine override (built from session_maker
                by default)
            accrual_engine: Engine override
            audit_sink: Sink passed to default engines
        """
        self.session_maker = session_maker
        self.commission_engine = commission_engine or CommissionEngine(
            session_maker, audit_sink=audit_sink
        )
        self.accrual_engine = accrual_engine or AccrualEngine(
            session_maker, audit_sink=audit_sink
        )

    async def handle_deposit_confirmed(
        self, event: DepositConfirmed
    ) -> DepositConfirmedOutcome:
        """
        Activate the deposit (crediting PRINCIPAL once), then distribute
        commissions.

        Redelivery of the same event re-runs distribution, which only
        fills in ancestor units that are still missing.
        """
        async with self.session_maker() as session:
            deposit, activated = await DepositService(session).record_confirmed(
                event.user_id, event.deposit_id, event.amount
            )

        distribution = None
        if deposit.status in _DISTRIBUTABLE:
            distribution = await self.commission_engine.distribute(
                deposit.user_id, deposit.id, deposit.amount
            )

        logger.info(
            "DepositConfirmed handled",
            extra={
                "deposit_id": deposit.id,
                "user_id": deposit.user_id,
                "activated": activated,
                "commissions_created": distribution.created if distribution else 0,
            },
        )
        return DepositConfirmedOutcome(
            deposit=deposit, activated=activated, distribution=distribution
        )

    async def handle_period_elapsed(self, event: PeriodElapsed) -> AccrualRunResult:
        """Run the accrual batch for the period."""
        return await self.accrual_engine.run_period(event.period)

    async def dispatch(
        self, event: DepositConfirmed | PeriodElapsed
    ) -> DepositConfirmedOutcome | AccrualRunResult:
        """
        Route an event by type.

        Raises:
            ValidationError: Unknown event type
        """
        if isinstance(event, DepositConfirmed):
            return await self.handle_deposit_confirmed(event)
        if isinstance(event, PeriodElapsed):
            return await self.handle_period_elapsed(event)
        raise ValidationError(f"Unsupported event: {type(event).__name__}")
