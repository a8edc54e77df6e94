"""
Accrual engine.

Runs the periodic income batch: one read phase over eligible deposits,
then a bounded fan-out of per-user transactions. A failing user is
recorded as FAILED and the batch continues.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yieldcycle.config.business_constants import ZERO
from yieldcycle.config.settings import settings
from yieldcycle.models.accrual_record import AccrualRecord
from yieldcycle.models.deposit import Deposit
from yieldcycle.models.enums import AccrualStatus
from yieldcycle.repositories.accrual_repository import AccrualRepository
from yieldcycle.repositories.deposit_repository import DepositRepository
from yieldcycle.services.accrual.batch_processor import (
    AccrualBatchProcessor,
    UserAccrualOutcome,
    check_eligibility,
)
from yieldcycle.services.audit import AuditSink, LoguruAuditSink, emit
from yieldcycle.utils.concurrency import gather_bounded
from yieldcycle.utils.exceptions import (
    DuplicateError,
    IneligibleDeposit,
    NotFound,
    is_integrity_fault,
)
from yieldcycle.utils.money import round_money
from yieldcycle.utils.validation import validate_period


SKIPPED = "skipped"
INELIGIBLE = "ineligible"


@dataclass
class AccrualRunResult:
    """Result of one accrual run."""

    period: str
    batch_id: str
    total_users: int = 0
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    retried: int = 0
    total_accrued: Decimal = ZERO
    completed_deposits: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    stopped: bool = False

    @property
    def success(self) -> bool:
        """True when no user failed."""
        return self.failed == 0 and not self.stopped


class AccrualEngine:
    """
    Periodic income engine.

    Each per-user unit opens its own session from ``session_maker``.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        audit_sink: AuditSink | None = None,
        concurrency: int | None = None,
    ) -> None:
        """
        Initialize accrual engine.

        Args:
            session_maker: Session factory
            audit_sink: Audit event sink (defaults to LoguruAuditSink)
            concurrency: Max parallel per-user units
        """
        self.session_maker = session_maker
        self.audit_sink = audit_sink or LoguruAuditSink("accrual")
        self.concurrency = concurrency or settings.accrual_fanout_concurrency

    @staticmethod
    def check_eligibility(deposit: Deposit) -> None:
        """Raise IneligibleDeposit unless deposit can accrue a period."""
        check_eligibility(deposit)

    async def run_period(self, period: str) -> AccrualRunResult:
        """
        Accrue one period for every eligible deposit.

        Re-running a period is safe: users already handled are skipped
        and FAILED users are retried.

        Args:
            period: YYYY-MM

        Returns:
            AccrualRunResult

        Raises:
            ValidationError: Malformed period
        """
        period = validate_period(period)
        return await self._run(period)

    async def retry_failed(self, period: str) -> AccrualRunResult:
        """
        Retry only the users whose record for period is FAILED.

        Users without eligible deposits left get their record cancelled.
        """
        period = validate_period(period)

        async with self.session_maker() as session:
            failed = await AccrualRepository(session).get_by_period(
                period, AccrualStatus.FAILED
            )
        failed_users = {record.user_id for record in failed}

        if not failed_users:
            return AccrualRunResult(period=period, batch_id=str(uuid.uuid4()))

        result = await self._run(period, only_users=failed_users)
        if result.stopped:
            return result

        # Still FAILED without failing again: nothing left to accrue
        async with self.session_maker() as session:
            async with session.begin():
                repo = AccrualRepository(session)
                for record in await repo.get_by_period(period, AccrualStatus.FAILED):
                    if (
                        record.user_id in failed_users
                        and record.user_id not in result.errors
                    ):
                        await repo.transition(
                            record.id,
                            AccrualStatus.FAILED,
                            AccrualStatus.CANCELLED,
                        )
                        logger.info(
                            "Failed accrual cancelled: no eligible deposits",
                            extra={"user_id": record.user_id, "period": period},
                        )

        return result

    async def cancel_record(self, record_id: int) -> AccrualRecord:
        """
        PENDING/FAILED -> CANCELLED.

        Raises:
            NotFound: Record is missing
            InvalidStatusTransition: Record is PROCESSING, COMPLETED or
                CANCELLED
        """
        async with self.session_maker() as session:
            async with session.begin():
                repo = AccrualRepository(session)
                record = await repo.get_by_id(record_id, for_update=True)
                if record is None:
                    raise NotFound(f"Accrual record {record_id} not found")

                record.ensure_transition(AccrualStatus.CANCELLED)
                await repo.transition(
                    record.id,
                    AccrualStatus(record.status),
                    AccrualStatus.CANCELLED,
                )
                await session.refresh(record)

        logger.info(
            "Accrual record cancelled",
            extra={"record_id": record_id, "user_id": record.user_id},
        )
        return record

    async def _load_eligible(
        self, only_users: set[str] | None
    ) -> dict[str, list[str]]:
        """Read phase: eligible deposit ids grouped by user."""
        async with self.session_maker() as session:
            deposits = await DepositRepository(session).get_eligible_for_accrual()

        by_user: dict[str, list[str]] = defaultdict(list)
        for deposit in deposits:
            if only_users is not None and deposit.user_id not in only_users:
                continue
            by_user[deposit.user_id].append(deposit.id)
        return dict(by_user)

    async def _run(
        self, period: str, only_users: set[str] | None = None
    ) -> AccrualRunResult:
        batch_id = str(uuid.uuid4())
        result = AccrualRunResult(period=period, batch_id=batch_id)

        if settings.emergency_stop_accrual:
            logger.warning(
                "Accrual run skipped: emergency stop active",
                extra={"period": period},
            )
            result.stopped = True
            return result

        by_user = await self._load_eligible(only_users)
        users = sorted(by_user)
        result.total_users = len(users)

        logger.info(
            "Accrual run started",
            extra={
                "period": period,
                "batch_id": batch_id,
                "users": len(users),
                "deposits": sum(len(ids) for ids in by_user.values()),
            },
        )

        async def unit(user_id: str) -> UserAccrualOutcome | str:
            return await self._process_user(
                user_id, period, batch_id, by_user[user_id]
            )

        outcomes = await gather_bounded(users, unit, self.concurrency)

        for user_id, outcome in zip(users, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                # Failure could not even be recorded
                result.failed += 1
                result.errors[user_id] = f"{type(outcome).__name__}: {outcome}"
                logger.error(
                    f"Accrual unit crashed: {outcome}",
                    extra={"user_id": user_id, "period": period},
                )
            elif isinstance(outcome, UserAccrualOutcome):
                result.completed += 1
                result.retried += int(outcome.retried)
                result.total_accrued += outcome.accrual_amount
                result.completed_deposits.extend(outcome.completed_deposits)
            elif outcome in (SKIPPED, INELIGIBLE):
                result.skipped += 1
            else:
                result.failed += 1
                result.errors[user_id] = outcome

        result.total_accrued = round_money(result.total_accrued)

        logger.info(
            "Accrual run finished",
            extra={
                "period": period,
                "batch_id": batch_id,
                "completed": result.completed,
                "skipped": result.skipped,
                "failed": result.failed,
                "total_accrued": str(result.total_accrued),
                "completed_deposits": len(result.completed_deposits),
            },
        )
        return result

    async def _process_user(
        self,
        user_id: str,
        period: str,
        batch_id: str,
        deposit_ids: list[str],
    ) -> UserAccrualOutcome | str:
        """
        One user's unit.

        Returns:
            UserAccrualOutcome on success, SKIPPED/INELIGIBLE markers, or
            the failure reason after it was recorded
        """
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    outcome = await AccrualBatchProcessor(session).process_user(
                        user_id, period, batch_id, deposit_ids
                    )
        except DuplicateError as e:
            logger.debug(
                f"Accrual skipped: {e}",
                extra={"user_id": user_id, "period": period},
            )
            return SKIPPED
        except IneligibleDeposit as e:
            logger.info(
                f"Accrual skipped: {e}",
                extra={"user_id": user_id, "period": period},
            )
            return INELIGIBLE
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            log = logger.error if is_integrity_fault(e) else logger.warning
            log(
                f"Accrual failed for {user_id}: {reason}",
                extra={"user_id": user_id, "period": period, "batch_id": batch_id},
            )
            await self._record_failure(user_id, period, batch_id, reason)
            await emit(
                self.audit_sink,
                "accrual.failed",
                user_id=user_id,
                period=period,
                batch_id=batch_id,
                reason=reason,
            )
            return reason

        await emit(
            self.audit_sink,
            "accrual.completed",
            user_id=user_id,
            period=period,
            batch_id=batch_id,
            record_id=outcome.record_id,
            base_amount=outcome.base_amount,
            accrual_amount=outcome.accrual_amount,
            deposit_count=outcome.deposit_count,
            completed_deposits=",".join(outcome.completed_deposits),
        )
        return outcome

    async def _record_failure(
        self, user_id: str, period: str, batch_id: str, reason: str
    ) -> None:
        """Persist the FAILED record in a fresh transaction."""
        async with self.session_maker() as session:
            async with session.begin():
                await AccrualBatchProcessor(session).record_failure(
                    user_id, period, batch_id, reason
                )
