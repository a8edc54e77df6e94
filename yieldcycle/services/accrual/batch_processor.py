"""
Accrual batch processor.

One user's accrual for one period, executed inside the caller's
transaction.
"""

from dataclasses import dataclass
from decimal import Decimal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import MONTHLY_ACCRUAL_RATE, ZERO
from yieldcycle.models.accrual_record import AccrualRecord
from yieldcycle.models.deposit import Deposit
from yieldcycle.models.enums import AccrualStatus, LedgerBucket, ReferenceType
from yieldcycle.repositories.accrual_repository import AccrualRepository
from yieldcycle.repositories.deposit_repository import DepositRepository
from yieldcycle.services.accrual.accrual_calculator import (
    DepositShare,
    plan_deposit_share,
    verify_accrual_total,
)
from yieldcycle.services.ledger_service import LedgerService
from yieldcycle.utils.datetime_utils import utc_now
from yieldcycle.utils.exceptions import (
    DuplicateError,
    IneligibleDeposit,
    InvariantViolation,
)


@dataclass
class UserAccrualOutcome:
    """Result of one user's accrual unit."""

    user_id: str
    record_id: int
    base_amount: Decimal
    accrual_amount: Decimal
    deposit_count: int
    completed_deposits: list[str]
    retried: bool = False


def check_eligibility(deposit: Deposit) -> None:
    """
    Ensure deposit can accrue another period.

    Raises:
        IneligibleDeposit: Not ACTIVE or already at the period cap
    """
    if not deposit.is_active:
        raise IneligibleDeposit(
            f"Deposit {deposit.id} is {deposit.status}, not active"
        )
    if not deposit.is_eligible_for_accrual:
        raise IneligibleDeposit(
            f"Deposit {deposit.id} already accrued "
            f"{deposit.months_active} periods"
        )


class AccrualBatchProcessor:
    """Applies one user's periodic accrual."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize batch processor."""
        self.session = session
        self.accrual_repo = AccrualRepository(session)
        self.deposit_repo = DepositRepository(session)
        self.ledger = LedgerService(session)

    async def _claim_record(
        self, user_id: str, period: str, batch_id: str
    ) -> tuple[AccrualRecord, bool]:
        """
        Get the (user, period) record to work on.

        Returns:
            (record in PENDING status, True if a FAILED record was reused)

        Raises:
            DuplicateError: Period already handled for this user
        """
        existing = await self.accrual_repo.get_for_user_period(
            user_id, period, for_update=True
        )

        if existing is not None:
            if not existing.is_retryable:
                raise DuplicateError(
                    f"Accrual for {user_id} in {period} already "
                    f"{existing.status}"
                )
            moved = await self.accrual_repo.transition(
                existing.id,
                AccrualStatus.FAILED,
                AccrualStatus.PENDING,
                batch_id=batch_id,
                failure_reason=None,
            )
            if not moved:
                raise DuplicateError(
                    f"Accrual for {user_id} in {period} retried concurrently"
                )
            return existing, True

        record = await self.accrual_repo.try_insert(
            user_id=user_id,
            period=period,
            base_amount=ZERO,
            accrual_amount=ZERO,
            rate=MONTHLY_ACCRUAL_RATE,
            deposit_count=0,
            status=AccrualStatus.PENDING.value,
            batch_id=batch_id,
        )
        if record is None:
            raise DuplicateError(
                f"Accrual for {user_id} in {period} created concurrently"
            )
        return record, False

    async def process_user(
        self,
        user_id: str,
        period: str,
        batch_id: str,
        deposit_ids: list[str],
    ) -> UserAccrualOutcome:
        """
        Accrue one period for all eligible deposits of a user.

        Args:
            user_id: Deposit owner
            period: YYYY-MM
            batch_id: Run id
            deposit_ids: Deposits seen eligible in the read phase

        Returns:
            UserAccrualOutcome

        Raises:
            DuplicateError: Period already handled for this user
            IneligibleDeposit: No deposit is eligible any more
            InvariantViolation: Share sum outside tolerance or a deposit
                changed under the lock
        """
        record, retried = await self._claim_record(user_id, period, batch_id)

        # Re-read under lock; deposits may have changed since the read phase
        deposits = await self.deposit_repo.get_by_ids(deposit_ids, for_update=True)
        eligible: list[Deposit] = []
        for deposit in deposits:
            if deposit.user_id != user_id:
                continue
            try:
                check_eligibility(deposit)
            except IneligibleDeposit as e:
                logger.debug(
                    f"Deposit skipped: {e}",
                    extra={"deposit_id": deposit.id, "period": period},
                )
                continue
            eligible.append(deposit)

        if not eligible:
            raise IneligibleDeposit(
                f"No eligible deposits for {user_id} in {period}"
            )

        moved = await self.accrual_repo.transition(
            record.id, AccrualStatus.PENDING, AccrualStatus.PROCESSING
        )
        if not moved:
            raise InvariantViolation(
                f"Accrual record {record.id} left PENDING concurrently"
            )

        shares: list[DepositShare] = [
            plan_deposit_share(
                deposit.id,
                deposit.amount,
                deposit.total_earnings,
                deposit.months_active,
            )
            for deposit in eligible
        ]
        base_amount, accrual_amount = verify_accrual_total(shares)

        now = utc_now()
        completed: list[str] = []

        for share in shares:
            updated = await self.deposit_repo.apply_accrual(
                share.deposit_id,
                expected_months=share.months_before,
                total_earnings=share.total_after,
                now=now,
                complete=share.completes,
            )
            if not updated:
                raise InvariantViolation(
                    f"Deposit {share.deposit_id} changed during accrual"
                )

            if share.completes:
                completed.append(share.deposit_id)

        if accrual_amount > ZERO:
            await self.ledger.credit(
                user_id,
                LedgerBucket.PERIODIC_INCOME,
                accrual_amount,
                reference_type=ReferenceType.ACCRUAL.value,
                reference_id=str(record.id),
                description=f"Periodic income {period}",
            )

        finished = await self.accrual_repo.transition(
            record.id,
            AccrualStatus.PROCESSING,
            AccrualStatus.COMPLETED,
            base_amount=base_amount,
            accrual_amount=accrual_amount,
            rate=MONTHLY_ACCRUAL_RATE,
            deposit_count=len(shares),
            batch_id=batch_id,
            processed_at=now,
        )
        if not finished:
            raise InvariantViolation(
                f"Accrual record {record.id} left PROCESSING concurrently"
            )

        return UserAccrualOutcome(
            user_id=user_id,
            record_id=record.id,
            base_amount=base_amount,
            accrual_amount=accrual_amount,
            deposit_count=len(shares),
            completed_deposits=completed,
            retried=retried,
        )

    async def record_failure(
        self, user_id: str, period: str, batch_id: str, reason: str
    ) -> AccrualRecord:
        """
        Persist a FAILED record with its reason.

        Called in a fresh transaction after the unit was rolled back.
        """
        reason = reason[:2000]
        record = await self.accrual_repo.get_for_user_period(
            user_id, period, for_update=True
        )

        if record is None:
            record = await self.accrual_repo.try_insert(
                user_id=user_id,
                period=period,
                base_amount=ZERO,
                accrual_amount=ZERO,
                rate=MONTHLY_ACCRUAL_RATE,
                deposit_count=0,
                status=AccrualStatus.FAILED.value,
                batch_id=batch_id,
                failure_reason=reason,
            )
            if record is None:
                raise DuplicateError(
                    f"Accrual for {user_id} in {period} created concurrently"
                )
            return record

        if record.status == AccrualStatus.FAILED:
            record.failure_reason = reason
            record.batch_id = batch_id
            await self.session.flush()
            return record

        record.ensure_transition(AccrualStatus.FAILED)
        await self.accrual_repo.transition(
            record.id,
            (AccrualStatus.PENDING, AccrualStatus.PROCESSING),
            AccrualStatus.FAILED,
            failure_reason=reason,
            batch_id=batch_id,
        )
        return record
