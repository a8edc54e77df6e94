"""
Commission lifecycle module.

Status transitions of single commission records and their ledger effects.
Runs inside the caller's transaction.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import ZERO
from yieldcycle.models.commission_record import CommissionRecord
from yieldcycle.models.enums import CommissionStatus, LedgerBucket, ReferenceType
from yieldcycle.repositories.commission_repository import CommissionRepository
from yieldcycle.services.genealogy.chain_manager import GenealogyChainManager
from yieldcycle.services.ledger_service import LedgerService
from yieldcycle.utils.datetime_utils import utc_now
from yieldcycle.utils.exceptions import NotFound
from yieldcycle.utils.money import round_money


class CommissionLifecycle:
    """
    Moves commission records through their lifecycle.

    Every transition is a conditional update on the current status, so
    two workers racing on the same record cannot both apply it.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize lifecycle manager."""
        self.session = session
        self.commission_repo = CommissionRepository(session)
        self.ledger = LedgerService(session)
        self.chain_manager = GenealogyChainManager(session)

    async def get_record(self, record_id: int) -> CommissionRecord:
        """
        Get record.

        Raises:
            NotFound: If record is missing
        """
        record = await self.commission_repo.get_by_id(record_id)
        if record is None:
            raise NotFound(f"Commission record {record_id} not found")
        return record

    async def _transition(
        self,
        record: CommissionRecord,
        target: CommissionStatus,
        **stamps,
    ) -> bool:
        """Validate and apply a transition from the record's current status."""
        record.ensure_transition(target)
        return await self.commission_repo.transition(
            record.id, CommissionStatus(record.status), target, **stamps
        )

    async def process(self, record: CommissionRecord) -> bool:
        """
        PENDING -> PROCESSED and credit the recipient.

        Returns:
            True if this call processed the record, False if another
            worker already moved it
        """
        if record.status != CommissionStatus.PENDING:
            return False

        moved = await self.commission_repo.transition(
            record.id,
            CommissionStatus.PENDING,
            CommissionStatus.PROCESSED,
            processed_at=utc_now(),
        )
        if not moved:
            return False

        amount = round_money(record.amount)
        if amount > ZERO:
            await self.ledger.credit(
                record.recipient_user_id,
                LedgerBucket.COMMISSION,
                amount,
                reference_type=ReferenceType.COMMISSION.value,
                reference_id=str(record.id),
                description=(
                    f"Level {record.level} commission from "
                    f"{record.source_user_id}"
                ),
            )
            await self.chain_manager.apply_team_delta(
                record.recipient_user_id, commission_delta=amount
            )
        return True

    async def mark_paid(self, record: CommissionRecord) -> bool:
        """PROCESSED -> PAID (terminal)."""
        return await self._transition(
            record, CommissionStatus.PAID, paid_at=utc_now()
        )

    async def _rollback_credit(self, record: CommissionRecord) -> None:
        amount = round_money(record.amount)
        if amount <= ZERO:
            return
        await self.ledger.debit(
            record.recipient_user_id,
            LedgerBucket.COMMISSION,
            amount,
            reference_type=ReferenceType.COMMISSION_REVERSAL.value,
            reference_id=str(record.id),
            description=f"Reversal of level {record.level} commission",
        )
        await self.chain_manager.apply_team_delta(
            record.recipient_user_id, commission_delta=-amount
        )

    async def reverse(self, record: CommissionRecord) -> bool:
        """
        PROCESSED -> PENDING with the ledger credit rolled back.

        Raises:
            InvalidStatusTransition: If record is not PROCESSED
            InsufficientBalance: If the credit was already spent
        """
        moved = await self._transition(
            record, CommissionStatus.PENDING, processed_at=None
        )
        if moved:
            await self._rollback_credit(record)
            logger.warning(
                "Commission reversed",
                extra={
                    "record_id": record.id,
                    "recipient": record.recipient_user_id,
                    "amount": str(record.amount),
                },
            )
        return moved

    async def cancel(self, record: CommissionRecord) -> bool:
        """
        PENDING/PROCESSED -> CANCELLED. A processed record's credit is
        rolled back.

        Raises:
            InvalidStatusTransition: If record is PAID or CANCELLED
        """
        was_credited = record.is_credited

        moved = await self._transition(
            record, CommissionStatus.CANCELLED, cancelled_at=utc_now()
        )
        if moved and was_credited:
            await self._rollback_credit(record)
        if moved:
            logger.warning(
                "Commission cancelled",
                extra={
                    "record_id": record.id,
                    "recipient": record.recipient_user_id,
                    "was_credited": was_credited,
                },
            )
        return moved
