"""
Commission repository.

Data access layer for CommissionRecord model.
"""

from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import COMMISSION_DEPTH, ZERO
from yieldcycle.models.commission_record import CommissionRecord
from yieldcycle.models.enums import CommissionStatus
from yieldcycle.repositories.base import BaseRepository
from yieldcycle.utils.datetime_utils import utc_now
from yieldcycle.utils.money import round_money


class CommissionRepository(BaseRepository[CommissionRecord]):
    """Commission repository with distribution-specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission repository."""
        super().__init__(CommissionRecord, session)

    async def try_insert(self, **data: Any) -> CommissionRecord | None:
        """
        Insert a commission record unless one exists for (deposit, level).

        Runs in a savepoint so the unique-constraint hit leaves the outer
        transaction usable.

        Returns:
            Created record, or None if it already existed
        """
        record = CommissionRecord(**data)
        try:
            async with self.session.begin_nested():
                self.session.add(record)
        except IntegrityError:
            return None
        return record

    async def get_for_deposit(
        self, source_deposit_id: str
    ) -> list[CommissionRecord]:
        """Get all records of one source deposit ordered by level."""
        stmt = (
            select(CommissionRecord)
            .where(CommissionRecord.source_deposit_id == source_deposit_id)
            .order_by(CommissionRecord.level)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_batch(
        self, batch_id: str, status: str | None = None
    ) -> list[CommissionRecord]:
        """Get records of a distribution batch, optionally by status."""
        stmt = select(CommissionRecord).where(
            CommissionRecord.distribution_batch_id == batch_id
        )
        if status is not None:
            stmt = stmt.where(CommissionRecord.status == str(status))
        stmt = stmt.order_by(CommissionRecord.level)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def has_other_deposit_from_source(
        self, source_user_id: str, source_deposit_id: str
    ) -> bool:
        """
        Check if the depositor already triggered commissions from another
        deposit (i.e. is already counted in upline team sizes).
        """
        stmt = (
            select(CommissionRecord.id)
            .where(
                CommissionRecord.source_user_id == source_user_id,
                CommissionRecord.source_deposit_id != source_deposit_id,
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def transition(
        self,
        record_id: int,
        expected: CommissionStatus,
        target: CommissionStatus,
        **stamps: Any,
    ) -> bool:
        """
        Move a record from expected to target status atomically.

        Args:
            record_id: Record id
            expected: Status the record must currently have
            target: New status
            **stamps: Extra columns to set (processed_at, paid_at, ...)

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(CommissionRecord)
            .where(
                CommissionRecord.id == record_id,
                CommissionRecord.status == expected.value,
            )
            .values(status=target.value, updated_at=utc_now(), **stamps)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def get_history(
        self,
        recipient_user_id: str,
        status: str | None = None,
        limit: int = 100,
    ) -> list[CommissionRecord]:
        """Get commissions received by a user, newest first."""
        stmt = select(CommissionRecord).where(
            CommissionRecord.recipient_user_id == recipient_user_id
        )
        if status is not None:
            stmt = stmt.where(CommissionRecord.status == str(status))
        stmt = stmt.order_by(
            CommissionRecord.created_at.desc(), CommissionRecord.id.desc()
        ).limit(limit)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_recipient_summary(
        self, recipient_user_id: str
    ) -> dict[str, dict]:
        """
        Get commission totals grouped by status and by level in two queries.

        Returns:
            {
                "by_status": {"processed": {"count": 2, "total": Decimal(...)}, ...},
                "by_level": {1: {"count": 1, "total": Decimal(...)}, ...},
            }
        """
        by_status_stmt = (
            select(
                CommissionRecord.status,
                func.count(CommissionRecord.id).label("count"),
                func.coalesce(func.sum(CommissionRecord.amount), ZERO).label("total"),
            )
            .where(CommissionRecord.recipient_user_id == recipient_user_id)
            .group_by(CommissionRecord.status)
        )
        by_level_stmt = (
            select(
                CommissionRecord.level,
                func.count(CommissionRecord.id).label("count"),
                func.coalesce(func.sum(CommissionRecord.amount), ZERO).label("total"),
            )
            .where(
                CommissionRecord.recipient_user_id == recipient_user_id,
                CommissionRecord.status != CommissionStatus.CANCELLED.value,
            )
            .group_by(CommissionRecord.level)
        )

        by_status = {
            status.value: {"count": 0, "total": ZERO}
            for status in CommissionStatus
        }
        for row in (await self.session.execute(by_status_stmt)).all():
            by_status[row.status] = {
                "count": row.count,
                "total": round_money(row.total or 0),
            }

        by_level = {
            level: {"count": 0, "total": ZERO}
            for level in range(1, COMMISSION_DEPTH + 1)
        }
        for row in (await self.session.execute(by_level_stmt)).all():
            by_level[row.level] = {
                "count": row.count,
                "total": round_money(row.total or 0),
            }

        return {"by_status": by_status, "by_level": by_level}

    async def sum_for_deposit(self, source_deposit_id: str) -> Decimal:
        """Sum of non-cancelled commission amounts for a deposit."""
        stmt = select(
            func.coalesce(func.sum(CommissionRecord.amount), ZERO)
        ).where(
            CommissionRecord.source_deposit_id == source_deposit_id,
            CommissionRecord.status != CommissionStatus.CANCELLED.value,
        )
        result = await self.session.execute(stmt)
        return round_money(result.scalar() or 0)
