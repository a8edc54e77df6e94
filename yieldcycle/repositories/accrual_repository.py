"""
Accrual repository.

Data access layer for AccrualRecord model.
"""

from collections.abc import Iterable
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import ZERO
from yieldcycle.models.accrual_record import AccrualRecord
from yieldcycle.models.enums import AccrualStatus
from yieldcycle.repositories.base import BaseRepository
from yieldcycle.utils.datetime_utils import utc_now
from yieldcycle.utils.money import round_money


class AccrualRepository(BaseRepository[AccrualRecord]):
    """Accrual repository with period-specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize accrual repository."""
        super().__init__(AccrualRecord, session)

    async def get_for_user_period(
        self, user_id: str, period: str, for_update: bool = False
    ) -> AccrualRecord | None:
        """Get the record of (user, period)."""
        stmt = select(AccrualRecord).where(
            AccrualRecord.user_id == user_id,
            AccrualRecord.period == period,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def try_insert(self, **data: Any) -> AccrualRecord | None:
        """
        Insert a record unless (user, period) already exists.

        Returns:
            Created record, or None on a unique-constraint hit
        """
        record = AccrualRecord(**data)
        try:
            async with self.session.begin_nested():
                self.session.add(record)
        except IntegrityError:
            return None
        return record

    async def transition(
        self,
        record_id: int,
        expected: AccrualStatus | Iterable[AccrualStatus],
        target: AccrualStatus,
        **values: Any,
    ) -> bool:
        """
        Move a record to target status if it currently has an expected one.

        Returns:
            True if this call performed the transition
        """
        if isinstance(expected, AccrualStatus):
            expected = (expected,)
        expected_values = [status.value for status in expected]

        stmt = (
            update(AccrualRecord)
            .where(
                AccrualRecord.id == record_id,
                AccrualRecord.status.in_(expected_values),
            )
            .values(status=target.value, updated_at=utc_now(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def get_by_period(
        self, period: str, status: str | None = None
    ) -> list[AccrualRecord]:
        """Get records of a period, optionally by status."""
        stmt = select(AccrualRecord).where(AccrualRecord.period == period)
        if status is not None:
            stmt = stmt.where(AccrualRecord.status == str(status))
        stmt = stmt.order_by(AccrualRecord.user_id)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_history(
        self, user_id: str, limit: int = 100
    ) -> list[AccrualRecord]:
        """Get accrual records of a user, newest period first."""
        stmt = (
            select(AccrualRecord)
            .where(AccrualRecord.user_id == user_id)
            .order_by(AccrualRecord.period.desc(), AccrualRecord.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_period_summary(self, period: str) -> dict[str, Any]:
        """
        Aggregate one period by status in a single query.

        Returns:
            Dict with per-status counts/totals and overall totals
        """
        stmt = (
            select(
                AccrualRecord.status,
                func.count(AccrualRecord.id).label("count"),
                func.coalesce(func.sum(AccrualRecord.base_amount), ZERO).label("base"),
                func.coalesce(func.sum(AccrualRecord.accrual_amount), ZERO).label("amount"),
            )
            .where(AccrualRecord.period == period)
            .group_by(AccrualRecord.status)
        )
        result = await self.session.execute(stmt)

        by_status = {
            status.value: {"count": 0, "base_amount": ZERO, "accrual_amount": ZERO}
            for status in AccrualStatus
        }
        for row in result.all():
            by_status[row.status] = {
                "count": row.count,
                "base_amount": round_money(row.base or 0),
                "accrual_amount": round_money(row.amount or 0),
            }

        completed = by_status[AccrualStatus.COMPLETED.value]
        total_records = sum(item["count"] for item in by_status.values())
        average = (
            round_money(completed["accrual_amount"] / completed["count"])
            if completed["count"]
            else ZERO
        )

        return {
            "period": period,
            "total_records": total_records,
            "completed_users": completed["count"],
            "total_base_amount": completed["base_amount"],
            "total_accrued": completed["accrual_amount"],
            "average_accrual": average,
            "by_status": by_status,
        }

