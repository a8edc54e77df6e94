"""
Deposit repository.

Data access layer for Deposit model.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import MAX_ACCRUAL_PERIODS, ZERO
from yieldcycle.models.deposit import Deposit
from yieldcycle.models.enums import DepositStatus
from yieldcycle.repositories.base import BaseRepository
from yieldcycle.utils.datetime_utils import utc_now
from yieldcycle.utils.money import round_money


class DepositRepository(BaseRepository[Deposit]):
    """Deposit repository with accrual-specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize deposit repository."""
        super().__init__(Deposit, session)

    async def get_eligible_for_accrual(self) -> list[Deposit]:
        """
        Get ACTIVE deposits that have not reached the period cap.

        Returns:
            Deposits ordered by user and id
        """
        stmt = (
            select(Deposit)
            .where(
                Deposit.status == DepositStatus.ACTIVE.value,
                Deposit.months_active < MAX_ACCRUAL_PERIODS,
            )
            .order_by(Deposit.user_id, Deposit.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_ids(
        self, deposit_ids: Iterable[str], for_update: bool = False
    ) -> list[Deposit]:
        """Get deposits by id, optionally locking the rows."""
        ids = list(deposit_ids)
        if not ids:
            return []
        stmt = select(Deposit).where(Deposit.id.in_(ids)).order_by(Deposit.id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_user_deposits(
        self, user_id: str, status: str | None = None
    ) -> list[Deposit]:
        """Get deposits of a user, oldest first."""
        stmt = select(Deposit).where(Deposit.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Deposit.status == str(status))
        stmt = stmt.order_by(Deposit.created_at, Deposit.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def transition(
        self,
        deposit_id: str,
        expected: DepositStatus,
        target: DepositStatus,
        **values: Any,
    ) -> bool:
        """
        Move deposit from expected to target status atomically.

        Returns:
            True if this call performed the transition
        """
        stmt = (
            update(Deposit)
            .where(Deposit.id == deposit_id, Deposit.status == expected.value)
            .values(status=target.value, updated_at=utc_now(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def apply_accrual(
        self,
        deposit_id: str,
        expected_months: int,
        total_earnings: Decimal,
        now: datetime,
        complete: bool,
    ) -> bool:
        """
        Record one accrued period on a deposit.

        Guarded by status ACTIVE and the months_active value read under
        lock, so a period can never be applied twice to the same deposit.

        Args:
            deposit_id: Deposit id
            expected_months: months_active before this period
            total_earnings: New total earnings
            now: Accrual timestamp
            complete: Mark the deposit COMPLETED

        Returns:
            True if the deposit was updated
        """
        values: dict[str, Any] = {
            "months_active": expected_months + 1,
            "total_earnings": total_earnings,
            "last_income_at": now,
            "updated_at": now,
        }
        if complete:
            values["status"] = DepositStatus.COMPLETED.value
            values["completed_at"] = now

        stmt = (
            update(Deposit)
            .where(
                Deposit.id == deposit_id,
                Deposit.status == DepositStatus.ACTIVE.value,
                Deposit.months_active == expected_months,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def get_user_summary(self, user_id: str) -> dict[str, Any]:
        """
        Aggregate a user's deposits by status in a single query.

        Returns:
            Dict with per-status count/amount/earnings and overall totals
        """
        stmt = (
            select(
                Deposit.status,
                func.count(Deposit.id).label("count"),
                func.coalesce(func.sum(Deposit.amount), ZERO).label("amount"),
                func.coalesce(func.sum(Deposit.total_earnings), ZERO).label("earnings"),
            )
            .where(Deposit.user_id == user_id)
            .group_by(Deposit.status)
        )
        result = await self.session.execute(stmt)

        by_status = {
            status.value: {"count": 0, "amount": ZERO, "total_earnings": ZERO}
            for status in DepositStatus
        }
        for row in result.all():
            by_status[row.status] = {
                "count": row.count,
                "amount": round_money(row.amount or 0),
                "total_earnings": round_money(row.earnings or 0),
            }

        return {
            "user_id": user_id,
            "total_deposits": sum(item["count"] for item in by_status.values()),
            "total_amount": sum(
                (item["amount"] for item in by_status.values()), ZERO
            ),
            "total_earnings": sum(
                (item["total_earnings"] for item in by_status.values()), ZERO
            ),
            "active_amount": by_status[DepositStatus.ACTIVE.value]["amount"],
            "by_status": by_status,
        }
