"""
Ledger query service.

Read-only views over the genealogy, ledger, commissions, accruals and
deposits.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.operational_constants import (
    DEFAULT_HISTORY_LIMIT,
    TOP_PERFORMERS_LIMIT,
)
from yieldcycle.models.accrual_record import AccrualRecord
from yieldcycle.models.commission_record import CommissionRecord
from yieldcycle.repositories.accrual_repository import AccrualRepository
from yieldcycle.repositories.commission_repository import CommissionRepository
from yieldcycle.repositories.deposit_repository import DepositRepository
from yieldcycle.services.genealogy.chain_manager import GenealogyChainManager
from yieldcycle.services.genealogy.statistics import GenealogyStatisticsManager
from yieldcycle.services.ledger_service import LedgerService, LedgerSummary
from yieldcycle.utils.money import round_money
from yieldcycle.utils.validation import validate_period


class LedgerQueryService:
    """Read-only query surface."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize query service."""
        self.session = session
        self.chain_manager = GenealogyChainManager(session)
        self.statistics = GenealogyStatisticsManager(session)
        self.ledger = LedgerService(session)
        self.commission_repo = CommissionRepository(session)
        self.accrual_repo = AccrualRepository(session)
        self.deposit_repo = DepositRepository(session)

    async def get_genealogy(self, user_id: str) -> dict[str, Any]:
        """
        Get a user's position in the tree.

        Returns:
            Node fields, upline, direct referrals and per-level counts

        Raises:
            NotFound: If node is missing
        """
        node = await self.chain_manager.get_node(user_id)
        team = await self.statistics.get_user_team_stats(user_id)

        return {
            "user_id": node.user_id,
            "parent_user_id": node.parent_user_id,
            "level": node.level,
            "path": node.path,
            "is_archived": node.is_archived,
            "ancestors": node.ancestors(),
            "direct_referrals": await self.chain_manager.get_direct_referrals(
                user_id
            ),
            "referrals_by_level": team["referrals_by_level"],
            "total_team_size": node.total_team_size,
            "total_team_volume": round_money(node.total_team_volume),
            "commission_earned": round_money(node.commission_earned),
            "created_at": node.created_at,
        }

    async def get_ledger_summary(self, user_id: str) -> LedgerSummary:
        """All four bucket balances of a user."""
        return await self.ledger.get_summary(user_id)

    async def get_commission_history(
        self,
        user_id: str,
        status: str | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> list[CommissionRecord]:
        """Commissions received by a user, newest first."""
        return await self.commission_repo.get_history(user_id, status, limit)

    async def get_accrual_history(
        self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[AccrualRecord]:
        """Accrual records of a user, newest period first."""
        return await self.accrual_repo.get_history(user_id, limit)

    async def get_team_statistics(
        self, top_limit: int = TOP_PERFORMERS_LIMIT
    ) -> dict[str, Any]:
        """Network-wide team statistics."""
        return await self.statistics.get_team_statistics(top_limit)

    async def get_commission_summary(self, user_id: str) -> dict[str, Any]:
        """Commission totals of a user by status and by level."""
        summary = await self.commission_repo.get_recipient_summary(user_id)
        return {"user_id": user_id, **summary}

    async def get_period_summary(self, period: str) -> dict[str, Any]:
        """Accrual distribution summary of one period."""
        return await self.accrual_repo.get_period_summary(validate_period(period))

    async def get_deposit_summary(self, user_id: str) -> dict[str, Any]:
        """
        Deposit totals of a user plus per-deposit progress.

        Returns:
            Totals by status and a list of deposits with remaining months,
            projected return, remaining earnings and progress percent
        """
        summary = await self.deposit_repo.get_user_summary(user_id)
        deposits = await self.deposit_repo.get_user_deposits(user_id)

        summary["deposits"] = [
            {
                "deposit_id": deposit.id,
                "amount": round_money(deposit.amount),
                "status": deposit.status,
                "months_active": deposit.months_active,
                "remaining_months": deposit.remaining_months,
                "total_earnings": round_money(deposit.total_earnings),
                "projected_total_return": deposit.projected_total_return,
                "remaining_earnings": deposit.remaining_earnings,
                "earning_progress": deposit.earning_progress,
            }
            for deposit in deposits
        ]
        return summary
