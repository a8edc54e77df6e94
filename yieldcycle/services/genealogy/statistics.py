"""
Genealogy statistics module.

Network-wide and per-user team statistics.
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import MAX_TREE_DEPTH, ZERO
from yieldcycle.config.operational_constants import TOP_PERFORMERS_LIMIT
from yieldcycle.repositories.genealogy_repository import GenealogyRepository
from yieldcycle.utils.exceptions import NotFound
from yieldcycle.utils.money import round_money


class GenealogyStatisticsManager:
    """Manages team statistics and leaderboards."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize statistics manager."""
        self.session = session
        self.genealogy_repo = GenealogyRepository(session)

    async def get_top_performers(
        self, limit: int = TOP_PERFORMERS_LIMIT
    ) -> list[dict[str, Any]]:
        """
        Get leaderboard by team volume.

        Args:
            limit: Number of nodes to return

        Returns:
            List of ranked dicts
        """
        nodes = await self.genealogy_repo.get_top_performers(limit)
        return [
            {
                "rank": idx,
                "user_id": node.user_id,
                "level": node.level,
                "total_team_size": node.total_team_size,
                "total_team_volume": round_money(node.total_team_volume),
                "commission_earned": round_money(node.commission_earned),
            }
            for idx, node in enumerate(nodes, 1)
        ]

    async def get_team_statistics(
        self, top_limit: int = TOP_PERFORMERS_LIMIT
    ) -> dict[str, Any]:
        """
        Get network-wide statistics.

        Returns:
            Dict with node count, level distribution, volume and commission
            totals, average team volume and top performers
        """
        totals = await self.genealogy_repo.get_network_totals()
        distribution = await self.genealogy_repo.get_level_distribution()
        top = await self.get_top_performers(top_limit)

        total_nodes = totals["total_nodes"]
        average_volume = (
            round_money(totals["total_team_volume"] / total_nodes)
            if total_nodes
            else ZERO
        )

        return {
            "total_nodes": total_nodes,
            "archived_nodes": totals["archived_nodes"],
            "root_nodes": distribution.get(0, 0),
            "level_distribution": distribution,
            "total_team_volume": totals["total_team_volume"],
            "total_commission_earned": totals["total_commission_earned"],
            "average_team_volume": average_volume,
            "top_performers": top,
        }

    async def get_user_team_stats(self, user_id: str) -> dict[str, Any]:
        """
        Get team statistics of one user.

        Raises:
            NotFound: If node is missing
        """
        node = await self.genealogy_repo.get_node(user_id)
        if node is None:
            raise NotFound(f"Genealogy node {user_id} not found")

        by_level: dict[int, int] = {}
        for level in range(1, MAX_TREE_DEPTH + 1):
            by_level[level] = len(
                await self.genealogy_repo.get_descendants_at_level(user_id, level)
            )

        direct = await self.genealogy_repo.get_direct_referral_ids(user_id)

        return {
            "user_id": user_id,
            "level": node.level,
            "direct_referrals": len(direct),
            "referrals_by_level": by_level,
            "total_team_size": node.total_team_size,
            "total_team_volume": round_money(node.total_team_volume),
            "commission_earned": round_money(node.commission_earned),
            "downline_nodes": await self.genealogy_repo.count_descendants(user_id),
        }
