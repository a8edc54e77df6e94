"""
Genealogy repository.

Data access layer for GenealogyNode and DirectReferral models.
"""

from decimal import Decimal

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import MAX_TREE_DEPTH, ZERO
from yieldcycle.models.genealogy_node import (
    ANCESTOR_LEVELS,
    DirectReferral,
    GenealogyNode,
)
from yieldcycle.repositories.base import BaseRepository
from yieldcycle.utils.datetime_utils import utc_now
from yieldcycle.utils.exceptions import InvariantViolation, NotFound
from yieldcycle.utils.money import round_money


class GenealogyRepository(BaseRepository[GenealogyNode]):
    """Genealogy repository with tree-specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize genealogy repository."""
        super().__init__(GenealogyNode, session)

    def _ancestor_column(self, level: int):
        return getattr(GenealogyNode, f"ancestor_level_{level}")

    async def get_node(
        self, user_id: str, for_update: bool = False
    ) -> GenealogyNode | None:
        """Get node by user id."""
        return await self.get_by_id(user_id, for_update=for_update)

    async def get_ancestor_cache(
        self, user_id: str
    ) -> list[tuple[int, str]] | None:
        """
        Read the upline cache of a node with a single column query.

        Args:
            user_id: User id

        Returns:
            Ordered (level, ancestor_id) pairs, or None if node is missing
        """
        stmt = select(
            *(self._ancestor_column(k) for k in ANCESTOR_LEVELS)
        ).where(GenealogyNode.user_id == user_id)

        result = await self.session.execute(stmt)
        row = result.first()
        if row is None:
            return None

        return [
            (level, ancestor_id)
            for level, ancestor_id in zip(ANCESTOR_LEVELS, row, strict=True)
            if ancestor_id is not None
        ]

    async def get_nodes(self, user_ids: list[str]) -> list[GenealogyNode]:
        """Get nodes for a set of user ids."""
        if not user_ids:
            return []
        stmt = select(GenealogyNode).where(GenealogyNode.user_id.in_(user_ids))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def insert_direct_referral(
        self, parent_user_id: str, child_user_id: str
    ) -> bool:
        """
        Insert a (parent, child) link if the child has none.

        Runs in a savepoint so a concurrent duplicate only rolls back the
        insert, not the caller's transaction.

        Returns:
            True if the link was created, False if it already existed
        """
        try:
            async with self.session.begin_nested():
                self.session.add(
                    DirectReferral(
                        parent_user_id=parent_user_id,
                        child_user_id=child_user_id,
                    )
                )
        except IntegrityError:
            return False
        return True

    async def get_referral_link(
        self, child_user_id: str
    ) -> DirectReferral | None:
        """Get the referral link of a child."""
        stmt = select(DirectReferral).where(
            DirectReferral.child_user_id == child_user_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_referral_parents(
        self, child_user_ids: list[str]
    ) -> dict[str, str]:
        """Map each linked child to its parent in one query."""
        if not child_user_ids:
            return {}
        stmt = select(
            DirectReferral.child_user_id, DirectReferral.parent_user_id
        ).where(DirectReferral.child_user_id.in_(child_user_ids))
        result = await self.session.execute(stmt)
        return {child: parent for child, parent in result.all()}

    async def get_direct_referral_ids(self, parent_user_id: str) -> list[str]:
        """Get direct referral user ids, oldest first."""
        stmt = (
            select(DirectReferral.child_user_id)
            .where(DirectReferral.parent_user_id == parent_user_id)
            .order_by(DirectReferral.created_at, DirectReferral.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def apply_team_delta(
        self,
        user_id: str,
        volume_delta: Decimal = ZERO,
        team_size_delta: int = 0,
        commission_delta: Decimal = ZERO,
    ) -> None:
        """
        Atomically adjust team aggregates in place.

        The update is guarded so no aggregate can go negative.

        Raises:
            NotFound: If node does not exist
            InvariantViolation: If an aggregate would go negative
        """
        stmt = (
            update(GenealogyNode)
            .where(
                GenealogyNode.user_id == user_id,
                GenealogyNode.total_team_volume + volume_delta >= 0,
                GenealogyNode.total_team_size + team_size_delta >= 0,
                GenealogyNode.commission_earned + commission_delta >= 0,
            )
            .values(
                total_team_volume=GenealogyNode.total_team_volume + volume_delta,
                total_team_size=GenealogyNode.total_team_size + team_size_delta,
                commission_earned=GenealogyNode.commission_earned + commission_delta,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        if result.rowcount == 0:
            if not await self.exists(user_id=user_id):
                raise NotFound(f"Genealogy node {user_id} not found")
            raise InvariantViolation(
                f"Team delta for {user_id} would make an aggregate negative "
                f"(volume={volume_delta}, size={team_size_delta}, "
                f"commission={commission_delta})"
            )

    async def get_descendants_at_level(
        self, user_id: str, level: int, include_archived: bool = False
    ) -> list[GenealogyNode]:
        """
        Get descendants exactly ``level`` steps below user.

        Args:
            user_id: Upline user id
            level: Distance (1..5)
            include_archived: Include archived nodes

        Returns:
            Nodes ordered by creation time
        """
        stmt = select(GenealogyNode).where(
            self._ancestor_column(level) == user_id
        )
        if not include_archived:
            stmt = stmt.where(GenealogyNode.is_archived.is_(False))
        stmt = stmt.order_by(GenealogyNode.created_at, GenealogyNode.user_id)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_descendants(self, user_id: str) -> int:
        """Count nodes having user anywhere in their cached upline."""
        stmt = select(func.count()).select_from(GenealogyNode).where(
            or_(
                *(self._ancestor_column(k) == user_id for k in ANCESTOR_LEVELS)
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def archive(self, user_id: str) -> bool:
        """
        Mark node archived.

        Returns:
            True if the node was archived now, False if it already was
        """
        stmt = (
            update(GenealogyNode)
            .where(
                GenealogyNode.user_id == user_id,
                GenealogyNode.is_archived.is_(False),
            )
            .values(is_archived=True, archived_at=utc_now(), updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def get_tree_nodes(self, root_user_id: str | None = None) -> list[GenealogyNode]:
        """
        Get all nodes, or a subtree (root plus every cached descendant).

        Args:
            root_user_id: Subtree root (None for the whole network)

        Returns:
            Nodes ordered by level
        """
        stmt = select(GenealogyNode)
        if root_user_id is not None:
            stmt = stmt.where(
                or_(
                    GenealogyNode.user_id == root_user_id,
                    *(
                        self._ancestor_column(k) == root_user_id
                        for k in ANCESTOR_LEVELS
                    ),
                )
            )
        stmt = stmt.order_by(GenealogyNode.level, GenealogyNode.user_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_top_performers(self, limit: int) -> list[GenealogyNode]:
        """Get active nodes with the highest team volume."""
        stmt = (
            select(GenealogyNode)
            .where(GenealogyNode.is_archived.is_(False))
            .order_by(
                GenealogyNode.total_team_volume.desc(),
                GenealogyNode.total_team_size.desc(),
                GenealogyNode.user_id,
            )
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_level_distribution(self) -> dict[int, int]:
        """
        Get node counts per tree level in a single query.

        Returns:
            Dict mapping level to count, all levels 0..5 present
        """
        stmt = (
            select(GenealogyNode.level, func.count().label("count"))
            .group_by(GenealogyNode.level)
        )
        result = await self.session.execute(stmt)

        distribution = {level: 0 for level in range(MAX_TREE_DEPTH + 1)}
        for row in result.all():
            distribution[row.level] = row.count
        return distribution

    async def get_network_totals(self) -> dict[str, int | Decimal]:
        """Aggregate node count, team volume and commissions network-wide."""
        stmt = select(
            func.count().label("total_nodes"),
            func.coalesce(
                func.sum(GenealogyNode.total_team_volume), ZERO
            ).label("total_team_volume"),
            func.coalesce(
                func.sum(GenealogyNode.commission_earned), ZERO
            ).label("total_commission_earned"),
            func.count()
            .filter(GenealogyNode.is_archived.is_(True))
            .label("archived_nodes"),
        ).select_from(GenealogyNode)

        result = await self.session.execute(stmt)
        row = result.one()
        return {
            "total_nodes": row.total_nodes or 0,
            "total_team_volume": round_money(row.total_team_volume or 0),
            "total_commission_earned": round_money(row.total_commission_earned or 0),
            "archived_nodes": int(row.archived_nodes or 0),
        }
