"""
Genealogy service.

Transactional entry points for the referral tree. Mutating methods commit
their own unit of work and roll back on any error.
"""

from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import ZERO
from yieldcycle.config.operational_constants import TOP_PERFORMERS_LIMIT
from yieldcycle.models.genealogy_node import GenealogyNode
from yieldcycle.services.genealogy.chain_manager import GenealogyChainManager
from yieldcycle.services.genealogy.integrity import (
    TreeIntegrityReport,
    TreeIntegrityValidator,
)
from yieldcycle.services.genealogy.statistics import GenealogyStatisticsManager
from yieldcycle.services.ledger_service import LedgerService
from yieldcycle.utils.db_decorators import with_rollback_on_error
from yieldcycle.utils.validation import validate_identifier


class GenealogyService:
    """Referral tree operations."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize genealogy service.

        Args:
            session: Async database session
        """
        self.session = session
        self.chain_manager = GenealogyChainManager(session)
        self.statistics = GenealogyStatisticsManager(session)
        self.integrity = TreeIntegrityValidator(session)
        self.ledger = LedgerService(session)

    @with_rollback_on_error
    async def onboard_user(
        self, user_id: str, referrer_id: str | None = None
    ) -> GenealogyNode:
        """
        Register a user in the tree and initialize its ledger.

        Node creation, referral link and ledger rows are one transaction.

        Args:
            user_id: New user id
            referrer_id: Direct referrer (None creates a root)

        Returns:
            Created node

        Raises:
            DuplicateError: User already registered
            NotFound: Referrer not registered
            DepthExceeded: Referrer is at maximum depth
        """
        user_id = validate_identifier(user_id)

        if referrer_id is None:
            node = await self.chain_manager.create_root(user_id)
        else:
            referrer_id = validate_identifier(referrer_id, "referrer_id")
            parent = await self.chain_manager.get_node(referrer_id)
            node = await self.chain_manager.create_child(user_id, parent)
            await self.chain_manager.add_direct_referral(referrer_id, user_id)

        await self.ledger.initialize_user(user_id)
        await self.session.commit()

        logger.info(
            "User onboarded",
            extra={
                "user_id": user_id,
                "referrer_id": referrer_id,
                "level": node.level,
            },
        )
        return node

    @with_rollback_on_error
    async def create_root(self, user_id: str) -> GenealogyNode:
        """Create a root node."""
        node = await self.chain_manager.create_root(user_id)
        await self.session.commit()
        return node

    @with_rollback_on_error
    async def create_child(
        self, user_id: str, parent_user_id: str
    ) -> GenealogyNode:
        """Create a node under an existing parent."""
        parent = await self.chain_manager.get_node(parent_user_id)
        node = await self.chain_manager.create_child(user_id, parent)
        await self.session.commit()
        return node

    @with_rollback_on_error
    async def add_direct_referral(
        self, parent_user_id: str, child_user_id: str
    ) -> bool:
        """Link child to parent (idempotent)."""
        created = await self.chain_manager.add_direct_referral(
            parent_user_id, child_user_id
        )
        await self.session.commit()
        return created

    @with_rollback_on_error
    async def apply_team_delta(
        self,
        user_id: str,
        volume_delta: Decimal | int | str = ZERO,
        team_size_delta: int = 0,
        commission_delta: Decimal | int | str = ZERO,
    ) -> None:
        """Adjust team aggregates atomically."""
        await self.chain_manager.apply_team_delta(
            user_id,
            volume_delta=volume_delta,
            team_size_delta=team_size_delta,
            commission_delta=commission_delta,
        )
        await self.session.commit()

    @with_rollback_on_error
    async def archive_node(self, user_id: str) -> bool:
        """Soft-archive a node."""
        archived = await self.chain_manager.archive_node(user_id)
        await self.session.commit()
        return archived

    async def get_node(self, user_id: str) -> GenealogyNode:
        """Get node (NotFound if missing)."""
        return await self.chain_manager.get_node(user_id)

    async def get_ancestors(self, user_id: str) -> list[tuple[int, str]]:
        """Get upline (level, user_id) pairs."""
        return await self.chain_manager.get_ancestors(user_id)

    async def get_direct_referrals(self, user_id: str) -> list[str]:
        """Get direct referral user ids."""
        return await self.chain_manager.get_direct_referrals(user_id)

    async def get_referrals_by_level(
        self, user_id: str, level: int
    ) -> list[GenealogyNode]:
        """Get descendants at distance ``level``."""
        return await self.chain_manager.get_referrals_by_level(user_id, level)

    async def validate_tree_integrity(
        self, user_id: str | None = None
    ) -> TreeIntegrityReport:
        """Check cache, path and level consistency."""
        return await self.integrity.validate(user_id)

    async def get_top_performers(
        self, limit: int = TOP_PERFORMERS_LIMIT
    ) -> list[dict[str, Any]]:
        """Leaderboard by team volume."""
        return await self.statistics.get_top_performers(limit)

    async def get_user_team_stats(self, user_id: str) -> dict[str, Any]:
        """Team statistics of one user."""
        return await self.statistics.get_user_team_stats(user_id)
