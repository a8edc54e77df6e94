"""
Genealogy chain management module.

Handles node creation, referral links and team aggregate deltas.
Runs inside the caller's transaction.
"""

from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import MAX_TREE_DEPTH, ZERO
from yieldcycle.models.genealogy_node import GenealogyNode
from yieldcycle.repositories.genealogy_repository import GenealogyRepository
from yieldcycle.utils.exceptions import DuplicateError, NotFound, ValidationError
from yieldcycle.utils.money import to_money
from yieldcycle.utils.validation import validate_identifier


class GenealogyChainManager:
    """Manages referral tree structure operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize chain manager."""
        self.session = session
        self.genealogy_repo = GenealogyRepository(session)

    async def _insert_node(self, node: GenealogyNode) -> GenealogyNode:
        try:
            async with self.session.begin_nested():
                self.session.add(node)
        except IntegrityError as exc:
            raise DuplicateError(
                f"Genealogy node {node.user_id} already exists"
            ) from exc
        return node

    async def create_root(self, user_id: str) -> GenealogyNode:
        """
        Create a root node.

        Raises:
            DuplicateError: If user already has a node
        """
        user_id = validate_identifier(user_id)
        if await self.genealogy_repo.exists(user_id=user_id):
            raise DuplicateError(f"Genealogy node {user_id} already exists")

        node = await self._insert_node(GenealogyNode.create_root(user_id))

        logger.info("Genealogy root created", extra={"user_id": user_id})
        return node

    async def create_child(
        self, user_id: str, parent: GenealogyNode
    ) -> GenealogyNode:
        """
        Create a node under parent with derived level, path and cache.

        Args:
            user_id: New user id
            parent: Parent node

        Returns:
            Created node

        Raises:
            DepthExceeded: If parent is at maximum depth
            DuplicateError: If user already has a node
        """
        user_id = validate_identifier(user_id)
        node = GenealogyNode.create_child(user_id, parent)

        if await self.genealogy_repo.exists(user_id=user_id):
            raise DuplicateError(f"Genealogy node {user_id} already exists")

        node = await self._insert_node(node)

        logger.info(
            "Genealogy node created",
            extra={
                "user_id": user_id,
                "parent_user_id": parent.user_id,
                "level": node.level,
                "path": node.path,
            },
        )
        return node

    async def add_direct_referral(
        self, parent_user_id: str, child_user_id: str
    ) -> bool:
        """
        Link child to parent and count it in the parent's team size.

        Idempotent per pair: repeating the call changes nothing.

        Returns:
            True if the link was created by this call

        Raises:
            ValidationError: Self-referral, or child already linked elsewhere
                or placed under another parent
            NotFound: If either node is missing
        """
        if parent_user_id == child_user_id:
            raise ValidationError("A user cannot refer itself")

        child = await self.genealogy_repo.get_node(child_user_id)
        if child is None:
            raise NotFound(f"Genealogy node {child_user_id} not found")
        if not await self.genealogy_repo.exists(user_id=parent_user_id):
            raise NotFound(f"Genealogy node {parent_user_id} not found")
        if child.parent_user_id != parent_user_id:
            raise ValidationError(
                f"{child_user_id} is placed under {child.parent_user_id}, "
                f"not {parent_user_id}"
            )

        link = await self.genealogy_repo.get_referral_link(child_user_id)
        if link is not None:
            return False

        created = await self.genealogy_repo.insert_direct_referral(
            parent_user_id, child_user_id
        )
        if created:
            await self.genealogy_repo.apply_team_delta(
                parent_user_id, team_size_delta=1
            )
            logger.debug(
                "Direct referral added",
                extra={"parent": parent_user_id, "child": child_user_id},
            )
        return created

    async def apply_team_delta(
        self,
        user_id: str,
        volume_delta: Decimal | int | str = ZERO,
        team_size_delta: int = 0,
        commission_delta: Decimal | int | str = ZERO,
    ) -> None:
        """
        Adjust team aggregates with one atomic in-place update.

        Raises:
            NotFound: If node is missing
            InvariantViolation: If an aggregate would go negative
        """
        await self.genealogy_repo.apply_team_delta(
            user_id,
            volume_delta=to_money(volume_delta, "volume_delta"),
            team_size_delta=team_size_delta,
            commission_delta=to_money(commission_delta, "commission_delta"),
        )

    async def get_node(self, user_id: str) -> GenealogyNode:
        """
        Get node.

        Raises:
            NotFound: If node is missing
        """
        node = await self.genealogy_repo.get_node(user_id)
        if node is None:
            raise NotFound(f"Genealogy node {user_id} not found")
        return node

    async def get_ancestors(self, user_id: str) -> list[tuple[int, str]]:
        """
        Get upline as ordered (level, user_id) pairs from the cache.

        Raises:
            NotFound: If node is missing
        """
        ancestors = await self.genealogy_repo.get_ancestor_cache(user_id)
        if ancestors is None:
            raise NotFound(f"Genealogy node {user_id} not found")
        return ancestors

    async def get_direct_referrals(self, user_id: str) -> list[str]:
        """Get direct referral user ids."""
        return await self.genealogy_repo.get_direct_referral_ids(user_id)

    async def get_referrals_by_level(
        self, user_id: str, level: int
    ) -> list[GenealogyNode]:
        """
        Get descendants exactly ``level`` steps below user.

        Raises:
            ValidationError: If level is not 1..5
        """
        if level < 1 or level > MAX_TREE_DEPTH:
            raise ValidationError(
                f"level must be 1-{MAX_TREE_DEPTH}, got {level}"
            )
        return await self.genealogy_repo.get_descendants_at_level(user_id, level)

    async def archive_node(self, user_id: str) -> bool:
        """
        Soft-archive a node. Aggregates and cache are kept.

        Raises:
            NotFound: If node is missing
        """
        if not await self.genealogy_repo.exists(user_id=user_id):
            raise NotFound(f"Genealogy node {user_id} not found")
        archived = await self.genealogy_repo.archive(user_id)
        if archived:
            logger.info("Genealogy node archived", extra={"user_id": user_id})
        return archived
