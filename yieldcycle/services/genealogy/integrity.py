"""
Genealogy integrity module.

Checks that stored levels, paths and ancestor caches agree with the
parent links.
"""

from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.config.business_constants import MAX_TREE_DEPTH, ROOT_PATH
from yieldcycle.models.genealogy_node import ANCESTOR_LEVELS, GenealogyNode
from yieldcycle.repositories.genealogy_repository import GenealogyRepository


@dataclass
class TreeIntegrityReport:
    """Result of a tree integrity scan."""

    checked_nodes: int = 0
    issues: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """True when no issue was found."""
        return not self.issues


class TreeIntegrityValidator:
    """Validates genealogy structure against parent links."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize validator."""
        self.session = session
        self.genealogy_repo = GenealogyRepository(session)

    async def validate(self, user_id: str | None = None) -> TreeIntegrityReport:
        """
        Scan the whole network or one subtree.

        Args:
            user_id: Subtree root (None for the whole network)

        Returns:
            TreeIntegrityReport listing every inconsistency
        """
        nodes = await self.genealogy_repo.get_tree_nodes(user_id)
        by_id = {node.user_id: node for node in nodes}

        # Parents outside the scanned subtree are still needed for checks
        missing = {
            node.parent_user_id
            for node in nodes
            if node.parent_user_id and node.parent_user_id not in by_id
        }
        if missing:
            for parent in await self.genealogy_repo.get_nodes(list(missing)):
                by_id[parent.user_id] = parent

        report = TreeIntegrityReport(checked_nodes=len(nodes))
        for node in nodes:
            report.issues.extend(self._check_node(node, by_id))

        children = [node for node in nodes if node.parent_user_id is not None]
        linked = await self.genealogy_repo.get_referral_parents(
            [node.user_id for node in children]
        )
        for node in children:
            link_parent = linked.get(node.user_id)
            if link_parent is None:
                report.issues.append(
                    f"{node.user_id}: missing direct referral link"
                )
            elif link_parent != node.parent_user_id:
                report.issues.append(
                    f"{node.user_id}: referral link points to "
                    f"{link_parent}, parent is {node.parent_user_id}"
                )

        if report.is_valid:
            logger.debug(
                "Genealogy integrity check passed",
                extra={"root": user_id, "checked_nodes": report.checked_nodes},
            )
        else:
            logger.error(
                "Genealogy integrity check failed",
                extra={
                    "root": user_id,
                    "checked_nodes": report.checked_nodes,
                    "issues": len(report.issues),
                },
            )
        return report

    def _check_node(
        self, node: GenealogyNode, by_id: dict[str, GenealogyNode]
    ) -> list[str]:
        issues: list[str] = []
        uid = node.user_id

        if node.level < 0 or node.level > MAX_TREE_DEPTH:
            issues.append(f"{uid}: level {node.level} out of range")

        if uid in node.ancestor_ids():
            issues.append(f"{uid}: node is its own ancestor")

        if node.parent_user_id is None:
            if node.level != 0:
                issues.append(f"{uid}: root has level {node.level}")
            if node.path != ROOT_PATH:
                issues.append(f"{uid}: root path is {node.path!r}")
            if node.ancestors():
                issues.append(f"{uid}: root has a non-empty ancestor cache")
            return issues

        parent = by_id.get(node.parent_user_id)
        if parent is None:
            issues.append(f"{uid}: parent {node.parent_user_id} does not exist")
            return issues

        if node.level != parent.level + 1:
            issues.append(
                f"{uid}: level {node.level} but parent level {parent.level}"
            )

        expected_path = f"{parent.path}{uid}/"
        if node.path != expected_path:
            issues.append(
                f"{uid}: path {node.path!r}, expected {expected_path!r}"
            )
        if node.path_depth != node.level:
            issues.append(
                f"{uid}: path has {node.path_depth} segments at level {node.level}"
            )

        if node.ancestor_at(1) != parent.user_id:
            issues.append(
                f"{uid}: ancestor_level_1 is {node.ancestor_at(1)}, "
                f"parent is {parent.user_id}"
            )
        for level in ANCESTOR_LEVELS:
            if level == 1:
                continue
            expected = parent.ancestor_at(level - 1)
            actual = node.ancestor_at(level)
            if actual != expected:
                issues.append(
                    f"{uid}: ancestor_level_{level} is {actual}, "
                    f"expected {expected}"
                )

        return issues
