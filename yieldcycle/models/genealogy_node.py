"""
GenealogyNode model.

Referral tree node with a materialized path and a precomputed five-level
ancestor cache. The cache is derived once from the parent at creation.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from yieldcycle.config.business_constants import (
    MAX_TREE_DEPTH,
    PATH_SEPARATOR,
    ROOT_PATH,
    ZERO,
)
from yieldcycle.models.base import Base
from yieldcycle.models.types import ID_LENGTH, PATH_LENGTH, MoneyType
from yieldcycle.utils.exceptions import DepthExceeded, ValidationError


ANCESTOR_LEVELS = range(1, MAX_TREE_DEPTH + 1)


class GenealogyNode(Base):
    """
    GenealogyNode entity.

    One node per user:
    - Root nodes have level 0, path "/" and an empty ancestor cache
    - A child's path is parent.path + user_id + "/"
    - ancestor_level_1 is the parent, ancestor_level_k is the parent's
      ancestor_level_(k-1)
    - Team aggregates change only through atomic in-place increments

    Attributes:
        user_id: Primary key (external user id)
        parent_user_id: Direct referrer (None for roots)
        level: Depth in the tree (0..5)
        path: Materialized path
        total_team_size: Number of users in the downline
        total_team_volume: Sum of deposits made by the downline
        commission_earned: Sum of processed commissions
        ancestor_level_1..5: Upline cache
        is_archived: Soft archival flag
    """

    __tablename__ = "genealogy_nodes"
    __table_args__ = (
        CheckConstraint(
            f"level >= 0 AND level <= {MAX_TREE_DEPTH}",
            name="check_genealogy_level_range",
        ),
        CheckConstraint(
            "total_team_size >= 0", name="check_genealogy_team_size_non_negative"
        ),
        CheckConstraint(
            "total_team_volume >= 0",
            name="check_genealogy_team_volume_non_negative",
        ),
        CheckConstraint(
            "commission_earned >= 0",
            name="check_genealogy_commission_non_negative",
        ),
        CheckConstraint(
            "parent_user_id IS NULL OR parent_user_id != user_id",
            name="check_genealogy_not_own_parent",
        ),
        Index("idx_genealogy_path", "path"),
        Index("idx_genealogy_level", "level"),
    )

    user_id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    parent_user_id: Mapped[str | None] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("genealogy_nodes.user_id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    path: Mapped[str] = mapped_column(
        String(PATH_LENGTH), nullable=False, default=ROOT_PATH
    )

    # Team aggregates
    total_team_size: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    total_team_volume: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=ZERO
    )
    commission_earned: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=ZERO
    )

    # Upline cache, one indexed column per level
    ancestor_level_1: Mapped[str | None] = mapped_column(
        String(ID_LENGTH), nullable=True, index=True
    )
    ancestor_level_2: Mapped[str | None] = mapped_column(
        String(ID_LENGTH), nullable=True, index=True
    )
    ancestor_level_3: Mapped[str | None] = mapped_column(
        String(ID_LENGTH), nullable=True, index=True
    )
    ancestor_level_4: Mapped[str | None] = mapped_column(
        String(ID_LENGTH), nullable=True, index=True
    )
    ancestor_level_5: Mapped[str | None] = mapped_column(
        String(ID_LENGTH), nullable=True, index=True
    )

    is_archived: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<GenealogyNode(user_id={self.user_id!r}, "
            f"parent={self.parent_user_id!r}, level={self.level}, "
            f"path={self.path!r})>"
        )

    @classmethod
    def create_root(cls, user_id: str) -> "GenealogyNode":
        """Build a root node (no parent, empty cache)."""
        return cls(
            user_id=user_id,
            parent_user_id=None,
            level=0,
            path=ROOT_PATH,
            total_team_size=0,
            total_team_volume=ZERO,
            commission_earned=ZERO,
            is_archived=False,
        )

    @classmethod
    def create_child(
        cls, user_id: str, parent: "GenealogyNode"
    ) -> "GenealogyNode":
        """
        Build a child node under parent.

        The ancestor cache is a snapshot of the parent's: the parent becomes
        level 1 and the parent's level k ancestor becomes level k+1.

        Args:
            user_id: New user id
            parent: Parent node

        Returns:
            Unsaved child node

        Raises:
            DepthExceeded: If parent is already at the maximum depth
            ValidationError: If user_id is the parent or one of its ancestors
        """
        if parent.level >= MAX_TREE_DEPTH:
            raise DepthExceeded(
                f"Cannot attach {user_id} under {parent.user_id}: "
                f"parent is at maximum depth {MAX_TREE_DEPTH}"
            )

        if user_id == parent.user_id or user_id in parent.ancestor_ids():
            raise ValidationError(
                f"{user_id} cannot be placed under its own downline"
            )

        upline = [parent.user_id] + [
            parent.ancestor_at(k) for k in range(1, MAX_TREE_DEPTH)
        ]
        cache = {
            f"ancestor_level_{k}": upline[k - 1] for k in ANCESTOR_LEVELS
        }

        return cls(
            user_id=user_id,
            parent_user_id=parent.user_id,
            level=parent.level + 1,
            path=f"{parent.path}{user_id}{PATH_SEPARATOR}",
            total_team_size=0,
            total_team_volume=ZERO,
            commission_earned=ZERO,
            is_archived=False,
            **cache,
        )

    @property
    def is_root(self) -> bool:
        """Check if node is a tree root."""
        return self.parent_user_id is None

    def ancestor_at(self, level: int) -> str | None:
        """Get cached ancestor at upline level (1..5)."""
        if level not in ANCESTOR_LEVELS:
            raise ValidationError(
                f"ancestor level must be 1-{MAX_TREE_DEPTH}, got {level}"
            )
        return getattr(self, f"ancestor_level_{level}")

    def ancestors(self) -> list[tuple[int, str]]:
        """Ordered (level, user_id) pairs for non-empty cache entries."""
        result = []
        for level in ANCESTOR_LEVELS:
            ancestor_id = getattr(self, f"ancestor_level_{level}")
            if ancestor_id is not None:
                result.append((level, ancestor_id))
        return result

    def ancestor_ids(self) -> list[str]:
        """Upline user ids, nearest first."""
        return [ancestor_id for _, ancestor_id in self.ancestors()]

    @property
    def path_segments(self) -> list[str]:
        """Non-empty path segments."""
        return [seg for seg in self.path.split(PATH_SEPARATOR) if seg]

    @property
    def path_depth(self) -> int:
        """Number of non-empty path segments."""
        return len(self.path_segments)


class DirectReferral(Base):
    """
    DirectReferral entity.

    One row per (parent, child) link. A child has exactly one referrer,
    so the insert itself is the idempotency check.
    """

    __tablename__ = "direct_referrals"
    __table_args__ = (
        CheckConstraint(
            "parent_user_id != child_user_id",
            name="check_direct_referral_not_self",
        ),
        Index("idx_direct_referral_parent_created", "parent_user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    parent_user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("genealogy_nodes.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    child_user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH),
        ForeignKey("genealogy_nodes.user_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<DirectReferral(parent={self.parent_user_id!r}, "
            f"child={self.child_user_id!r})>"
        )
