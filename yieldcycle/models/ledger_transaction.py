"""
LedgerTransaction model.

Append-only log of every ledger movement.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from yieldcycle.models.base import Base
from yieldcycle.models.types import ID_LENGTH, MoneyType


class LedgerTransaction(Base):
    """LedgerTransaction entity - one row per credit or debit."""

    __tablename__ = "ledger_transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_ledger_tx_amount_positive"),
        CheckConstraint(
            "direction IN ('credit', 'debit')",
            name="check_ledger_tx_direction",
        ),
        Index("idx_ledger_tx_user_created", "user_id", "created_at"),
        Index("idx_ledger_tx_reference", "reference_type", "reference_id"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String(ID_LENGTH), nullable=False)
    bucket: Mapped[str] = mapped_column(String(20), nullable=False)
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # What caused the movement (deposit id, commission record id, ...)
    reference_type: Mapped[str | None] = mapped_column(
        String(32), nullable=True
    )
    reference_id: Mapped[str | None] = mapped_column(
        String(ID_LENGTH), nullable=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<LedgerTransaction(id={self.id}, user_id={self.user_id!r}, "
            f"bucket={self.bucket}, direction={self.direction}, "
            f"amount={self.amount})>"
        )
