"""
LedgerEntry model.

One balance row per (user, stored bucket). TOTAL is never stored.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from yieldcycle.config.business_constants import ZERO
from yieldcycle.models.base import Base
from yieldcycle.models.types import ID_LENGTH, MoneyType


class LedgerEntry(Base):
    """
    LedgerEntry entity.

    Attributes:
        id: Primary key
        user_id: Balance owner
        bucket: principal, periodic_income or commission
        balance: Current balance (never negative)
        lifetime_credits: Sum of all credits
        lifetime_debits: Sum of all debits
        last_transaction_at: Time of the last movement
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "bucket", name="uq_ledger_user_bucket"),
        CheckConstraint(
            "bucket IN ('principal', 'periodic_income', 'commission')",
            name="check_ledger_bucket_stored",
        ),
        CheckConstraint("balance >= 0", name="check_ledger_balance_non_negative"),
        CheckConstraint(
            "lifetime_credits >= 0", name="check_ledger_credits_non_negative"
        ),
        CheckConstraint(
            "lifetime_debits >= 0", name="check_ledger_debits_non_negative"
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), nullable=False, index=True
    )
    bucket: Mapped[str] = mapped_column(String(20), nullable=False)

    balance: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=ZERO
    )
    lifetime_credits: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=ZERO
    )
    lifetime_debits: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=ZERO
    )

    last_transaction_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
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
            f"<LedgerEntry(user_id={self.user_id!r}, bucket={self.bucket}, "
            f"balance={self.balance})>"
        )
