"""
Deposit model.

Represents user deposits earning the fixed periodic return.
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

from yieldcycle.config.business_constants import (
    MAX_ACCRUAL_PERIODS,
    TOTAL_RETURN_MULTIPLIER,
    ZERO,
)
from yieldcycle.models.base import Base
from yieldcycle.models.enums import (
    DEPOSIT_TRANSITIONS,
    DepositStatus,
    check_transition,
)
from yieldcycle.models.types import ID_LENGTH, MoneyType
from yieldcycle.utils.money import round_money


class Deposit(Base):
    """Deposit model - user deposits."""

    __tablename__ = "deposits"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_deposit_amount_positive"),
        CheckConstraint(
            f"months_active >= 0 AND months_active <= {MAX_ACCRUAL_PERIODS}",
            name="check_deposit_months_active_range",
        ),
        CheckConstraint(
            "total_earnings >= 0",
            name="check_deposit_earnings_non_negative",
        ),
        CheckConstraint(
            f"total_earnings <= amount * {TOTAL_RETURN_MULTIPLIER}",
            name="check_deposit_earnings_not_exceeds_cap",
        ),
        Index("idx_deposit_user_status", "user_id", "status"),
        Index("idx_deposit_status_months", "status", "months_active"),
    )

    # External deposit id
    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)

    user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DepositStatus.PENDING.value
    )  # pending, confirmed, active, dormant, completed, failed
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Accrual tracking
    months_active: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    total_earnings: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=ZERO
    )
    last_income_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Timestamps
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
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
            f"<Deposit(id={self.id!r}, user_id={self.user_id!r}, "
            f"amount={self.amount}, status={self.status}, "
            f"months_active={self.months_active})>"
        )

    def can_transition_to(self, target: str) -> bool:
        """Check if the deposit may move to target status."""
        return target in DEPOSIT_TRANSITIONS.get(self.status, frozenset())

    def ensure_transition(self, target: str) -> None:
        """Raise InvalidStatusTransition if target is not reachable."""
        check_transition(
            f"Deposit {self.id}", DEPOSIT_TRANSITIONS, self.status, target
        )

    @property
    def is_active(self) -> bool:
        """Check if deposit is currently earning."""
        return self.status == DepositStatus.ACTIVE

    @property
    def is_completed(self) -> bool:
        """Check if deposit reached its total return."""
        return self.status == DepositStatus.COMPLETED

    @property
    def is_eligible_for_accrual(self) -> bool:
        """ACTIVE and below the period cap."""
        return self.is_active and self.months_active < MAX_ACCRUAL_PERIODS

    @property
    def remaining_months(self) -> int:
        """Periods left before completion."""
        return max(0, MAX_ACCRUAL_PERIODS - self.months_active)

    @property
    def projected_total_return(self) -> Decimal:
        """Total return at completion (200% of principal)."""
        return round_money(Decimal(self.amount) * TOTAL_RETURN_MULTIPLIER)

    @property
    def remaining_earnings(self) -> Decimal:
        """Income still to be accrued."""
        remaining = self.projected_total_return - Decimal(self.total_earnings)
        return max(ZERO, round_money(remaining))

    @property
    def earning_progress(self) -> Decimal:
        """Share of the total return already earned, in percent."""
        projected = self.projected_total_return
        if projected <= ZERO:
            return ZERO
        return round_money(
            Decimal(self.total_earnings) / projected * Decimal("100")
        )
