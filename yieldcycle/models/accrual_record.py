"""
AccrualRecord model.

One periodic income accrual per user per period.
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
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from yieldcycle.config.business_constants import MONTHLY_ACCRUAL_RATE, ZERO
from yieldcycle.models.base import Base
from yieldcycle.models.enums import (
    ACCRUAL_TRANSITIONS,
    AccrualStatus,
    check_transition,
)
from yieldcycle.models.types import ID_LENGTH, MoneyType, RateType


class AccrualRecord(Base):
    """
    AccrualRecord entity.

    Lifecycle:
    - PENDING -> PROCESSING -> COMPLETED
    - any non-completed status -> FAILED (with reason)
    - FAILED -> PENDING (retry)
    - PENDING/FAILED -> CANCELLED

    Attributes:
        id: Primary key
        user_id: Income owner
        period: YYYY-MM
        base_amount: Sum of eligible deposit amounts
        accrual_amount: Income credited for the period
        rate: Accrual rate applied
        deposit_count: Number of deposits that accrued
        status: Current status
        batch_id: Run that produced the record
        failure_reason: Why the last attempt failed
    """

    __tablename__ = "accrual_records"
    __table_args__ = (
        UniqueConstraint("user_id", "period", name="uq_accrual_user_period"),
        CheckConstraint(
            "base_amount >= 0", name="check_accrual_base_non_negative"
        ),
        CheckConstraint(
            "accrual_amount >= 0", name="check_accrual_amount_non_negative"
        ),
        Index("idx_accrual_period_status", "period", "status"),
        Index("idx_accrual_batch", "batch_id"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), nullable=False, index=True
    )
    period: Mapped[str] = mapped_column(String(7), nullable=False)

    base_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=ZERO
    )
    accrual_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=ZERO
    )
    rate: Mapped[Decimal] = mapped_column(
        RateType, nullable=False, default=MONTHLY_ACCRUAL_RATE
    )
    deposit_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AccrualStatus.PENDING.value,
    )
    batch_id: Mapped[str] = mapped_column(String(36), nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    processed_at: Mapped[datetime | None] = mapped_column(
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
            f"<AccrualRecord(id={self.id}, user_id={self.user_id!r}, "
            f"period={self.period}, amount={self.accrual_amount}, "
            f"status={self.status})>"
        )

    def can_transition_to(self, target: str) -> bool:
        """Check if the record may move to target status."""
        return target in ACCRUAL_TRANSITIONS.get(self.status, frozenset())

    def ensure_transition(self, target: str) -> None:
        """Raise InvalidStatusTransition if target is not reachable."""
        check_transition(
            f"AccrualRecord {self.id}",
            ACCRUAL_TRANSITIONS,
            self.status,
            target,
        )

    @property
    def is_retryable(self) -> bool:
        """Failed records are reused by the next run."""
        return self.status == AccrualStatus.FAILED
