"""
CommissionRecord model.

One commission paid to one upline member for one source deposit.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from yieldcycle.config.business_constants import COMMISSION_DEPTH, COMMISSION_RATES
from yieldcycle.models.base import Base
from yieldcycle.models.enums import (
    COMMISSION_TRANSITIONS,
    CommissionStatus,
    check_transition,
)
from yieldcycle.models.types import ID_LENGTH, MoneyType, RateType
from yieldcycle.utils.exceptions import ValidationError


class CommissionRecord(Base):
    """
    CommissionRecord entity.

    Lifecycle:
    - PENDING: created by distribution
    - PROCESSED: credited to the recipient's COMMISSION bucket
    - PAID: paid out (terminal)
    - CANCELLED: terminal

    A source deposit pays at most one record per level, which makes
    distribution retries idempotent.

    Attributes:
        id: Primary key
        recipient_user_id: Upline member receiving the commission
        source_user_id: Depositor
        source_deposit_id: Deposit that triggered the commission
        level: Upline distance (1..5)
        rate: Commission rate for the level
        source_amount: Deposit amount
        amount: round(source_amount * rate)
        status: pending/processed/paid/cancelled
        distribution_batch_id: Shared by all records of one deposit
    """

    __tablename__ = "commission_records"
    __table_args__ = (
        UniqueConstraint(
            "source_deposit_id",
            "recipient_user_id",
            "level",
            name="uq_commission_deposit_recipient_level",
        ),
        UniqueConstraint(
            "source_deposit_id", "level", name="uq_commission_deposit_level"
        ),
        CheckConstraint(
            f"level >= 1 AND level <= {COMMISSION_DEPTH}",
            name="check_commission_level_range",
        ),
        CheckConstraint("amount >= 0", name="check_commission_amount_non_negative"),
        CheckConstraint(
            "amount <= source_amount",
            name="check_commission_amount_not_exceeds_source",
        ),
        CheckConstraint(
            "recipient_user_id != source_user_id",
            name="check_commission_not_self",
        ),
        Index("idx_commission_recipient_created", "recipient_user_id", "created_at"),
        Index("idx_commission_source_created", "source_user_id", "created_at"),
        Index("idx_commission_status_created", "status", "created_at"),
        Index("idx_commission_batch_created", "distribution_batch_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    recipient_user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), nullable=False
    )
    source_user_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), nullable=False
    )
    source_deposit_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), nullable=False
    )

    level: Mapped[int] = mapped_column(Integer, nullable=False)
    rate: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    source_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CommissionStatus.PENDING.value,
    )
    distribution_batch_id: Mapped[str] = mapped_column(
        String(36), nullable=False
    )

    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
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
            f"<CommissionRecord(id={self.id}, "
            f"recipient={self.recipient_user_id!r}, level={self.level}, "
            f"amount={self.amount}, status={self.status})>"
        )

    @staticmethod
    def validate_rate(level: int, rate: Decimal) -> None:
        """
        Ensure rate matches the fixed per-level rate.

        Raises:
            ValidationError: If level is unknown or rate differs
        """
        expected = COMMISSION_RATES.get(level)
        if expected is None:
            raise ValidationError(f"Unknown commission level {level}")
        if Decimal(rate) != expected:
            raise ValidationError(
                f"Commission rate for level {level} must be {expected}, "
                f"got {rate}"
            )

    def can_transition_to(self, target: str) -> bool:
        """Check if the record may move to target status."""
        return target in COMMISSION_TRANSITIONS.get(self.status, frozenset())

    def ensure_transition(self, target: str) -> None:
        """Raise InvalidStatusTransition if target is not reachable."""
        check_transition(
            f"CommissionRecord {self.id}",
            COMMISSION_TRANSITIONS,
            self.status,
            target,
        )

    @property
    def is_credited(self) -> bool:
        """True while the amount sits in the recipient's COMMISSION bucket."""
        return self.status in (
            CommissionStatus.PROCESSED,
            CommissionStatus.PAID,
        )
