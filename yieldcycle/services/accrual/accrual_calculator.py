"""
Accrual calculator.

Pure functions for the fixed 8% periodic return capped at 200%.
"""

from dataclasses import dataclass
from decimal import Decimal

from yieldcycle.config.business_constants import (
    ACCRUAL_TOLERANCE_PER_DEPOSIT,
    MAX_ACCRUAL_PERIODS,
    MONTHLY_ACCRUAL_RATE,
    TOTAL_RETURN_MULTIPLIER,
    ZERO,
)
from yieldcycle.utils.exceptions import IneligibleDeposit, InvariantViolation
from yieldcycle.utils.money import round_money


@dataclass(frozen=True)
class DepositShare:
    """One deposit's accrual for a period."""

    deposit_id: str
    amount: Decimal
    share: Decimal
    months_before: int
    total_before: Decimal

    @property
    def months_after(self) -> int:
        """months_active after this period."""
        return self.months_before + 1

    @property
    def total_after(self) -> Decimal:
        """total_earnings after this period."""
        return round_money(self.total_before + self.share)

    @property
    def completes(self) -> bool:
        """True when this period is the deposit's last."""
        return self.months_after >= MAX_ACCRUAL_PERIODS


def total_return_cap(amount: Decimal) -> Decimal:
    """200% of principal."""
    return round_money(Decimal(amount) * TOTAL_RETURN_MULTIPLIER)


def regular_share(amount: Decimal) -> Decimal:
    """
    round(amount * 8%).

    Example:
        >>> regular_share(Decimal("10000"))
        Decimal('800.000000')
    """
    return round_money(Decimal(amount) * MONTHLY_ACCRUAL_RATE)


def calculate_share(
    amount: Decimal, total_earnings: Decimal, months_active: int
) -> Decimal:
    """
    Accrual of one deposit for the next period.

    The regular share is capped to the remaining headroom, and the last
    period pays whatever is left so the deposit ends at exactly 200%.

    Args:
        amount: Deposit principal
        total_earnings: Earnings so far
        months_active: Periods already accrued

    Returns:
        Share for this period

    Raises:
        IneligibleDeposit: If the deposit already reached its period cap
    """
    if months_active >= MAX_ACCRUAL_PERIODS:
        raise IneligibleDeposit(
            f"Deposit already accrued {months_active} periods"
        )

    headroom = max(ZERO, total_return_cap(amount) - round_money(total_earnings))

    if months_active + 1 == MAX_ACCRUAL_PERIODS:
        return headroom
    return min(regular_share(amount), headroom)


def plan_deposit_share(
    deposit_id: str,
    amount: Decimal,
    total_earnings: Decimal,
    months_active: int,
) -> DepositShare:
    """Build the DepositShare of one deposit."""
    return DepositShare(
        deposit_id=deposit_id,
        amount=round_money(amount),
        share=calculate_share(amount, total_earnings, months_active),
        months_before=months_active,
        total_before=round_money(total_earnings),
    )


def verify_accrual_total(shares: list[DepositShare]) -> tuple[Decimal, Decimal]:
    """
    Check that the summed shares match round(base_amount * rate).

    Per-deposit rounding and the final top-up may shift the sum by a few
    units of the last digit; anything beyond the tolerance means the
    inputs are corrupt.

    Args:
        shares: Planned deposit shares of one user

    Returns:
        (base_amount, accrual_amount)

    Raises:
        InvariantViolation: If the sum is outside tolerance
    """
    base = round_money(sum((s.amount for s in shares), ZERO))
    accrual = round_money(sum((s.share for s in shares), ZERO))

    expected = regular_share(base)
    tolerance = ACCRUAL_TOLERANCE_PER_DEPOSIT * len(shares)

    if abs(accrual - expected) > tolerance:
        raise InvariantViolation(
            f"Accrual {accrual} differs from round({base} * "
            f"{MONTHLY_ACCRUAL_RATE}) = {expected} beyond tolerance {tolerance}"
        )

    return base, accrual
