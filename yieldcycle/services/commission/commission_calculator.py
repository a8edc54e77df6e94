"""
Commission calculator.

Pure functions for the 5-level commission plan.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal

from yieldcycle.config.business_constants import (
    COMMISSION_DEPTH,
    COMMISSION_RATES,
    ZERO,
)
from yieldcycle.utils.money import round_money
from yieldcycle.utils.validation import validate_commission_level


# Namespace for deterministic distribution batch ids
DISTRIBUTION_NAMESPACE = uuid.UUID("8f3a2c1e-5b7d-4e9a-9c6f-2d1b0a7e4c53")


@dataclass(frozen=True)
class CommissionShare:
    """Planned commission for one upline member."""

    level: int
    recipient_user_id: str
    rate: Decimal
    amount: Decimal


def get_rate(level: int) -> Decimal:
    """Get commission rate for level 1..5."""
    return COMMISSION_RATES[validate_commission_level(level)]


def calculate_commission(source_amount: Decimal, level: int) -> Decimal:
    """
    Calculate commission for one level.

    Args:
        source_amount: Deposit amount
        level: Upline distance (1..5)

    Returns:
        round(source_amount * rate)

    Example:
        >>> calculate_commission(Decimal("10000"), 1)
        Decimal('1000.000000')
    """
    return round_money(Decimal(source_amount) * get_rate(level))


def plan_distribution(
    ancestors: list[tuple[int, str]], source_amount: Decimal
) -> list[CommissionShare]:
    """
    Build the per-ancestor commission plan.

    Args:
        ancestors: Ordered (level, user_id) pairs from the ancestor cache
        source_amount: Deposit amount

    Returns:
        One share per ancestor, level 1 first
    """
    return [
        CommissionShare(
            level=level,
            recipient_user_id=recipient,
            rate=get_rate(level),
            amount=calculate_commission(source_amount, level),
        )
        for level, recipient in ancestors
        if level <= COMMISSION_DEPTH
    ]


def total_commission(shares: list[CommissionShare]) -> Decimal:
    """Sum of planned commission amounts."""
    return round_money(sum((share.amount for share in shares), ZERO))


def distribution_batch_id(source_deposit_id: str) -> str:
    """
    Deterministic batch id of a deposit's distribution.

    Retries of the same deposit land in the same batch.
    """
    return str(uuid.uuid5(DISTRIBUTION_NAMESPACE, source_deposit_id))
