"""Input validation utilities."""

import re

from yieldcycle.config.business_constants import COMMISSION_DEPTH
from yieldcycle.utils.exceptions import ValidationError


# User and deposit ids come from the service layer (UUIDs, ULIDs, numeric ids)
ID_PATTERN = re.compile(r"^[A-Za-z0-9_.:\-]{1,64}$")
PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def validate_identifier(value: str, field: str = "user_id") -> str:
    """
    Validate external identifier.

    Identifiers are stored in materialized paths, so the path separator
    is not allowed.

    Args:
        value: Identifier to validate
        field: Field name for the error message

    Returns:
        Stripped identifier

    Raises:
        ValidationError: If identifier is empty or malformed
    """
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field} cannot be empty")

    value = value.strip()

    if not ID_PATTERN.match(value):
        raise ValidationError(
            f"{field} must be 1-64 characters of letters, digits, "
            f"'_', '.', ':' or '-', got {value!r}"
        )

    return value


def validate_period(period: str) -> str:
    """
    Validate period key.

    Args:
        period: Period in YYYY-MM format

    Returns:
        The period key

    Raises:
        ValidationError: If period is malformed

    Examples:
        >>> validate_period("2026-10")
        '2026-10'
    """
    if not period or not isinstance(period, str):
        raise ValidationError("period cannot be empty")

    period = period.strip()

    if not PERIOD_PATTERN.match(period):
        raise ValidationError(f"period must be YYYY-MM, got {period!r}")

    return period


def validate_commission_level(level: int) -> int:
    """
    Validate commission level.

    Raises:
        ValidationError: If level is not in 1..5
    """
    if isinstance(level, bool) or not isinstance(level, int):
        raise ValidationError(f"level must be an integer, got {level!r}")
    if level < 1 or level > COMMISSION_DEPTH:
        raise ValidationError(
            f"level must be 1-{COMMISSION_DEPTH}, got {level}"
        )
    return level
