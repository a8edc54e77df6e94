"""
Money utilities.

Fixed-point rounding shared by every monetary computation.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from yieldcycle.config.business_constants import MONEY_QUANT, ZERO
from yieldcycle.utils.exceptions import ValidationError


def round_money(value: Decimal | int | str) -> Decimal:
    """
    Round value to 6 fractional digits (half up).

    Args:
        value: Amount to round

    Returns:
        Quantized Decimal

    Example:
        >>> round_money(Decimal("80.0000005"))
        Decimal('80.000001')
    """
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_money(value: Decimal | int | str | float, field: str = "amount") -> Decimal:
    """
    Parse an external amount into a rounded Decimal.

    Floats are converted through their string form so 0.1 stays 0.1.

    Args:
        value: Raw amount
        field: Field name for the error message

    Returns:
        Rounded Decimal

    Raises:
        ValidationError: If value is not a finite number
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number, got {value!r}")

    try:
        parsed = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number, got {value!r}") from exc

    if not parsed.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}")

    return round_money(parsed)


def positive_money(value: Decimal | int | str | float, field: str = "amount") -> Decimal:
    """
    Parse amount and require it to be > 0 after rounding.

    Raises:
        ValidationError: If amount is not positive
    """
    amount = to_money(value, field)
    if amount <= ZERO:
        raise ValidationError(f"{field} must be positive, got {amount}")
    return amount

