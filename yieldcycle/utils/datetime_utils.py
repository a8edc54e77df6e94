"""
Datetime utilities.

Provides timezone-aware datetime functions and period keys.
"""

from datetime import UTC, datetime

from yieldcycle.config.business_constants import PERIOD_FORMAT


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def current_period(now: datetime | None = None) -> str:
    """
    Get period key (YYYY-MM) for a moment.

    Args:
        now: Moment to convert (defaults to utc_now())

    Returns:
        Period key, e.g. "2026-10"
    """
    return (now or utc_now()).strftime(PERIOD_FORMAT)


def previous_period(period: str) -> str:
    """Get the period key preceding ``period``."""
    year, month = (int(part) for part in period.split("-"))
    if month == 1:
        return f"{year - 1:04d}-12"
    return f"{year:04d}-{month - 1:02d}"


def next_period(period: str) -> str:
    """Get the period key following ``period``."""
    year, month = (int(part) for part in period.split("-"))
    if month == 12:
        return f"{year + 1:04d}-01"
    return f"{year:04d}-{month + 1:02d}"
