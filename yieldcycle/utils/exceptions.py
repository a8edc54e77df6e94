"""
Exception handling utilities.

Defines the error taxonomy of the ledger core and categorized exception
groups for handling strategy.
"""


class YieldCycleError(Exception):
    """Base class for all ledger core errors."""
    pass


class ValidationError(YieldCycleError):
    """Bad input shape or range. Raised before any write."""
    pass


class InvalidStatusTransition(ValidationError):
    """Requested lifecycle transition is not allowed from the current status."""

    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            f"{entity}: cannot transition from {current} to {target}"
        )


class IneligibleDeposit(ValidationError):
    """Deposit cannot receive accrual (not ACTIVE or already at its cap)."""
    pass


class DuplicateError(YieldCycleError):
    """Uniqueness invariant hit. Safe no-op for idempotent callers."""
    pass


class InsufficientBalance(YieldCycleError):
    """Debit exceeds the bucket balance. Never silently clamped."""

    def __init__(self, user_id: str, bucket: str, requested, available) -> None:
        self.user_id = user_id
        self.bucket = bucket
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient {bucket} balance for {user_id}: "
            f"requested {requested}, available {available}"
        )


class DepthExceeded(YieldCycleError):
    """Tree operation beyond the maximum depth. Data-integrity fault."""
    pass


class NotFound(YieldCycleError):
    """Referenced user, deposit or record is absent."""
    pass


class InvariantViolation(YieldCycleError):
    """Stored or computed data breaks a model invariant."""
    pass


class LockNotAcquired(YieldCycleError):
    """A named distributed lock is held by another worker."""
    pass


# Exception categories based on handling strategy

# Recoverable locally - caller may retry safely
RECOVERABLE = (
    ValidationError,
    DuplicateError,
)

# Surfaced to the calling service layer for a business decision
MUST_SURFACE = (
    InsufficientBalance,
    NotFound,
)

# Unrecoverable data-integrity faults - abort the batch item, log for review
INTEGRITY_FAULTS = (
    DepthExceeded,
    InvariantViolation,
)


def is_recoverable(exc: Exception) -> bool:
    """
    Check if exception is recoverable by the caller.

    Args:
        exc: Exception to check

    Returns:
        True if retrying the operation is safe
    """
    return isinstance(exc, RECOVERABLE)


def must_surface(exc: Exception) -> bool:
    """
    Check if exception must be surfaced to the caller.

    Args:
        exc: Exception to check

    Returns:
        True if the caller has to make a business decision
    """
    return isinstance(exc, MUST_SURFACE)


def is_integrity_fault(exc: Exception) -> bool:
    """
    Check if exception is a data-integrity fault.

    Args:
        exc: Exception to check

    Returns:
        True if the item must be aborted and queued for manual review
    """
    return isinstance(exc, INTEGRITY_FAULTS)
