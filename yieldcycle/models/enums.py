"""
Model enumerations.

Status values and allowed lifecycle transitions for deposits, commission
records and accrual records, plus ledger bucket names.
"""

from enum import StrEnum

from yieldcycle.utils.exceptions import InvalidStatusTransition


class DepositStatus(StrEnum):
    """Deposit status enumeration."""

    PENDING = "pending"  # Awaiting confirmation
    CONFIRMED = "confirmed"  # Funds confirmed, not yet earning
    ACTIVE = "active"  # Earning periodic income
    DORMANT = "dormant"  # Temporarily paused
    COMPLETED = "completed"  # 200% reached
    FAILED = "failed"


class CommissionStatus(StrEnum):
    """Commission record status enumeration."""

    PENDING = "pending"
    PROCESSED = "processed"  # Credited to COMMISSION bucket
    PAID = "paid"  # Paid out, terminal
    CANCELLED = "cancelled"


class AccrualStatus(StrEnum):
    """Accrual record status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LedgerBucket(StrEnum):
    """Ledger bucket enumeration. TOTAL is a read-time projection."""

    PRINCIPAL = "principal"
    PERIODIC_INCOME = "periodic_income"
    COMMISSION = "commission"
    TOTAL = "total"


class LedgerDirection(StrEnum):
    """Ledger movement direction."""

    CREDIT = "credit"
    DEBIT = "debit"


class ReferenceType(StrEnum):
    """What caused a ledger movement."""

    DEPOSIT = "deposit"
    COMMISSION = "commission"
    COMMISSION_REVERSAL = "commission_reversal"
    ACCRUAL = "accrual"
    ADJUSTMENT = "adjustment"


# Buckets with a persisted ledger_entries row
STORED_BUCKETS: tuple[LedgerBucket, ...] = (
    LedgerBucket.PRINCIPAL,
    LedgerBucket.PERIODIC_INCOME,
    LedgerBucket.COMMISSION,
)

# Buckets summed into TOTAL
INCOME_BUCKETS: tuple[LedgerBucket, ...] = (
    LedgerBucket.PERIODIC_INCOME,
    LedgerBucket.COMMISSION,
)


DEPOSIT_TRANSITIONS: dict[DepositStatus, frozenset[DepositStatus]] = {
    DepositStatus.PENDING: frozenset(
        {DepositStatus.CONFIRMED, DepositStatus.FAILED}
    ),
    DepositStatus.CONFIRMED: frozenset({DepositStatus.ACTIVE}),
    DepositStatus.ACTIVE: frozenset(
        {DepositStatus.DORMANT, DepositStatus.COMPLETED}
    ),
    DepositStatus.DORMANT: frozenset({DepositStatus.ACTIVE}),
    DepositStatus.COMPLETED: frozenset(),
    DepositStatus.FAILED: frozenset(),
}

COMMISSION_TRANSITIONS: dict[CommissionStatus, frozenset[CommissionStatus]] = {
    CommissionStatus.PENDING: frozenset(
        {CommissionStatus.PROCESSED, CommissionStatus.CANCELLED}
    ),
    CommissionStatus.PROCESSED: frozenset(
        {
            CommissionStatus.PAID,
            CommissionStatus.PENDING,  # reversal
            CommissionStatus.CANCELLED,
        }
    ),
    CommissionStatus.PAID: frozenset(),
    CommissionStatus.CANCELLED: frozenset(),
}

ACCRUAL_TRANSITIONS: dict[AccrualStatus, frozenset[AccrualStatus]] = {
    AccrualStatus.PENDING: frozenset(
        {
            AccrualStatus.PROCESSING,
            AccrualStatus.FAILED,
            AccrualStatus.CANCELLED,
        }
    ),
    AccrualStatus.PROCESSING: frozenset(
        {AccrualStatus.COMPLETED, AccrualStatus.FAILED}
    ),
    AccrualStatus.FAILED: frozenset(
        {AccrualStatus.PENDING, AccrualStatus.CANCELLED}
    ),
    AccrualStatus.COMPLETED: frozenset(),
    AccrualStatus.CANCELLED: frozenset(),
}


def check_transition(
    entity: str,
    transitions: dict,
    current: str,
    target: str,
) -> None:
    """
    Ensure a lifecycle transition is allowed.

    Args:
        entity: Entity name for the error message
        transitions: Allowed transition map
        current: Current status value
        target: Requested status value

    Raises:
        InvalidStatusTransition: If target is not reachable from current
    """
    allowed = transitions.get(current, frozenset())
    if target not in allowed:
        raise InvalidStatusTransition(entity, str(current), str(target))
