"""
Accrual services package.

- accrual_calculator: 8% share, 200% cap, final-period top-up
- batch_processor: One user's accrual unit and failure recording
- accrual_engine: AccrualEngine (period runs, retries, cancellation)
"""

from yieldcycle.services.accrual.accrual_calculator import (
    DepositShare,
    calculate_share,
    plan_deposit_share,
    verify_accrual_total,
)
from yieldcycle.services.accrual.accrual_engine import (
    AccrualEngine,
    AccrualRunResult,
)
from yieldcycle.services.accrual.batch_processor import (
    AccrualBatchProcessor,
    UserAccrualOutcome,
    check_eligibility,
)


__all__ = [
    "AccrualBatchProcessor",
    "AccrualEngine",
    "AccrualRunResult",
    "DepositShare",
    "UserAccrualOutcome",
    "calculate_share",
    "check_eligibility",
    "plan_deposit_share",
    "verify_accrual_total",
]
