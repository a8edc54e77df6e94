"""
Commission services package.

- commission_calculator: Rates, per-level amounts, batch ids
- lifecycle: Record status transitions and ledger effects
- distribution: CommissionEngine (fan-out and batch processing)
"""

from yieldcycle.services.commission.commission_calculator import (
    CommissionShare,
    calculate_commission,
    distribution_batch_id,
    plan_distribution,
)
from yieldcycle.services.commission.distribution import (
    BatchProcessResult,
    CommissionEngine,
    DistributionResult,
)
from yieldcycle.services.commission.lifecycle import CommissionLifecycle


__all__ = [
    "BatchProcessResult",
    "CommissionEngine",
    "CommissionLifecycle",
    "CommissionShare",
    "DistributionResult",
    "calculate_commission",
    "distribution_batch_id",
    "plan_distribution",
]
