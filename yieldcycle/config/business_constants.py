"""
Business logic constants for yieldcycle.

Central location for business rules and constants used across the application.
This module has no imports from services so it can be used anywhere without
circular dependencies.
"""

from decimal import Decimal

# =============================================================================
# MONEY
# =============================================================================

# All monetary values are rounded to 6 fractional digits before persistence
MONEY_DECIMAL_PLACES = 6
MONEY_QUANT = Decimal("0.000001")
ZERO = Decimal("0")

# =============================================================================
# GENEALOGY
# =============================================================================

# Deepest level a node can have (root is level 0)
MAX_TREE_DEPTH = 5
ROOT_PATH = "/"
PATH_SEPARATOR = "/"

# =============================================================================
# COMMISSIONS
# =============================================================================

# 5-level commission program: 10%, 5%, 3%, 1%, 1%
COMMISSION_DEPTH = 5
COMMISSION_RATES = {
    1: Decimal("0.10"),  # direct referrer
    2: Decimal("0.05"),
    3: Decimal("0.03"),
    4: Decimal("0.01"),
    5: Decimal("0.01"),
}
TOTAL_COMMISSION_RATE = sum(COMMISSION_RATES.values())  # 0.20

# =============================================================================
# ACCRUAL
# =============================================================================

# Fixed 8% per period, 25 periods = 200% of principal
MONTHLY_ACCRUAL_RATE = Decimal("0.08")
MAX_ACCRUAL_PERIODS = 25
TOTAL_RETURN_MULTIPLIER = Decimal("2")

# Per-deposit tolerance between sum of capped shares and round(base * rate):
# at most half a unit of the 6th digit per period over 25 periods.
ACCRUAL_TOLERANCE_PER_DEPOSIT = Decimal("0.000013")

# Period key format (YYYY-MM)
PERIOD_FORMAT = "%Y-%m"
