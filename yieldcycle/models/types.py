"""
Standard type definitions for database models.

Provides consistent types for monetary and rate fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for amounts, balances, earnings
# Precision: 24 digits total, 6 after decimal point
# Range: up to 999,999,999,999,999,999.999999
MoneyType = DECIMAL(24, 6)

# Fractional rate type for commission and accrual rates
# Precision: 7 digits total, 6 after decimal point
# Suitable for: 0.10, 0.05, 0.08 ...
RateType = DECIMAL(7, 6)

# External identifiers (user ids, deposit ids)
ID_LENGTH = 64

# Materialized path: "/" + 5 * (id + "/")
PATH_LENGTH = 1 + 5 * (ID_LENGTH + 1)
