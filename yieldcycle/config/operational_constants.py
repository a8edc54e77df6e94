"""
Operational constants for yieldcycle.

Technical/operational constants used across the application.
Includes lock timeouts, fan-out limits and Dramatiq task limits.
"""

# =============================================================================
# LOCK TIMEOUTS (seconds)
# =============================================================================

# One accrual period run (batch processing)
ACCRUAL_LOCK_TIMEOUT_SECONDS = 300

# How long a second worker waits for the accrual lock before giving up
ACCRUAL_LOCK_BLOCKING_TIMEOUT = 5.0

# SQLite busy handler wait (development and tests only)
SQLITE_BUSY_TIMEOUT_SECONDS = 30.0


# =============================================================================
# FAN-OUT LIMITS
# =============================================================================

# Parallel writes per batch (bounded to limit store load)
DEFAULT_FANOUT_CONCURRENCY = 8
MAX_FANOUT_CONCURRENCY = 64


# =============================================================================
# DRAMATIQ TASK TIME LIMITS (milliseconds)
# =============================================================================

# Commission fan-out for one deposit
DRAMATIQ_TIME_LIMIT_COMMISSION = 120_000

# Whole-network accrual run (must be > accrual lock timeout)
DRAMATIQ_TIME_LIMIT_ACCRUAL = 600_000

# Default retry count for background jobs
DEFAULT_MAX_RETRIES = 3


# =============================================================================
# QUERY LIMITS
# =============================================================================

DEFAULT_HISTORY_LIMIT = 100
TOP_PERFORMERS_LIMIT = 10
