"""
Services.

Business logic layer.
"""

# Accrual
from yieldcycle.services.accrual import AccrualEngine, AccrualRunResult

# Audit
from yieldcycle.services.audit import AuditSink, LoguruAuditSink

# Commissions
from yieldcycle.services.commission import (
    BatchProcessResult,
    CommissionEngine,
    DistributionResult,
)

# Deposits and events
from yieldcycle.services.deposit_service import DepositService
from yieldcycle.services.events import (
    DepositConfirmed,
    DepositConfirmedOutcome,
    EventDispatcher,
    PeriodElapsed,
)

# Genealogy
from yieldcycle.services.genealogy import GenealogyService, TreeIntegrityReport

# Ledger
from yieldcycle.services.ledger_service import LedgerService, LedgerSummary
from yieldcycle.services.query_service import LedgerQueryService


__all__ = [
    "AccrualEngine",
    "AccrualRunResult",
    "AuditSink",
    "BatchProcessResult",
    "CommissionEngine",
    "DepositConfirmed",
    "DepositConfirmedOutcome",
    "DepositService",
    "DistributionResult",
    "EventDispatcher",
    "GenealogyService",
    "LedgerQueryService",
    "LedgerService",
    "LedgerSummary",
    "LoguruAuditSink",
    "PeriodElapsed",
    "TreeIntegrityReport",
]
