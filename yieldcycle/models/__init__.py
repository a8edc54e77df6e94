"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from yieldcycle.models.accrual_record import AccrualRecord
from yieldcycle.models.base import Base
from yieldcycle.models.commission_record import CommissionRecord
from yieldcycle.models.deposit import Deposit
from yieldcycle.models.enums import (
    AccrualStatus,
    CommissionStatus,
    DepositStatus,
    LedgerBucket,
    LedgerDirection,
    ReferenceType,
)
from yieldcycle.models.genealogy_node import DirectReferral, GenealogyNode
from yieldcycle.models.ledger_entry import LedgerEntry
from yieldcycle.models.ledger_transaction import LedgerTransaction


__all__ = [
    "Base",
    # Genealogy
    "GenealogyNode",
    "DirectReferral",
    # Ledger
    "LedgerEntry",
    "LedgerTransaction",
    # Commissions and accruals
    "CommissionRecord",
    "AccrualRecord",
    "Deposit",
    # Enums
    "AccrualStatus",
    "CommissionStatus",
    "DepositStatus",
    "LedgerBucket",
    "LedgerDirection",
    "ReferenceType",
]
