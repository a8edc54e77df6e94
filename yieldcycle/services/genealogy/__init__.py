"""
Genealogy services package.

Contains modular services for the referral tree:
- chain_manager: Node creation, referral links, team deltas
- statistics: Network and per-user team statistics
- integrity: Cache/path/level consistency checks
- genealogy_service: Transactional facade
"""

from yieldcycle.services.genealogy.chain_manager import GenealogyChainManager
from yieldcycle.services.genealogy.genealogy_service import GenealogyService
from yieldcycle.services.genealogy.integrity import (
    TreeIntegrityReport,
    TreeIntegrityValidator,
)
from yieldcycle.services.genealogy.statistics import GenealogyStatisticsManager


__all__ = [
    "GenealogyChainManager",
    "GenealogyService",
    "GenealogyStatisticsManager",
    "TreeIntegrityReport",
    "TreeIntegrityValidator",
]
