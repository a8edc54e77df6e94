"""
Shared fixtures for unit tests.

- Deposit objects in various accrual states
- A chain of unsaved genealogy nodes
"""

from decimal import Decimal

import pytest

from yieldcycle.models.deposit import Deposit
from yieldcycle.models.enums import DepositStatus
from yieldcycle.models.genealogy_node import GenealogyNode


@pytest.fixture
def make_deposit():
    """
    Build an unsaved Deposit.

    Defaults: 10,000 ACTIVE deposit with no accruals yet.
    """

    def _make(
        amount: str = "10000",
        status: DepositStatus = DepositStatus.ACTIVE,
        months_active: int = 0,
        total_earnings: str = "0",
        deposit_id: str = "dep-1",
    ) -> Deposit:
        return Deposit(
            id=deposit_id,
            user_id="user-1",
            amount=Decimal(amount),
            status=status.value,
            months_active=months_active,
            total_earnings=Decimal(total_earnings),
        )

    return _make


@pytest.fixture
def node_chain():
    """
    Unsaved chain root -> u1 -> ... -> u5 (levels 0..5).

    Returns:
        List of nodes, index equals level
    """
    nodes = [GenealogyNode.create_root("root")]
    for idx in range(1, 6):
        nodes.append(GenealogyNode.create_child(f"u{idx}", nodes[-1]))
    return nodes
