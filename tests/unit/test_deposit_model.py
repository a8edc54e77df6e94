"""
Tests for deposit model helpers.

Tests cover:
- Accrual eligibility
- Remaining months, projected return and progress
- Status transition rules
"""

from decimal import Decimal

import pytest

from yieldcycle.models.enums import DepositStatus
from yieldcycle.services.accrual.batch_processor import check_eligibility
from yieldcycle.utils.exceptions import IneligibleDeposit, InvalidStatusTransition


class TestEligibility:
    """Test accrual eligibility."""

    def test_active_deposit_is_eligible(self, make_deposit):
        deposit = make_deposit()

        assert deposit.is_eligible_for_accrual
        check_eligibility(deposit)

    @pytest.mark.parametrize(
        "status",
        [
            DepositStatus.PENDING,
            DepositStatus.CONFIRMED,
            DepositStatus.DORMANT,
            DepositStatus.COMPLETED,
            DepositStatus.FAILED,
        ],
    )
    def test_non_active_deposit_rejected(self, make_deposit, status):
        with pytest.raises(IneligibleDeposit):
            check_eligibility(make_deposit(status=status))

    def test_capped_deposit_rejected(self, make_deposit):
        deposit = make_deposit(months_active=25, total_earnings="20000")

        assert not deposit.is_eligible_for_accrual
        with pytest.raises(IneligibleDeposit):
            check_eligibility(deposit)


class TestProgress:
    """Test progress helpers."""

    def test_halfway(self, make_deposit):
        deposit = make_deposit(months_active=12, total_earnings="9600")

        assert deposit.remaining_months == 13
        assert deposit.projected_total_return == Decimal("20000.000000")
        assert deposit.remaining_earnings == Decimal("10400.000000")
        assert deposit.earning_progress == Decimal("48.000000")

    def test_completed(self, make_deposit):
        deposit = make_deposit(
            status=DepositStatus.COMPLETED, months_active=25, total_earnings="20000"
        )

        assert deposit.is_completed
        assert deposit.remaining_months == 0
        assert deposit.remaining_earnings == Decimal("0")
        assert deposit.earning_progress == Decimal("100.000000")


class TestDepositTransitions:
    """Test deposit lifecycle rules."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (DepositStatus.PENDING, DepositStatus.CONFIRMED),
            (DepositStatus.PENDING, DepositStatus.FAILED),
            (DepositStatus.CONFIRMED, DepositStatus.ACTIVE),
            (DepositStatus.ACTIVE, DepositStatus.DORMANT),
            (DepositStatus.DORMANT, DepositStatus.ACTIVE),
            (DepositStatus.ACTIVE, DepositStatus.COMPLETED),
        ],
    )
    def test_allowed(self, make_deposit, current, target):
        deposit = make_deposit(status=current)

        assert deposit.can_transition_to(target)
        deposit.ensure_transition(target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (DepositStatus.COMPLETED, DepositStatus.ACTIVE),
            (DepositStatus.FAILED, DepositStatus.CONFIRMED),
            (DepositStatus.PENDING, DepositStatus.ACTIVE),
            (DepositStatus.DORMANT, DepositStatus.COMPLETED),
        ],
    )
    def test_rejected(self, make_deposit, current, target):
        deposit = make_deposit(status=current)

        assert not deposit.can_transition_to(target)
        with pytest.raises(InvalidStatusTransition):
            deposit.ensure_transition(target)
