"""Integration tests for the task entry points used by the job workers."""

import pytest

from yieldcycle.models.enums import LedgerBucket
from yieldcycle.tasks.commission_distribution_task import (
    distribute_deposit_commissions,
)
from yieldcycle.tasks.monthly_accrual_task import run_monthly_accrual


@pytest.mark.asyncio
async def test_distribution_task(build_chain, session_maker, balance_of):
    await build_chain("A", "B", "C")

    outcome = await distribute_deposit_commissions(
        "C", "dep-1", "10000", session_maker=session_maker
    )

    assert outcome.activated
    assert outcome.distribution.success
    assert await balance_of("B", LedgerBucket.COMMISSION) == 1000


@pytest.mark.asyncio
async def test_accrual_task(onboard, confirm_deposit, session_maker, balance_of):
    await onboard("inv")
    await confirm_deposit("inv", "dep-1", "10000")

    result = await run_monthly_accrual("2026-09", session_maker=session_maker)
    retry = await run_monthly_accrual(
        "2026-09", retry_only=True, session_maker=session_maker
    )

    assert result.completed == 1
    assert retry.total_users == 0
    assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 800
