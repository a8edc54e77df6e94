"""
Integration tests for periodic income accrual.

Tests cover:
- A deposit running its full 25 periods to 200% and completing
- Deposits of one user completing in different periods
- Idempotent period reruns
- Failed users recorded, retried and cancelled
- Dormant deposits and the emergency stop
"""

from decimal import Decimal

import pytest

from yieldcycle.config.settings import settings
from yieldcycle.models.enums import AccrualStatus, DepositStatus, LedgerBucket
from yieldcycle.repositories.accrual_repository import AccrualRepository
from yieldcycle.services.accrual.accrual_engine import AccrualEngine
from yieldcycle.services.accrual.batch_processor import AccrualBatchProcessor
from yieldcycle.services.deposit_service import DepositService
from yieldcycle.services.ledger_service import LedgerService
from yieldcycle.utils.datetime_utils import next_period
from yieldcycle.utils.exceptions import (
    InvalidStatusTransition,
    InvariantViolation,
    NotFound,
    ValidationError,
)


PERIOD = "2026-09"


@pytest.fixture
def accrual_engine(session_maker):
    return AccrualEngine(session_maker)


@pytest.fixture
def accrual_record(session_maker):
    async def _record(user_id: str, period: str = PERIOD):
        async with session_maker() as session:
            return await AccrualRepository(session).get_for_user_period(
                user_id, period
            )

    return _record


@pytest.fixture
def deposit_of(session_maker):
    async def _deposit(deposit_id: str):
        async with session_maker() as session:
            return await DepositService(session).get_deposit(deposit_id)

    return _deposit


@pytest.fixture
def failing_processor(monkeypatch):
    """Make every per-user unit fail until undone."""

    async def fail(self, user_id, period, batch_id, deposit_ids):
        raise InvariantViolation(f"share sum out of tolerance for {user_id}")

    monkeypatch.setattr(AccrualBatchProcessor, "process_user", fail)
    return monkeypatch


class TestRunPeriod:
    """Test accrual runs."""

    @pytest.mark.asyncio
    async def test_single_period(
        self, onboard, confirm_deposit, accrual_engine, balance_of, accrual_record
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")

        result = await accrual_engine.run_period(PERIOD)

        assert result.success
        assert result.completed == 1
        assert result.total_accrued == Decimal("800.000000")
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 800
        assert await balance_of("inv", LedgerBucket.TOTAL) == 800

        record = await accrual_record("inv")
        assert record.status == AccrualStatus.COMPLETED
        assert record.base_amount == 10000
        assert record.accrual_amount == 800
        assert record.deposit_count == 1

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_full_lifecycle_to_cap(
        self, onboard, confirm_deposit, accrual_engine, balance_of, deposit_of
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")

        period = "2024-01"
        for _ in range(24):
            result = await accrual_engine.run_period(period)
            assert result.completed == 1
            period = next_period(period)

        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 19200
        deposit = await deposit_of("dep-1")
        assert deposit.months_active == 24
        assert deposit.status == DepositStatus.ACTIVE

        final = await accrual_engine.run_period(period)

        assert final.total_accrued == 800
        assert final.completed_deposits == ["dep-1"]
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 20000
        assert await balance_of("inv", LedgerBucket.PRINCIPAL) == 10000

        deposit = await deposit_of("dep-1")
        assert deposit.status == DepositStatus.COMPLETED
        assert deposit.months_active == 25
        assert deposit.total_earnings == 20000
        assert deposit.completed_at is not None

        after = await accrual_engine.run_period(next_period(period))
        assert after.total_users == 0
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 20000

    @pytest.mark.asyncio
    async def test_user_with_two_deposits(
        self, onboard, confirm_deposit, accrual_engine, balance_of, accrual_record
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")
        await confirm_deposit("inv", "dep-2", "5000")

        result = await accrual_engine.run_period(PERIOD)

        assert result.completed == 1
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 1200
        record = await accrual_record("inv")
        assert record.deposit_count == 2
        assert record.base_amount == 15000

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_completion_with_spent_principal(
        self,
        onboard,
        confirm_deposit,
        accrual_engine,
        session_maker,
        balance_of,
        deposit_of,
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "1000")
        async with session_maker() as session:
            async with session.begin():
                await LedgerService(session).debit(
                    "inv", LedgerBucket.PRINCIPAL, "1"
                )

        period = "2024-01"
        for _ in range(25):
            result = await accrual_engine.run_period(period)
            assert result.success
            assert result.completed == 1
            period = next_period(period)

        deposit = await deposit_of("dep-1")
        assert deposit.status == DepositStatus.COMPLETED
        assert deposit.total_earnings == 2000
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 2000
        assert await balance_of("inv", LedgerBucket.PRINCIPAL) == 999

    @pytest.mark.asyncio
    @pytest.mark.slow
    async def test_deposits_completing_in_different_periods(
        self, onboard, confirm_deposit, accrual_engine, balance_of, deposit_of
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "1000")

        period = "2024-01"
        for _ in range(3):
            await accrual_engine.run_period(period)
            period = next_period(period)

        await confirm_deposit("inv", "dep-2", "500")
        assert await balance_of("inv", LedgerBucket.PRINCIPAL) == 1500

        for _ in range(21):
            await accrual_engine.run_period(period)
            period = next_period(period)

        first_done = await accrual_engine.run_period(period)
        period = next_period(period)

        assert first_done.completed == 1
        assert first_done.completed_deposits == ["dep-1"]
        assert first_done.total_accrued == 120
        assert (await deposit_of("dep-1")).status == DepositStatus.COMPLETED
        second = await deposit_of("dep-2")
        assert second.status == DepositStatus.ACTIVE
        assert second.months_active == 22
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 2880
        assert await balance_of("inv", LedgerBucket.PRINCIPAL) == 1500

        for _ in range(2):
            result = await accrual_engine.run_period(period)
            assert result.total_accrued == 40
            period = next_period(period)

        last = await accrual_engine.run_period(period)

        assert last.completed_deposits == ["dep-2"]
        assert (await deposit_of("dep-2")).status == DepositStatus.COMPLETED
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 3000
        assert await balance_of("inv", LedgerBucket.PRINCIPAL) == 1500

    @pytest.mark.asyncio
    async def test_rerun_skips_users(
        self, onboard, confirm_deposit, accrual_engine, balance_of
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")
        await accrual_engine.run_period(PERIOD)

        rerun = await accrual_engine.run_period(PERIOD)

        assert rerun.completed == 0
        assert rerun.skipped == 1
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 800

    @pytest.mark.asyncio
    async def test_dormant_deposit_not_accrued(
        self, onboard, confirm_deposit, accrual_engine, session_maker, balance_of
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")
        async with session_maker() as session:
            await DepositService(session).set_dormant("dep-1")

        result = await accrual_engine.run_period(PERIOD)

        assert result.total_users == 0
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 0

        async with session_maker() as session:
            await DepositService(session).reactivate("dep-1")

        assert (await accrual_engine.run_period(PERIOD)).completed == 1

    @pytest.mark.asyncio
    async def test_emergency_stop(
        self, onboard, confirm_deposit, accrual_engine, monkeypatch, accrual_record
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")
        monkeypatch.setattr(settings, "emergency_stop_accrual", True)

        result = await accrual_engine.run_period(PERIOD)

        assert result.stopped
        assert await accrual_record("inv") is None

    @pytest.mark.asyncio
    async def test_bad_period(self, accrual_engine):
        with pytest.raises(ValidationError):
            await accrual_engine.run_period("2026-13")


class TestFailures:
    """Test failed users."""

    @pytest.mark.asyncio
    async def test_failure_isolated_per_user(
        self,
        onboard,
        confirm_deposit,
        accrual_engine,
        monkeypatch,
        balance_of,
        accrual_record,
    ):
        await onboard("good")
        await onboard("bad")
        await confirm_deposit("good", "dep-g", "1000")
        await confirm_deposit("bad", "dep-b", "1000")

        original = AccrualBatchProcessor.process_user

        async def flaky(self, user_id, period, batch_id, deposit_ids):
            if user_id == "bad":
                raise InvariantViolation("share sum out of tolerance")
            return await original(self, user_id, period, batch_id, deposit_ids)

        monkeypatch.setattr(AccrualBatchProcessor, "process_user", flaky)

        result = await accrual_engine.run_period(PERIOD)

        assert result.completed == 1
        assert result.failed == 1
        assert "bad" in result.errors
        assert await balance_of("good", LedgerBucket.PERIODIC_INCOME) == 80
        assert await balance_of("bad", LedgerBucket.PERIODIC_INCOME) == 0

        record = await accrual_record("bad")
        assert record.status == AccrualStatus.FAILED
        assert "out of tolerance" in record.failure_reason

    @pytest.mark.asyncio
    async def test_retry_failed(
        self,
        onboard,
        confirm_deposit,
        accrual_engine,
        failing_processor,
        balance_of,
        accrual_record,
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")
        assert (await accrual_engine.run_period(PERIOD)).failed == 1

        failing_processor.undo()
        retry = await accrual_engine.retry_failed(PERIOD)

        assert retry.completed == 1
        assert retry.retried == 1
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 800
        assert await balance_of("inv", LedgerBucket.PRINCIPAL) == 10000
        record = await accrual_record("inv")
        assert record.status == AccrualStatus.COMPLETED
        assert record.failure_reason is None

    @pytest.mark.asyncio
    async def test_rerun_retries_failed(
        self, onboard, confirm_deposit, accrual_engine, failing_processor, balance_of
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")
        await accrual_engine.run_period(PERIOD)

        failing_processor.undo()
        rerun = await accrual_engine.run_period(PERIOD)

        assert rerun.completed == 1
        assert rerun.retried == 1
        assert await balance_of("inv", LedgerBucket.PERIODIC_INCOME) == 800

    @pytest.mark.asyncio
    async def test_retry_without_eligible_deposits_cancels(
        self,
        onboard,
        confirm_deposit,
        accrual_engine,
        failing_processor,
        session_maker,
        accrual_record,
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")
        await accrual_engine.run_period(PERIOD)
        failing_processor.undo()

        async with session_maker() as session:
            await DepositService(session).set_dormant("dep-1")

        retry = await accrual_engine.retry_failed(PERIOD)

        assert retry.total_users == 0
        assert (await accrual_record("inv")).status == AccrualStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_retry_with_nothing_failed(self, accrual_engine):
        result = await accrual_engine.retry_failed(PERIOD)

        assert result.total_users == 0
        assert result.success

    @pytest.mark.asyncio
    async def test_cancel_failed_record(
        self,
        onboard,
        confirm_deposit,
        accrual_engine,
        failing_processor,
        accrual_record,
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")
        await accrual_engine.run_period(PERIOD)
        failed = await accrual_record("inv")

        cancelled = await accrual_engine.cancel_record(failed.id)

        assert cancelled.status == AccrualStatus.CANCELLED
        with pytest.raises(InvalidStatusTransition):
            await accrual_engine.cancel_record(failed.id)

    @pytest.mark.asyncio
    async def test_completed_record_cannot_be_cancelled(
        self, onboard, confirm_deposit, accrual_engine, accrual_record
    ):
        await onboard("inv")
        await confirm_deposit("inv", "dep-1", "10000")
        await accrual_engine.run_period(PERIOD)

        with pytest.raises(InvalidStatusTransition):
            await accrual_engine.cancel_record((await accrual_record("inv")).id)

    @pytest.mark.asyncio
    async def test_cancel_missing_record(self, accrual_engine):
        with pytest.raises(NotFound):
            await accrual_engine.cancel_record(424242)
