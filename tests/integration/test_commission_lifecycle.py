"""Integration tests for commission status transitions."""

import pytest

from yieldcycle.models.enums import CommissionStatus, LedgerBucket
from yieldcycle.repositories.commission_repository import CommissionRepository
from yieldcycle.services.commission.distribution import CommissionEngine
from yieldcycle.services.ledger_service import LedgerService
from yieldcycle.utils.exceptions import (
    InsufficientBalance,
    InvalidStatusTransition,
    NotFound,
)


@pytest.fixture
def commission_engine(session_maker):
    return CommissionEngine(session_maker)


@pytest.fixture
async def distributed(build_chain, commission_engine, session_maker):
    """A -> B -> C with dep-1 distributed; returns (level 1, level 2) records."""
    await build_chain("A", "B", "C")
    await commission_engine.distribute("C", "dep-1", "10000")

    async with session_maker() as session:
        records = await CommissionRepository(session).get_for_deposit("dep-1")
    return records[0], records[1]


@pytest.mark.asyncio
async def test_reverse_rolls_back_credit(
    distributed, commission_engine, balance_of, node_of
):
    level_1, _ = distributed

    record = await commission_engine.reverse(level_1.id)

    assert record.status == CommissionStatus.PENDING
    assert record.processed_at is None
    assert await balance_of("B", LedgerBucket.COMMISSION) == 0
    assert (await node_of("B")).commission_earned == 0


@pytest.mark.asyncio
async def test_reversed_record_processed_again(
    distributed, commission_engine, balance_of
):
    level_1, _ = distributed
    await commission_engine.reverse(level_1.id)

    result = await commission_engine.process(level_1.distribution_batch_id)

    assert result.processed == 1
    assert await balance_of("B", LedgerBucket.COMMISSION) == 1000


@pytest.mark.asyncio
async def test_reverse_spent_credit_fails(
    distributed, commission_engine, session_maker, balance_of
):
    level_1, _ = distributed
    async with session_maker() as session:
        async with session.begin():
            await LedgerService(session).debit("B", LedgerBucket.COMMISSION, "600")

    with pytest.raises(InsufficientBalance):
        await commission_engine.reverse(level_1.id)

    async with session_maker() as session:
        record = await CommissionRepository(session).get_by_id(level_1.id)
    assert record.status == CommissionStatus.PROCESSED
    assert await balance_of("B", LedgerBucket.COMMISSION) == 400


@pytest.mark.asyncio
async def test_cancel_processed(distributed, commission_engine, balance_of):
    _, level_2 = distributed

    record = await commission_engine.cancel(level_2.id)

    assert record.status == CommissionStatus.CANCELLED
    assert record.cancelled_at is not None
    assert await balance_of("A", LedgerBucket.COMMISSION) == 0

    with pytest.raises(InvalidStatusTransition):
        await commission_engine.cancel(level_2.id)


@pytest.mark.asyncio
async def test_cancel_pending_keeps_balance(build_chain, session_maker, balance_of):
    await build_chain("A", "B")
    engine = CommissionEngine(session_maker, auto_process=False)
    await engine.distribute("B", "dep-1", "100")
    async with session_maker() as session:
        (record,) = await CommissionRepository(session).get_for_deposit("dep-1")

    cancelled = await engine.cancel(record.id)

    assert cancelled.status == CommissionStatus.CANCELLED
    assert await balance_of("A", LedgerBucket.COMMISSION) == 0

    async with session_maker() as session:
        assert await CommissionRepository(session).sum_for_deposit("dep-1") == 0


@pytest.mark.asyncio
async def test_paid_is_terminal(distributed, commission_engine, balance_of):
    level_1, _ = distributed

    record = await commission_engine.mark_paid(level_1.id)

    assert record.status == CommissionStatus.PAID
    assert record.paid_at is not None
    assert await balance_of("B", LedgerBucket.COMMISSION) == 1000

    with pytest.raises(InvalidStatusTransition):
        await commission_engine.reverse(level_1.id)
    with pytest.raises(InvalidStatusTransition):
        await commission_engine.cancel(level_1.id)


@pytest.mark.asyncio
async def test_pending_cannot_be_paid(build_chain, session_maker):
    await build_chain("A", "B")
    engine = CommissionEngine(session_maker, auto_process=False)
    await engine.distribute("B", "dep-1", "100")
    async with session_maker() as session:
        (record,) = await CommissionRepository(session).get_for_deposit("dep-1")

    with pytest.raises(InvalidStatusTransition):
        await engine.mark_paid(record.id)


@pytest.mark.asyncio
async def test_mark_batch_paid(distributed, commission_engine):
    level_1, _ = distributed

    assert await commission_engine.mark_batch_paid(level_1.distribution_batch_id) == 2
    assert await commission_engine.mark_batch_paid(level_1.distribution_batch_id) == 0


@pytest.mark.asyncio
async def test_missing_record(commission_engine):
    with pytest.raises(NotFound):
        await commission_engine.mark_paid(424242)
