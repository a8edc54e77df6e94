"""Integration tests for inbound events and read-only queries."""

from decimal import Decimal

import pytest

from yieldcycle.models.enums import CommissionStatus, DepositStatus, LedgerBucket
from yieldcycle.services.accrual.accrual_engine import AccrualRunResult
from yieldcycle.services.events import DepositConfirmed, EventDispatcher, PeriodElapsed
from yieldcycle.services.query_service import LedgerQueryService
from yieldcycle.utils.exceptions import NotFound, ValidationError


@pytest.fixture
def dispatcher(session_maker):
    return EventDispatcher(session_maker)


@pytest.fixture
async def funded_network(build_chain, dispatcher):
    """A -> B -> C with C's 10000 deposit confirmed and one period accrued."""
    await build_chain("A", "B", "C")
    await dispatcher.dispatch(DepositConfirmed("C", "dep-1", Decimal("10000")))
    await dispatcher.dispatch(PeriodElapsed("2026-09"))


@pytest.fixture
def query(session_maker):
    async def _query(method: str, *args, **kwargs):
        async with session_maker() as session:
            return await getattr(LedgerQueryService(session), method)(*args, **kwargs)

    return _query


class TestEvents:
    """Test event handling."""

    @pytest.mark.asyncio
    async def test_deposit_confirmed(self, build_chain, dispatcher, balance_of):
        await build_chain("A", "B", "C")

        outcome = await dispatcher.dispatch(
            DepositConfirmed("C", "dep-1", Decimal("10000"))
        )

        assert outcome.activated
        assert outcome.deposit.status == DepositStatus.ACTIVE
        assert outcome.distribution.created == 2
        assert await balance_of("C", LedgerBucket.PRINCIPAL) == 10000
        assert await balance_of("B", LedgerBucket.COMMISSION) == 1000

    @pytest.mark.asyncio
    async def test_redelivery(self, build_chain, dispatcher, balance_of):
        await build_chain("A", "B", "C")
        event = DepositConfirmed("C", "dep-1", Decimal("10000"))
        await dispatcher.handle_deposit_confirmed(event)

        outcome = await dispatcher.handle_deposit_confirmed(event)

        assert not outcome.activated
        assert outcome.distribution.created == 0
        assert outcome.distribution.skipped == 2
        assert await balance_of("C", LedgerBucket.PRINCIPAL) == 10000
        assert await balance_of("A", LedgerBucket.COMMISSION) == 500

    @pytest.mark.asyncio
    async def test_period_elapsed(self, funded_network, balance_of):
        assert await balance_of("C", LedgerBucket.PERIODIC_INCOME) == 800

    @pytest.mark.asyncio
    async def test_period_elapsed_result(self, onboard, dispatcher):
        await onboard("solo")

        result = await dispatcher.dispatch(PeriodElapsed("2026-09"))

        assert isinstance(result, AccrualRunResult)
        assert result.total_users == 0

    @pytest.mark.asyncio
    async def test_unknown_event(self, dispatcher):
        with pytest.raises(ValidationError):
            await dispatcher.dispatch({"type": "deposit_confirmed"})


class TestQueries:
    """Test LedgerQueryService."""

    @pytest.mark.asyncio
    async def test_genealogy(self, funded_network, query):
        view = await query("get_genealogy", "B")

        assert view["level"] == 1
        assert view["ancestors"] == [(1, "A")]
        assert view["direct_referrals"] == ["C"]
        assert view["referrals_by_level"][1] == 1
        assert view["total_team_volume"] == 10000
        assert view["commission_earned"] == 1000

    @pytest.mark.asyncio
    async def test_genealogy_missing(self, query):
        with pytest.raises(NotFound):
            await query("get_genealogy", "ghost")

    @pytest.mark.asyncio
    async def test_ledger_summary(self, funded_network, query):
        summary = await query("get_ledger_summary", "C")

        assert summary.balance(LedgerBucket.PRINCIPAL) == 10000
        assert summary.balance(LedgerBucket.PERIODIC_INCOME) == 800
        assert summary.total == 800

    @pytest.mark.asyncio
    async def test_commission_views(self, funded_network, query):
        history = await query("get_commission_history", "A")
        summary = await query("get_commission_summary", "A")

        assert [(r.level, r.amount) for r in history] == [(2, 500)]
        assert summary["by_status"][CommissionStatus.PROCESSED.value]["count"] == 1
        assert summary["by_level"][2]["total"] == 500
        assert summary["by_level"][1]["count"] == 0

    @pytest.mark.asyncio
    async def test_accrual_views(self, funded_network, query):
        history = await query("get_accrual_history", "C")
        period = await query("get_period_summary", "2026-09")

        assert [r.period for r in history] == ["2026-09"]
        assert period["period"] == "2026-09"
        assert period["by_status"]["completed"]["count"] == 1
        assert period["by_status"]["completed"]["accrual_amount"] == 800

    @pytest.mark.asyncio
    async def test_deposit_summary(self, funded_network, query):
        summary = await query("get_deposit_summary", "C")

        assert summary["total_deposits"] == 1
        assert summary["active_amount"] == 10000
        (deposit,) = summary["deposits"]
        assert deposit["months_active"] == 1
        assert deposit["remaining_months"] == 24
        assert deposit["total_earnings"] == 800

    @pytest.mark.asyncio
    async def test_team_statistics(self, funded_network, query):
        stats = await query("get_team_statistics")

        assert stats["total_nodes"] == 3
        assert stats["root_nodes"] == 1
        assert stats["level_distribution"] == {0: 1, 1: 1, 2: 1}
        assert stats["total_commission_earned"] == 1500
        assert stats["top_performers"][0]["user_id"] in {"A", "B"}
