"""
Integration tests for the referral tree.

Tests cover:
- Onboarding roots and children with derived path, level and cache
- Duplicate, missing-referrer and depth failures
- Idempotent referral links and team size
- Integrity scan and team statistics
"""

import pytest
from sqlalchemy import delete, update

from yieldcycle.models.enums import LedgerBucket
from yieldcycle.models.genealogy_node import DirectReferral, GenealogyNode
from yieldcycle.services.genealogy.genealogy_service import GenealogyService
from yieldcycle.utils.exceptions import (
    DepthExceeded,
    DuplicateError,
    NotFound,
    ValidationError,
)


class TestOnboarding:
    """Test node creation through onboarding."""

    @pytest.mark.asyncio
    async def test_root(self, onboard, balance_of):
        node = await onboard("alice")

        assert node.level == 0
        assert node.path == "/"
        assert node.parent_user_id is None
        assert node.ancestors() == []
        assert await balance_of("alice", LedgerBucket.PRINCIPAL) == 0

    @pytest.mark.asyncio
    async def test_chain_derives_cache(self, build_chain, node_of):
        await build_chain("a", "b", "c", "d")

        node = await node_of("d")

        assert node.level == 3
        assert node.path == "/b/c/d/"
        assert node.ancestors() == [(1, "c"), (2, "b"), (3, "a")]

    @pytest.mark.asyncio
    async def test_ancestors_from_service(self, build_chain, session_maker):
        await build_chain("a", "b", "c")

        async with session_maker() as session:
            ancestors = await GenealogyService(session).get_ancestors("c")

        assert ancestors == [(1, "b"), (2, "a")]

    @pytest.mark.asyncio
    async def test_duplicate_user(self, onboard):
        await onboard("alice")

        with pytest.raises(DuplicateError):
            await onboard("alice")

    @pytest.mark.asyncio
    async def test_unknown_referrer(self, onboard):
        with pytest.raises(NotFound):
            await onboard("bob", "nobody")

    @pytest.mark.asyncio
    async def test_depth_limit(self, build_chain, onboard, session_maker):
        await build_chain("u0", "u1", "u2", "u3", "u4", "u5")

        with pytest.raises(DepthExceeded):
            await onboard("u6", "u5")

        async with session_maker() as session:
            with pytest.raises(NotFound):
                await GenealogyService(session).get_node("u6")

    @pytest.mark.asyncio
    async def test_invalid_identifier(self, onboard):
        with pytest.raises(ValidationError):
            await onboard("has/slash")


class TestReferrals:
    """Test referral links and team size."""

    @pytest.mark.asyncio
    async def test_direct_referral_counted_once(
        self, build_chain, session_maker, node_of
    ):
        await build_chain("a", "b")

        async with session_maker() as session:
            created = await GenealogyService(session).add_direct_referral("a", "b")

        assert created is False
        assert (await node_of("a")).total_team_size == 1

    @pytest.mark.asyncio
    async def test_self_referral_rejected(self, onboard, session_maker):
        await onboard("a")

        async with session_maker() as session:
            with pytest.raises(ValidationError):
                await GenealogyService(session).add_direct_referral("a", "a")

    @pytest.mark.asyncio
    async def test_referrals_by_level(self, onboard, session_maker):
        await onboard("a")
        await onboard("b", "a")
        await onboard("c", "a")
        await onboard("d", "b")

        async with session_maker() as session:
            service = GenealogyService(session)
            direct = await service.get_direct_referrals("a")
            second = await service.get_referrals_by_level("a", 2)

        assert sorted(direct) == ["b", "c"]
        assert [node.user_id for node in second] == ["d"]

    @pytest.mark.asyncio
    async def test_archive(self, onboard, session_maker, node_of):
        await onboard("a")

        async with session_maker() as session:
            assert await GenealogyService(session).archive_node("a") is True
        async with session_maker() as session:
            assert await GenealogyService(session).archive_node("a") is False

        assert (await node_of("a")).is_archived


class TestIntegrityAndStatistics:
    """Test integrity scan and statistics."""

    @pytest.mark.asyncio
    async def test_consistent_tree_is_valid(self, build_chain, onboard, session_maker):
        await build_chain("a", "b", "c")
        await onboard("d", "b")

        async with session_maker() as session:
            report = await GenealogyService(session).validate_tree_integrity()

        assert report.is_valid
        assert report.checked_nodes == 4

    @pytest.mark.asyncio
    async def test_corrupt_cache_reported(self, build_chain, session_maker):
        await build_chain("a", "b", "c")

        async with session_maker() as session:
            async with session.begin():
                await session.execute(
                    update(GenealogyNode)
                    .where(GenealogyNode.user_id == "c")
                    .values(ancestor_level_2="b")
                )

        async with session_maker() as session:
            report = await GenealogyService(session).validate_tree_integrity("b")

        assert not report.is_valid
        assert any("ancestor_level_2" in issue for issue in report.issues)

    @pytest.mark.asyncio
    async def test_referral_link_mismatch_reported(
        self, build_chain, onboard, session_maker
    ):
        await build_chain("a", "b", "c")
        await onboard("d", "b")

        async with session_maker() as session:
            async with session.begin():
                await session.execute(
                    delete(DirectReferral).where(DirectReferral.child_user_id == "c")
                )
                await session.execute(
                    update(DirectReferral)
                    .where(DirectReferral.child_user_id == "d")
                    .values(parent_user_id="a")
                )

        async with session_maker() as session:
            report = await GenealogyService(session).validate_tree_integrity()

        assert sorted(report.issues) == [
            "c: missing direct referral link",
            "d: referral link points to a, parent is b",
        ]

    @pytest.mark.asyncio
    async def test_team_delta_and_stats(self, build_chain, session_maker):
        await build_chain("a", "b", "c")

        async with session_maker() as session:
            await GenealogyService(session).apply_team_delta(
                "a", volume_delta="2500", commission_delta="125"
            )

        async with session_maker() as session:
            service = GenealogyService(session)
            stats = await service.get_user_team_stats("a")
            top = await service.get_top_performers(limit=1)

        assert stats["direct_referrals"] == 1
        assert stats["referrals_by_level"][2] == 1
        assert stats["downline_nodes"] == 2
        assert stats["total_team_volume"] == 2500
        assert stats["commission_earned"] == 125
        assert top[0]["user_id"] == "a"
        assert top[0]["rank"] == 1
