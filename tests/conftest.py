"""Pytest configuration and shared fixtures for all tests."""

import os

# Minimal environment for Settings (validated at import time)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./yieldcycle_test.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("REDIS_HOST", "localhost")

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from yieldcycle.config.database import create_engine, create_session_maker
from yieldcycle.models import Base
from yieldcycle.services.deposit_service import DepositService
from yieldcycle.services.genealogy.genealogy_service import GenealogyService
from yieldcycle.services.ledger_service import LedgerService


@pytest.fixture
def mock_session():
    """Mock AsyncSession for tests without a database."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.refresh = AsyncMock()
    return session


@pytest.fixture
def mock_redis_client():
    """Mock Redis client with a lock that is always free."""
    lock = MagicMock()
    lock.acquire = AsyncMock(return_value=True)
    lock.release = AsyncMock()

    client = AsyncMock()
    client.lock = MagicMock(return_value=lock)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
async def engine(tmp_path):
    """On-disk SQLite database with the full schema."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session factory bound to the test database."""
    return create_session_maker(engine)


@pytest.fixture
def onboard(session_maker):
    """Register a user under an optional referrer."""

    async def _onboard(user_id: str, referrer_id: str | None = None):
        async with session_maker() as session:
            return await GenealogyService(session).onboard_user(user_id, referrer_id)

    return _onboard


@pytest.fixture
def build_chain(onboard):
    """Onboard users as a straight line: chain[0] is the root."""

    async def _build(*user_ids: str):
        nodes = []
        referrer = None
        for user_id in user_ids:
            nodes.append(await onboard(user_id, referrer))
            referrer = user_id
        return nodes

    return _build


@pytest.fixture
def confirm_deposit(session_maker):
    """Register and activate a deposit (credits PRINCIPAL)."""

    async def _confirm(user_id: str, deposit_id: str, amount):
        async with session_maker() as session:
            deposit, _ = await DepositService(session).record_confirmed(
                user_id, deposit_id, Decimal(str(amount))
            )
            return deposit

    return _confirm


@pytest.fixture
def balance_of(session_maker):
    """Read one bucket balance in a short session."""

    async def _balance(user_id: str, bucket) -> Decimal:
        async with session_maker() as session:
            return await LedgerService(session).get_balance(user_id, bucket)

    return _balance


@pytest.fixture
def node_of(session_maker):
    """Read a genealogy node in a short session."""

    async def _node(user_id: str):
        async with session_maker() as session:
            return await GenealogyService(session).get_node(user_id)

    return _node
