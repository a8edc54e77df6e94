"""Tests for the rollback decorator."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from yieldcycle.utils.db_decorators import with_rollback_on_error


class _Service:
    def __init__(self, session):
        self.session = session

    @with_rollback_on_error
    async def fail(self):
        raise RuntimeError("write failed")

    @with_rollback_on_error
    async def succeed(self):
        return "ok"


@pytest.fixture
def spec_session():
    return MagicMock(spec=AsyncSession)


@pytest.mark.asyncio
async def test_rollback_on_error(spec_session):
    with pytest.raises(RuntimeError):
        await _Service(spec_session).fail()

    spec_session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_no_rollback_on_success(spec_session):
    assert await _Service(spec_session).succeed() == "ok"

    spec_session.rollback.assert_not_called()


@pytest.mark.asyncio
async def test_session_keyword(mock_session):
    @with_rollback_on_error
    async def write(session=None):
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await write(session=mock_session)

    mock_session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_original_error_kept_when_rollback_fails(mock_session):
    mock_session.rollback.side_effect = RuntimeError("connection lost")

    @with_rollback_on_error
    async def write(session=None):
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await write(session=mock_session)


@pytest.mark.asyncio
async def test_without_session_runs_plainly():
    @with_rollback_on_error
    async def compute(x):
        return x * 2

    assert await compute(3) == 6
