"""Tests for audit event emission."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from yieldcycle.services.audit import LoguruAuditSink, _stringify, emit


@pytest.mark.asyncio
async def test_emit_passes_payload():
    sink = AsyncMock()

    await emit(sink, "ledger.credit", user_id="u1", amount=Decimal("5"))

    sink.record.assert_awaited_once_with(
        "ledger.credit", {"user_id": "u1", "amount": Decimal("5")}
    )


@pytest.mark.asyncio
async def test_emit_without_sink_is_noop():
    await emit(None, "ledger.credit", user_id="u1")


@pytest.mark.asyncio
async def test_sink_failure_does_not_propagate():
    sink = AsyncMock()
    sink.record.side_effect = RuntimeError("audit store down")

    await emit(sink, "commission.distributed", batch_id="b1")

    sink.record.assert_awaited_once()


@pytest.mark.asyncio
async def test_loguru_sink_records():
    await LoguruAuditSink("test").record("accrual.completed", {"amount": Decimal("1")})


def test_stringify_keeps_scalars():
    payload = _stringify(
        {"amount": Decimal("1.500000"), "level": 2, "ok": True, "note": None}
    )

    assert payload == {"amount": "1.500000", "level": 2, "ok": True, "note": None}
