"""
Audit sink.

Side-effect channel for business events. The ledger core only emits;
persisting the audit trail belongs to the embedding application.
"""

from typing import Any, Protocol

from loguru import logger


class AuditSink(Protocol):
    """Receives audit events from the engines."""

    async def record(self, event_type: str, payload: dict[str, Any]) -> None:
        """Record one event."""
        ...


class LoguruAuditSink:
    """Default sink: one bound loguru record per event."""

    def __init__(self, component: str = "yieldcycle") -> None:
        """Initialize sink."""
        self._logger = logger.bind(audit=True, component=component)

    async def record(self, event_type: str, payload: dict[str, Any]) -> None:
        """Write event to the log."""
        self._logger.info(
            f"Audit: {event_type}",
            extra={"event_type": event_type, **_stringify(payload)},
        )


def _stringify(payload: dict[str, Any]) -> dict[str, Any]:
    """Render Decimal and other values as strings for log serialization."""
    return {
        key: value if isinstance(value, (int, bool, str, type(None))) else str(value)
        for key, value in payload.items()
    }


async def emit(sink: AuditSink | None, event_type: str, **payload: Any) -> None:
    """
    Send an event to the sink without letting sink errors break the caller.

    Args:
        sink: Audit sink (None disables auditing)
        event_type: Dotted event name
        **payload: Event data
    """
    if sink is None:
        return
    try:
        await sink.record(event_type, payload)
    except Exception as e:
        logger.error(
            f"Audit sink failed for {event_type}: {e}",
            extra={"event_type": event_type},
        )
