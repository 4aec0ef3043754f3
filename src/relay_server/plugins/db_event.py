"""Database event sink — store audit events in the events table."""

from __future__ import annotations

from typing import Any

from relay_server.plugins.contracts.event_sink import EventSink
from relay_server.services.event_service import EventService


class DbEventSink(EventSink):
    """Append audit events to the events table in the active transaction.

    A failed insert propagates and aborts the surrounding mutation.
    """

    def __init__(self, event_service: EventService) -> None:
        self._service = event_service

    async def record(
        self,
        event_type: str,
        *,
        level: str = "info",
        agent_id: str | None = None,
        command_id: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Insert one event row."""
        await self._service.record_event(
            event_type,
            level=level,
            agent_id=agent_id,
            command_id=command_id,
            payload=payload or {},
        )
