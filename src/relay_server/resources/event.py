"""Event resource — read access to the audit log."""

from __future__ import annotations

from typing import Any

from relay_server.models.event import Event
from relay_server.services.event_service import EventService
from relay_server.utils.time import Time


class EventResource:
    """Audit log queries for operators."""

    def __init__(self, *, event_service: EventService) -> None:
        self._service = event_service

    async def list_events(
        self,
        *,
        agent_id: str | None,
        command_id: str | None,
        limit: int,
    ) -> list[dict[str, Any]]:
        """Return the most recent events, newest first."""
        events = await self._service.list_events(
            agent_id=agent_id, command_id=command_id, limit=limit,
        )
        return [EventResource._event_to_dict(event) for event in events]

    @staticmethod
    def _event_to_dict(event: Event) -> dict[str, Any]:
        return {
            "id": event.id,
            "event_type": event.event_type,
            "level": event.level,
            "agent_id": event.agent_id,
            "command_id": event.command_id,
            "payload": dict(event.payload or {}),
            "occurred_at": Time.isoformat(event.occurred_at),
        }
