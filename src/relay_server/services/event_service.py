"""Business logic for the audit event log."""

from __future__ import annotations

from typing import Any

from relay_server.dao.event_dao import EventDAO
from relay_server.errors import ValidationError
from relay_server.models.event import EVENT_LEVELS, Event
from relay_server.utils.time import Clock, Time

MAX_EVENT_LIMIT = 200


class EventService:
    """Built once at startup with its DAO pre-wired."""

    def __init__(self, event_dao: EventDAO, clock: Clock = Time.now) -> None:
        self._dao = event_dao
        self._clock = clock

    async def record_event(
        self,
        event_type: str,
        *,
        level: str,
        agent_id: str | None,
        command_id: str | None,
        payload: dict[str, Any],
    ) -> Event:
        """Insert an event into the caller's unit of work. Caller commits.

        Raises:
            ValidationError: If ``level`` is not a known level.
        """
        if level not in EVENT_LEVELS:
            raise ValidationError(f"Unknown event level: {level}")
        async with self._dao.transaction():
            return await self._dao.create_event(
                event_type=event_type,
                level=level,
                agent_id=agent_id,
                command_id=command_id,
                payload=payload,
                occurred_at=self._clock(),
            )

    async def list_events(
        self,
        *,
        agent_id: str | None = None,
        command_id: str | None = None,
        limit: int = 50,
    ) -> list[Event]:
        """Return the most recent events, newest first.

        Raises:
            ValidationError: If ``limit`` is outside 1..200.
        """
        if not 1 <= limit <= MAX_EVENT_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_EVENT_LIMIT}")
        async with self._dao.transaction():
            return await self._dao.list_events(
                agent_id=agent_id, command_id=command_id, limit=limit,
            )
