"""Data access for the audit Event model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select

from relay_server.dao.base import BaseDAO
from relay_server.models.event import Event


class EventDAO(BaseDAO):
    """Append-only access to the audit log."""

    async def create_event(
        self,
        *,
        event_type: str,
        level: str,
        agent_id: str | None,
        command_id: str | None,
        payload: dict[str, Any],
        occurred_at: datetime,
    ) -> Event:
        """Insert a single audit event into the active unit of work."""
        event = Event(
            event_type=event_type,
            level=level,
            agent_id=agent_id,
            command_id=command_id,
            payload=payload,
            occurred_at=occurred_at,
        )
        self._conn().add(event)
        await self._conn().flush()
        return event

    async def list_events(
        self,
        *,
        agent_id: str | None = None,
        command_id: str | None = None,
        limit: int = 50,
    ) -> list[Event]:
        """Return events newest first, optionally filtered."""
        stmt = select(Event)
        if agent_id is not None:
            stmt = stmt.where(Event.agent_id == agent_id)
        if command_id is not None:
            stmt = stmt.where(Event.command_id == command_id)
        stmt = stmt.order_by(Event.occurred_at.desc()).limit(limit)
        result = await self._conn().execute(stmt)
        return list(result.scalars())
