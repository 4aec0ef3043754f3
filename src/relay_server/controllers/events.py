"""Events controller — read-only audit log."""

from __future__ import annotations

from typing import Any

from litestar import Controller, get
from litestar.params import Parameter

from relay_server.models.user import User
from relay_server.resources.event import EventResource


class EventsController(Controller):
    """HTTP adapter for audit log queries."""

    path = "/api/v1/events"

    @get("/")
    async def list_events(
        self,
        user: User,
        event_resource: EventResource,
        agent_id: str | None = Parameter(query="agentId", default=None),
        command_id: str | None = Parameter(query="commandId", default=None),
        limit: int = Parameter(default=50, ge=1, le=200),
    ) -> list[dict[str, Any]]:
        """Most recent events first."""
        return await event_resource.list_events(
            agent_id=agent_id, command_id=command_id, limit=limit,
        )
