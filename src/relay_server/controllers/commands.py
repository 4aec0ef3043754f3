"""Commands controller — operator HTTP adapter for CommandResource."""

from __future__ import annotations

from typing import Any

from litestar import Controller, get, post
from litestar.params import Parameter
from litestar.response import ServerSentEvent

from relay_server.controllers.sse import sse_response
from relay_server.models.user import User
from relay_server.resources.command import CommandResource
from relay_server.resources.stream import StreamResource
from relay_server.schemas.base import parse_body
from relay_server.schemas.command import CommandCreate


class CommandsController(Controller):
    """Operator endpoints for queuing and observing commands."""

    path = "/api/v1/commands"

    @get("/")
    async def list_commands(
        self,
        user: User,
        command_resource: CommandResource,
        agent_id: str | None = Parameter(query="agentId", default=None),
        status: str | None = Parameter(default=None),
        limit: int = Parameter(default=50, ge=1, le=200),
    ) -> list[dict[str, Any]]:
        """List commands newest first."""
        return await command_resource.list_commands(
            agent_id=agent_id, status=status, limit=limit,
        )

    @post("/", status_code=201)
    async def create_command(
        self,
        data: dict[str, Any],
        user: User,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        """Queue a command for an agent."""
        return await command_resource.create_command(user, parse_body(CommandCreate, data))

    @get("/{command_id:str}")
    async def get_command(
        self,
        command_id: str,
        user: User,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        return await command_resource.get_command(command_id)

    @get("/{command_id:str}/results")
    async def list_results(
        self,
        command_id: str,
        user: User,
        command_resource: CommandResource,
    ) -> list[dict[str, Any]]:
        """Result chunks ordered by chunk index."""
        return await command_resource.list_results(command_id)

    @post("/{command_id:str}/cancel", status_code=200)
    async def cancel(
        self,
        command_id: str,
        user: User,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        return await command_resource.cancel(user, command_id)

    @get("/{command_id:str}/stream")
    async def stream(
        self,
        command_id: str,
        user: User,
        stream_resource: StreamResource,
    ) -> ServerSentEvent:
        """Live status and result updates for one command."""
        return sse_response(await stream_resource.command_stream(command_id))
