"""Agents controller — operator HTTP adapter for AgentResource."""

from __future__ import annotations

from typing import Any

from litestar import Controller, delete, get, post
from litestar.response import ServerSentEvent

from relay_server.controllers.sse import sse_response
from relay_server.models.user import User
from relay_server.resources.agent import AgentResource
from relay_server.resources.stream import StreamResource
from relay_server.schemas.agent import AgentCreate, ConnectIntentCreate
from relay_server.schemas.base import parse_body


class AgentsController(Controller):
    """Operator endpoints for agent management."""

    path = "/api/v1/agents"

    @get("/")
    async def list_agents(
        self,
        user: User,
        agent_resource: AgentResource,
    ) -> list[dict[str, Any]]:
        """List all agents, newest first."""
        return await agent_resource.list_agents(user)

    @post("/", status_code=201)
    async def create_agent(
        self,
        data: dict[str, Any],
        user: User,
        agent_resource: AgentResource,
    ) -> dict[str, Any]:
        """Create an agent with a static token (returned once)."""
        return await agent_resource.create_agent(user, parse_body(AgentCreate, data))

    @post("/connect-intents", status_code=201)
    async def create_connect_intent(
        self,
        user: User,
        agent_resource: AgentResource,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create a provisional agent and a one-time setup code."""
        return await agent_resource.create_connect_intent(
            user, parse_body(ConnectIntentCreate, data),
        )

    @post("/{agent_id:str}/token/revoke", status_code=200)
    async def revoke_token(
        self,
        agent_id: str,
        user: User,
        agent_resource: AgentResource,
    ) -> dict[str, Any]:
        return await agent_resource.revoke_token(user, agent_id)

    @delete("/{agent_id:str}", status_code=200)
    async def delete_agent(
        self,
        agent_id: str,
        user: User,
        agent_resource: AgentResource,
    ) -> dict[str, Any]:
        """Delete an agent that never received a command."""
        return await agent_resource.delete_agent(user, agent_id)

    @get("/{agent_id:str}/stream")
    async def stream(
        self,
        agent_id: str,
        user: User,
        stream_resource: StreamResource,
    ) -> ServerSentEvent:
        """Live registration and heartbeat updates for one agent."""
        return sse_response(await stream_resource.agent_stream(agent_id))
