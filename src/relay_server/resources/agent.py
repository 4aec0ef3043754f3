"""Agent resource — protocol-agnostic agent management and self-service."""

from __future__ import annotations

from typing import Any

from relay_server.models.agent import Agent
from relay_server.models.user import Role, User
from relay_server.resources.auth import AuthResource
from relay_server.schemas.agent import (
    AgentCreate,
    AgentRegister,
    ConnectIntentCreate,
    Heartbeat,
    SetupCodeExchange,
)
from relay_server.services.agent_service import AgentService
from relay_server.utils.time import Time


class AgentResource:
    """Operator-side agent management and agent-side registration.

    Built once at startup with all dependencies pre-wired.
    """

    def __init__(self, *, agent_service: AgentService, base_url: str) -> None:
        self._service = agent_service
        self._base_url = base_url.rstrip("/")

    # --- operator side ---

    async def list_agents(self, user: User) -> list[dict[str, Any]]:
        """Return all agents, newest first. Any role may read."""
        agents = await self._service.list_agents()
        return [AgentResource._agent_to_dict(agent) for agent in agents]

    async def create_agent(self, user: User, request: AgentCreate) -> dict[str, Any]:
        """Create an agent. The plaintext token is returned only here."""
        AuthResource.require_role(user, Role.OPERATOR)
        agent, token = await self._service.create_agent(
            request.name,
            external_id=request.external_id,
            capabilities=request.capabilities,
            token=request.token,
            created_by=user.id,
        )
        return {
            "agent": AgentResource._agent_to_dict(agent),
            "credentials": {"token": token},
        }

    async def create_connect_intent(
        self, user: User, request: ConnectIntentCreate,
    ) -> dict[str, Any]:
        """Create a provisional agent and return its one-time setup code."""
        AuthResource.require_role(user, Role.OPERATOR)
        intent, setup_code = await self._service.create_connect_intent(
            request.display_name, created_by=user.id,
        )
        return {
            "intent_id": intent.id,
            "agent_id": intent.agent_id,
            "setup_code": setup_code,
            "setup_url": f"{self._base_url}/api/v1/agent/connect/exchange",
            "expires_at": Time.isoformat(intent.expires_at),
            "created_at": Time.isoformat(intent.created_at),
        }

    async def revoke_token(self, user: User, agent_id: str) -> dict[str, Any]:
        AuthResource.require_role(user, Role.OPERATOR)
        agent = await self._service.revoke_token(agent_id, revoked_by=user.id)
        return {"id": agent.id, "token_active": agent.token_active}

    async def delete_agent(self, user: User, agent_id: str) -> dict[str, Any]:
        """Delete an agent with no command history."""
        AuthResource.require_role(user, Role.OPERATOR)
        await self._service.delete_agent(agent_id, deleted_by=user.id)
        return {"id": agent_id, "deleted": True}

    async def get_agent(self, agent_id: str) -> dict[str, Any]:
        return AgentResource._agent_to_dict(await self._service.get_agent(agent_id))

    # --- agent side ---

    async def resolve_agent(self, token: str) -> Agent:
        """Raises UnauthorizedError if the token is unknown or revoked."""
        return await self._service.resolve_token(token)

    async def exchange_setup_code(self, request: SetupCodeExchange) -> dict[str, Any]:
        """Trade a setup code for an agent token."""
        agent, token = await self._service.exchange_setup_code(
            request.setup_code, request.agent_external_id,
        )
        return {
            "agent_id": agent.id,
            "token": token,
            "agent_api_base_url": f"{self._base_url}/api/v1/agent",
        }

    async def register(self, agent: Agent, request: AgentRegister) -> dict[str, Any]:
        registered = await self._service.register(
            agent.id,
            external_id=request.external_id,
            name=request.name,
            purpose=request.purpose,
            capabilities=request.capabilities,
            tools=[tool.model_dump(by_alias=True, exclude_none=True) for tool in request.tools],
        )
        return AgentResource._agent_to_dict(registered)

    async def heartbeat(self, agent: Agent, request: Heartbeat) -> dict[str, Any]:
        updated = await self._service.heartbeat(
            agent.id, request.status, request.metadata,
        )
        return {
            "id": updated.id,
            "status": updated.status,
            "last_heartbeat_at": Time.isoformat(updated.last_heartbeat_at),
        }

    @staticmethod
    def _agent_to_dict(agent: Agent) -> dict[str, Any]:
        """Serialize an agent for operator views. Never includes the token hash."""
        return {
            "id": agent.id,
            "name": agent.name,
            "external_id": agent.external_id,
            "status": agent.status,
            "capabilities": list(agent.capabilities or []),
            "metadata": dict(agent.meta or {}),
            "token_hint": agent.token_hint,
            "token_active": agent.token_active,
            "last_heartbeat_at": Time.isoformat(agent.last_heartbeat_at),
            "created_at": Time.isoformat(agent.created_at),
            "updated_at": Time.isoformat(agent.updated_at),
        }
