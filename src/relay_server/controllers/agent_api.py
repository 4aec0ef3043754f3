"""Agent API controller — token-authed endpoints called by agents."""

from __future__ import annotations

from typing import Any

from litestar import Controller, Request, post
from litestar.datastructures import State
from litestar.di import Provide
from litestar.types import Dependencies

from relay_server.errors import UnauthorizedError
from relay_server.models.agent import Agent
from relay_server.resources.agent import AgentResource
from relay_server.resources.code_session import CodeSessionResource
from relay_server.resources.command import CommandResource
from relay_server.schemas.agent import AgentRegister, Heartbeat, SetupCodeExchange
from relay_server.schemas.base import parse_body
from relay_server.schemas.code_session import CodeSessionOutput
from relay_server.schemas.command import (
    ClaimRequest,
    FailureReport,
    LeaseExtend,
    ProgressReport,
    ReleaseRequest,
    ResultChunk,
)


async def _provide_agent_from_token(
    request: Request[object, object, State],
    agent_resource: AgentResource,
) -> Agent:
    """Extract the Bearer agent token and resolve it to an Agent.

    Raises:
        UnauthorizedError: If the header is missing or malformed, or the
            token does not map to an active agent.
    """
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        raise UnauthorizedError("Missing bearer token")
    return await agent_resource.resolve_agent(header[len("Bearer "):])


class AgentApiController(Controller):
    """Endpoints an agent calls with its bearer token."""

    path = "/api/v1/agent"
    # Litestar declares dependencies as an instance var, so ClassVar
    # would fail mypy.  Suppress RUF012 (mutable class attribute).
    dependencies: Dependencies = {  # noqa: RUF012
        "agent": Provide(_provide_agent_from_token),
    }

    @post("/commands/claim", status_code=200)
    async def claim(
        self,
        agent: Agent,
        command_resource: CommandResource,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Claim queued commands, optionally long-polling for ``waitMs``."""
        return await command_resource.claim(agent, parse_body(ClaimRequest, data))

    @post("/commands/{command_id:str}/lease/extend", status_code=200)
    async def extend_lease(
        self,
        command_id: str,
        data: dict[str, Any],
        agent: Agent,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        return await command_resource.extend_lease(
            agent, command_id, parse_body(LeaseExtend, data),
        )

    @post("/commands/{command_id:str}/release", status_code=200)
    async def release(
        self,
        command_id: str,
        agent: Agent,
        command_resource: CommandResource,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Give a held command back to the queue."""
        return await command_resource.release(
            agent, command_id, parse_body(ReleaseRequest, data),
        )

    @post("/commands/{command_id:str}/progress", status_code=200)
    async def progress(
        self,
        command_id: str,
        data: dict[str, Any],
        agent: Agent,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        return await command_resource.progress(
            agent, command_id, parse_body(ProgressReport, data),
        )

    @post("/commands/{command_id:str}/result", status_code=200)
    async def append_result(
        self,
        command_id: str,
        data: dict[str, Any],
        agent: Agent,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        """Append a result chunk; the final chunk completes the command."""
        return await command_resource.append_result(
            agent, command_id, parse_body(ResultChunk, data),
        )

    @post("/commands/{command_id:str}/fail", status_code=200)
    async def fail(
        self,
        command_id: str,
        data: dict[str, Any],
        agent: Agent,
        command_resource: CommandResource,
    ) -> dict[str, Any]:
        return await command_resource.fail(
            agent, command_id, parse_body(FailureReport, data),
        )

    @post("/register", status_code=200)
    async def register(
        self,
        data: dict[str, Any],
        agent: Agent,
        agent_resource: AgentResource,
    ) -> dict[str, Any]:
        """Agent describes itself and goes online."""
        return await agent_resource.register(agent, parse_body(AgentRegister, data))

    @post("/heartbeat", status_code=200)
    async def heartbeat(
        self,
        data: dict[str, Any],
        agent: Agent,
        agent_resource: AgentResource,
    ) -> dict[str, Any]:
        """Agent reports its status."""
        return await agent_resource.heartbeat(agent, parse_body(Heartbeat, data))

    @post("/code/sessions/{session_id:str}/output", status_code=200)
    async def code_session_output(
        self,
        session_id: str,
        data: dict[str, Any],
        agent: Agent,
        code_session_resource: CodeSessionResource,
    ) -> dict[str, Any]:
        """Append output lines to a session, optionally changing its status."""
        return await code_session_resource.append_output(
            agent, session_id, parse_body(CodeSessionOutput, data),
        )


class ConnectController(Controller):
    """Unauthenticated setup-code exchange for agents without a token yet."""

    path = "/api/v1/agent/connect"

    @post("/exchange", status_code=200)
    async def exchange(
        self,
        data: dict[str, Any],
        agent_resource: AgentResource,
    ) -> dict[str, Any]:
        return await agent_resource.exchange_setup_code(
            parse_body(SetupCodeExchange, data),
        )
