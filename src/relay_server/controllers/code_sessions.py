"""Code sessions controller — operator HTTP adapter for CodeSessionResource."""

from __future__ import annotations

from typing import Any

from litestar import Controller, Response, get, post
from litestar.params import Parameter
from litestar.response import ServerSentEvent

from relay_server.controllers.sse import sse_response
from relay_server.models.user import User
from relay_server.resources.code_session import CodeSessionResource
from relay_server.resources.stream import StreamResource
from relay_server.schemas.base import parse_body
from relay_server.schemas.code_session import CodeSessionCreate, CodeSessionInput


class CodeSessionsController(Controller):
    """Operator endpoints for one agent's code sessions."""

    path = "/api/v1/agents/{agent_id:str}/code/sessions"

    @post("/")
    async def open_session(
        self,
        agent_id: str,
        user: User,
        code_session_resource: CodeSessionResource,
        data: dict[str, Any] | None = None,
    ) -> Response[dict[str, Any]]:
        """Open a session (201), or reattach to an active/idle one (200)."""
        session, created = await code_session_resource.open_session(
            user, agent_id, parse_body(CodeSessionCreate, data),
        )
        return Response(session, status_code=201 if created else 200)

    @get("/active")
    async def latest_session(
        self,
        agent_id: str,
        user: User,
        code_session_resource: CodeSessionResource,
    ) -> dict[str, Any]:
        """The most recently started session, or ``null``."""
        return {"session": await code_session_resource.latest_session(agent_id)}

    @post("/{session_id:str}/input", status_code=202)
    async def send_input(
        self,
        agent_id: str,
        session_id: str,
        data: dict[str, Any],
        user: User,
        code_session_resource: CodeSessionResource,
    ) -> dict[str, Any]:
        return await code_session_resource.send_input(
            user, agent_id, session_id, parse_body(CodeSessionInput, data),
        )

    @get("/{session_id:str}/events")
    async def list_events(
        self,
        agent_id: str,
        session_id: str,
        user: User,
        code_session_resource: CodeSessionResource,
        cursor: int | None = Parameter(default=None, ge=0),
        limit: int = Parameter(default=200, ge=1, le=500),
    ) -> dict[str, Any]:
        """Events in ``seq`` order after ``cursor``."""
        return await code_session_resource.list_events(
            agent_id, session_id, cursor=cursor, limit=limit,
        )

    @get("/{session_id:str}/stream")
    async def stream(
        self,
        agent_id: str,
        session_id: str,
        user: User,
        stream_resource: StreamResource,
    ) -> ServerSentEvent:
        """Live input and output events for one session."""
        return sse_response(await stream_resource.code_session_stream(agent_id, session_id))
