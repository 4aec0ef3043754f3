"""Code session resource — operator input, agent output and event paging."""

from __future__ import annotations

from typing import Any

from relay_server.models.agent import Agent
from relay_server.models.code_session import CodeSession, CodeSessionEvent, CodeSessionStatus
from relay_server.models.user import Role, User
from relay_server.resources.auth import AuthResource
from relay_server.schemas.code_session import (
    CodeSessionCreate,
    CodeSessionInput,
    CodeSessionOutput,
)
from relay_server.services.code_session_service import CodeSessionService
from relay_server.utils.time import Time


class CodeSessionResource:
    """Built once at startup with all dependencies pre-wired."""

    def __init__(self, *, code_session_service: CodeSessionService) -> None:
        self._service = code_session_service

    # --- operator side ---

    async def open_session(
        self, user: User, agent_id: str, request: CodeSessionCreate,
    ) -> tuple[dict[str, Any], bool]:
        """Returns the session dict and whether it was newly created."""
        AuthResource.require_role(user, Role.OPERATOR)
        session, created = await self._service.open_session(
            agent_id, created_by=user.id, reopen=request.reopen,
        )
        return CodeSessionResource._session_to_dict(session), created

    async def latest_session(self, agent_id: str) -> dict[str, Any] | None:
        session = await self._service.latest_session(agent_id)
        return CodeSessionResource._session_to_dict(session) if session else None

    async def send_input(
        self, user: User, agent_id: str, session_id: str, request: CodeSessionInput,
    ) -> dict[str, Any]:
        AuthResource.require_role(user, Role.OPERATOR)
        event = await self._service.send_input(
            agent_id, session_id, request.input, sent_by=user.id,
        )
        return {"accepted": True, "seq": event.seq}

    async def list_events(
        self, agent_id: str, session_id: str, *, cursor: int | None, limit: int,
    ) -> dict[str, Any]:
        events, next_cursor = await self._service.list_events(
            agent_id, session_id, cursor=cursor, limit=limit,
        )
        return {
            "items": [CodeSessionResource._event_to_dict(event) for event in events],
            "next_cursor": next_cursor,
        }

    # --- agent side ---

    async def append_output(
        self, agent: Agent, session_id: str, request: CodeSessionOutput,
    ) -> dict[str, Any]:
        lines = [
            {
                "line": line.line,
                "level": line.level,
                "ts": Time.isoformat(line.ts),
            }
            for line in request.lines
        ]
        events = await self._service.append_output(
            session_id,
            agent.id,
            lines,
            status=CodeSessionStatus(request.status) if request.status else None,
        )
        return {"accepted": True, "count": len(events)}

    @staticmethod
    def _session_to_dict(session: CodeSession) -> dict[str, Any]:
        return {
            "id": session.id,
            "agent_id": session.agent_id,
            "status": session.status,
            "created_by": session.created_by,
            "started_at": Time.isoformat(session.started_at),
            "closed_at": Time.isoformat(session.closed_at),
            "created_at": Time.isoformat(session.created_at),
            "updated_at": Time.isoformat(session.updated_at),
        }

    @staticmethod
    def _event_to_dict(event: CodeSessionEvent) -> dict[str, Any]:
        return {
            "id": event.id,
            "session_id": event.session_id,
            "seq": event.seq,
            "direction": event.direction,
            "payload": dict(event.payload or {}),
            "created_at": Time.isoformat(event.created_at),
        }
