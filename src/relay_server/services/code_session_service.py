"""Business logic for interactive code sessions between operators and agents."""

from __future__ import annotations

import logging
from typing import Any

from relay_server.dao.agent_dao import AgentDAO
from relay_server.dao.code_session_dao import CodeSessionDAO
from relay_server.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from relay_server.models.code_session import (
    REOPENABLE_STATUSES,
    CodeSession,
    CodeSessionEvent,
    CodeSessionStatus,
)
from relay_server.plugins.contracts.event_sink import EventSink
from relay_server.services.notifier import Notifier
from relay_server.utils.time import Clock, Time

logger = logging.getLogger(__name__)

MAX_EVENTS_PAGE = 500
OUTPUT_LEVELS = frozenset({"debug", "info", "warn", "error"})


class CodeSessionService:
    """Operators send input, agents stream output lines back.

    Every event in a session gets the next sequence number, so readers
    page with ``seq`` as the cursor. Each write is recorded in the audit
    log and published on the session's topic after commit.
    """

    def __init__(
        self,
        code_session_dao: CodeSessionDAO,
        agent_dao: AgentDAO,
        event_sink: EventSink,
        notifier: Notifier,
        clock: Clock = Time.now,
    ) -> None:
        self._dao = code_session_dao
        self._agents = agent_dao
        self._events = event_sink
        self._notifier = notifier
        self._clock = clock

    # --- operator side ---

    async def open_session(
        self,
        agent_id: str,
        *,
        created_by: str | None = None,
        reopen: bool = True,
    ) -> tuple[CodeSession, bool]:
        """Start a session, or return the agent's latest active/idle one.

        Returns:
            The session and whether it was newly created.

        Raises:
            NotFoundError: If the agent does not exist.
        """
        now = self._clock()
        async with self._dao.transaction():
            if await self._agents.find_agent_by_id(agent_id) is None:
                raise NotFoundError("Agent not found")
            if reopen:
                existing = await self._dao.find_latest(agent_id, REOPENABLE_STATUSES)
                if existing is not None:
                    return existing, False
            session = await self._dao.create_session(
                agent_id=agent_id, created_by=created_by, now=now,
            )
            await self._events.record(
                "agent.code.session.started",
                agent_id=agent_id,
                payload={"sessionId": session.id, "createdBy": created_by},
            )
            await self._dao.commit()
        logger.info("Opened code session %s for agent %s", session.id, agent_id)
        return session, True

    async def latest_session(self, agent_id: str) -> CodeSession | None:
        """The agent's most recently started session in any status."""
        async with self._dao.transaction():
            return await self._dao.find_latest(agent_id)

    async def get_session(self, agent_id: str, session_id: str) -> CodeSession:
        """Raises NotFoundError unless the session exists and belongs to the agent."""
        async with self._dao.transaction():
            return await self._require_session(agent_id, session_id)

    async def send_input(
        self,
        agent_id: str,
        session_id: str,
        text: str,
        *,
        sent_by: str | None = None,
    ) -> CodeSessionEvent:
        """Store operator input as the session's next event.

        Raises:
            ValidationError: If ``text`` is blank.
            NotFoundError: If the session does not belong to the agent.
            ConflictError: If the session is closed.
        """
        text = text.strip()
        if not text:
            raise ValidationError("input must not be empty")
        now = self._clock()
        async with self._dao.transaction():
            session = await self._require_session(agent_id, session_id)
            if session.status == CodeSessionStatus.CLOSED.value:
                raise ConflictError("Session is closed")
            (event,) = await self._dao.append_events(
                session_id,
                direction="input",
                payloads=[{"text": text, "by": sent_by}],
                now=now,
            )
            await self._events.record(
                "agent.code.session.input",
                agent_id=agent_id,
                payload={"sessionId": session_id, "seq": event.seq, "by": sent_by},
            )
            await self._dao.commit()
        self._notifier.code_session_changed(
            session_id,
            event_type="agent.code.session.input",
            events=[event],
        )
        return event

    async def list_events(
        self,
        agent_id: str,
        session_id: str,
        *,
        cursor: int | None = None,
        limit: int = 200,
    ) -> tuple[list[CodeSessionEvent], int | None]:
        """Return one page of events after ``cursor`` and the next cursor.

        The next cursor is the last ``seq`` of a full page, else None.

        Raises:
            ValidationError: If ``cursor`` is negative or ``limit`` out of 1..500.
            NotFoundError: If the session does not belong to the agent.
        """
        if cursor is not None and cursor < 0:
            raise ValidationError("cursor must be >= 0")
        if not 1 <= limit <= MAX_EVENTS_PAGE:
            raise ValidationError(f"limit must be between 1 and {MAX_EVENTS_PAGE}")
        async with self._dao.transaction():
            await self._require_session(agent_id, session_id)
            events = await self._dao.list_events(session_id, after=cursor, limit=limit)
        next_cursor = events[-1].seq if events and len(events) == limit else None
        return events, next_cursor

    # --- agent side ---

    async def append_output(
        self,
        session_id: str,
        agent_id: str,
        lines: list[dict[str, Any]],
        status: CodeSessionStatus | None = None,
    ) -> list[CodeSessionEvent]:
        """Store output lines and optionally move the session to ``status``.

        Each line is ``{"line": str, "level"?: str, "ts"?: str}``; a missing
        level defaults to ``info`` and a missing ``ts`` to now. Moving to
        ``closed`` stamps ``closed_at``.

        Raises:
            ValidationError: If ``lines`` is empty or a line is malformed.
            NotFoundError: If the session does not exist.
            ForbiddenError: If the session belongs to another agent.
        """
        if not lines:
            raise ValidationError("lines must not be empty")
        now = self._clock()
        stamp = Time.isoformat(now)
        payloads = [CodeSessionService._output_payload(line, stamp) for line in lines]
        async with self._dao.transaction():
            session = await self._dao.find_by_id(session_id)
            if session is None:
                raise NotFoundError("Session not found")
            if session.agent_id != agent_id:
                raise ForbiddenError("Session does not belong to agent")
            events = await self._dao.append_events(
                session_id, direction="output", payloads=payloads, now=now,
            )
            if status is not None:
                await self._dao.update_status(
                    session_id,
                    status=status.value,
                    closed_at=now if status == CodeSessionStatus.CLOSED else None,
                    now=now,
                )
            await self._events.record(
                "agent.code.session.output",
                agent_id=agent_id,
                payload={"sessionId": session_id, "count": len(events)},
            )
            await self._dao.commit()
        self._notifier.code_session_changed(
            session_id,
            event_type="agent.code.session.output",
            events=events,
        )
        return events

    async def _require_session(self, agent_id: str, session_id: str) -> CodeSession:
        session = await self._dao.find_by_id(session_id)
        if session is None or session.agent_id != agent_id:
            raise NotFoundError("Session not found for agent")
        return session

    @staticmethod
    def _output_payload(line: dict[str, Any], stamp: str) -> dict[str, Any]:
        text = line.get("line")
        if not isinstance(text, str) or not text:
            raise ValidationError("each output line needs non-empty 'line' text")
        level = line.get("level") or "info"
        if level not in OUTPUT_LEVELS:
            raise ValidationError(f"Unknown output level: {level}")
        return {"ts": line.get("ts") or stamp, "level": level, "line": text}
