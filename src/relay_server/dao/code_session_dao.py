"""Data access for CodeSession and CodeSessionEvent models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError

from relay_server.dao.base import BaseDAO
from relay_server.errors import ConflictError
from relay_server.models.code_session import CodeSession, CodeSessionEvent


class CodeSessionDAO(BaseDAO):
    """Sessions and their sequenced input/output events."""

    async def create_session(
        self, *, agent_id: str, created_by: str | None, now: datetime,
    ) -> CodeSession:
        session = CodeSession(
            agent_id=agent_id,
            created_by=created_by,
            started_at=now,
            created_at=now,
            updated_at=now,
        )
        self._conn().add(session)
        await self._conn().flush()
        return session

    async def find_by_id(self, session_id: str) -> CodeSession | None:
        result = await self._conn().execute(
            select(CodeSession)
            .where(CodeSession.id == session_id)
            .execution_options(populate_existing=True),
        )
        return result.scalar_one_or_none()

    async def find_latest(
        self, agent_id: str, statuses: tuple[str, ...] | None = None,
    ) -> CodeSession | None:
        """Most recently started session of an agent, optionally filtered by status."""
        stmt = select(CodeSession).where(CodeSession.agent_id == agent_id)
        if statuses is not None:
            stmt = stmt.where(CodeSession.status.in_(statuses))
        stmt = stmt.order_by(CodeSession.started_at.desc()).limit(1)
        result = await self._conn().execute(stmt)
        return result.scalar_one_or_none()

    async def update_status(
        self, session_id: str, *, status: str, closed_at: datetime | None, now: datetime,
    ) -> None:
        values: dict[str, Any] = {"status": status, "updated_at": now}
        if closed_at is not None:
            values["closed_at"] = closed_at
        await self._conn().execute(
            sa_update(CodeSession)
            .where(CodeSession.id == session_id)
            .values(**values)
            .execution_options(synchronize_session=False),
        )

    async def last_seq(self, session_id: str) -> int:
        """Highest sequence number in the session, 0 when empty."""
        result = await self._conn().execute(
            select(func.max(CodeSessionEvent.seq)).where(
                CodeSessionEvent.session_id == session_id,
            ),
        )
        return int(result.scalar_one() or 0)

    async def append_events(
        self,
        session_id: str,
        *,
        direction: str,
        payloads: list[dict[str, Any]],
        now: datetime,
    ) -> list[CodeSessionEvent]:
        """Append events with consecutive sequence numbers after the current last.

        Raises:
            ConflictError: If a concurrent writer took the same sequence numbers.
        """
        start = await self.last_seq(session_id)
        events = [
            CodeSessionEvent(
                session_id=session_id,
                seq=start + offset,
                direction=direction,
                payload=payload,
                created_at=now,
            )
            for offset, payload in enumerate(payloads, start=1)
        ]
        self._conn().add_all(events)
        try:
            await self._conn().flush()
        except IntegrityError as error:
            raise ConflictError("Code session was written concurrently") from error
        return events

    async def list_events(
        self, session_id: str, *, after: int | None, limit: int,
    ) -> list[CodeSessionEvent]:
        """Events in sequence order, strictly after ``after`` when given."""
        stmt = select(CodeSessionEvent).where(CodeSessionEvent.session_id == session_id)
        if after is not None:
            stmt = stmt.where(CodeSessionEvent.seq > after)
        stmt = stmt.order_by(CodeSessionEvent.seq).limit(limit)
        result = await self._conn().execute(stmt)
        return list(result.scalars().all())
