"""Code session and code session event models."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from relay_server.utils.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CodeSessionStatus(str, enum.Enum):
    """Session status. Agents set it; ``closed`` refuses further operator input."""

    ACTIVE = "active"
    IDLE = "idle"
    CLOSED = "closed"
    ERROR = "error"


# Sessions an operator may reattach to instead of opening a new one.
REOPENABLE_STATUSES = (CodeSessionStatus.ACTIVE.value, CodeSessionStatus.IDLE.value)


class CodeSession(Base):
    """Interactive session between operators and one agent."""

    __tablename__ = "code_sessions"
    __table_args__ = (Index("code_sessions_agent_started_idx", "agent_id", "started_at"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    agent_id: Mapped[str] = mapped_column(String(36))
    status: Mapped[str] = mapped_column(String(16), default=CodeSessionStatus.ACTIVE.value)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class CodeSessionEvent(Base):
    """One operator input or agent output line. ``seq`` orders a session's events."""

    __tablename__ = "code_session_events"
    __table_args__ = (
        UniqueConstraint("session_id", "seq", name="code_session_events_seq_key"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    session_id: Mapped[str] = mapped_column(String(36))
    seq: Mapped[int] = mapped_column(Integer)
    direction: Mapped[str] = mapped_column(String(8))
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
