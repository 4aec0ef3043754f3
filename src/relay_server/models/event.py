"""Audit event model."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from relay_server.utils.db import Base

EVENT_LEVELS = frozenset({"info", "warn", "error"})


class Event(Base):
    """Immutable audit record of a lifecycle, claim or agent action."""

    __tablename__ = "events"
    __table_args__ = (Index("events_occurred_at_idx", "occurred_at"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    event_type: Mapped[str] = mapped_column(String(64))
    level: Mapped[str] = mapped_column(String(8), default="info")
    agent_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    command_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
