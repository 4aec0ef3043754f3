"""Command and command result models."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from relay_server.utils.db import Base


class CommandStatus(str, enum.Enum):
    """Command lifecycle status. The values are the wire strings."""

    DRAFT = "draft"
    QUEUED = "queued"
    DISPATCHING = "dispatching"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Statuses in which a command is held under a lease.
CLAIMED_STATUSES = (CommandStatus.DISPATCHING, CommandStatus.EXECUTING)


def _status_column_type() -> SAEnum:
    return SAEnum(
        CommandStatus,
        native_enum=False,
        length=16,
        values_callable=lambda members: [member.value for member in members],
    )


class Command(Base):
    """Unit of dispatchable work queued by an operator for one agent."""

    __tablename__ = "commands"
    __table_args__ = (
        Index("commands_claimable_idx", "agent_id", "status", "priority", "created_at"),
        Index("commands_claimed_by_status_idx", "claimed_by_agent_id", "status"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    agent_id: Mapped[str] = mapped_column(String(36), index=True)
    instruction: Mapped[str] = mapped_column(Text)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    priority: Mapped[int] = mapped_column(Integer, default=5)
    requested_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    status: Mapped[CommandStatus] = mapped_column(
        _status_column_type(), default=CommandStatus.QUEUED
    )
    claimed_by_agent_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    lease_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    last_claim_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )


class CommandResult(Base):
    """One output chunk of a command. Append-only."""

    __tablename__ = "command_results"
    __table_args__ = (Index("command_results_order_idx", "command_id", "chunk_index"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    command_id: Mapped[str] = mapped_column(String(36))
    chunk_index: Mapped[int] = mapped_column(Integer)
    output: Mapped[str] = mapped_column(Text)
    is_final: Mapped[bool] = mapped_column(Boolean, default=False)
    # "metadata" is reserved on declarative classes.
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
