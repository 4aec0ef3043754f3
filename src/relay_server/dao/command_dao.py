"""Data access for Command and CommandResult models."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, cast

from sqlalchemy import ColumnElement, CursorResult, and_, func, or_, select
from sqlalchemy import update as sa_update

from relay_server.dao.base import BaseDAO
from relay_server.models.command import (
    CLAIMED_STATUSES,
    Command,
    CommandResult,
    CommandStatus,
)

# Rounds of candidate selection when rows are lost to a racing claimer.
_CLAIM_ROUNDS = 3


class CommandDAO(BaseDAO):
    """Data access for commands and their result chunks.

    Status changes are compare-and-swap updates: each returns False when
    the row no longer matches the expected state.
    """

    async def create_command(
        self,
        *,
        agent_id: str,
        instruction: str,
        payload: dict[str, Any],
        priority: int,
        requested_by: str | None,
        now: datetime,
    ) -> Command:
        """Insert a queued command and flush to populate its id."""
        command = Command(
            agent_id=agent_id,
            instruction=instruction,
            payload=payload,
            priority=priority,
            requested_by=requested_by,
            status=CommandStatus.QUEUED,
            attempt_count=0,
            created_at=now,
            updated_at=now,
        )
        self._conn().add(command)
        await self._conn().flush()
        return command

    async def find_by_id(self, command_id: str) -> Command | None:
        """Find a command by its ID, reloading any stale identity-map copy."""
        result = await self._conn().execute(
            select(Command)
            .where(Command.id == command_id)
            .execution_options(populate_existing=True),
        )
        return result.scalar_one_or_none()

    async def list_commands(
        self,
        *,
        agent_id: str | None = None,
        status: CommandStatus | None = None,
        limit: int = 50,
    ) -> list[Command]:
        """List commands newest first, optionally filtered."""
        stmt = select(Command)
        if agent_id is not None:
            stmt = stmt.where(Command.agent_id == agent_id)
        if status is not None:
            stmt = stmt.where(Command.status == status)
        stmt = stmt.order_by(Command.created_at.desc()).limit(limit)
        result = await self._conn().execute(stmt)
        return list(result.scalars().all())

    async def count_by_agent(self, agent_id: str) -> int:
        """Return how many commands ever targeted an agent."""
        result = await self._conn().execute(
            select(func.count()).select_from(Command).where(Command.agent_id == agent_id),
        )
        return int(result.scalar_one())

    # --- claim engine ---

    @staticmethod
    def _claimable(agent_id: str, now: datetime) -> ColumnElement[bool]:
        """Rows the agent may claim: queued and unleased, or lease lapsed."""
        return and_(
            Command.agent_id == agent_id,
            or_(
                and_(
                    Command.status == CommandStatus.QUEUED,
                    or_(
                        Command.lease_expires_at.is_(None),
                        Command.lease_expires_at <= now,
                    ),
                ),
                and_(
                    Command.status.in_(CLAIMED_STATUSES),
                    Command.lease_expires_at.is_not(None),
                    Command.lease_expires_at <= now,
                ),
            ),
        )

    async def claim_queued_commands(
        self,
        agent_id: str,
        max_claims: int,
        lease_seconds: int,
        now: datetime,
    ) -> list[Command]:
        """Flip up to ``max_claims`` claimable commands to dispatching.

        Candidates are read highest priority first, oldest first, with
        ``FOR UPDATE SKIP LOCKED`` where the store supports it. Each row is
        then taken with a conditional UPDATE; a row that stopped being
        claimable in between is skipped and the selection is retried.

        Returns:
            The claimed commands in claim order. Caller commits.
        """
        lease_expires_at = now + timedelta(seconds=lease_seconds)
        claimed_ids: list[str] = []
        for _ in range(_CLAIM_ROUNDS):
            remaining = max_claims - len(claimed_ids)
            if remaining <= 0:
                break
            result = await self._conn().execute(
                select(Command.id, Command.status)
                .where(CommandDAO._claimable(agent_id, now))
                .order_by(Command.priority.desc(), Command.created_at.asc())
                .limit(remaining)
                .with_for_update(skip_locked=True),
            )
            candidates = list(result.all())
            if not candidates:
                break
            lost = 0
            for command_id, previous_status in candidates:
                values: dict[str, Any] = {
                    "status": CommandStatus.DISPATCHING,
                    "claimed_by_agent_id": agent_id,
                    "claimed_at": now,
                    "lease_expires_at": lease_expires_at,
                    "attempt_count": Command.attempt_count + 1,
                    "updated_at": now,
                }
                if previous_status != CommandStatus.QUEUED:
                    values["started_at"] = None
                    values["last_claim_error"] = "lease expired"
                won = await self._cas(
                    and_(Command.id == command_id, CommandDAO._claimable(agent_id, now)),
                    values,
                )
                if won:
                    claimed_ids.append(command_id)
                else:
                    lost += 1
            if lost == 0:
                break
        if not claimed_ids:
            return []
        result = await self._conn().execute(
            select(Command)
            .where(Command.id.in_(claimed_ids))
            .execution_options(populate_existing=True),
        )
        by_id = {command.id: command for command in result.scalars().all()}
        return [by_id[command_id] for command_id in claimed_ids]

    async def update_lease(
        self,
        command_id: str,
        agent_id: str,
        *,
        lease_expires_at: datetime,
        now: datetime,
    ) -> bool:
        """Move the lease deadline of a command the agent currently holds."""
        return await self._cas(
            self._held_by(command_id, agent_id),
            {"lease_expires_at": lease_expires_at, "updated_at": now},
        )

    async def release_claim(
        self,
        command_id: str,
        agent_id: str,
        *,
        reason: str | None,
        now: datetime,
    ) -> bool:
        """Return a held command to the queue and clear its claim."""
        return await self._cas(
            self._held_by(command_id, agent_id),
            {
                "status": CommandStatus.QUEUED,
                "claimed_by_agent_id": None,
                "claimed_at": None,
                "lease_expires_at": None,
                "started_at": None,
                "last_claim_error": reason,
                "updated_at": now,
            },
        )

    @staticmethod
    def _held_by(command_id: str, agent_id: str) -> ColumnElement[bool]:
        return and_(
            Command.id == command_id,
            Command.claimed_by_agent_id == agent_id,
            Command.status.in_(CLAIMED_STATUSES),
        )

    # --- lifecycle ---

    async def update_status(
        self,
        command_id: str,
        *,
        expected: CommandStatus,
        values: dict[str, Any],
    ) -> bool:
        """Write ``values`` only if the command is still in ``expected``."""
        return await self._cas(
            and_(Command.id == command_id, Command.status == expected),
            values,
        )

    async def _cas(self, condition: ColumnElement[bool], values: dict[str, Any]) -> bool:
        result = await self._conn().execute(
            sa_update(Command)
            .where(condition)
            .values(**values)
            .execution_options(synchronize_session=False),
        )
        return cast(CursorResult[Any], result).rowcount == 1

    # --- results ---

    async def create_result(
        self,
        *,
        command_id: str,
        chunk_index: int,
        output: str,
        is_final: bool,
        metadata: dict[str, Any],
        now: datetime,
    ) -> CommandResult:
        """Append one result chunk."""
        chunk = CommandResult(
            command_id=command_id,
            chunk_index=chunk_index,
            output=output,
            is_final=is_final,
            meta=metadata,
            created_at=now,
        )
        self._conn().add(chunk)
        await self._conn().flush()
        return chunk

    async def list_results(self, command_id: str) -> list[CommandResult]:
        """Return all chunks of a command ordered by chunk index."""
        result = await self._conn().execute(
            select(CommandResult)
            .where(CommandResult.command_id == command_id)
            .order_by(CommandResult.chunk_index, CommandResult.created_at),
        )
        return list(result.scalars().all())
