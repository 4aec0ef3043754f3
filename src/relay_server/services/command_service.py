"""Business logic for the command lifecycle."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from relay_server.dao.agent_dao import AgentDAO
from relay_server.dao.command_dao import CommandDAO
from relay_server.errors import ConflictError, NotFoundError, ValidationError
from relay_server.models.command import Command, CommandResult, CommandStatus
from relay_server.plugins.contracts.event_sink import EventSink
from relay_server.services.lifecycle import CommandLifecycle
from relay_server.services.notifier import Notifier
from relay_server.utils.time import Clock, Time

logger = logging.getLogger(__name__)

PROGRESS_STATUSES = frozenset({CommandStatus.DISPATCHING, CommandStatus.EXECUTING})
MAX_LIST_LIMIT = 200
# Terminal statuses release any claim still on the command.
_CLEAR_CLAIM: dict[str, Any] = {
    "claimed_by_agent_id": None,
    "lease_expires_at": None,
}


class CommandService:
    """Built once at startup with its collaborators pre-wired.

    Every mutation is a compare-and-swap on ``status`` plus one audit
    event in the same transaction, followed by one hub notification
    after commit. A concurrent change between read and write surfaces
    as ConflictError.
    """

    def __init__(
        self,
        command_dao: CommandDAO,
        agent_dao: AgentDAO,
        event_sink: EventSink,
        notifier: Notifier,
        clock: Clock = Time.now,
    ) -> None:
        self._dao = command_dao
        self._agents = agent_dao
        self._events = event_sink
        self._notifier = notifier
        self._clock = clock

    # --- operator side ---

    async def create_command(
        self,
        agent_id: str,
        instruction: str,
        payload: dict[str, Any] | None = None,
        priority: int = 5,
        requested_by: str | None = None,
    ) -> Command:
        """Queue a command for an agent.

        Raises:
            ValidationError: If the instruction is blank or priority is out of range.
            NotFoundError: If the target agent does not exist.
        """
        if not instruction.strip():
            raise ValidationError("instruction must not be empty")
        if not 1 <= priority <= 10:
            raise ValidationError("priority must be between 1 and 10")
        now = self._clock()
        async with self._dao.transaction():
            if await self._agents.find_agent_by_id(agent_id) is None:
                raise NotFoundError("Agent not found")
            command = await self._dao.create_command(
                agent_id=agent_id,
                instruction=instruction,
                payload=payload or {},
                priority=priority,
                requested_by=requested_by,
                now=now,
            )
            await self._events.record(
                "command.created",
                agent_id=agent_id,
                command_id=command.id,
                payload={"priority": priority, "requestedBy": requested_by},
            )
            await self._dao.commit()
        self._notifier.command_changed(
            command.id,
            status=CommandStatus.QUEUED.value,
            event_type="command.created",
        )
        return command

    async def get_command(self, command_id: str) -> Command:
        """Raises NotFoundError if the command does not exist."""
        async with self._dao.transaction():
            command = await self._dao.find_by_id(command_id)
        if command is None:
            raise NotFoundError("Command not found")
        return command

    async def list_commands(
        self,
        agent_id: str | None = None,
        status: CommandStatus | None = None,
        limit: int = 50,
    ) -> list[Command]:
        if not 1 <= limit <= MAX_LIST_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_LIST_LIMIT}")
        async with self._dao.transaction():
            return await self._dao.list_commands(
                agent_id=agent_id, status=status, limit=limit,
            )

    async def list_results(self, command_id: str) -> list[CommandResult]:
        """Return a command's result chunks ordered by chunk index."""
        async with self._dao.transaction():
            if await self._dao.find_by_id(command_id) is None:
                raise NotFoundError("Command not found")
            return await self._dao.list_results(command_id)

    async def cancel(self, command_id: str, user_id: str | None = None) -> Command:
        """Cancel a command on behalf of an operator. No ownership check.

        Raises:
            NotFoundError: If the command does not exist.
            ConflictError: If the command is already terminal.
        """
        now = self._clock()
        async with self._dao.transaction():
            command = await self._dao.find_by_id(command_id)
            if command is None:
                raise NotFoundError("Command not found")
            command = await self._transition(
                command,
                CommandStatus.CANCELLED,
                {"completed_at": now, **_CLEAR_CLAIM},
            )
            await self._events.record(
                "command.cancelled",
                agent_id=command.agent_id,
                command_id=command_id,
                payload={"cancelledBy": user_id},
            )
            await self._dao.commit()
        self._notifier.command_changed(
            command_id,
            status=CommandStatus.CANCELLED.value,
            event_type="command.cancelled",
        )
        return command

    # --- agent side ---

    async def progress(
        self,
        command_id: str,
        agent_id: str,
        status: CommandStatus,
        payload: dict[str, Any] | None = None,
    ) -> Command:
        """Report that the agent moved a command to ``status``.

        Entering ``executing`` from another status stamps ``started_at``.

        Raises:
            ValidationError: If ``status`` is not dispatching or executing.
            NotFoundError: If the command does not exist.
            ForbiddenError: If the command targets another agent.
            ConflictError: If the transition is illegal.
        """
        if status not in PROGRESS_STATUSES:
            raise ValidationError("status must be dispatching or executing")
        now = self._clock()
        async with self._dao.transaction():
            command = CommandLifecycle.require_owner(
                await self._dao.find_by_id(command_id), agent_id,
            )
            values: dict[str, Any] = {}
            if status == CommandStatus.EXECUTING and command.status != CommandStatus.EXECUTING:
                values["started_at"] = now
            command = await self._transition(command, status, values)
            await self._events.record(
                "command.progress",
                agent_id=agent_id,
                command_id=command_id,
                payload={"status": status.value, "detail": payload or {}},
            )
            await self._dao.commit()
        self._notifier.command_changed(
            command_id, status=status.value, event_type="command.progress",
        )
        return command

    async def append_result(
        self,
        command_id: str,
        agent_id: str,
        chunk_index: int,
        output: str,
        is_final: bool = False,
        metadata: dict[str, Any] | None = None,
    ) -> Command:
        """Store one result chunk; a final chunk completes the command.

        The chunk is committed before the completion transition is
        checked. A final chunk on a command that cannot complete is kept
        and the call still fails with ConflictError.

        Raises:
            ValidationError: If ``chunk_index`` is negative or ``output`` empty.
            NotFoundError: If the command does not exist.
            ForbiddenError: If the command targets another agent.
            ConflictError: If ``is_final`` and the command cannot complete.
        """
        if chunk_index < 0:
            raise ValidationError("chunk_index must be >= 0")
        if not output:
            raise ValidationError("output must not be empty")
        now = self._clock()
        async with self._dao.transaction():
            command = CommandLifecycle.require_owner(
                await self._dao.find_by_id(command_id), agent_id,
            )
            await self._dao.create_result(
                command_id=command_id,
                chunk_index=chunk_index,
                output=output,
                is_final=is_final,
                metadata=metadata or {},
                now=now,
            )
            if not is_final:
                await self._events.record(
                    "command.result_chunk",
                    agent_id=agent_id,
                    command_id=command_id,
                    payload={"chunkIndex": chunk_index, "isFinal": False},
                )
                await self._dao.commit()
            else:
                await self._dao.commit()
                command = await self._complete(command, chunk_index, now)

        event_type = "command.completed" if is_final else "command.result_chunk"
        self._notifier.command_changed(
            command_id,
            status=command.status.value,
            event_type=event_type,
            result=output,
            isFinal=is_final,
        )
        return command

    async def _complete(self, command: Command, chunk_index: int, now: datetime) -> Command:
        current = await self._dao.find_by_id(command.id)
        assert current is not None
        command = await self._transition(
            current,
            CommandStatus.COMPLETED,
            {"completed_at": now, **_CLEAR_CLAIM},
        )
        await self._events.record(
            "command.completed",
            agent_id=command.agent_id,
            command_id=command.id,
            payload={"chunkIndex": chunk_index, "isFinal": True},
        )
        await self._dao.commit()
        return command

    async def fail(self, command_id: str, agent_id: str, error_message: str) -> Command:
        """Mark a command failed with the agent's error message.

        Raises:
            ValidationError: If ``error_message`` is empty.
            NotFoundError: If the command does not exist.
            ForbiddenError: If the command targets another agent.
            ConflictError: If the command is already terminal.
        """
        if not error_message:
            raise ValidationError("error_message must not be empty")
        now = self._clock()
        async with self._dao.transaction():
            command = CommandLifecycle.require_owner(
                await self._dao.find_by_id(command_id), agent_id,
            )
            command = await self._transition(
                command,
                CommandStatus.FAILED,
                {"error_message": error_message, "completed_at": now, **_CLEAR_CLAIM},
            )
            await self._events.record(
                "command.failed",
                level="error",
                agent_id=agent_id,
                command_id=command_id,
                payload={"errorMessage": error_message},
            )
            await self._dao.commit()
        logger.info("Command %s failed: %s", command_id, error_message)
        self._notifier.command_changed(
            command_id,
            status=CommandStatus.FAILED.value,
            event_type="command.failed",
        )
        return command

    async def _transition(
        self,
        command: Command,
        target: CommandStatus,
        values: dict[str, Any],
    ) -> Command:
        """Validate and apply ``command.status -> target`` as a CAS write."""
        current = command.status
        CommandLifecycle.require_transition(current, target)
        updated = await self._dao.update_status(
            command.id,
            expected=current,
            values={"status": target, "updated_at": self._clock(), **values},
        )
        if not updated:
            raise ConflictError("Command was modified concurrently")
        reloaded = await self._dao.find_by_id(command.id)
        assert reloaded is not None
        return reloaded
