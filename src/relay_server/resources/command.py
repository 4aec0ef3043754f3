"""Command resource — protocol-agnostic command lifecycle operations."""

from __future__ import annotations

from typing import Any

from relay_server.errors import ValidationError
from relay_server.models.agent import Agent
from relay_server.models.command import Command, CommandResult, CommandStatus
from relay_server.models.user import Role, User
from relay_server.resources.auth import AuthResource
from relay_server.schemas.command import (
    ClaimRequest,
    CommandCreate,
    FailureReport,
    LeaseExtend,
    ProgressReport,
    ReleaseRequest,
    ResultChunk,
)
from relay_server.services.claim_service import ClaimService
from relay_server.services.command_service import CommandService
from relay_server.utils.time import Time


class CommandResource:
    """Operator and agent command operations.

    Built once at startup with all dependencies pre-wired.
    """

    def __init__(
        self,
        *,
        command_service: CommandService,
        claim_service: ClaimService,
    ) -> None:
        self._commands = command_service
        self._claims = claim_service

    # --- operator side ---

    async def create_command(self, user: User, request: CommandCreate) -> dict[str, Any]:
        AuthResource.require_role(user, Role.OPERATOR)
        command = await self._commands.create_command(
            request.agent_id,
            request.instruction,
            payload=request.payload,
            priority=request.priority,
            requested_by=user.id,
        )
        return CommandResource._command_to_dict(command)

    async def get_command(self, command_id: str) -> dict[str, Any]:
        command = await self._commands.get_command(command_id)
        return CommandResource._command_to_dict(command)

    async def list_commands(
        self,
        *,
        agent_id: str | None,
        status: str | None,
        limit: int,
    ) -> list[dict[str, Any]]:
        """Raises ValidationError for an unknown status filter."""
        status_filter = None
        if status is not None:
            try:
                status_filter = CommandStatus(status)
            except ValueError as error:
                raise ValidationError(f"Unknown command status: {status}") from error
        commands = await self._commands.list_commands(
            agent_id=agent_id, status=status_filter, limit=limit,
        )
        return [CommandResource._command_to_dict(command) for command in commands]

    async def list_results(self, command_id: str) -> list[dict[str, Any]]:
        chunks = await self._commands.list_results(command_id)
        return [CommandResource._result_to_dict(chunk) for chunk in chunks]

    async def cancel(self, user: User, command_id: str) -> dict[str, Any]:
        AuthResource.require_role(user, Role.OPERATOR)
        command = await self._commands.cancel(command_id, user.id)
        return {"id": command.id, "status": command.status.value}

    # --- agent side ---

    async def claim(self, agent: Agent, request: ClaimRequest) -> dict[str, Any]:
        """Long-poll claim. Returns ``{"items": [...]}``, possibly empty."""
        commands = await self._claims.claim(
            agent.id,
            max_claims=request.max_claims,
            lease_seconds=request.lease_seconds,
            wait_ms=request.wait_ms,
        )
        return {"items": [CommandResource._command_to_dict(c) for c in commands]}

    async def extend_lease(
        self, agent: Agent, command_id: str, request: LeaseExtend,
    ) -> dict[str, Any]:
        command = await self._claims.extend_lease(
            command_id, agent.id, request.lease_seconds,
        )
        return {
            "id": command.id,
            "lease_expires_at": Time.isoformat(command.lease_expires_at),
        }

    async def release(
        self, agent: Agent, command_id: str, request: ReleaseRequest,
    ) -> dict[str, Any]:
        command = await self._claims.release(command_id, agent.id, request.reason)
        return {"id": command.id, "status": command.status.value}

    async def progress(
        self, agent: Agent, command_id: str, request: ProgressReport,
    ) -> dict[str, Any]:
        command = await self._commands.progress(
            command_id, agent.id, CommandStatus(request.status), request.payload,
        )
        return {"id": command.id, "status": command.status.value}

    async def append_result(
        self, agent: Agent, command_id: str, request: ResultChunk,
    ) -> dict[str, Any]:
        command = await self._commands.append_result(
            command_id,
            agent.id,
            chunk_index=request.chunk_index,
            output=request.output,
            is_final=request.is_final,
            metadata=request.metadata,
        )
        return {"id": command.id, "status": command.status.value, "accepted": True}

    async def fail(
        self, agent: Agent, command_id: str, request: FailureReport,
    ) -> dict[str, Any]:
        command = await self._commands.fail(command_id, agent.id, request.error_message)
        return {"id": command.id, "status": command.status.value}

    @staticmethod
    def _command_to_dict(cmd: Command) -> dict[str, Any]:
        """Serialize a command to a full dict."""
        return {
            "id": cmd.id,
            "agent_id": cmd.agent_id,
            "instruction": cmd.instruction,
            "payload": dict(cmd.payload or {}),
            "priority": cmd.priority,
            "requested_by": cmd.requested_by,
            "status": cmd.status.value,
            "claimed_by_agent_id": cmd.claimed_by_agent_id,
            "claimed_at": Time.isoformat(cmd.claimed_at),
            "lease_expires_at": Time.isoformat(cmd.lease_expires_at),
            "attempt_count": cmd.attempt_count,
            "last_claim_error": cmd.last_claim_error,
            "started_at": Time.isoformat(cmd.started_at),
            "completed_at": Time.isoformat(cmd.completed_at),
            "error_message": cmd.error_message,
            "created_at": Time.isoformat(cmd.created_at),
            "updated_at": Time.isoformat(cmd.updated_at),
        }

    @staticmethod
    def _result_to_dict(chunk: CommandResult) -> dict[str, Any]:
        return {
            "id": chunk.id,
            "chunk_index": chunk.chunk_index,
            "is_final": chunk.is_final,
            "output": chunk.output,
            "metadata": dict(chunk.meta or {}),
            "created_at": Time.isoformat(chunk.created_at),
        }
