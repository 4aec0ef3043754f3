"""Lease-based claiming of queued commands by agents."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta

from relay_server.dao.command_dao import CommandDAO
from relay_server.errors import ConflictError, ValidationError
from relay_server.models.command import CLAIMED_STATUSES, Command, CommandStatus
from relay_server.plugins.contracts.event_sink import EventSink
from relay_server.services.lifecycle import CommandLifecycle
from relay_server.services.notifier import Notifier
from relay_server.utils.time import Clock, Time

logger = logging.getLogger(__name__)

MAX_CLAIMS = 10
MIN_LEASE_SECONDS = 15
MAX_LEASE_SECONDS = 300
MAX_WAIT_MS = 25_000
# Floor on the long-poll sleep unless the configured interval is shorter.
_MIN_POLL_SECONDS = 0.1


class ClaimService:
    """Built once at startup with its collaborators pre-wired.

    A claim hands a queued command to its target agent under a lease.
    While the lease holds no other claim can take the command; once it
    lapses the same agent's next claim picks it up again.
    """

    def __init__(
        self,
        command_dao: CommandDAO,
        event_sink: EventSink,
        notifier: Notifier,
        *,
        poll_interval_ms: int = 1000,
        clock: Clock = Time.now,
    ) -> None:
        self._dao = command_dao
        self._events = event_sink
        self._notifier = notifier
        self._poll_interval = poll_interval_ms / 1000
        self._clock = clock

    async def claim(
        self,
        agent_id: str,
        max_claims: int = 1,
        lease_seconds: int = 60,
        wait_ms: int = 0,
    ) -> list[Command]:
        """Claim up to ``max_claims`` commands, long-polling up to ``wait_ms``.

        Only the claim attempt is retried while waiting. Errors propagate
        immediately.

        Raises:
            ValidationError: If an argument is out of range.
        """
        if not 1 <= max_claims <= MAX_CLAIMS:
            raise ValidationError(f"max_claims must be between 1 and {MAX_CLAIMS}")
        ClaimService._check_lease_seconds(lease_seconds)
        if not 0 <= wait_ms <= MAX_WAIT_MS:
            raise ValidationError(f"wait_ms must be between 0 and {MAX_WAIT_MS}")

        deadline = time.monotonic() + wait_ms / 1000
        while True:
            claimed = await self._claim_once(agent_id, max_claims, lease_seconds)
            if claimed:
                return claimed
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return []
            await asyncio.sleep(
                min(self._poll_interval, max(_MIN_POLL_SECONDS, remaining)),
            )

    async def _claim_once(
        self, agent_id: str, max_claims: int, lease_seconds: int,
    ) -> list[Command]:
        now = self._clock()
        async with self._dao.transaction():
            commands = await self._dao.claim_queued_commands(
                agent_id, max_claims, lease_seconds, now,
            )
            if not commands:
                return []
            for command in commands:
                await self._events.record(
                    "command.claimed",
                    agent_id=agent_id,
                    command_id=command.id,
                    payload={
                        "leaseSeconds": lease_seconds,
                        "attemptCount": command.attempt_count,
                    },
                )
            await self._dao.commit()
        for command in commands:
            logger.info(
                "Agent %s claimed command %s (attempt %d)",
                agent_id, command.id, command.attempt_count,
            )
            self._notifier.command_changed(
                command.id,
                status=CommandStatus.DISPATCHING.value,
                event_type="command.claimed",
                leaseExpiresAt=Time.isoformat(command.lease_expires_at),
            )
        return commands

    async def extend_lease(
        self, command_id: str, agent_id: str, lease_seconds: int,
    ) -> Command:
        """Push the lease deadline of a held command to now + ``lease_seconds``.

        Raises:
            ValidationError: If ``lease_seconds`` is out of range.
            NotFoundError: If the command does not exist.
            ForbiddenError: If the command targets another agent.
            ConflictError: If the caller does not currently hold the claim.
        """
        ClaimService._check_lease_seconds(lease_seconds)
        now = self._clock()
        async with self._dao.transaction():
            command = CommandLifecycle.require_owner(
                await self._dao.find_by_id(command_id), agent_id,
            )
            ClaimService._require_held(command, agent_id, "extend lease")
            updated = await self._dao.update_lease(
                command_id,
                agent_id,
                lease_expires_at=now + timedelta(seconds=lease_seconds),
                now=now,
            )
            if not updated:
                raise ConflictError("Command is not currently claimed by this agent")
            await self._events.record(
                "command.lease_extended",
                agent_id=agent_id,
                command_id=command_id,
                payload={"leaseSeconds": lease_seconds},
            )
            command = await self._load(command_id)
            await self._dao.commit()
        self._notifier.command_changed(
            command_id,
            status=command.status.value,
            event_type="command.lease_extended",
            leaseExpiresAt=Time.isoformat(command.lease_expires_at),
        )
        return command

    async def release(
        self, command_id: str, agent_id: str, reason: str | None = None,
    ) -> Command:
        """Give a held command back to the queue.

        Raises:
            NotFoundError: If the command does not exist.
            ForbiddenError: If the command targets another agent.
            ConflictError: If the caller does not currently hold the claim.
        """
        now = self._clock()
        async with self._dao.transaction():
            command = CommandLifecycle.require_owner(
                await self._dao.find_by_id(command_id), agent_id,
            )
            ClaimService._require_held(command, agent_id, "release command")
            released = await self._dao.release_claim(
                command_id, agent_id, reason=reason, now=now,
            )
            if not released:
                raise ConflictError("Command is not currently claimed by this agent")
            await self._events.record(
                "command.released",
                agent_id=agent_id,
                command_id=command_id,
                payload={"reason": reason},
            )
            command = await self._load(command_id)
            await self._dao.commit()
        logger.info("Agent %s released command %s", agent_id, command_id)
        self._notifier.command_changed(
            command_id,
            status=CommandStatus.QUEUED.value,
            event_type="command.released",
        )
        return command

    async def _load(self, command_id: str) -> Command:
        command = await self._dao.find_by_id(command_id)
        assert command is not None
        return command

    @staticmethod
    def _require_held(command: Command, agent_id: str, action: str) -> None:
        if command.claimed_by_agent_id != agent_id:
            raise ConflictError("Command is not currently claimed by this agent")
        if command.status not in CLAIMED_STATUSES:
            raise ConflictError(f"Cannot {action} in status {command.status.value}")

    @staticmethod
    def _check_lease_seconds(lease_seconds: int) -> None:
        if not MIN_LEASE_SECONDS <= lease_seconds <= MAX_LEASE_SECONDS:
            raise ValidationError(
                f"lease_seconds must be between {MIN_LEASE_SECONDS} and {MAX_LEASE_SECONDS}"
            )
