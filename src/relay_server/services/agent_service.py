"""Business logic for agent identities, tokens and connect intents."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from relay_server.dao.agent_dao import AgentDAO
from relay_server.dao.command_dao import CommandDAO
from relay_server.errors import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from relay_server.models.agent import Agent, AgentStatus, ConnectIntent
from relay_server.plugins.contracts.event_sink import EventSink
from relay_server.services.notifier import Notifier
from relay_server.utils.crypto import Crypto
from relay_server.utils.time import Clock, Time

logger = logging.getLogger(__name__)

MIN_TOKEN_LENGTH = 16
DEFAULT_PROVISIONAL_NAME = "Pending Agent"


class AgentService:
    """Built once at startup with its collaborators pre-wired.

    Each method wraps its DAO calls in a transaction, one unit of work
    per service call. Raw tokens and setup codes are returned once and
    only their SHA-256 hashes are stored.
    """

    def __init__(
        self,
        agent_dao: AgentDAO,
        command_dao: CommandDAO,
        event_sink: EventSink,
        notifier: Notifier,
        *,
        connect_intent_ttl_minutes: int = 10,
        clock: Clock = Time.now,
    ) -> None:
        self._dao = agent_dao
        self._commands = command_dao
        self._events = event_sink
        self._notifier = notifier
        self._intent_ttl = timedelta(minutes=connect_intent_ttl_minutes)
        self._clock = clock

    async def create_agent(
        self,
        name: str,
        *,
        external_id: str | None = None,
        capabilities: list[str] | None = None,
        token: str | None = None,
        created_by: str | None = None,
    ) -> tuple[Agent, str]:
        """Create an agent with an active token.

        Returns:
            The agent and its plaintext token.

        Raises:
            ValidationError: If the name is blank or a given token is too short.
        """
        if not name.strip():
            raise ValidationError("name must not be empty")
        if token is not None and len(token) < MIN_TOKEN_LENGTH:
            raise ValidationError(
                f"token must be at least {MIN_TOKEN_LENGTH} characters"
            )
        plaintext = token or Crypto.generate_agent_token()
        async with self._dao.transaction():
            agent = await self._dao.create_agent(
                name=name,
                external_id=external_id,
                capabilities=capabilities or [],
                status=AgentStatus.OFFLINE.value,
                token_hash=Crypto.hash_key(plaintext),
                token_hint=Crypto.token_hint(plaintext),
                metadata={},
                created_by=created_by,
                now=self._clock(),
            )
            await self._events.record(
                "agent.created",
                agent_id=agent.id,
                payload={"createdBy": created_by, "externalId": external_id},
            )
            await self._dao.commit()
        logger.info("Created agent %s (%s)", agent.id, name)
        return agent, plaintext

    async def create_connect_intent(
        self,
        display_name: str | None = None,
        *,
        created_by: str | None = None,
    ) -> tuple[ConnectIntent, str]:
        """Create a provisional agent and a one-time setup code for it.

        Returns:
            The intent and its plaintext setup code.
        """
        setup_code = Crypto.generate_setup_code()
        now = self._clock()
        async with self._dao.transaction():
            agent = await self._dao.create_agent(
                name=(display_name or "").strip() or DEFAULT_PROVISIONAL_NAME,
                external_id=None,
                capabilities=[],
                status=AgentStatus.OFFLINE.value,
                token_hash=None,
                token_hint=None,
                metadata={"purpose": "", "tools": [], "provisional": True},
                created_by=created_by,
                now=now,
            )
            intent = await self._dao.create_connect_intent(
                agent_id=agent.id,
                setup_code_hash=Crypto.hash_key(setup_code),
                expires_at=now + self._intent_ttl,
                created_by=created_by,
                now=now,
            )
            await self._events.record(
                "agent.connect_intent_created",
                agent_id=agent.id,
                payload={
                    "intentId": intent.id,
                    "expiresAt": Time.isoformat(intent.expires_at),
                },
            )
            await self._dao.commit()
        return intent, setup_code

    async def exchange_setup_code(
        self, setup_code: str, agent_external_id: str,
    ) -> tuple[Agent, str]:
        """Trade a setup code for a fresh agent token.

        Returns:
            The connected agent and its plaintext token.

        Raises:
            NotFoundError: If the code is unknown or already consumed.
            ExpiredError: If the code is past its expiry.
        """
        now = self._clock()
        async with self._dao.transaction():
            intent = await self._dao.find_intent_by_code_hash(
                Crypto.hash_key(setup_code),
            )
            if intent is None or intent.consumed_at is not None:
                raise NotFoundError("Invalid or already consumed setup code")
            if Time.ensure_utc(intent.expires_at) <= now:
                raise ExpiredError("Setup code expired")
            if not await self._dao.consume_intent(intent.id, now):
                raise NotFoundError("Invalid or already consumed setup code")
            agent = await self._dao.find_agent_by_id(intent.agent_id)
            if agent is None:
                raise NotFoundError("Agent not found")
            token = Crypto.generate_agent_token()
            await self._dao.update_agent(
                agent,
                external_id=agent_external_id,
                token_hash=Crypto.hash_key(token),
                token_hint=Crypto.token_hint(token),
                token_active=True,
                status=AgentStatus.OFFLINE.value,
                updated_at=now,
            )
            await self._events.record(
                "agent.connected",
                agent_id=agent.id,
                payload={"externalId": agent_external_id},
            )
            await self._dao.commit()
        logger.info("Agent %s connected via setup code", agent.id)
        return agent, token

    async def register(
        self,
        agent_id: str,
        *,
        external_id: str,
        name: str,
        purpose: str = "",
        capabilities: list[str] | None = None,
        tools: list[dict[str, Any]] | None = None,
    ) -> Agent:
        """Record the agent's self-description and mark it online.

        Capabilities default to the tool names.
        """
        tools = tools or []
        now = self._clock()
        async with self._dao.transaction():
            agent = await self._require_agent(agent_id)
            metadata = {
                **(agent.meta or {}),
                "purpose": purpose,
                "tools": tools,
                "provisional": False,
                "connected_at": Time.isoformat(now),
            }
            await self._dao.update_agent(
                agent,
                external_id=external_id,
                name=name,
                capabilities=(
                    capabilities if capabilities is not None
                    else [str(tool.get("name")) for tool in tools]
                ),
                meta=metadata,
                status=AgentStatus.ONLINE.value,
                last_heartbeat_at=now,
                updated_at=now,
            )
            await self._events.record(
                "agent.registered",
                agent_id=agent_id,
                payload={
                    "externalId": external_id,
                    "purpose": purpose,
                    "toolCount": len(tools),
                },
            )
            await self._dao.commit()
        self._notifier.agent_changed(
            agent_id, status=agent.status, event_type="agent.registered",
        )
        return agent

    async def heartbeat(
        self,
        agent_id: str,
        status: str,
        metadata: dict[str, Any] | None = None,
    ) -> Agent:
        """Store the agent's self-reported status. Last writer wins.

        Raises:
            ValidationError: If ``status`` is not a known agent status.
        """
        try:
            agent_status = AgentStatus(status)
        except ValueError as error:
            raise ValidationError(f"Unknown agent status: {status}") from error
        now = self._clock()
        async with self._dao.transaction():
            agent = await self._require_agent(agent_id)
            await self._dao.update_agent(
                agent,
                status=agent_status.value,
                meta={**(agent.meta or {}), **(metadata or {})},
                last_heartbeat_at=now,
                updated_at=now,
            )
            await self._events.record(
                "agent.heartbeat",
                agent_id=agent_id,
                payload={"status": agent_status.value},
            )
            await self._dao.commit()
        self._notifier.agent_changed(
            agent_id, status=agent_status.value, event_type="agent.heartbeat",
        )
        return agent

    async def revoke_token(
        self, agent_id: str, *, revoked_by: str | None = None,
    ) -> Agent:
        """Deactivate the agent's token. Later requests with it are rejected."""
        now = self._clock()
        async with self._dao.transaction():
            agent = await self._require_agent(agent_id)
            await self._dao.update_agent(agent, token_active=False, updated_at=now)
            await self._events.record(
                "agent.token_revoked",
                level="warn",
                agent_id=agent_id,
                payload={"revokedBy": revoked_by},
            )
            await self._dao.commit()
        logger.info("Revoked token of agent %s", agent_id)
        return agent

    async def delete_agent(
        self, agent_id: str, *, deleted_by: str | None = None,
    ) -> None:
        """Delete an agent that never had a command.

        Raises:
            NotFoundError: If the agent does not exist.
            ConflictError: If any command ever targeted the agent.
        """
        async with self._dao.transaction():
            agent = await self._require_agent(agent_id)
            if await self._commands.count_by_agent(agent_id) > 0:
                raise ConflictError(
                    "Cannot delete agent with command history. "
                    "Keep the agent or archive manually."
                )
            await self._events.record(
                "agent.deleted",
                agent_id=agent_id,
                payload={
                    "deletedBy": deleted_by,
                    "name": agent.name,
                    "externalId": agent.external_id,
                },
            )
            await self._dao.delete_agent(agent_id)
            await self._dao.commit()
        logger.info("Deleted agent %s", agent_id)

    async def list_agents(self) -> list[Agent]:
        """Return all agents, newest first."""
        async with self._dao.transaction():
            return await self._dao.list_agents()

    async def get_agent(self, agent_id: str) -> Agent:
        async with self._dao.transaction():
            return await self._require_agent(agent_id)

    async def resolve_token(self, token: str) -> Agent:
        """Map a plaintext bearer token to its agent.

        Raises:
            UnauthorizedError: If no agent holds the token as active.
        """
        async with self._dao.transaction():
            agent = await self._dao.find_agent_by_token_hash(Crypto.hash_key(token))
        if agent is None:
            raise UnauthorizedError("Invalid agent token")
        return agent

    async def _require_agent(self, agent_id: str) -> Agent:
        agent = await self._dao.find_agent_by_id(agent_id)
        if agent is None:
            raise NotFoundError("Agent not found")
        return agent
