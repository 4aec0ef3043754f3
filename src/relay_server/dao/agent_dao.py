"""Data access for Agent and ConnectIntent models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from sqlalchemy import CursorResult, delete, select, update

from relay_server.dao.base import BaseDAO
from relay_server.models.agent import Agent, ConnectIntent


class AgentDAO(BaseDAO):
    """Data access for agents and their one-time connect intents."""

    # --- Agent ---

    async def create_agent(
        self,
        *,
        name: str,
        external_id: str | None,
        capabilities: list[str],
        status: str,
        token_hash: str | None,
        token_hint: str | None,
        metadata: dict[str, Any],
        created_by: str | None,
        now: datetime,
    ) -> Agent:
        """Insert a new agent and flush to populate its id."""
        agent = Agent(
            name=name,
            external_id=external_id,
            capabilities=capabilities,
            status=status,
            token_hash=token_hash,
            token_hint=token_hint,
            token_active=token_hash is not None,
            meta=metadata,
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self._conn().add(agent)
        await self._conn().flush()
        return agent

    async def find_agent_by_id(self, agent_id: str) -> Agent | None:
        """Find an agent by primary key."""
        result = await self._conn().execute(
            select(Agent).where(Agent.id == agent_id)
        )
        return result.scalar_one_or_none()

    async def find_agent_by_token_hash(self, token_hash: str) -> Agent | None:
        """Find the agent whose active token hashes to ``token_hash``."""
        result = await self._conn().execute(
            select(Agent).where(
                Agent.token_hash == token_hash,
                Agent.token_active == True,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def list_agents(self) -> list[Agent]:
        """Return all agents, newest first."""
        result = await self._conn().execute(
            select(Agent).order_by(Agent.created_at.desc())
        )
        return list(result.scalars())

    async def update_agent(self, agent: Agent, **values: Any) -> Agent:
        """Apply attribute changes to a loaded agent and flush them."""
        for name, value in values.items():
            setattr(agent, name, value)
        await self._conn().flush()
        return agent

    async def delete_agent(self, agent_id: str) -> int:
        """Delete an agent and its connect intents. Returns agents deleted."""
        await self._conn().execute(
            delete(ConnectIntent).where(ConnectIntent.agent_id == agent_id)
        )
        result = await self._conn().execute(
            delete(Agent).where(Agent.id == agent_id)
        )
        return cast(CursorResult[Any], result).rowcount

    # --- ConnectIntent ---

    async def create_connect_intent(
        self,
        *,
        agent_id: str,
        setup_code_hash: str,
        expires_at: datetime,
        created_by: str | None,
        now: datetime,
    ) -> ConnectIntent:
        """Insert a pending connect intent."""
        intent = ConnectIntent(
            agent_id=agent_id,
            setup_code_hash=setup_code_hash,
            expires_at=expires_at,
            created_by=created_by,
            created_at=now,
        )
        self._conn().add(intent)
        await self._conn().flush()
        return intent

    async def find_intent_by_code_hash(
        self, setup_code_hash: str,
    ) -> ConnectIntent | None:
        """Find a connect intent by the hash of its setup code."""
        result = await self._conn().execute(
            select(ConnectIntent).where(
                ConnectIntent.setup_code_hash == setup_code_hash,
            )
        )
        return result.scalar_one_or_none()

    async def consume_intent(self, intent_id: str, now: datetime) -> bool:
        """Mark an intent consumed. False if another caller got there first."""
        result = await self._conn().execute(
            update(ConnectIntent)
            .where(
                ConnectIntent.id == intent_id,
                ConnectIntent.consumed_at.is_(None),
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        return cast(CursorResult[Any], result).rowcount == 1
