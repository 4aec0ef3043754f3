"""Stream resource: live command, agent and code-session updates as named frames."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from relay_server.services.agent_service import AgentService
from relay_server.services.code_session_service import CodeSessionService
from relay_server.services.command_service import CommandService
from relay_server.services.realtime_hub import RealtimeHub, SubscriptionClosed

logger = logging.getLogger(__name__)

Frame = tuple[str, str]


class StreamResource:
    """Turns hub subscriptions into ``(event, data)`` frames.

    Each stream yields ``ready`` once subscribed, then an ``update`` per
    published message, and a ``keepalive`` whenever the topic is quiet
    for ``keepalive_seconds``. A subscriber that falls behind gets a
    final ``closed`` frame and the stream ends; the client re-syncs by
    pulling. The subscription is dropped when the iterator is closed.
    """

    def __init__(
        self,
        *,
        hub: RealtimeHub,
        command_service: CommandService,
        agent_service: AgentService,
        code_session_service: CodeSessionService,
        keepalive_seconds: float = 15.0,
    ) -> None:
        self._hub = hub
        self._commands = command_service
        self._agents = agent_service
        self._code_sessions = code_session_service
        self._keepalive = keepalive_seconds

    async def command_stream(self, command_id: str) -> AsyncGenerator[Frame, None]:
        """Raises NotFoundError before streaming if the command is unknown."""
        await self._commands.get_command(command_id)
        return self.frames(RealtimeHub.command_topic(command_id), {"commandId": command_id})

    async def agent_stream(self, agent_id: str) -> AsyncGenerator[Frame, None]:
        """Raises NotFoundError before streaming if the agent is unknown."""
        await self._agents.get_agent(agent_id)
        return self.frames(RealtimeHub.agent_topic(agent_id), {"agentId": agent_id})

    async def code_session_stream(
        self, agent_id: str, session_id: str,
    ) -> AsyncGenerator[Frame, None]:
        """Raises NotFoundError before streaming unless the session belongs to the agent."""
        await self._code_sessions.get_session(agent_id, session_id)
        return self.frames(
            RealtimeHub.code_session_topic(session_id), {"sessionId": session_id},
        )

    async def frames(self, topic: str, ready: dict[str, str]) -> AsyncGenerator[Frame, None]:
        subscription, unsubscribe = self._hub.subscribe(topic)
        logger.debug("Stream opened on %s", topic)
        try:
            yield "ready", json.dumps(ready)
            while True:
                try:
                    message = await asyncio.wait_for(
                        subscription.receive(), timeout=self._keepalive,
                    )
                except asyncio.TimeoutError:
                    yield "keepalive", "{}"
                    continue
                except SubscriptionClosed:
                    logger.info("Stream on %s fell behind, closing", topic)
                    yield "closed", json.dumps({"reason": "lagged"})
                    return
                yield "update", message
        finally:
            unsubscribe()
            logger.debug("Stream closed on %s", topic)
