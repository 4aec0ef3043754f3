"""Post-commit hub notifications for command, agent and code-session changes."""

from __future__ import annotations

import logging
from typing import Any

from relay_server.models.code_session import CodeSessionEvent
from relay_server.services.realtime_hub import RealtimeHub
from relay_server.utils.time import Clock, Time

logger = logging.getLogger(__name__)


class Notifier:
    """Publishes stream payloads. Failures are logged, never raised.

    Call only after the mutation has committed.
    """

    def __init__(self, hub: RealtimeHub, clock: Clock = Time.now) -> None:
        self._hub = hub
        self._clock = clock

    def command_changed(
        self,
        command_id: str,
        *,
        status: str,
        event_type: str,
        **extra: Any,
    ) -> None:
        """Publish one update on the command's topic."""
        payload: dict[str, Any] = {
            "commandId": command_id,
            "status": status,
            "eventType": event_type,
            "timestamp": Time.isoformat(self._clock()),
        }
        payload.update(extra)
        self._publish(RealtimeHub.command_topic(command_id), payload)

    def agent_changed(
        self,
        agent_id: str,
        *,
        status: str,
        event_type: str,
    ) -> None:
        """Publish one update on the agent's topic."""
        self._publish(
            RealtimeHub.agent_topic(agent_id),
            {
                "agentId": agent_id,
                "status": status,
                "eventType": event_type,
                "timestamp": Time.isoformat(self._clock()),
            },
        )

    def code_session_changed(
        self,
        session_id: str,
        *,
        event_type: str,
        events: list[CodeSessionEvent],
    ) -> None:
        """Publish each new session event on the session's topic, in seq order."""
        topic = RealtimeHub.code_session_topic(session_id)
        timestamp = Time.isoformat(self._clock())
        for event in events:
            self._publish(
                topic,
                {
                    "sessionId": session_id,
                    "eventType": event_type,
                    "timestamp": timestamp,
                    "data": {
                        "seq": event.seq,
                        "direction": event.direction,
                        "payload": dict(event.payload or {}),
                    },
                },
            )

    def _publish(self, topic: str, payload: dict[str, Any]) -> None:
        try:
            self._hub.publish(topic, payload)
        except Exception:
            logger.exception("Notification on %s failed", topic)
