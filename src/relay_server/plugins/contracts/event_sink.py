"""Event sink contract — where audit events for lifecycle actions go."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class EventSink(ABC):
    """Records one audit event per lifecycle, claim or agent action.

    Implementations decide where the record lives. A sink that writes to
    the database must join the caller's unit of work so the event and the
    mutation it describes commit together.
    """

    @abstractmethod
    async def record(
        self,
        event_type: str,
        *,
        level: str = "info",
        agent_id: str | None = None,
        command_id: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        """Record an audit event.

        Args:
            event_type: Dotted action name, e.g. ``command.claimed``.
            level: One of ``info``, ``warn``, ``error``.
            agent_id: Agent the action concerns, if any.
            command_id: Command the action concerns, if any.
            payload: Free-form JSON detail.
        """
