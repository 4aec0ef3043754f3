"""Tests for the audit event log."""

from __future__ import annotations

import pytest

from relay_server.errors import ConflictError, ValidationError
from tests.conftest import Stack, make_agent


async def test_command_history_is_recorded(stack: Stack) -> None:
    agent = await make_agent(stack)
    command = await stack.commands.create_command(agent.id, "audited", priority=3)
    stack.clock.advance(1)
    await stack.claims.claim(agent.id, lease_seconds=20)
    stack.clock.advance(1)
    await stack.claims.release(command.id, agent.id, "later")
    stack.clock.advance(1)
    await stack.commands.cancel(command.id, "u1")

    events = await stack.events.list_events(command_id=command.id)

    assert [e.event_type for e in events] == [
        "command.cancelled",
        "command.released",
        "command.claimed",
        "command.created",
    ]
    claimed = events[2]
    assert claimed.agent_id == agent.id
    assert claimed.payload == {"leaseSeconds": 20, "attemptCount": 1}
    assert events[3].payload == {"priority": 3, "requestedBy": None}


async def test_failed_mutation_records_nothing(stack: Stack) -> None:
    """An event is written only when its mutation commits."""
    agent = await make_agent(stack)
    command = await stack.commands.create_command(agent.id, "once")
    await stack.commands.cancel(command.id)

    with pytest.raises(ConflictError):
        await stack.commands.cancel(command.id)

    events = await stack.events.list_events(command_id=command.id)
    assert [e.event_type for e in events].count("command.cancelled") == 1


async def test_list_events_limit(stack: Stack) -> None:
    for n in range(3):
        await make_agent(stack, f"agent {n}")
        stack.clock.advance(1)

    assert len(await stack.events.list_events(limit=2)) == 2
    with pytest.raises(ValidationError):
        await stack.events.list_events(limit=201)


async def test_record_event_rejects_unknown_level(stack: Stack) -> None:
    with pytest.raises(ValidationError):
        await stack.events.record_event(
            "custom", level="debug", agent_id=None, command_id=None, payload={},
        )
