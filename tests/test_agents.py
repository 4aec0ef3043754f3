"""Tests for agent identities, tokens and connect intents."""

from __future__ import annotations

import json

import pytest

from relay_server.errors import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from relay_server.models.agent import AgentStatus
from tests.conftest import Stack, make_agent

# --- create / tokens ---


async def test_create_agent_issues_token(stack: Stack) -> None:
    agent, token = await stack.agents.create_agent("builder", capabilities=["shell"])

    assert len(token) == 48
    assert agent.token_hash != token
    assert agent.token_hint == f"{token[:4]}...{token[-4:]}"
    assert agent.capabilities == ["shell"]
    assert agent.status == AgentStatus.OFFLINE.value
    assert (await stack.agents.resolve_token(token)).id == agent.id


async def test_create_agent_with_static_token(stack: Stack) -> None:
    agent, token = await stack.agents.create_agent("static", token="s" * 20)
    assert token == "s" * 20
    assert (await stack.agents.resolve_token("s" * 20)).id == agent.id


async def test_create_agent_rejects_short_token_and_blank_name(stack: Stack) -> None:
    with pytest.raises(ValidationError):
        await stack.agents.create_agent("short", token="abc")
    with pytest.raises(ValidationError):
        await stack.agents.create_agent("  ")


async def test_resolve_unknown_token(stack: Stack) -> None:
    with pytest.raises(UnauthorizedError):
        await stack.agents.resolve_token("nope")


async def test_revoked_token_is_rejected(stack: Stack) -> None:
    agent, token = await stack.agents.create_agent("revoked")

    revoked = await stack.agents.revoke_token(agent.id, revoked_by="u1")

    assert revoked.token_active is False
    with pytest.raises(UnauthorizedError):
        await stack.agents.resolve_token(token)
    events = await stack.events.list_events(agent_id=agent.id)
    assert any(e.event_type == "agent.token_revoked" and e.level == "warn" for e in events)


# --- connect intents ---


async def test_connect_intent_exchange(stack: Stack) -> None:
    intent, setup_code = await stack.agents.create_connect_intent("Lab bot", created_by="u1")
    provisional = await stack.agents.get_agent(intent.agent_id)
    assert provisional.name == "Lab bot"
    assert provisional.meta["provisional"] is True
    assert provisional.token_hash is None

    agent, token = await stack.agents.exchange_setup_code(setup_code, "lab-bot-1")

    assert agent.id == intent.agent_id
    assert agent.external_id == "lab-bot-1"
    assert (await stack.agents.resolve_token(token)).id == agent.id


async def test_connect_intent_default_name(stack: Stack) -> None:
    intent, _ = await stack.agents.create_connect_intent()
    assert (await stack.agents.get_agent(intent.agent_id)).name == "Pending Agent"


async def test_setup_code_is_single_use(stack: Stack) -> None:
    _, setup_code = await stack.agents.create_connect_intent()
    await stack.agents.exchange_setup_code(setup_code, "first")

    with pytest.raises(NotFoundError):
        await stack.agents.exchange_setup_code(setup_code, "second")


async def test_setup_code_expires(stack: Stack) -> None:
    _, setup_code = await stack.agents.create_connect_intent()
    stack.clock.advance(10 * 60)

    with pytest.raises(ExpiredError):
        await stack.agents.exchange_setup_code(setup_code, "late")


async def test_unknown_setup_code(stack: Stack) -> None:
    with pytest.raises(NotFoundError):
        await stack.agents.exchange_setup_code("deadbeef0000", "who")


# --- register / heartbeat ---


async def test_register_goes_online(stack: Stack) -> None:
    agent = await make_agent(stack)
    subscription, unsubscribe = stack.hub.subscribe(f"agent:{agent.id}")

    registered = await stack.agents.register(
        agent.id,
        external_id="ext-1",
        name="Registered",
        purpose="builds things",
        tools=[{"name": "compile"}, {"name": "test"}],
    )

    assert registered.status == AgentStatus.ONLINE.value
    assert registered.capabilities == ["compile", "test"]
    assert registered.meta["purpose"] == "builds things"
    assert registered.meta["provisional"] is False
    assert registered.last_heartbeat_at is not None
    message = json.loads(await subscription.receive())
    assert message == {
        "agentId": agent.id,
        "status": "online",
        "eventType": "agent.registered",
        "timestamp": stack.clock().isoformat(),
    }
    unsubscribe()


async def test_register_explicit_capabilities_win(stack: Stack) -> None:
    agent = await make_agent(stack)
    registered = await stack.agents.register(
        agent.id, external_id="e", name="n", capabilities=["x"], tools=[{"name": "y"}],
    )
    assert registered.capabilities == ["x"]


async def test_heartbeat_merges_metadata(stack: Stack) -> None:
    agent = await make_agent(stack)
    await stack.agents.heartbeat(agent.id, "busy", {"load": 0.5})
    updated = await stack.agents.heartbeat(agent.id, "online", {"queue": 2})

    assert updated.status == "online"
    assert updated.meta == {"load": 0.5, "queue": 2}


async def test_heartbeat_unknown_status(stack: Stack) -> None:
    agent = await make_agent(stack)
    with pytest.raises(ValidationError):
        await stack.agents.heartbeat(agent.id, "sleeping")


# --- list / delete ---


async def test_list_agents_newest_first(stack: Stack) -> None:
    first = await make_agent(stack, "first")
    stack.clock.advance(1)
    second = await make_agent(stack, "second")
    assert [a.id for a in await stack.agents.list_agents()] == [second.id, first.id]


async def test_delete_agent_without_history(stack: Stack) -> None:
    agent = await make_agent(stack)
    await stack.agents.delete_agent(agent.id, deleted_by="u1")

    with pytest.raises(NotFoundError):
        await stack.agents.get_agent(agent.id)
    events = await stack.events.list_events(agent_id=agent.id)
    assert "agent.deleted" in {e.event_type for e in events}


async def test_delete_agent_with_history_conflicts(stack: Stack) -> None:
    agent = await make_agent(stack)
    command = await stack.commands.create_command(agent.id, "history")
    await stack.commands.cancel(command.id)

    with pytest.raises(ConflictError):
        await stack.agents.delete_agent(agent.id)
    assert (await stack.agents.get_agent(agent.id)).id == agent.id
