"""Tests for stream frames over hub subscriptions."""

from __future__ import annotations

import json

import pytest

from relay_server.errors import NotFoundError
from tests.conftest import Stack, make_agent


async def test_command_stream_frames(stack: Stack) -> None:
    agent = await make_agent(stack)
    command = await stack.commands.create_command(agent.id, "streamed")
    topic = f"command:{command.id}"

    frames = await stack.stream.command_stream(command.id)
    event, data = await frames.__anext__()
    assert event == "ready"
    assert json.loads(data) == {"commandId": command.id}
    assert stack.hub.subscriber_count(topic) == 1

    await stack.claims.claim(agent.id)
    event, data = await frames.__anext__()
    assert event == "update"
    assert json.loads(data)["status"] == "dispatching"

    event, data = await frames.__anext__()
    assert (event, data) == ("keepalive", "{}")

    await frames.aclose()
    assert stack.hub.subscriber_count(topic) == 0
    assert stack.hub.topic_count() == 0


async def test_agent_stream_receives_heartbeat(stack: Stack) -> None:
    agent = await make_agent(stack)

    frames = await stack.stream.agent_stream(agent.id)
    assert (await frames.__anext__())[0] == "ready"

    await stack.agents.heartbeat(agent.id, "busy")
    event, data = await frames.__anext__()
    assert event == "update"
    assert json.loads(data)["status"] == "busy"
    await frames.aclose()


async def test_stream_unknown_targets(stack: Stack) -> None:
    with pytest.raises(NotFoundError):
        await stack.stream.command_stream("missing")
    with pytest.raises(NotFoundError):
        await stack.stream.agent_stream("missing")
    assert stack.hub.topic_count() == 0


async def test_lagging_stream_ends_with_closed_frame(stack: Stack) -> None:
    agent = await make_agent(stack)
    command = await stack.commands.create_command(agent.id, "busy topic")
    topic = f"command:{command.id}"

    frames = await stack.stream.command_stream(command.id)
    assert (await frames.__anext__())[0] == "ready"

    # hub_queue_size is 4; the fifth message overflows the unread inbox.
    for n in range(5):
        stack.hub.publish(topic, {"n": n})
    assert stack.hub.subscriber_count(topic) == 0

    event, data = await frames.__anext__()
    assert event == "closed"
    assert json.loads(data) == {"reason": "lagged"}
    with pytest.raises(StopAsyncIteration):
        await frames.__anext__()
