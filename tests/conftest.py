"""Shared fixtures for relay_server tests."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest
from litestar import Litestar

from relay_server.app import create_app
from relay_server.config import Settings
from relay_server.dao.agent_dao import AgentDAO
from relay_server.dao.code_session_dao import CodeSessionDAO
from relay_server.dao.command_dao import CommandDAO
from relay_server.dao.event_dao import EventDAO
from relay_server.dao.user_dao import UserDAO
from relay_server.models.agent import Agent
from relay_server.plugins.db_event import DbEventSink
from relay_server.resources.auth import AuthResource
from relay_server.resources.stream import StreamResource
from relay_server.services.agent_service import AgentService
from relay_server.services.claim_service import ClaimService
from relay_server.services.code_session_service import CodeSessionService
from relay_server.services.command_service import CommandService
from relay_server.services.event_service import EventService
from relay_server.services.notifier import Notifier
from relay_server.services.realtime_hub import RealtimeHub
from relay_server.services.user_service import UserService
from relay_server.utils.db import Database


class FakeClock:
    """Manually advanced clock. Lease and expiry checks read it as ``now``."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


@dataclass
class Stack:
    """Services wired exactly as the app wires them."""

    clock: FakeClock
    hub: RealtimeHub
    agents: AgentService
    commands: CommandService
    claims: ClaimService
    code_sessions: CodeSessionService
    events: EventService
    users: UserService
    stream: StreamResource


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Test settings with a throwaway SQLite file.

    A file database gives each unit of work its own connection, so
    concurrent claims really race.
    """
    return Settings(
        secret_key="test-secret-key",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'relay.db'}",
        token_expire_minutes=30,
        claim_poll_interval_ms=50,
        stream_keepalive_seconds=0.05,
        hub_queue_size=4,
    )


async def _open_stack(settings: Settings, clock: FakeClock) -> Stack:
    pool = Database.init(settings.database_url)
    await Database.create_tables()
    hub = RealtimeHub(queue_size=settings.hub_queue_size)
    notifier = Notifier(hub, clock)
    command_dao = CommandDAO(pool)
    agent_dao = AgentDAO(pool)
    events = EventService(EventDAO(pool), clock)
    sink = DbEventSink(events)
    agents = AgentService(
        agent_dao, command_dao, sink, notifier,
        connect_intent_ttl_minutes=settings.connect_intent_ttl_minutes,
        clock=clock,
    )
    commands = CommandService(command_dao, agent_dao, sink, notifier, clock)
    claims = ClaimService(
        command_dao, sink, notifier,
        poll_interval_ms=settings.claim_poll_interval_ms,
        clock=clock,
    )
    code_sessions = CodeSessionService(
        CodeSessionDAO(pool), agent_dao, sink, notifier, clock,
    )
    return Stack(
        clock=clock,
        hub=hub,
        agents=agents,
        commands=commands,
        claims=claims,
        code_sessions=code_sessions,
        events=events,
        users=UserService(UserDAO(pool), clock),
        stream=StreamResource(
            hub=hub,
            command_service=commands,
            agent_service=agents,
            code_session_service=code_sessions,
            keepalive_seconds=settings.stream_keepalive_seconds,
        ),
    )


@pytest.fixture()
async def stack(settings: Settings, clock: FakeClock) -> AsyncIterator[Stack]:
    """Service layer over a fresh database, no HTTP."""
    yield await _open_stack(settings, clock)
    await Database.close()


@pytest.fixture()
async def memory_stack(settings: Settings, clock: FakeClock) -> AsyncIterator[Stack]:
    """Service layer over in-memory SQLite, where every session shares one connection."""
    memory = settings.model_copy(update={"database_url": "sqlite+aiosqlite://"})
    yield await _open_stack(memory, clock)
    await Database.close()


@pytest.fixture()
async def app(settings: Settings, clock: FakeClock) -> AsyncIterator[Litestar]:
    """Application with tables created. Lifespan is not run by the transport."""
    application = create_app(settings, clock=clock)
    await Database.create_tables()
    yield application
    await Database.close()


@pytest.fixture()
async def client(app: Litestar) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client wired to the test app."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def make_agent(stack: Stack, name: str = "bot") -> Agent:
    """Create an agent through the service layer."""
    agent, _ = await stack.agents.create_agent(name)
    return agent


async def user_headers(app: Litestar, role: str = "operator") -> dict[str, str]:
    """Create a user with ``role`` and return its bearer headers."""
    auth_resource: AuthResource = app.state.auth
    created = await auth_resource.create_user(f"{role} user", role)
    return {"Authorization": f"Bearer {created['access_token']}"}


async def agent_headers(
    client: httpx.AsyncClient,
    operator: dict[str, str],
    name: str = "bot",
) -> tuple[str, dict[str, str]]:
    """Create an agent over HTTP and return (agent_id, bearer headers)."""
    response = await client.post("/api/v1/agents", json={"name": name}, headers=operator)
    assert response.status_code == 201
    body = response.json()
    return body["agent"]["id"], {
        "Authorization": f"Bearer {body['credentials']['token']}",
    }
