"""Litestar application factory and CLI entry point."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from litestar import Litestar, Request
from litestar.datastructures import State
from litestar.di import Provide

from relay_server.config import ConfigLoader, Settings
from relay_server.controllers.agent_api import AgentApiController, ConnectController
from relay_server.controllers.agents import AgentsController
from relay_server.controllers.code_sessions import CodeSessionsController
from relay_server.controllers.commands import CommandsController
from relay_server.controllers.error_handlers import EXCEPTION_HANDLERS
from relay_server.controllers.events import EventsController
from relay_server.controllers.health import HealthController
from relay_server.dao.agent_dao import AgentDAO
from relay_server.dao.code_session_dao import CodeSessionDAO
from relay_server.dao.command_dao import CommandDAO
from relay_server.dao.event_dao import EventDAO
from relay_server.dao.user_dao import UserDAO
from relay_server.errors import UnauthorizedError
from relay_server.models.user import User
from relay_server.plugins.db_event import DbEventSink
from relay_server.resources.agent import AgentResource
from relay_server.resources.auth import AuthResource
from relay_server.resources.code_session import CodeSessionResource
from relay_server.resources.command import CommandResource
from relay_server.resources.event import EventResource
from relay_server.resources.health import HealthResource
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
from relay_server.utils.jwt import JWTManager
from relay_server.utils.time import Clock, Time

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class AppFactory:
    """Builds and configures the Litestar application. All methods are static."""

    @staticmethod
    def _build(settings: Settings, clock: Clock) -> State:
        """Construct the full object graph once.

        pool → DAOs (one shared unit of work)
        event_dao → event_service → DbEventSink ─┐
        hub → notifier ──────────────────────────┼→ agent / command / claim / code-session services
        services → Agent/Command/CodeSession/Event/Stream/Auth resources
        JWTManager.configure() (class-level)
        """
        pool = Database.init(settings.database_url)
        JWTManager.configure(
            secret_key=settings.secret_key,
            algorithm=settings.jwt_algorithm,
            expire_minutes=settings.token_expire_minutes,
        )
        hub = RealtimeHub(queue_size=settings.hub_queue_size)
        notifier = Notifier(hub, clock)

        user_dao = UserDAO(pool)
        agent_dao = AgentDAO(pool)
        command_dao = CommandDAO(pool)
        event_dao = EventDAO(pool)
        code_session_dao = CodeSessionDAO(pool)

        event_service = EventService(event_dao, clock)
        event_sink = DbEventSink(event_service)
        user_service = UserService(user_dao, clock)
        agent_service = AgentService(
            agent_dao,
            command_dao,
            event_sink,
            notifier,
            connect_intent_ttl_minutes=settings.connect_intent_ttl_minutes,
            clock=clock,
        )
        command_service = CommandService(
            command_dao, agent_dao, event_sink, notifier, clock,
        )
        claim_service = ClaimService(
            command_dao,
            event_sink,
            notifier,
            poll_interval_ms=settings.claim_poll_interval_ms,
            clock=clock,
        )
        code_session_service = CodeSessionService(
            code_session_dao, agent_dao, event_sink, notifier, clock,
        )
        return State({
            "health": HealthResource(hub=hub),
            "auth": AuthResource(user_service=user_service),
            "agent": AgentResource(
                agent_service=agent_service, base_url=settings.base_url,
            ),
            "command": CommandResource(
                command_service=command_service, claim_service=claim_service,
            ),
            "event": EventResource(event_service=event_service),
            "code_session": CodeSessionResource(
                code_session_service=code_session_service,
            ),
            "stream": StreamResource(
                hub=hub,
                command_service=command_service,
                agent_service=agent_service,
                code_session_service=code_session_service,
                keepalive_seconds=settings.stream_keepalive_seconds,
            ),
        })

    @staticmethod
    def _configure_logging(level: str) -> None:
        logging.basicConfig(level=level.upper(), format=_LOG_FORMAT)
        logging.getLogger("relay_server").setLevel(level.upper())

    @staticmethod
    @asynccontextmanager
    async def _lifespan(app: Litestar) -> AsyncIterator[None]:
        """Create tables on startup, dispose engine on shutdown."""
        await Database.create_tables()
        yield
        await Database.close()

    @staticmethod
    async def provide_user(
        request: Request[object, object, State],
    ) -> User:
        """Litestar dependency — resolve the operator from a bearer JWT.

        The token comes from the Authorization header, or from the
        ``access_token`` query parameter for EventSource clients.
        """
        header = request.headers.get("Authorization", "")
        if header.startswith("Bearer "):
            token = header[len("Bearer "):]
        else:
            token = request.query_params.get("access_token", "")
        if not token:
            raise UnauthorizedError("Missing bearer token")
        auth_resource: AuthResource = request.app.state.auth
        return await auth_resource.resolve_token(token)

    @staticmethod
    def provide_auth(state: State) -> AuthResource:
        """Provide the pre-built AuthResource from app state."""
        auth_resource: AuthResource = state.auth
        return auth_resource

    @staticmethod
    def provide_health(state: State) -> HealthResource:
        """Provide the pre-built HealthResource from app state."""
        health_resource: HealthResource = state.health
        return health_resource

    @staticmethod
    def provide_agent(state: State) -> AgentResource:
        """Provide the pre-built AgentResource from app state."""
        agent_resource: AgentResource = state.agent
        return agent_resource

    @staticmethod
    def provide_command(state: State) -> CommandResource:
        """Provide the pre-built CommandResource from app state."""
        command_resource: CommandResource = state.command
        return command_resource

    @staticmethod
    def provide_event(state: State) -> EventResource:
        """Provide the pre-built EventResource from app state."""
        event_resource: EventResource = state.event
        return event_resource

    @staticmethod
    def provide_code_session(state: State) -> CodeSessionResource:
        """Provide the pre-built CodeSessionResource from app state."""
        code_session_resource: CodeSessionResource = state.code_session
        return code_session_resource

    @staticmethod
    def provide_stream(state: State) -> StreamResource:
        """Provide the pre-built StreamResource from app state."""
        stream_resource: StreamResource = state.stream
        return stream_resource

    @staticmethod
    def create_app(
        settings: Settings | None = None,
        *,
        clock: Clock | None = None,
    ) -> Litestar:
        """Create and configure the Litestar application."""
        if settings is None:
            settings = ConfigLoader.load_settings()
        AppFactory._configure_logging(settings.log_level)
        return Litestar(
            route_handlers=[
                HealthController,
                AgentApiController,
                ConnectController,
                AgentsController,
                CodeSessionsController,
                CommandsController,
                EventsController,
            ],
            state=AppFactory._build(settings, clock or Time.now),
            lifespan=[AppFactory._lifespan],
            exception_handlers=EXCEPTION_HANDLERS,
            dependencies={
                "user": Provide(AppFactory.provide_user),
                "auth": Provide(AppFactory.provide_auth, sync_to_thread=False),
                "health_resource": Provide(AppFactory.provide_health, sync_to_thread=False),
                "agent_resource": Provide(AppFactory.provide_agent, sync_to_thread=False),
                "command_resource": Provide(AppFactory.provide_command, sync_to_thread=False),
                "event_resource": Provide(AppFactory.provide_event, sync_to_thread=False),
                "code_session_resource": Provide(
                    AppFactory.provide_code_session, sync_to_thread=False,
                ),
                "stream_resource": Provide(AppFactory.provide_stream, sync_to_thread=False),
            },
        )


# Public alias so conftest / uvicorn can call create_app() without knowing AppFactory.
create_app = AppFactory.create_app


class CLI:
    """Command-line interface for relay-server."""

    @staticmethod
    def _build_parser() -> argparse.ArgumentParser:
        """Build the CLI argument parser."""
        parser = argparse.ArgumentParser(
            prog="relay-server", description="Relay Server CLI",
        )
        subparsers = parser.add_subparsers(dest="command")

        run_parser = subparsers.add_parser("run", help="Start the server")
        run_parser.add_argument("--host", default="0.0.0.0")
        run_parser.add_argument("--port", type=int, default=8000)
        run_parser.add_argument("--reload", action="store_true", help="Auto-reload on file changes")

        user_parser = subparsers.add_parser(
            "create-user", help="Create an operator and print a bearer token",
        )
        user_parser.add_argument("--name", required=True)
        user_parser.add_argument(
            "--role", default="operator", choices=["viewer", "operator", "admin"],
        )

        return parser

    @staticmethod
    async def _create_user(name: str, role: str) -> dict[str, str | None]:
        """Create a user against the configured database."""
        settings = ConfigLoader.load_settings()
        state = AppFactory._build(settings, Time.now)
        try:
            await Database.create_tables()
            auth_resource: AuthResource = state.auth
            return await auth_resource.create_user(name, role)
        finally:
            await Database.close()

    @staticmethod
    def main(argv: list[str] | None = None) -> None:
        """CLI entry point. Catches all exceptions and exits cleanly."""
        parser = CLI._build_parser()
        args = parser.parse_args(argv)

        if args.command is None:
            parser.print_help()
            sys.exit(1)

        try:
            if args.command == "run":
                import uvicorn

                uvicorn.run(
                    "relay_server.app:create_app",
                    factory=True,
                    host=args.host,
                    port=args.port,
                    reload=args.reload,
                )
            elif args.command == "create-user":
                created = asyncio.run(CLI._create_user(args.name, args.role))
                print(json.dumps(created, indent=2))
        except KeyboardInterrupt:
            pass
        except Exception as error:
            print(f"Error: {error}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    CLI.main()
