"""SQLAlchemy ORM models."""

# Import all models so Base.metadata registers them for create_all().
from relay_server.models.agent import Agent as Agent
from relay_server.models.agent import ConnectIntent as ConnectIntent
from relay_server.models.code_session import CodeSession as CodeSession
from relay_server.models.code_session import CodeSessionEvent as CodeSessionEvent
from relay_server.models.command import Command as Command
from relay_server.models.command import CommandResult as CommandResult
from relay_server.models.event import Event as Event
from relay_server.models.user import User as User
