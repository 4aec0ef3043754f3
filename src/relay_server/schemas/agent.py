"""Agent request schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from relay_server.schemas.base import WireModel


class AgentCreate(WireModel):
    """Operator request to create an agent with a static token."""

    name: str = Field(min_length=1)
    external_id: str | None = Field(default=None, min_length=1)
    capabilities: list[str] | None = None
    token: str | None = Field(default=None, min_length=16)


class ConnectIntentCreate(WireModel):
    display_name: str | None = Field(default=None, min_length=1, max_length=120)


class SetupCodeExchange(WireModel):
    setup_code: str = Field(min_length=6)
    agent_external_id: str = Field(min_length=1)


class ToolSpec(WireModel):
    name: str = Field(min_length=1)
    description: str | None = None
    input_schema: dict[str, Any] | None = None


class AgentRegister(WireModel):
    """Agent self-description sent once it holds a token."""

    external_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    purpose: str = Field(default="", max_length=500)
    capabilities: list[str] | None = None
    tools: list[ToolSpec] = Field(default_factory=list)


class Heartbeat(WireModel):
    status: Literal["online", "offline", "busy", "error"]
    metadata: dict[str, Any] | None = None
