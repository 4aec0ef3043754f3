"""Code session request schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from relay_server.schemas.base import WireModel


class CodeSessionCreate(WireModel):
    """``reopen`` reattaches to the agent's latest active or idle session."""

    reopen: bool = True


class CodeSessionInput(WireModel):
    input: str = Field(min_length=1)


class OutputLine(WireModel):
    line: str = Field(min_length=1)
    level: Literal["debug", "info", "warn", "error"] | None = None
    ts: datetime | None = None


class CodeSessionOutput(WireModel):
    """Agent output batch, optionally moving the session to a new status."""

    lines: list[OutputLine] = Field(min_length=1)
    status: Literal["active", "idle", "closed", "error"] | None = None
