"""Command request schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from relay_server.schemas.base import WireModel


class CommandCreate(WireModel):
    """Operator request to queue a command."""

    agent_id: str = Field(min_length=1)
    instruction: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=5, ge=1, le=10)


class ClaimRequest(WireModel):
    """Agent long-poll claim."""

    max_claims: int = Field(default=1, ge=1, le=10)
    lease_seconds: int = Field(default=60, ge=15, le=300)
    wait_ms: int = Field(default=0, ge=0, le=25_000)


class LeaseExtend(WireModel):
    lease_seconds: int = Field(ge=15, le=300)


class ReleaseRequest(WireModel):
    reason: str | None = Field(default=None, max_length=500)


class ProgressReport(WireModel):
    status: Literal["dispatching", "executing"]
    payload: dict[str, Any] | None = None


class ResultChunk(WireModel):
    """One output chunk; ``is_final`` completes the command."""

    chunk_index: int = Field(ge=0)
    output: str = Field(min_length=1)
    is_final: bool
    metadata: dict[str, Any] | None = None


class FailureReport(WireModel):
    error_message: str = Field(min_length=1)
