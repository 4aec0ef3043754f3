"""Tests for command status transitions and ownership checks."""

from __future__ import annotations

import pytest

from relay_server.errors import ConflictError, ForbiddenError, NotFoundError
from relay_server.models.command import Command, CommandStatus
from relay_server.services.lifecycle import TERMINAL_STATUSES, CommandLifecycle

S = CommandStatus

ALLOWED = {
    (S.DRAFT, S.QUEUED),
    (S.QUEUED, S.DISPATCHING),
    (S.QUEUED, S.CANCELLED),
    (S.QUEUED, S.FAILED),
    (S.DISPATCHING, S.EXECUTING),
    (S.DISPATCHING, S.FAILED),
    (S.DISPATCHING, S.CANCELLED),
    (S.EXECUTING, S.EXECUTING),
    (S.EXECUTING, S.COMPLETED),
    (S.EXECUTING, S.FAILED),
    (S.EXECUTING, S.CANCELLED),
}


@pytest.mark.parametrize("current", list(S))
@pytest.mark.parametrize("target", list(S))
def test_transition_table(current: CommandStatus, target: CommandStatus) -> None:
    """Every (current, target) pair matches the transition table."""
    assert CommandLifecycle.can_transition(current, target) == ((current, target) in ALLOWED)


def test_terminal_statuses() -> None:
    assert TERMINAL_STATUSES == {S.COMPLETED, S.FAILED, S.CANCELLED}
    assert CommandLifecycle.is_terminal(S.CANCELLED)
    assert not CommandLifecycle.is_terminal(S.EXECUTING)


def test_dispatching_cannot_complete_directly() -> None:
    """A command must report executing before it can complete."""
    with pytest.raises(ConflictError, match="dispatching -> completed"):
        CommandLifecycle.require_transition(S.DISPATCHING, S.COMPLETED)


def test_require_transition_allows_legal_move() -> None:
    CommandLifecycle.require_transition(S.QUEUED, S.DISPATCHING)


def test_require_owner() -> None:
    command = Command(id="c1", agent_id="agent-a", status=S.QUEUED)
    assert CommandLifecycle.require_owner(command, "agent-a") is command
    with pytest.raises(ForbiddenError):
        CommandLifecycle.require_owner(command, "agent-b")
    with pytest.raises(NotFoundError):
        CommandLifecycle.require_owner(None, "agent-a")
