"""Command status transition rules and ownership checks."""

from __future__ import annotations

from relay_server.errors import ConflictError, ForbiddenError, NotFoundError
from relay_server.models.command import Command, CommandStatus

_TRANSITIONS: dict[CommandStatus, frozenset[CommandStatus]] = {
    CommandStatus.DRAFT: frozenset({CommandStatus.QUEUED}),
    CommandStatus.QUEUED: frozenset({
        CommandStatus.DISPATCHING,
        CommandStatus.CANCELLED,
        CommandStatus.FAILED,
    }),
    CommandStatus.DISPATCHING: frozenset({
        CommandStatus.EXECUTING,
        CommandStatus.FAILED,
        CommandStatus.CANCELLED,
    }),
    # executing -> executing is an idempotent progress re-report.
    CommandStatus.EXECUTING: frozenset({
        CommandStatus.EXECUTING,
        CommandStatus.COMPLETED,
        CommandStatus.FAILED,
        CommandStatus.CANCELLED,
    }),
    CommandStatus.COMPLETED: frozenset(),
    CommandStatus.FAILED: frozenset(),
    CommandStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in _TRANSITIONS.items() if not targets
)


class CommandLifecycle:
    """Pure transition checks. All methods are static."""

    @staticmethod
    def can_transition(current: CommandStatus, target: CommandStatus) -> bool:
        """Return True if a command may move from ``current`` to ``target``."""
        return target in _TRANSITIONS[current]

    @staticmethod
    def require_transition(current: CommandStatus, target: CommandStatus) -> None:
        """Raise ConflictError unless ``current -> target`` is legal."""
        if not CommandLifecycle.can_transition(current, target):
            raise ConflictError(
                f"Invalid status transition {current.value} -> {target.value}"
            )

    @staticmethod
    def is_terminal(status: CommandStatus) -> bool:
        return status in TERMINAL_STATUSES

    @staticmethod
    def require_owner(command: Command | None, agent_id: str) -> Command:
        """Return the command if it exists and targets ``agent_id``.

        Raises:
            NotFoundError: If the command does not exist.
            ForbiddenError: If the command belongs to a different agent.
        """
        if command is None:
            raise NotFoundError("Command not found")
        if command.agent_id != agent_id:
            raise ForbiddenError("Command does not belong to agent")
        return command
