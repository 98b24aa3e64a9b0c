"""Executor collaborator interface."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from central_command.models import ExecutorResult, TaskDescriptor


@runtime_checkable
class Executor(Protocol):
    """Performs the actual agent work for a task descriptor."""

    async def execute(self, descriptor: TaskDescriptor) -> ExecutorResult:
        """Process one task.

        Raises:
            ExecutorError: If the task could not be processed.
        """
        ...
