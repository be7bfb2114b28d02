"""Task runner for executing a single workflow task."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from relief_orchestrator.core.registry import TaskRegistry
from relief_orchestrator.core.state_machine import TaskState, TaskStateMachine
from relief_orchestrator.handlers.base import RunOptions, TaskOutput

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _millis(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() * 1000)


@dataclass(frozen=True)
class TaskResult:
    """Sealed outcome of one task execution."""

    name: str
    start_time: datetime
    end_time: datetime
    success: bool
    output: TaskOutput = ""
    error: str | None = None
    transitions: tuple[dict[str, Any], ...] = ()

    @property
    def duration_ms(self) -> int:
        return _millis(self.start_time, self.end_time)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for reports."""
        return {
            "name": self.name,
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration": self.duration_ms,
            "transitions": list(self.transitions),
        }


class TaskRunner:
    """
    Runs one task through its lifecycle:
    pending -> running -> succeeded | failed

    Handler exceptions never escape ``run``; they become a failed TaskResult.
    Only an unknown task name raises.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        timeout: float | None = None,
        on_state_change: Callable[[str, TaskState, TaskState], None] | None = None,
    ):
        self._registry = registry
        self._timeout = timeout
        self._on_state_change = on_state_change

    async def _invoke(self, name: str, options: RunOptions) -> TaskOutput:
        handler = self._registry.resolve(name)
        if self._timeout is None:
            return await handler.invoke(options)
        return await asyncio.wait_for(handler.invoke(options), timeout=self._timeout)

    async def run(self, name: str, options: RunOptions | None = None) -> TaskResult:
        """
        Execute a task.

        Args:
            name: Registered task name
            options: Options of the current run

        Returns:
            TaskResult with execution outcome

        Raises:
            UnknownTaskError: if the task is not registered
        """
        options = options or RunOptions()
        self._registry.resolve(name)

        state_machine = TaskStateMachine(name, on_transition=self._on_state_change)
        start_time = _now()
        state_machine.transition_to(TaskState.RUNNING)

        try:
            output = await self._invoke(name, options)
        except Exception as e:
            logger.debug(f"Task {name} raised", exc_info=True)
            if isinstance(e, asyncio.TimeoutError) and self._timeout is not None:
                error = f"Task {name} timed out after {self._timeout:g}s"
            else:
                error = str(e) or type(e).__name__
            state_machine.transition_to(TaskState.FAILED, error)
            return TaskResult(
                name,
                start_time,
                _now(),
                success=False,
                error=error,
                transitions=tuple(state_machine.to_dict()["transitions"]),
            )

        state_machine.transition_to(TaskState.SUCCEEDED)
        return TaskResult(
            name,
            start_time,
            _now(),
            success=True,
            output="" if output is None else output,
            transitions=tuple(state_machine.to_dict()["transitions"]),
        )
