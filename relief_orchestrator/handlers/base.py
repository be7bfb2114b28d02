"""Abstract base classes for task handlers and the command runner port."""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Union

TaskOutput = Union[str, dict[str, Any], None]


@dataclass(frozen=True)
class RunOptions:
    """Options shared by every task of one workflow run."""

    continue_on_error: bool = False
    verbose: bool = False


@dataclass
class CommandResult:
    """Captured result of an external command."""

    command: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class CommandRunner(ABC):
    """Port for spawning external processes."""

    @abstractmethod
    async def run(
        self,
        command: list[str],
        cwd: str | Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """
        Run a command to completion and capture its output.

        Args:
            command: Program and arguments
            cwd: Working directory (default: current directory)
            timeout: Seconds before the process is killed (None = no limit)

        Returns:
            CommandResult with exit code, stdout and stderr

        Raises:
            TaskExecutionError: if the command timed out
            OSError: if the program cannot be started
        """
        pass


class TaskHandler(ABC):
    """Invocable bound to a task name in the registry."""

    description: str = ""

    @abstractmethod
    async def invoke(self, options: RunOptions) -> TaskOutput:
        """
        Execute the task.

        Args:
            options: Options of the current run

        Returns:
            Captured output (text or a JSON-serialisable mapping)

        Raises:
            Exception: any error marks the task as failed
        """
        pass


class FunctionHandler(TaskHandler):
    """Runs an in-process callable, sync or async.

    The callable may accept the run options as its single argument or take no
    arguments at all. Synchronous callables run in a worker thread so the
    event loop stays free for timeouts and signals.
    """

    def __init__(
        self,
        func: Callable[..., TaskOutput | Awaitable[TaskOutput]],
        description: str = "",
    ):
        self._func = func
        self._pass_options = _accepts_argument(func)
        self.description = description or (inspect.getdoc(func) or "").split("\n")[0]

    async def invoke(self, options: RunOptions) -> TaskOutput:
        args = (options,) if self._pass_options else ()
        if inspect.iscoroutinefunction(self._func):
            return await self._func(*args)

        # Blocking callables run in a worker thread; after a timeout the thread
        # finishes in the background.
        result = await asyncio.to_thread(self._func, *args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        name = getattr(self._func, "__qualname__", repr(self._func))
        return f"FunctionHandler({name})"


def _accepts_argument(func: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return False

    positional = (
        inspect.Parameter.POSITIONAL_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
        inspect.Parameter.VAR_POSITIONAL,
    )
    return any(param.kind in positional for param in signature.parameters.values())
