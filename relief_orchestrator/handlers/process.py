"""External process handlers."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from relief_orchestrator.errors import TaskExecutionError
from relief_orchestrator.handlers.base import (
    CommandResult,
    CommandRunner,
    RunOptions,
    TaskHandler,
    TaskOutput,
)

logger = logging.getLogger(__name__)


class SubprocessRunner(CommandRunner):
    """Runs commands with asyncio subprocesses."""

    async def run(
        self,
        command: list[str],
        cwd: str | Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        logger.debug(f"Command: {' '.join(command)}")

        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=cwd,
            stdin=None,  # Inherit, scripts may prompt
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            await _kill(process)
            raise TaskExecutionError(
                f"Command {command[0]} timed out after {timeout:g}s",
                exit_code=-1,
            )
        except asyncio.CancelledError:
            await _kill(process)
            raise

        return CommandResult(
            command=list(command),
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


class CommandHandler(TaskHandler):
    """Task backed by an external command.

    Resolves with the command's stdout; a nonzero exit raises
    TaskExecutionError carrying stderr (or a generic message when stderr is
    empty).
    """

    def __init__(
        self,
        command: list[str],
        runner: CommandRunner | None = None,
        cwd: str | Path | None = None,
        timeout: float | None = None,
        description: str = "",
    ):
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self.cwd = cwd
        self.timeout = timeout
        self.description = description or " ".join(self.command)
        self._runner = runner or SubprocessRunner()

    def _failure_message(self, result: CommandResult) -> str:
        return f"Command {self.command[0]} exited with code {result.exit_code}"

    async def invoke(self, options: RunOptions) -> TaskOutput:
        result = await self._runner.run(self.command, cwd=self.cwd, timeout=self.timeout)

        if options.verbose and result.stdout:
            logger.debug(result.stdout.rstrip())

        if not result.success:
            raise TaskExecutionError(
                result.stderr.strip() or self._failure_message(result),
                exit_code=result.exit_code,
                output=result.stdout,
            )
        return result.stdout

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.command!r})"


class ScriptHandler(CommandHandler):
    """Task backed by a site automation script run through an interpreter."""

    def __init__(
        self,
        script: str,
        args: list[str] | None = None,
        interpreter: str = "node",
        runner: CommandRunner | None = None,
        cwd: str | Path | None = None,
        timeout: float | None = None,
        description: str = "",
    ):
        self.script = script
        super().__init__(
            [interpreter, script, *(args or [])],
            runner=runner,
            cwd=cwd,
            timeout=timeout,
            description=description or f"Run {script}",
        )

    def _failure_message(self, result: CommandResult) -> str:
        return f"Script {self.script} exited with code {result.exit_code}"
