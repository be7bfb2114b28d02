"""Test configuration and fixtures."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Callable

import pytest
from rich.console import Console

from relief_orchestrator.config import Settings
from relief_orchestrator.core import Orchestrator, TaskRegistry
from relief_orchestrator.handlers import CommandResult, CommandRunner, RunOptions, TaskHandler
from relief_orchestrator.utils.logger import CUSTOM_THEME


class FakeHandler(TaskHandler):
    """Handler returning canned output or raising a canned error."""

    def __init__(
        self,
        output="",
        error: Exception | None = None,
        on_invoke: Callable[[], None] | None = None,
    ):
        self.output = output
        self.error = error
        self.on_invoke = on_invoke
        self.calls: list[RunOptions] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def invoke(self, options: RunOptions):
        self.calls.append(options)
        if self.on_invoke:
            self.on_invoke()
        if self.error:
            raise self.error
        return self.output


class FakeCommandRunner(CommandRunner):
    """Command runner returning canned results without spawning processes."""

    def __init__(self, results: dict[tuple[str, ...], CommandResult] | None = None):
        self.results = results or {}
        self.commands: list[list[str]] = []
        self.error: Exception | None = None

    async def run(self, command, cwd=None, timeout=None) -> CommandResult:
        self.commands.append(list(command))
        if self.error:
            raise self.error
        return self.results.get(tuple(command), CommandResult(command=list(command), exit_code=0))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temporary directory."""
    return Settings(
        data_dir=str(tmp_path / "data"),
        logs_dir=str(tmp_path / "logs"),
        backup_dir=str(tmp_path / "backup"),
        project_root=str(tmp_path),
        automation_config=str(tmp_path / "automation-config.json"),
        workflows={
            "abc": ["t1", "t2", "t3"],
            "other": ["t3"],
            "maintenance": ["cleanup", "backup"],
        },
    )


@pytest.fixture
def handlers() -> dict[str, FakeHandler]:
    """Succeeding fake handlers for the test workflows."""
    return {
        "t1": FakeHandler("one"),
        "t2": FakeHandler("two"),
        "t3": FakeHandler("three"),
        "cleanup": FakeHandler("ok"),
        "backup": FakeHandler("backup-id-42"),
    }


@pytest.fixture
def registry(handlers: dict[str, FakeHandler]) -> TaskRegistry:
    registry = TaskRegistry()
    for name, handler in handlers.items():
        registry.register(name, handler)
    return registry


@pytest.fixture
def summary_output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def orchestrator(settings: Settings, registry: TaskRegistry, summary_output: io.StringIO) -> Orchestrator:
    """Initialized orchestrator using fake handlers."""
    orchestrator = Orchestrator(
        settings,
        registry=registry,
        console=Console(file=summary_output, theme=CUSTOM_THEME, width=120),
    )
    orchestrator.initialize()
    return orchestrator


@pytest.fixture
def restore_logging():
    """Undo root logger changes made by setup_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
