"""Main orchestrator for running workflows and tracking their state."""

from __future__ import annotations

import asyncio
import json
import signal
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from rich.console import Console

from relief_orchestrator.config import Settings, WorkflowDefinition, write_default_config
from relief_orchestrator.core.registry import TaskRegistry
from relief_orchestrator.core.report import ReportWriter, display_summary
from relief_orchestrator.core.state_machine import RunState, RunStateMachine, TaskState
from relief_orchestrator.core.task_runner import TaskResult, TaskRunner
from relief_orchestrator.errors import (
    DirectoryCreationError,
    UnknownTaskError,
    UnknownWorkflowError,
)
from relief_orchestrator.handlers import CommandRunner, RunOptions, create_default_registry
from relief_orchestrator.utils.logger import console as default_console
from relief_orchestrator.utils.logger import get_logger

logger = get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OrchestratorState:
    """Diagnostic view of the run in progress.

    Reset at the start of every run; the persisted report is the
    authoritative history.
    """

    current_workflow: str | None = None
    running_tasks: set[str] = field(default_factory=set)
    completed_tasks: set[str] = field(default_factory=set)
    failed_tasks: set[str] = field(default_factory=set)
    start_time: datetime | None = None

    def reset(self, workflow_name: str) -> None:
        self.current_workflow = workflow_name
        self.start_time = _now()
        self.running_tasks.clear()
        self.completed_tasks.clear()
        self.failed_tasks.clear()

    def snapshot(self) -> dict[str, Any]:
        """Read-only copy, safe to serialize."""
        uptime = int((_now() - self.start_time).total_seconds() * 1000) if self.start_time else 0
        return {
            "current_workflow": self.current_workflow,
            "running_tasks": sorted(self.running_tasks),
            "completed_tasks": sorted(self.completed_tasks),
            "failed_tasks": sorted(self.failed_tasks),
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "uptime_ms": uptime,
        }


@dataclass
class WorkflowRun:
    """Record of one execution of a workflow."""

    workflow_name: str
    start_time: datetime
    end_time: datetime | None = None
    task_results: list[TaskResult] = field(default_factory=list)
    skipped_tasks: list[str] = field(default_factory=list)
    aborted: bool = False
    state: RunState = RunState.NOT_STARTED
    report_id: str | None = None
    report_path: Path | None = None

    @property
    def duration_ms(self) -> int:
        end = self.end_time or _now()
        return int((end - self.start_time).total_seconds() * 1000)

    @property
    def overall_success(self) -> bool:
        """True iff nothing failed and nothing was cut short."""
        return not self.aborted and all(result.success for result in self.task_results)

    @property
    def summary(self) -> dict[str, int]:
        successful = sum(1 for result in self.task_results if result.success)
        return {
            "total": len(self.task_results),
            "successful": successful,
            "failed": len(self.task_results) - successful,
        }

    def to_report(self, report_id: str) -> dict[str, Any]:
        """Serialize as a persisted report."""
        end = self.end_time or _now()
        return {
            "report_id": report_id,
            "workflow": self.workflow_name,
            "timestamp": end.isoformat(),
            "start_time": self.start_time.isoformat(),
            "end_time": end.isoformat(),
            "duration": self.duration_ms,
            "success": self.overall_success,
            "aborted": self.aborted,
            "state": self.state.name,
            "tasks": [result.to_dict() for result in self.task_results],
            "skipped_tasks": list(self.skipped_tasks),
            "summary": self.summary,
        }


class Orchestrator:
    """
    Runs named workflows task by task.

    Features:
    - Fail-fast or continue-on-error policy per run
    - Validation of every task name before anything runs
    - Persisted JSON report per run
    - Cooperative shutdown on SIGINT/SIGTERM
    """

    def __init__(
        self,
        settings: Settings,
        registry: TaskRegistry | None = None,
        runner: CommandRunner | None = None,
        report_writer: ReportWriter | None = None,
        console: Console | None = None,
    ):
        self._settings = settings
        self._registry = registry or create_default_registry(settings, runner)
        self._reports = report_writer or ReportWriter(settings.logs_dir)
        self._console = console or default_console
        self._state = OrchestratorState()
        self._shutdown_requested = False

        self._task_runner = TaskRunner(
            self._registry,
            timeout=settings.task_timeout_seconds,
            on_state_change=self._handle_state_change,
        )

    def _handle_state_change(self, task_name: str, old_state: TaskState, new_state: TaskState) -> None:
        """Handle state change from task runner."""
        logger.state_change(task_name, old_state.name, new_state.name)

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def reports(self) -> ReportWriter:
        return self._reports

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    @property
    def final_state_path(self) -> Path:
        return Path(self._settings.data_dir) / "final_state.json"

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Prepare working directories and the configuration file.

        Safe to call repeatedly.

        Raises:
            DirectoryCreationError: if a working directory cannot be created
        """
        logger.info("Initializing Workflow Orchestrator")
        self.ensure_directories()

        try:
            if write_default_config(self._settings.automation_config):
                logger.info(f"Default configuration created: {self._settings.automation_config}")
        except OSError as e:
            logger.warning(f"Could not write default configuration: {e}")

        for name, missing in self.check_workflows().items():
            logger.warning(f"Workflow {name} references unknown task(s): {', '.join(missing)}")

        logger.success("Orchestrator initialized successfully")

    def ensure_directories(self) -> list[Path]:
        """Create the working directories if needed. Returns the ones created."""
        created = []
        for directory in self._settings.working_directories():
            if directory.is_dir():
                continue
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise DirectoryCreationError(directory, e.strerror or str(e)) from e
            logger.info(f"Created directory: {directory}")
            created.append(directory)
        return created

    def check_workflows(self) -> dict[str, list[str]]:
        """Map each workflow with unresolved tasks to the missing names."""
        problems = {}
        for name, workflow in self._settings.workflows.items():
            missing = [task for task in workflow.tasks if task not in self._registry]
            if missing:
                problems[name] = missing
        return problems

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def get_workflow(self, name: str) -> WorkflowDefinition:
        """
        Look up a workflow definition.

        Raises:
            UnknownWorkflowError: if no workflow has that name
        """
        workflow = self._settings.get_workflow(name)
        if workflow is None:
            raise UnknownWorkflowError(name)
        return workflow

    async def run_workflow(
        self,
        workflow_name: str | None = None,
        options: RunOptions | None = None,
    ) -> WorkflowRun:
        """
        Run every task of a workflow in order.

        Args:
            workflow_name: Workflow to run (default: settings.default_workflow)
            options: Run options (continue-on-error, verbose)

        Returns:
            The sealed WorkflowRun, already persisted

        Raises:
            UnknownWorkflowError: if the workflow is not defined
            UnknownTaskError: if any of its tasks is not registered
        """
        name = workflow_name or self._settings.default_workflow
        options = options or RunOptions()

        workflow = self.get_workflow(name)
        self._registry.validate(workflow)

        # A shutdown request only stops the run it arrived during
        self._shutdown_requested = False
        self._state.reset(name)
        run = WorkflowRun(workflow_name=name, start_time=self._state.start_time or _now())
        run_machine = RunStateMachine(name)
        run_machine.transition_to(RunState.IN_PROGRESS)
        run.state = run_machine.state

        logger.header(f"Starting workflow: {name.upper()}")

        for index, task_name in enumerate(workflow.tasks):
            if self._shutdown_requested:
                run.skipped_tasks = list(workflow.tasks[index:])
                logger.warning(f"Shutdown requested, not starting: {', '.join(run.skipped_tasks)}")
                break

            result = await self.run_task(task_name, options)
            run.task_results.append(result)

            if not result.success and not options.continue_on_error:
                run.skipped_tasks = list(workflow.tasks[index + 1:])
                if run.skipped_tasks:
                    logger.warning(f"Stopping workflow {name} after failed task {task_name}")
                break

        run.aborted = bool(run.skipped_tasks)
        run.end_time = _now()
        run_machine.transition_to(
            RunState.COMPLETED_SUCCESS if run.overall_success else RunState.COMPLETED_PARTIAL_FAILURE
        )
        run.state = run_machine.state

        if run.overall_success:
            logger.success(f"Workflow {name} completed")
        else:
            logger.failure(f"Workflow {name} finished with failures")

        self._reports.write(run)
        display_summary(run, self._console)
        return run

    async def run_task(self, task_name: str, options: RunOptions | None = None) -> TaskResult:
        """
        Run a single task and record it in the diagnostic state.

        Raises:
            UnknownTaskError: if the task is not registered
        """
        options = options or RunOptions()
        if task_name not in self._registry:
            raise UnknownTaskError(task_name)

        self._state.running_tasks.add(task_name)
        logger.info(f"Running task: {task_name}")

        try:
            result = await self._task_runner.run(task_name, options)
        finally:
            self._state.running_tasks.discard(task_name)

        if result.success:
            self._state.completed_tasks.add(task_name)
            logger.success(f"Task completed: {task_name} ({result.duration_ms} ms)")
            if options.verbose and result.output:
                logger.debug(f"{task_name} output: {result.output}")
        else:
            self._state.failed_tasks.add(task_name)
            logger.failure(f"Task failed: {task_name} - {result.error}")

        return result

    # ------------------------------------------------------------------
    # Introspection and shutdown
    # ------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        """Instantaneous snapshot of the orchestrator state."""
        return self._state.snapshot()

    def request_shutdown(self, reason: str = "shutdown requested") -> None:
        """Stop the current run before its next task."""
        if not self._shutdown_requested:
            logger.warning(f"Graceful shutdown initiated ({reason})")
        self._shutdown_requested = True

    def install_signal_handlers(self) -> bool:
        """
        Route SIGINT and SIGTERM to ``request_shutdown``.

        Must be called from inside the running event loop.

        Returns:
            False where the loop does not support signal handlers
        """
        loop = asyncio.get_running_loop()
        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
        except (NotImplementedError, RuntimeError):
            return False
        return True

    def cleanup(self) -> Path | None:
        """
        Clear in-flight state and save it to ``final_state.json``.

        Returns:
            Path of the saved state, or None if it could not be written
        """
        logger.info("Orchestrator cleanup initiated")
        self._state.running_tasks.clear()

        state_path = self.final_state_path
        try:
            with open(state_path, "w", encoding="utf-8") as f:
                json.dump(self.get_status(), f, indent=2)
        except OSError as e:
            logger.warning(f"Could not save final state: {e}")
            return None

        logger.success("Final state saved")
        return state_path
