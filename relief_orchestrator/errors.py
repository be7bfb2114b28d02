"""Exception hierarchy for the workflow orchestrator.

Configuration errors are fatal and propagate out of the orchestrator.
Task execution errors are caught by the task runner and recorded.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""


class ConfigurationError(OrchestratorError):
    """The orchestrator cannot run with the current configuration."""


class UnknownWorkflowError(ConfigurationError):
    """Requested workflow is not defined."""

    def __init__(self, workflow_name: str):
        self.workflow_name = workflow_name
        super().__init__(f"Unknown workflow type: {workflow_name}")


class UnknownTaskError(ConfigurationError):
    """One or more task names have no registered handler."""

    def __init__(self, task_names: str | Iterable[str], workflow_name: str | None = None):
        if isinstance(task_names, str):
            task_names = [task_names]
        self.task_names = list(task_names)
        self.workflow_name = workflow_name

        names = ", ".join(self.task_names)
        if workflow_name:
            message = f"Unknown task(s) in workflow {workflow_name}: {names}"
        else:
            message = f"Unknown task: {names}"
        super().__init__(message)


class DirectoryCreationError(ConfigurationError):
    """A required working directory could not be created."""

    def __init__(self, path: str | Path, reason: str):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Could not create directory {path}: {reason}")


class TaskExecutionError(OrchestratorError):
    """A task handler failed (nonzero exit, timeout, ...)."""

    def __init__(self, message: str, exit_code: int | None = None, output: str = ""):
        self.exit_code = exit_code
        self.output = output
        super().__init__(message)


class IllegalTransitionError(OrchestratorError):
    """A lifecycle state machine was asked for a transition it does not allow."""
