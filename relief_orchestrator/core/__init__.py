"""Core module - workflow execution and state tracking."""

from .state_machine import RunState, RunStateMachine, TaskState, TaskStateMachine
from .registry import TaskRegistry
from .task_runner import TaskResult, TaskRunner
from .report import ReportWriter
from .orchestrator import Orchestrator, OrchestratorState, WorkflowRun

__all__ = [
    "RunState",
    "RunStateMachine",
    "TaskState",
    "TaskStateMachine",
    "TaskRegistry",
    "TaskResult",
    "TaskRunner",
    "ReportWriter",
    "Orchestrator",
    "OrchestratorState",
    "WorkflowRun",
]
