"""Task registry mapping task names to handlers."""

from __future__ import annotations

import logging

from relief_orchestrator.config import WorkflowDefinition
from relief_orchestrator.errors import UnknownTaskError
from relief_orchestrator.handlers.base import TaskHandler

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Single source of truth for which tasks exist."""

    def __init__(self) -> None:
        self._handlers: dict[str, TaskHandler] = {}

    def register(self, name: str, handler: TaskHandler) -> None:
        """Bind a handler to a task name, replacing any previous binding."""
        if name in self._handlers:
            logger.debug(f"Task {name} re-registered, replacing {self._handlers[name]!r}")
        self._handlers[name] = handler

    def resolve(self, name: str) -> TaskHandler:
        """
        Look up the handler for a task.

        Raises:
            UnknownTaskError: if no handler is registered under ``name``
        """
        try:
            return self._handlers[name]
        except KeyError:
            raise UnknownTaskError(name) from None

    def validate(self, workflow: WorkflowDefinition) -> None:
        """
        Check that every task of a workflow resolves.

        Raises:
            UnknownTaskError: listing every unresolved task name
        """
        missing = [task for task in workflow.tasks if task not in self._handlers]
        if missing:
            raise UnknownTaskError(missing, workflow_name=workflow.name)

    def names(self) -> list[str]:
        """Registered task names, sorted."""
        return sorted(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
