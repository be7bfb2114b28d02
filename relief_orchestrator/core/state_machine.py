"""Lifecycle state machines for tasks and workflow runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Callable

from relief_orchestrator.errors import IllegalTransitionError


class TaskState(Enum):
    """Task states within a run."""

    PENDING = auto()
    RUNNING = auto()
    SUCCEEDED = auto()
    FAILED = auto()

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in (TaskState.SUCCEEDED, TaskState.FAILED)


class RunState(Enum):
    """Workflow run states."""

    NOT_STARTED = auto()
    IN_PROGRESS = auto()
    COMPLETED_SUCCESS = auto()
    COMPLETED_PARTIAL_FAILURE = auto()

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in (RunState.COMPLETED_SUCCESS, RunState.COMPLETED_PARTIAL_FAILURE)


# Valid state transitions
TASK_TRANSITIONS: dict[TaskState, set[TaskState]] = {
    TaskState.PENDING: {TaskState.RUNNING},
    TaskState.RUNNING: {TaskState.SUCCEEDED, TaskState.FAILED},
    TaskState.SUCCEEDED: set(),
    TaskState.FAILED: set(),
}

RUN_TRANSITIONS: dict[RunState, set[RunState]] = {
    RunState.NOT_STARTED: {RunState.IN_PROGRESS},
    RunState.IN_PROGRESS: {RunState.COMPLETED_SUCCESS, RunState.COMPLETED_PARTIAL_FAILURE},
    RunState.COMPLETED_SUCCESS: set(),
    RunState.COMPLETED_PARTIAL_FAILURE: set(),
}


@dataclass
class StateTransition:
    """Record of a state transition."""

    from_state: Enum
    to_state: Enum
    timestamp: datetime
    message: str = ""


class StateMachine:
    """Transition-table driven state holder."""

    initial_state: Enum
    transitions: dict

    def __init__(
        self,
        name: str,
        on_transition: Callable[[str, Enum, Enum], None] | None = None,
    ):
        self.name = name
        self._state = self.initial_state
        self._on_transition = on_transition
        self.history: list[StateTransition] = []

    @property
    def state(self) -> Enum:
        """Current state."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state.is_terminal()

    def can_transition_to(self, new_state: Enum) -> bool:
        """Check if transition to new state is valid."""
        return new_state in self.transitions.get(self._state, set())

    def transition_to(self, new_state: Enum, message: str = "") -> None:
        """
        Move to a new state.

        Raises:
            IllegalTransitionError: if the transition is not allowed
        """
        if not self.can_transition_to(new_state):
            raise IllegalTransitionError(
                f"{self.name}: cannot go from {self._state.name} to {new_state.name}"
            )

        old_state = self._state
        self.history.append(
            StateTransition(
                from_state=old_state,
                to_state=new_state,
                timestamp=datetime.now(timezone.utc),
                message=message,
            )
        )
        self._state = new_state

        # Callback
        if self._on_transition:
            self._on_transition(self.name, old_state, new_state)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "state": self._state.name,
            "transitions": [
                {
                    "from": t.from_state.name,
                    "to": t.to_state.name,
                    "timestamp": t.timestamp.isoformat(),
                    "message": t.message,
                }
                for t in self.history
            ],
        }


class TaskStateMachine(StateMachine):
    """pending -> running -> succeeded | failed"""

    initial_state = TaskState.PENDING
    transitions = TASK_TRANSITIONS


class RunStateMachine(StateMachine):
    """not_started -> in_progress -> completed_success | completed_partial_failure"""

    initial_state = RunState.NOT_STARTED
    transitions = RUN_TRANSITIONS
