"""
Status state machine.

The table below is the single source of truth for which lifecycle moves are
legal. Same-status requests are never looked up here: callers treat them as
no-op successes before validating.
"""

from typing import Dict, FrozenSet

from .errors import InvalidStatusTransition
from .task_node import TaskStatus

TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.BACKLOG: frozenset({TaskStatus.TODO}),
    TaskStatus.TODO: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.REJECTED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.PENDING_REVIEW}),
    TaskStatus.PENDING_REVIEW: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.DONE}),
    TaskStatus.DONE: frozenset(),
    TaskStatus.REJECTED: frozenset(),
}


def allowed_targets(from_status: TaskStatus) -> FrozenSet[TaskStatus]:
    """Statuses reachable from ``from_status`` in one step."""
    return TRANSITIONS.get(TaskStatus(from_status), frozenset())


def is_allowed(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Whether the table contains the edge ``from_status -> to_status``."""
    return TaskStatus(to_status) in allowed_targets(from_status)


def validate_transition(task_id: str, from_status: TaskStatus, to_status: TaskStatus) -> None:
    """Raise InvalidStatusTransition unless the move is in the table."""
    if not is_allowed(from_status, to_status):
        raise InvalidStatusTransition(
            task_id, TaskStatus(from_status).value, TaskStatus(to_status).value
        )
