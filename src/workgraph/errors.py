"""Error types raised by the task graph."""

from pathlib import Path
from typing import TYPE_CHECKING, List, Sequence, Union

if TYPE_CHECKING:
    from .validation import TriageValidationResult


class WorkgraphError(Exception):
    """Base class for all task graph errors."""


class NotFound(WorkgraphError):
    """A referenced task does not exist."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task '{task_id}' not found")


class AlreadyExists(WorkgraphError):
    """A task with the same (normalized) ID is already stored."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task '{task_id}' already exists")


class InvalidStatusTransition(WorkgraphError):
    """The status state machine rejected a transition."""

    def __init__(self, task_id: str, from_status: str, to_status: str):
        self.task_id = task_id
        self.from_status = str(from_status)
        self.to_status = str(to_status)
        super().__init__(
            f"Cannot transition task '{task_id}' from {self.from_status} to {self.to_status}"
        )


class InvalidPath(WorkgraphError):
    """I/O, (de)serialization or argument failure tied to a path or stream name."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Invalid path: {self.path} - {reason}")


class CycleDetected(WorkgraphError):
    """Creating an edge would make a task reachable from itself."""

    def __init__(self, kind: str, path: Sequence[str]):
        self.kind = kind
        self.path: List[str] = list(path)
        super().__init__(
            f"Adding this {kind} edge would create a cycle: {' -> '.join(self.path)}"
        )


class ParentConflict(WorkgraphError):
    """A child already has a different parent."""

    def __init__(self, child_id: str, parent_id: str, existing_parent_id: str):
        self.child_id = child_id
        self.parent_id = parent_id
        self.existing_parent_id = existing_parent_id
        super().__init__(
            f"Task '{child_id}' already has parent '{existing_parent_id}'; "
            f"remove it before assigning '{parent_id}'"
        )


class IncompleteChildren(WorkgraphError):
    """A task cannot be completed while descendants are unfinished."""

    def __init__(self, task_id: str, children: Sequence[object]):
        self.task_id = task_id
        self.children = list(children)
        super().__init__(f"Cannot complete task '{task_id}': has incomplete children")


class TriageValidationFailed(WorkgraphError):
    """A task is missing sections required to move it into todo."""

    def __init__(self, task_id: str, result: "TriageValidationResult", forced_hint: bool = False):
        self.task_id = task_id
        self.result = result
        message = f"Task '{task_id}' failed triage validation:\n{result}"
        if forced_hint:
            message += "\nRun with --force to proceed anyway, or add the missing sections."
        super().__init__(message)
