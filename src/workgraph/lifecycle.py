"""
Lifecycle commands that move tasks through the status state machine.

Every command normalizes the ID, treats a request for the current status as
a successful no-op, and only then validates and writes.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import IncompleteChildren, TriageValidationFailed
from .ids import normalize_id
from .task_graph import TaskGraph
from .task_node import SectionType, TaskNode, TaskStatus, TaskUpdate
from .validation import TriageValidationResult, TriageValidator

logger = logging.getLogger(__name__)

_DONE_MESSAGES = {
    TaskStatus.TODO: "Triaged task: {id}",
    TaskStatus.IN_PROGRESS: "Started task: {id}",
    TaskStatus.PENDING_REVIEW: "Submitted task for review: {id}",
    TaskStatus.DONE: "Completed task: {id}",
    TaskStatus.REJECTED: "Rejected task: {id}",
    TaskStatus.BACKLOG: "Moved task to backlog: {id}",
}

_ALREADY_MESSAGES = {
    TaskStatus.TODO: "Task '{id}' is already in todo",
    TaskStatus.IN_PROGRESS: "Warning: Task '{id}' is already in progress",
    TaskStatus.PENDING_REVIEW: "Task '{id}' is already pending review",
    TaskStatus.DONE: "Task '{id}' is already done",
    TaskStatus.REJECTED: "Task '{id}' is already rejected",
    TaskStatus.BACKLOG: "Task '{id}' is already in backlog",
}


@dataclass
class TransitionResult:
    """Outcome of a status transition command."""

    id: str
    target: TaskStatus
    already_in_target: bool
    incomplete_deps: List[TaskNode] = field(default_factory=list)
    unblocked_tasks: List[TaskNode] = field(default_factory=list)
    reason: Optional[str] = None
    validation: Optional[TriageValidationResult] = None
    validation_skipped: bool = False
    warnings_forced: bool = False

    def __str__(self) -> str:
        lines: List[str] = []

        if self.validation_skipped:
            lines += ["Note: Validation skipped (--skip-validation)", ""]

        if self.validation is not None and (self.validation.warnings or self.validation.notes):
            if self.validation.warnings:
                header = "WARNINGS (forced with --force):" if self.warnings_forced else (
                    f"WARNINGS ({len(self.validation.warnings)}):"
                )
                lines.append(header)
                lines += [f"  - {issue.message}" for issue in self.validation.warnings]
                lines.append("")
            if self.validation.notes:
                lines.append(f"NOTES ({len(self.validation.notes)}):")
                lines += [f"  - {issue.message}" for issue in self.validation.notes]
                lines.append("")

        if self.incomplete_deps:
            lines.append("Warning: Task depends on incomplete tasks:")
            lines += [f"  - {dep.id} ({dep.title}) [{dep.status.value}]" for dep in self.incomplete_deps]
            lines.append("")

        if self.already_in_target:
            message = _ALREADY_MESSAGES[self.target].format(id=self.id)
            if self.target == TaskStatus.REJECTED and self.reason:
                message += f" (added reason: {self.reason})"
        else:
            message = _DONE_MESSAGES[self.target].format(id=self.id)
            if self.target == TaskStatus.REJECTED and self.reason:
                message += f"\nReason: {self.reason}"
        lines.append(message)

        if self.unblocked_tasks:
            lines += ["", "Unblocked tasks:"]
            lines += [f"  - {task.id} ({task.title})" for task in self.unblocked_tasks]

        return "\n".join(lines)


@dataclass
class ReviewResult:
    id: str
    needs_human_review: bool

    def __str__(self) -> str:
        action = "marked as needing review" if self.needs_human_review else "marked as not needing review"
        return f"Task {self.id} {action}"


def _add_rejection_reason(graph: TaskGraph, task_id: str, reason: str) -> None:
    graph.tasks.add_section(task_id, SectionType.CONSTRAINT, f"REJECTED: {reason}")


def _transition(
    graph: TaskGraph,
    task_id: str,
    target: TaskStatus,
    reason: Optional[str] = None,
    force: bool = False,
    check_sections: bool = False,
) -> TransitionResult:
    task_id = normalize_id(task_id)
    task = graph.require_task(task_id)
    target = TaskStatus(target)

    if task.status == target:
        # Rejection reasons still accumulate on an already rejected task
        if target == TaskStatus.REJECTED:
            if reason:
                _add_rejection_reason(graph, task_id, reason)
            else:
                graph.tasks.touch(task_id)
        return TransitionResult(id=task_id, target=target, already_in_target=True, reason=reason)

    graph.tasks.validate_status_transition(task_id, task.status, target)
    result = TransitionResult(id=task_id, target=target, already_in_target=False, reason=reason)

    if target == TaskStatus.TODO and check_sections:
        validation = TriageValidator().validate(task)
        if validation.errors:
            raise TriageValidationFailed(task_id, validation)
        if validation.warnings and not force:
            raise TriageValidationFailed(task_id, validation, forced_hint=True)
        result.validation = validation
        result.warnings_forced = force and bool(validation.warnings)
    elif target == TaskStatus.IN_PROGRESS:
        # Soft enforcement: report unfinished blockers but still start
        result.incomplete_deps = graph.get_incomplete_dependencies(task_id)
    elif target == TaskStatus.DONE:
        incomplete = graph.get_incomplete_descendants(task_id)
        if incomplete:
            raise IncompleteChildren(task_id, incomplete)
        result.unblocked_tasks = graph.get_unblocked_tasks(task_id)

    with graph.storage.transaction():
        if target == TaskStatus.REJECTED and reason:
            _add_rejection_reason(graph, task_id, reason)
        graph.tasks.update_status(task_id, target)

    logger.info("Task %s: %s -> %s", task_id, task.status.value, target.value)
    return result


def triage(graph: TaskGraph, task_id: str) -> TransitionResult:
    """Move a task from backlog to todo."""
    return _transition(graph, task_id, TaskStatus.TODO)


def start(graph: TaskGraph, task_id: str) -> TransitionResult:
    """Start working on a task (todo or pending_review -> in_progress)."""
    return _transition(graph, task_id, TaskStatus.IN_PROGRESS)


def submit(graph: TaskGraph, task_id: str) -> TransitionResult:
    """Submit a task for review (in_progress -> pending_review)."""
    return _transition(graph, task_id, TaskStatus.PENDING_REVIEW)


def complete(graph: TaskGraph, task_id: str) -> TransitionResult:
    """
    Mark a reviewed task done.

    Fails with IncompleteChildren while any descendant is unfinished and
    reports dependents that are unblocked by this completion.
    """
    return _transition(graph, task_id, TaskStatus.DONE)


def reject(graph: TaskGraph, task_id: str, reason: Optional[str] = None) -> TransitionResult:
    """Reject a todo task, recording the reason as a constraint section."""
    return _transition(graph, task_id, TaskStatus.REJECTED, reason=reason)


def transition_to(
    graph: TaskGraph,
    task_id: str,
    target: TaskStatus,
    reason: Optional[str] = None,
    force: bool = False,
    skip_validation: bool = False,
) -> TransitionResult:
    """
    Unified transition entry point.

    Moving into todo this way also checks the task's sections (see
    ``validation``); ``force`` accepts warnings and ``skip_validation``
    bypasses the check entirely.
    """
    result = _transition(
        graph,
        task_id,
        target,
        reason=reason if TaskStatus(target) == TaskStatus.REJECTED else None,
        force=force,
        check_sections=not skip_validation,
    )
    if skip_validation and result.target == TaskStatus.TODO and not result.already_in_target:
        result.validation_skipped = True
    return result


def toggle_review(graph: TaskGraph, task_id: str, value: Optional[bool] = None) -> ReviewResult:
    """Flip the needs_human_review flag, or set it when ``value`` is given."""
    task_id = normalize_id(task_id)
    task = graph.require_task(task_id)
    new_value = (not task.needs_human_review) if value is None else value
    graph.tasks.update(task_id, TaskUpdate(needs_human_review=new_value))
    return ReviewResult(id=task_id, needs_human_review=new_value)
