"""Task repository for CRUD operations on task records."""

import logging
import sqlite3
from dataclasses import dataclass
from typing import List, Optional, Tuple

from . import status_machine
from .errors import AlreadyExists, InvalidPath, NotFound
from .ids import normalize_id
from .storage import Storage
from .task_node import (
    CodeRef,
    Section,
    SectionType,
    TaskFilter,
    TaskNode,
    TaskStatus,
    TaskUpdate,
)

logger = logging.getLogger(__name__)


@dataclass
class SectionResult:
    """Outcome of adding a section to a task."""

    id: str
    section_type: SectionType
    replaced: bool
    ordinal: Optional[int]

    def __str__(self) -> str:
        if self.replaced:
            return f"Replaced {self.section_type.value} section for task: {self.id}"
        if self.ordinal is not None:
            return f"Added {self.section_type.value} section (ordinal {self.ordinal}) to task: {self.id}"
        return f"Added {self.section_type.value} section to task: {self.id}"


@dataclass
class UnsectionResult:
    """Outcome of removing sections from a task."""

    id: str
    removed: int
    section_type: Optional[SectionType] = None
    removed_all: bool = False

    def __str__(self) -> str:
        if self.removed == 0:
            if self.section_type is not None:
                return f"No {self.section_type.value} sections found to remove"
            return "No sections found to remove"
        if self.section_type is not None:
            if self.removed == 1:
                return f"Removed {self.section_type.value} section from task: {self.id}"
            if self.removed_all:
                return f"Removed {self.removed} {self.section_type.value} sections from task: {self.id}"
        elif self.removed_all:
            return f"Removed all {self.removed} sections from task: {self.id}"
        return f"Removed {self.removed} section(s) from task: {self.id}"


@dataclass
class UnrefResult:
    """Outcome of removing references from a task."""

    id: str
    removed: int
    path: Optional[str] = None

    def __str__(self) -> str:
        if self.path is None:
            if self.removed == 0:
                return f"No references to remove from task: {self.id}"
            return f"Removed all {self.removed} reference(s) from task: {self.id}"
        if self.removed == 0:
            return f"Warning: No references to {self.path} in task: {self.id}"
        return f"Removed {self.removed} reference(s) to {self.path} from task: {self.id}"


class TaskRepository:
    """
    Repository for task records.

    Owns the status field: every status write goes through ``update`` which
    checks the status state machine first. Relationship edges are not
    touched here.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def _row_to_task(self, row: sqlite3.Row) -> TaskNode:
        task = TaskNode.model_validate_json(row["data"])
        # The primary key is the source of truth for the ID
        task.id = row["id"]
        return task

    def _write(self, task: TaskNode) -> None:
        self.storage.execute(
            "UPDATE tasks SET data = ?, updated_at = ? WHERE id = ?",
            (task.model_dump_json(exclude={"id"}), task.updated_at.isoformat(), task.id),
        )

    def _require(self, task_id: str) -> TaskNode:
        task = self.get(task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    def exists(self, task_id: str) -> bool:
        """Check if a task with the given ID exists."""
        row = self.storage.fetch_one(
            "SELECT 1 FROM tasks WHERE id = ? LIMIT 1", (normalize_id(task_id),)
        )
        return row is not None

    def create(self, task_id: str, task: TaskNode) -> TaskNode:
        """
        Store a new task under ``task_id``.

        Never overwrites: an existing ID raises AlreadyExists, so callers that
        want replace semantics must delete first. Timestamps already present
        on ``task`` (e.g. from an import) are kept.
        """
        task_id = normalize_id(task_id)
        now = self.storage.now()
        stored = task.model_copy(deep=True)
        stored.id = task_id
        if stored.created_at is None:
            stored.created_at = now
        if stored.updated_at is None:
            stored.updated_at = stored.created_at

        try:
            self.storage.execute(
                "INSERT INTO tasks (id, data, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (
                    task_id,
                    stored.model_dump_json(exclude={"id"}),
                    stored.created_at.isoformat(),
                    stored.updated_at.isoformat(),
                ),
            )
        except sqlite3.IntegrityError:
            raise AlreadyExists(task_id) from None

        logger.debug("Created task %s", task_id)
        return stored

    def get(self, task_id: str) -> Optional[TaskNode]:
        """Get a task by ID. Absence is not an error."""
        row = self.storage.fetch_one(
            "SELECT id, data FROM tasks WHERE id = ?", (normalize_id(task_id),)
        )
        return self._row_to_task(row) if row is not None else None

    def validate_status_transition(
        self, task_id: str, from_status: TaskStatus, to_status: TaskStatus
    ) -> None:
        """Check a status change against the state machine."""
        status_machine.validate_transition(normalize_id(task_id), from_status, to_status)

    def update(self, task_id: str, changes: TaskUpdate) -> TaskNode:
        """
        Apply a partial update and refresh ``updated_at``.

        Only fields set on ``changes`` are applied. A status that differs from
        the current one must be an allowed transition; otherwise nothing is
        written.
        """
        task_id = normalize_id(task_id)
        task = self._require(task_id)
        fields = changes.model_fields_set
        now = self.storage.now()

        if changes.status is not None and changes.status != task.status:
            self.validate_status_transition(task_id, task.status, changes.status)
            task.status = changes.status
            if changes.status == TaskStatus.IN_PROGRESS and task.started_at is None:
                task.started_at = now
            if changes.status == TaskStatus.DONE:
                task.completed_at = now

        if "title" in fields and changes.title is not None:
            task.title = changes.title
        if "description" in fields:
            task.description = changes.description
        if "level" in fields and changes.level is not None:
            task.level = changes.level
        if "priority" in fields:
            task.priority = changes.priority
        if "needs_human_review" in fields and changes.needs_human_review is not None:
            task.needs_human_review = changes.needs_human_review

        for tag in changes.remove_tags:
            task.remove_tag(tag)
        for tag in changes.add_tags:
            task.add_tag(tag)

        if "sections" in fields and changes.sections is not None:
            task.sections = changes.sections
        if "refs" in fields and changes.refs is not None:
            task.refs = changes.refs

        task.updated_at = now
        self._write(task)
        logger.debug("Updated task %s fields=%s", task_id, sorted(fields))
        return task

    def update_status(self, task_id: str, status: TaskStatus) -> TaskNode:
        """Move a task to ``status`` through the state machine."""
        return self.update(task_id, TaskUpdate(status=status))

    def touch(self, task_id: str) -> TaskNode:
        """Refresh only the ``updated_at`` timestamp."""
        return self.update(task_id, TaskUpdate())

    def delete(self, task_id: str) -> None:
        """
        Delete a task record.

        Edges (child_of, depends_on) referencing the task are left alone;
        cleaning them up is the caller's job.
        """
        task_id = normalize_id(task_id)
        deleted = self.storage.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        if deleted == 0:
            raise NotFound(task_id)
        logger.debug("Deleted task %s", task_id)

    def export_all(self) -> List[Tuple[str, TaskNode]]:
        """All tasks as (id, task) pairs, ordered by ID."""
        rows = self.storage.fetch_all("SELECT id, data FROM tasks ORDER BY id")
        return [(row["id"], self._row_to_task(row)) for row in rows]

    def list(self, task_filter: Optional[TaskFilter] = None) -> List[TaskNode]:
        """List tasks matching a filter, newest first."""
        task_filter = task_filter or TaskFilter()
        tasks = [task for _, task in self.export_all()]

        if task_filter.children_of is not None:
            parent_id = normalize_id(task_filter.children_of)
            rows = self.storage.fetch_all("SELECT child FROM child_of WHERE parent = ?", (parent_id,))
            child_ids = {row["child"] for row in rows}
            tasks = [t for t in tasks if t.id in child_ids]
        elif task_filter.root_only:
            rows = self.storage.fetch_all("SELECT child FROM child_of")
            with_parent = {row["child"] for row in rows}
            tasks = [t for t in tasks if t.id not in with_parent]

        query_lower = (task_filter.search or "").lower()
        results = []
        for task in tasks:
            # Done tasks are hidden unless asked for
            if not task_filter.include_done and not task_filter.statuses and task.is_done():
                continue
            if task_filter.statuses and task.status not in task_filter.statuses:
                continue
            if task_filter.levels and task.level not in task_filter.levels:
                continue
            if task_filter.priorities and task.priority not in task_filter.priorities:
                continue
            if task_filter.tags and not set(task_filter.tags).issubset(task.tags):
                continue
            if query_lower and not (
                query_lower in task.title.lower()
                or (task.description and query_lower in task.description.lower())
            ):
                continue
            results.append(task)

        return sorted(results, key=lambda t: (t.created_at, t.id), reverse=True)

    def add_section(self, task_id: str, section_type: SectionType, content: str) -> SectionResult:
        """
        Add a documentation section.

        Single-instance types (goal, context, current/desired behavior)
        replace any existing section of that type; the others are appended
        with the next ordinal.
        """
        if not content.strip():
            raise InvalidPath("content", "section content cannot be empty")

        task_id = normalize_id(task_id)
        task = self._require(task_id)
        section_type = SectionType(section_type)

        if section_type.single_instance:
            replaced = any(s.type == section_type for s in task.sections)
            sections = [s for s in task.sections if s.type != section_type]
            sections.append(Section(type=section_type, content=content))
            ordinal = None
        else:
            replaced = False
            existing = [s.order or 0 for s in task.sections if s.type == section_type]
            ordinal = max(existing, default=0) + 1
            sections = [*task.sections, Section(type=section_type, content=content, order=ordinal)]

        self.update(task_id, TaskUpdate(sections=sections))
        return SectionResult(id=task_id, section_type=section_type, replaced=replaced, ordinal=ordinal)

    def remove_sections(
        self,
        task_id: str,
        section_type: Optional[SectionType] = None,
        index: Optional[int] = None,
        all_sections: bool = False,
    ) -> UnsectionResult:
        """
        Remove documentation sections.

        - no type, ``all_sections``: clear every section
        - type and ``all_sections``: every section of that type
        - type and ``index``: the section with that ordinal; the rest of the
          type are renumbered from 1
        - type alone: only for single-instance types

        ``updated_at`` is refreshed only when something was removed.
        """
        if index is not None and all_sections:
            raise InvalidPath(task_id, "--index cannot be combined with --all")
        if index is not None and section_type is None:
            raise InvalidPath(task_id, "--index requires a section type")
        if section_type is None and not all_sections:
            raise InvalidPath(
                task_id, "Must specify a section type or use --all to remove all sections"
            )

        task_id = normalize_id(task_id)
        task = self._require(task_id)

        if section_type is None:
            sections: List[Section] = []
        else:
            section_type = SectionType(section_type)
            others = [s for s in task.sections if s.type != section_type]
            if all_sections:
                sections = others
            elif index is not None:
                matching = task.sections_of(section_type)
                if not any(s.order == index for s in matching):
                    raise InvalidPath(
                        task_id, f"No {section_type.value} section found at index {index}"
                    )
                kept = [s for s in matching if s.order != index]
                sections = others + [
                    s.model_copy(update={"order": n}) for n, s in enumerate(kept, start=1)
                ]
            elif section_type.single_instance:
                sections = others
            else:
                raise InvalidPath(
                    task_id,
                    f"Section type '{section_type.value}' can have multiple instances. "
                    "Use --index <n> to remove a specific one or --all to remove all",
                )

        removed = len(task.sections) - len(sections)
        if removed > 0:
            self.update(task_id, TaskUpdate(sections=sections))
            logger.debug("Removed %d section(s) from task %s", removed, task_id)
        return UnsectionResult(
            id=task_id, removed=removed, section_type=section_type, removed_all=all_sections
        )

    def mark_step_done(self, task_id: str, index: int) -> Section:
        """Mark the ``index``-th step (1-based, by ordinal) as done."""
        if index < 1:
            raise InvalidPath(task_id, "Step index must be 1 or greater")

        task_id = normalize_id(task_id)
        task = self._require(task_id)
        steps = task.sections_of(SectionType.STEP)
        if index > len(steps):
            raise InvalidPath(task_id, f"Step {index} not found. Task has {len(steps)} step(s).")

        target = steps[index - 1]
        done_step = target.model_copy(update={"done": True, "done_at": self.storage.now()})
        sections = [done_step if s is target else s for s in task.sections]
        self.update(task_id, TaskUpdate(sections=sections))
        return done_step

    def add_ref(self, task_id: str, ref: CodeRef) -> TaskNode:
        """Attach an external reference to a task."""
        task = self._require(normalize_id(task_id))
        return self.update(task.id, TaskUpdate(refs=[*task.refs, ref]))

    def remove_refs(
        self, task_id: str, path: Optional[str] = None, all_refs: bool = False
    ) -> UnrefResult:
        """Remove every reference to ``path``, or all references with ``all_refs``."""
        if path is not None and all_refs:
            raise InvalidPath(path, "a file path cannot be combined with --all")
        if path is None and not all_refs:
            raise InvalidPath(task_id, "Must specify a file path or use --all")

        task = self._require(normalize_id(task_id))
        remaining = [] if all_refs else [r for r in task.refs if r.path != path]
        removed = len(task.refs) - len(remaining)
        if removed > 0:
            self.update(task.id, TaskUpdate(refs=remaining))
            logger.debug("Removed %d reference(s) from task %s", removed, task.id)
        return UnrefResult(id=task.id, removed=removed, path=path)
