"""Task node data model and core functionality."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatus(str, Enum):
    """Task lifecycle status."""
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    PENDING_REVIEW = "pending_review"
    DONE = "done"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


class TaskLevel(str, Enum):
    """Hierarchy level. Epics and tickets are containers for finer-grained work."""
    EPIC = "epic"
    TICKET = "ticket"
    TASK = "task"

    @property
    def rank(self) -> int:
        """Lower rank means higher in the hierarchy."""
        return list(TaskLevel).index(self)

    def __str__(self) -> str:
        return self.value


class TaskPriority(str, Enum):
    """Task priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Lower rank means more urgent."""
        return 3 - list(TaskPriority).index(self)

    def __str__(self) -> str:
        return self.value


class SectionType(str, Enum):
    """Kinds of structured content a task can carry."""
    GOAL = "goal"
    CONTEXT = "context"
    CURRENT_BEHAVIOR = "current_behavior"
    DESIRED_BEHAVIOR = "desired_behavior"
    STEP = "step"
    TESTING_CRITERION = "testing_criterion"
    ANTI_PATTERN = "anti_pattern"
    FAILURE_TEST = "failure_test"
    CONSTRAINT = "constraint"

    @property
    def single_instance(self) -> bool:
        """Single-instance sections are replaced rather than appended."""
        return self in (
            SectionType.GOAL,
            SectionType.CONTEXT,
            SectionType.CURRENT_BEHAVIOR,
            SectionType.DESIRED_BEHAVIOR,
        )

    def __str__(self) -> str:
        return self.value


def _assume_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are read as UTC so they compare with stored ones."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Section(BaseModel):
    """A typed block of task documentation (goal, step, constraint, ...)."""

    type: SectionType = Field(..., description="Section kind")
    content: str = Field(..., min_length=1, description="Section body")
    order: Optional[int] = Field(None, ge=1, description="Ordinal among sections of the same type")
    done: Optional[bool] = Field(None, description="Completion flag, used by steps")
    done_at: Optional[datetime] = Field(None, description="When the step was marked done")

    _done_at_utc = field_validator("done_at")(_assume_utc)


class CodeRef(BaseModel):
    """A reference from a task to a location outside the graph, usually a file."""

    path: str = Field(..., min_length=1, description="File path relative to the repository root")
    line_start: Optional[int] = Field(None, ge=1)
    line_end: Optional[int] = Field(None, ge=1)
    name: Optional[str] = None
    description: Optional[str] = None

    def location(self) -> str:
        """Render as path, path:L10 or path:L10-20."""
        if self.line_start is not None and self.line_end is not None:
            return f"{self.path}:L{self.line_start}-{self.line_end}"
        if self.line_start is not None:
            return f"{self.path}:L{self.line_start}"
        return self.path


class TaskNode(BaseModel):
    """
    Individual task node in the task graph.

    Represents a single unit of work with status tracking, structured
    documentation and metadata. Hierarchy and dependency edges are not
    stored on the node; they live in the relationship repository.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: Optional[str] = Field(None, description="Normalized task identifier")
    title: str = Field(..., min_length=1, description="Brief task title")
    description: Optional[str] = Field(None, description="Detailed task description")

    level: TaskLevel = Field(default=TaskLevel.TASK, description="Hierarchy level")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Current lifecycle status")
    priority: Optional[TaskPriority] = Field(None, description="Optional priority")
    needs_human_review: bool = Field(default=False, description="Flagged for a human to look at")

    tags: List[str] = Field(default_factory=list, description="Ordered free-form tags")
    sections: List[Section] = Field(default_factory=list, description="Structured documentation")
    refs: List[CodeRef] = Field(default_factory=list, description="External references")

    created_at: Optional[datetime] = Field(None, description="Task creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")
    started_at: Optional[datetime] = Field(None, description="First entry into in_progress")
    completed_at: Optional[datetime] = Field(None, description="Entry into done")

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value

    _timestamps_utc = field_validator(
        "created_at", "updated_at", "started_at", "completed_at"
    )(_assume_utc)

    def add_tag(self, tag: str) -> None:
        """Append a tag unless it is already present."""
        tag = tag.strip()
        if tag and tag not in self.tags:
            self.tags = [*self.tags, tag]

    def remove_tag(self, tag: str) -> None:
        """Remove a tag if present."""
        self.tags = [t for t in self.tags if t != tag.strip()]

    def sections_of(self, section_type: SectionType) -> List[Section]:
        """Sections of one type, ordered by ordinal (unordered ones last)."""
        matching = [s for s in self.sections if s.type == section_type]
        return sorted(matching, key=lambda s: s.order if s.order is not None else float("inf"))

    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    def get_summary(self) -> str:
        """One-line summary used in listings."""
        parts = [f"[{self.level.value}] {self.title}", f"({self.status.value})"]
        if self.priority:
            parts.append(f"priority={self.priority.value}")
        if self.tags:
            parts.append(f"tags={', '.join(self.tags)}")
        if self.needs_human_review:
            parts.append("needs review")
        return " ".join(parts)

    def __str__(self) -> str:
        """String representation for debugging."""
        return f"TaskNode({self.title}, {self.status.value}, level={self.level.value})"

    def __repr__(self) -> str:
        """Detailed representation for debugging."""
        return f"TaskNode(id={self.id}, title='{self.title}', status={self.status.value})"


class TaskUpdate(BaseModel):
    """
    Partial update for a task.

    Only fields explicitly passed to the constructor are applied, so
    ``TaskUpdate(priority=None)`` clears the priority while ``TaskUpdate()``
    leaves it alone.
    """

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    level: Optional[TaskLevel] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    needs_human_review: Optional[bool] = None
    add_tags: List[str] = Field(default_factory=list)
    remove_tags: List[str] = Field(default_factory=list)
    sections: Optional[List[Section]] = None
    refs: Optional[List[CodeRef]] = None

    def has_updates(self) -> bool:
        return bool(self.model_fields_set)


class TaskFilter(BaseModel):
    """Criteria for listing tasks. Values within one field are OR-ed."""

    levels: List[TaskLevel] = Field(default_factory=list)
    statuses: List[TaskStatus] = Field(default_factory=list)
    priorities: List[TaskPriority] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list, description="All listed tags must be present")
    search: Optional[str] = None
    root_only: bool = False
    children_of: Optional[str] = None
    include_done: bool = False
