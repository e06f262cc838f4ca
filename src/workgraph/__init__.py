"""Workgraph - task graph and lifecycle engine."""

__version__ = "0.1.0"

from .errors import (
    AlreadyExists,
    CycleDetected,
    IncompleteChildren,
    InvalidPath,
    InvalidStatusTransition,
    NotFound,
    ParentConflict,
    TriageValidationFailed,
    WorkgraphError,
)
from .task_node import TaskNode, TaskStatus, TaskLevel, TaskPriority, SectionType
from .task_graph import TaskGraph

__all__ = [
    "TaskNode",
    "TaskStatus",
    "TaskLevel",
    "TaskPriority",
    "SectionType",
    "TaskGraph",
    "WorkgraphError",
    "NotFound",
    "AlreadyExists",
    "InvalidStatusTransition",
    "InvalidPath",
    "CycleDetected",
    "ParentConflict",
    "IncompleteChildren",
    "TriageValidationFailed",
]
