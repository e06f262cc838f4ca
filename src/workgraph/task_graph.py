"""Task graph context object and graph-wide queries."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import networkx as nx

from .errors import NotFound
from .ids import generate_id, normalize_id
from .relationships import RelationshipRepository
from .storage import Clock, Storage
from .task_node import TaskLevel, TaskNode, TaskPriority, TaskStatus
from .task_repository import TaskRepository

logger = logging.getLogger(__name__)

WORK_STARTED = frozenset({TaskStatus.IN_PROGRESS, TaskStatus.PENDING_REVIEW, TaskStatus.DONE})


@dataclass
class IncompleteChild:
    """A descendant that blocks completion of its ancestor."""

    id: str
    title: str
    status: TaskStatus
    level: TaskLevel


@dataclass
class BlockerNode:
    """A blocker of a task, with its own blockers nested below it."""

    id: str
    title: str
    level: TaskLevel
    status: TaskStatus
    children: List["BlockerNode"] = field(default_factory=list)


class TaskGraph:
    """
    Entry point to one task store.

    Bundles the storage handle with the task and relationship repositories
    and answers questions that span both (lineage, blockers, readiness).
    Commands receive a TaskGraph explicitly; there is no shared global one.
    """

    def __init__(self, db_path: Optional[Path] = None, clock: Optional[Clock] = None):
        """Initialize task graph with optional database path."""
        self.db_path = Path(db_path) if db_path else Path("tasks.db")
        self.storage = Storage(self.db_path, clock=clock)
        self.tasks = TaskRepository(self.storage)
        self.relationships = RelationshipRepository(self.storage)

    def get_task(self, task_id: str) -> Optional[TaskNode]:
        """Get a task by ID."""
        return self.tasks.get(task_id)

    def require_task(self, task_id: str) -> TaskNode:
        """Get a task by ID or raise NotFound."""
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFound(task_id)
        return task

    def _tasks_by_id(self) -> Dict[str, TaskNode]:
        return dict(self.tasks.export_all())

    def create_task(
        self,
        title: str,
        level: TaskLevel = TaskLevel.TASK,
        status: TaskStatus = TaskStatus.TODO,
        description: Optional[str] = None,
        priority: Optional[TaskPriority] = None,
        tags: Sequence[str] = (),
        parent_id: Optional[str] = None,
        depends_on: Sequence[str] = (),
        task_id: Optional[str] = None,
    ) -> TaskNode:
        """
        Create a task and its initial edges in one transaction.

        The parent and every blocker must already exist. When ``task_id`` is
        not given a random one is generated.
        """
        if parent_id is not None:
            self.require_task(parent_id)
        for blocker_id in depends_on:
            self.require_task(blocker_id)

        task = TaskNode(
            title=title,
            level=level,
            status=status,
            description=description,
            priority=priority,
        )
        for tag in tags:
            task.add_tag(tag)

        with self.storage.transaction():
            new_id = normalize_id(task_id) if task_id else generate_id(self.tasks.exists)
            created = self.tasks.create(new_id, task)
            if parent_id is not None:
                self.relationships.create_child_of(new_id, parent_id)
            for blocker_id in depends_on:
                self.relationships.create_depends_on(new_id, blocker_id)

        logger.info("Created task %s (%s)", created.id, created.title)
        return created

    def delete_task(self, task_id: str, cascade: bool = False) -> List[str]:
        """
        Delete a task and every edge touching it.

        Without ``cascade`` the task's children become roots. With it, all
        descendants are deleted too. Returns the deleted IDs.
        """
        task_id = normalize_id(task_id)
        self.require_task(task_id)

        doomed = [task_id]
        if cascade:
            doomed.extend(self.get_descendants(task_id))

        with self.storage.transaction():
            for doomed_id in doomed:
                self.relationships.remove_all_relationships(doomed_id)
                self.tasks.delete(doomed_id)

        logger.info("Deleted %d task(s): %s", len(doomed), ", ".join(doomed))
        return doomed

    # Hierarchy

    def get_lineage(self, task_id: str) -> List[TaskNode]:
        """Get the path from root to the specified task."""
        task = self.require_task(task_id)
        path = [task]
        parent_id = self.relationships.get_parent(task.id)

        while parent_id is not None:
            parent = self.tasks.get(parent_id)
            if parent is None:
                break
            path.append(parent)
            parent_id = self.relationships.get_parent(parent_id)

        return list(reversed(path))

    def get_children(self, task_id: str) -> List[TaskNode]:
        """Get direct children of a task."""
        children = [self.tasks.get(child_id) for child_id in self.relationships.get_children(task_id)]
        return [child for child in children if child is not None]

    def get_descendants(self, task_id: str) -> List[str]:
        """IDs of all descendants (children, grandchildren, ...) of a task."""
        task_id = normalize_id(task_id)
        graph = self.relationships.hierarchy_graph()
        if task_id not in graph:
            return []
        # Edges point child -> parent, so descendants are graph ancestors
        return sorted(nx.ancestors(graph, task_id))

    def get_root_tasks(self) -> List[TaskNode]:
        """Get all tasks that have no parent."""
        with_parent = {child for child, _ in self.relationships.export_all_child_of()}
        return [task for task_id, task in self.tasks.export_all() if task_id not in with_parent]

    def get_incomplete_descendants(self, task_id: str) -> List[IncompleteChild]:
        """Descendants of a task that are not done."""
        by_id = self._tasks_by_id()
        incomplete = []
        for desc_id in self.get_descendants(task_id):
            task = by_id.get(desc_id)
            if task is not None and not task.is_done():
                incomplete.append(IncompleteChild(task.id, task.title, task.status, task.level))
        return incomplete

    # Dependencies

    def get_incomplete_dependencies(self, task_id: str) -> List[TaskNode]:
        """Blockers of a task that are not done."""
        blockers = [self.tasks.get(b) for b in self.relationships.get_dependencies(task_id)]
        return [b for b in blockers if b is not None and not b.is_done()]

    def get_unblocked_tasks(self, task_id: str) -> List[TaskNode]:
        """
        Dependents that become unblocked once ``task_id`` is done.

        A dependent qualifies when every other blocker is already done.
        """
        task_id = normalize_id(task_id)
        by_id = self._tasks_by_id()
        unblocked = []

        for dependent_id in self.relationships.get_dependents(task_id):
            others = [b for b in self.relationships.get_dependencies(dependent_id) if b != task_id]
            if all(by_id[b].is_done() for b in others if b in by_id):
                dependent = by_id.get(dependent_id)
                if dependent is not None:
                    unblocked.append(dependent)

        return unblocked

    def get_blockers(self, task_id: str, max_depth: Optional[int] = None) -> List[BlockerNode]:
        """Recursive tree of the tasks blocking ``task_id``."""
        task_id = normalize_id(task_id)
        self.require_task(task_id)
        by_id = self._tasks_by_id()
        graph = self.relationships.dependency_graph()

        def build(current: str, depth: int) -> List[BlockerNode]:
            if max_depth is not None and depth >= max_depth:
                return []
            if current not in graph:
                return []
            nodes = []
            for blocker_id in sorted(graph.successors(current)):
                blocker = by_id.get(blocker_id)
                if blocker is None:
                    continue
                nodes.append(BlockerNode(
                    id=blocker_id,
                    title=blocker.title,
                    level=blocker.level,
                    status=blocker.status,
                    children=build(blocker_id, depth + 1),
                ))
            return nodes

        return build(task_id, 0)

    def find_path(self, from_id: str, to_id: str) -> Optional[List[str]]:
        """Shortest dependency chain from ``from_id`` to ``to_id``, if any."""
        from_id = normalize_id(from_id)
        to_id = normalize_id(to_id)
        self.require_task(from_id)
        self.require_task(to_id)
        if from_id == to_id:
            return [from_id]

        graph = self.relationships.dependency_graph()
        if from_id not in graph or to_id not in graph:
            return None
        try:
            return nx.shortest_path(graph, from_id, to_id)
        except nx.NetworkXNoPath:
            return None

    # Readiness and stats

    def list_ready(self, status: TaskStatus) -> List[TaskNode]:
        """
        Entry points for work in ``status``.

        A task is ready when all its blockers are done and none of its
        descendants has work started. Only the highest ready item of each
        hierarchy is returned. Sorted by level, then priority, then age.
        """
        by_id = self._tasks_by_id()
        hierarchy = self.relationships.hierarchy_graph()
        dependencies = self.relationships.dependency_graph()

        def blockers_done(task_id: str) -> bool:
            if task_id not in dependencies:
                return True
            return all(by_id[b].is_done() for b in dependencies.successors(task_id) if b in by_id)

        def descendants(task_id: str) -> List[str]:
            return list(nx.ancestors(hierarchy, task_id)) if task_id in hierarchy else []

        def ancestors(task_id: str) -> List[str]:
            return list(nx.descendants(hierarchy, task_id)) if task_id in hierarchy else []

        ready_ids = {
            task_id
            for task_id, task in by_id.items()
            if task.status == status
            and blockers_done(task_id)
            and not any(by_id[d].status in WORK_STARTED for d in descendants(task_id) if d in by_id)
        }

        top_level = [
            by_id[task_id]
            for task_id in ready_ids
            if not any(a in ready_ids for a in ancestors(task_id))
        ]

        return sorted(
            top_level,
            key=lambda t: (
                t.level.rank,
                t.priority.rank if t.priority else len(TaskPriority),
                t.created_at,
                t.id,
            ),
        )

    def get_task_stats(self) -> Dict[str, int]:
        """Get statistics about tasks in the graph."""
        tasks = self._tasks_by_id()
        child_of = self.relationships.export_all_child_of()
        depends_on = self.relationships.export_all_depends_on()
        parents = {parent for _, parent in child_of}
        children = {child for child, _ in child_of}

        stats = {"total": len(tasks)}
        for status in TaskStatus:
            stats[status.value] = 0
        stats.update({
            "needs_review": 0,
            "root_tasks": 0,
            "leaf_tasks": 0,
            "child_of_edges": len(child_of),
            "depends_on_edges": len(depends_on),
        })

        for task_id, task in tasks.items():
            stats[task.status.value] += 1
            if task.needs_human_review:
                stats["needs_review"] += 1
            if task_id not in children:
                stats["root_tasks"] += 1
            if task_id not in parents:
                stats["leaf_tasks"] += 1

        return stats
