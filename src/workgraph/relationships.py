"""Relationship repository for child_of and depends_on edges."""

import logging
from typing import List, Optional, Tuple

import networkx as nx

from .errors import CycleDetected, NotFound, ParentConflict
from .ids import normalize_id
from .storage import Storage

logger = logging.getLogger(__name__)

CHILD_OF = "child_of"
DEPENDS_ON = "depends_on"


class RelationshipRepository:
    """
    Manages the two edge kinds between tasks.

    - ``child_of``: child -> parent. Forms a forest (one parent, no cycles).
    - ``depends_on``: task -> blocker. Forms a DAG.

    Edges reference task IDs by value; both endpoints must exist when an
    edge is created.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    def _require_task(self, task_id: str) -> None:
        if self.storage.fetch_one("SELECT 1 FROM tasks WHERE id = ?", (task_id,)) is None:
            raise NotFound(task_id)

    def hierarchy_graph(self) -> nx.DiGraph:
        """Directed graph with an edge child -> parent per child_of edge."""
        graph = nx.DiGraph()
        graph.add_edges_from(self.export_all_child_of())
        return graph

    def dependency_graph(self) -> nx.DiGraph:
        """Directed graph with an edge task -> blocker per depends_on edge."""
        graph = nx.DiGraph()
        graph.add_edges_from(self.export_all_depends_on())
        return graph

    # child_of

    def create_child_of(self, child_id: str, parent_id: str) -> None:
        """
        Make ``child_id`` a child of ``parent_id``.

        Re-adding the same edge is a no-op. A child that already has a
        different parent is rejected; so is any edge that would make a task
        its own ancestor.
        """
        child_id = normalize_id(child_id)
        parent_id = normalize_id(parent_id)
        self._require_task(child_id)
        self._require_task(parent_id)

        if child_id == parent_id:
            raise CycleDetected(CHILD_OF, [child_id, child_id])

        existing = self.get_parent(child_id)
        if existing == parent_id:
            return
        if existing is not None:
            raise ParentConflict(child_id, parent_id, existing)

        # Walking up from the new parent must not reach the child
        graph = self.hierarchy_graph()
        if parent_id in graph and child_id in graph and nx.has_path(graph, parent_id, child_id):
            ancestors = nx.shortest_path(graph, parent_id, child_id)
            raise CycleDetected(CHILD_OF, [child_id, *ancestors])

        self.storage.execute(
            "INSERT INTO child_of (child, parent) VALUES (?, ?)", (child_id, parent_id)
        )
        logger.debug("Linked %s child_of %s", child_id, parent_id)

    def remove_child_of(self, child_id: str) -> bool:
        """Detach a task from its parent. Returns whether an edge existed."""
        removed = self.storage.execute(
            "DELETE FROM child_of WHERE child = ?", (normalize_id(child_id),)
        )
        return removed > 0

    def get_parent(self, child_id: str) -> Optional[str]:
        """Get the parent ID of a task, if any."""
        row = self.storage.fetch_one(
            "SELECT parent FROM child_of WHERE child = ?", (normalize_id(child_id),)
        )
        return row["parent"] if row is not None else None

    def get_children(self, parent_id: str) -> List[str]:
        """Get the IDs of the direct children of a task."""
        rows = self.storage.fetch_all(
            "SELECT child FROM child_of WHERE parent = ? ORDER BY child",
            (normalize_id(parent_id),),
        )
        return [row["child"] for row in rows]

    # depends_on

    def create_depends_on(self, task_id: str, blocker_id: str) -> None:
        """
        Record that ``task_id`` is blocked by ``blocker_id``.

        Duplicate edges are a no-op. Self-dependencies and edges that would
        close a cycle raise CycleDetected.
        """
        task_id = normalize_id(task_id)
        blocker_id = normalize_id(blocker_id)
        self._require_task(task_id)
        self._require_task(blocker_id)

        if task_id == blocker_id:
            raise CycleDetected(DEPENDS_ON, [task_id, task_id])

        if self.depends_on_exists(task_id, blocker_id):
            return

        graph = self.dependency_graph()
        if blocker_id in graph and task_id in graph and nx.has_path(graph, blocker_id, task_id):
            chain = nx.shortest_path(graph, blocker_id, task_id)
            raise CycleDetected(DEPENDS_ON, [task_id, *chain])

        self.storage.execute(
            "INSERT INTO depends_on (task, blocker) VALUES (?, ?)", (task_id, blocker_id)
        )
        logger.debug("Linked %s depends_on %s", task_id, blocker_id)

    def remove_depends_on(self, task_id: str, blocker_id: str) -> bool:
        """Remove one dependency edge. Returns whether it existed."""
        removed = self.storage.execute(
            "DELETE FROM depends_on WHERE task = ? AND blocker = ?",
            (normalize_id(task_id), normalize_id(blocker_id)),
        )
        return removed > 0

    def depends_on_exists(self, task_id: str, blocker_id: str) -> bool:
        row = self.storage.fetch_one(
            "SELECT 1 FROM depends_on WHERE task = ? AND blocker = ?",
            (normalize_id(task_id), normalize_id(blocker_id)),
        )
        return row is not None

    def get_dependencies(self, task_id: str) -> List[str]:
        """IDs of the tasks blocking ``task_id``."""
        rows = self.storage.fetch_all(
            "SELECT blocker FROM depends_on WHERE task = ? ORDER BY blocker",
            (normalize_id(task_id),),
        )
        return [row["blocker"] for row in rows]

    def get_dependents(self, blocker_id: str) -> List[str]:
        """IDs of the tasks blocked by ``blocker_id``."""
        rows = self.storage.fetch_all(
            "SELECT task FROM depends_on WHERE blocker = ? ORDER BY task",
            (normalize_id(blocker_id),),
        )
        return [row["task"] for row in rows]

    # cleanup and export

    def remove_all_relationships(self, task_id: str) -> None:
        """
        Remove every edge touching a task.

        Children of the task become roots and its dependents lose it as a
        blocker.
        """
        task_id = normalize_id(task_id)
        with self.storage.transaction():
            self.storage.execute("DELETE FROM child_of WHERE child = ? OR parent = ?", (task_id, task_id))
            self.storage.execute("DELETE FROM depends_on WHERE task = ? OR blocker = ?", (task_id, task_id))

    def export_all_child_of(self) -> List[Tuple[str, str]]:
        """All child_of edges as (child, parent), sorted."""
        rows = self.storage.fetch_all("SELECT child, parent FROM child_of ORDER BY child")
        return [(row["child"], row["parent"]) for row in rows]

    def export_all_depends_on(self) -> List[Tuple[str, str]]:
        """All depends_on edges as (task, blocker), sorted."""
        rows = self.storage.fetch_all("SELECT task, blocker FROM depends_on ORDER BY task, blocker")
        return [(row["task"], row["blocker"]) for row in rows]
