# tests/test_task_graph.py

import pytest

from workgraph.errors import CycleDetected, NotFound
from workgraph.task_node import TaskLevel, TaskPriority, TaskStatus


def test_create_task_with_edges(graph) -> None:
    epic = graph.create_task("Epic", level=TaskLevel.EPIC, task_id="E1")
    blocker = graph.create_task("Blocker", task_id="b1")
    task = graph.create_task("Child", parent_id="e1", depends_on=["B1"], tags=["x", "x", "y"])

    assert epic.id == "e1"
    assert len(task.id) == 6
    assert task.tags == ["x", "y"]
    assert graph.relationships.get_parent(task.id) == "e1"
    assert graph.relationships.get_dependencies(task.id) == [blocker.id]


def test_create_task_with_missing_parent_writes_nothing(graph) -> None:
    with pytest.raises(NotFound):
        graph.create_task("Orphan", parent_id="ghost", task_id="t1")

    assert not graph.tasks.exists("t1")


def test_lineage_children_descendants(graph) -> None:
    graph.create_task("Epic", level=TaskLevel.EPIC, task_id="e")
    graph.create_task("Ticket", level=TaskLevel.TICKET, parent_id="e", task_id="k")
    graph.create_task("Task", parent_id="k", task_id="t")

    assert [t.id for t in graph.get_lineage("t")] == ["e", "k", "t"]
    assert [t.id for t in graph.get_children("e")] == ["k"]
    assert graph.get_descendants("e") == ["k", "t"]
    assert graph.get_descendants("t") == []
    assert [t.id for t in graph.get_root_tasks()] == ["e"]


def test_delete_orphans_children_and_drops_edges(graph) -> None:
    graph.create_task("Parent", task_id="p")
    graph.create_task("Child", parent_id="p", task_id="c")
    graph.create_task("Dependent", depends_on=["p"], task_id="d")

    deleted = graph.delete_task("P")

    assert deleted == ["p"]
    assert graph.get_task("c") is not None
    assert graph.relationships.get_parent("c") is None
    assert graph.relationships.export_all_child_of() == []
    assert graph.relationships.export_all_depends_on() == []


def test_delete_cascade_removes_descendants(graph) -> None:
    graph.create_task("Parent", task_id="p")
    graph.create_task("Child", parent_id="p", task_id="c")
    graph.create_task("Grandchild", parent_id="c", task_id="g")
    graph.create_task("Other", depends_on=["g"], task_id="o")

    deleted = graph.delete_task("p", cascade=True)

    assert sorted(deleted) == ["c", "g", "p"]
    assert [t.id for _, t in graph.tasks.export_all()] == ["o"]
    assert graph.relationships.export_all_child_of() == []
    assert graph.relationships.export_all_depends_on() == []


def test_delete_missing_task(graph) -> None:
    with pytest.raises(NotFound):
        graph.delete_task("ghost")


def test_incomplete_descendants(graph) -> None:
    graph.create_task("Parent", task_id="p")
    graph.create_task("Done child", parent_id="p", status=TaskStatus.DONE, task_id="c1")
    graph.create_task("Open child", parent_id="p", task_id="c2")

    incomplete = graph.get_incomplete_descendants("p")

    assert [c.id for c in incomplete] == ["c2"]
    assert incomplete[0].status == TaskStatus.TODO


def test_unblocked_tasks(graph) -> None:
    graph.create_task("Blocker A", task_id="a")
    graph.create_task("Blocker B", task_id="b")
    graph.create_task("Needs A", depends_on=["a"], task_id="x")
    graph.create_task("Needs A and B", depends_on=["a", "b"], task_id="y")

    assert [t.id for t in graph.get_unblocked_tasks("a")] == ["x"]


def test_blockers_tree_and_depth(graph) -> None:
    graph.create_task("Root blocker", task_id="r")
    graph.create_task("Middle", depends_on=["r"], task_id="m")
    graph.create_task("Top", depends_on=["m"], task_id="t")

    tree = graph.get_blockers("t")
    assert [n.id for n in tree] == ["m"]
    assert [n.id for n in tree[0].children] == ["r"]

    shallow = graph.get_blockers("t", max_depth=1)
    assert shallow[0].children == []


def test_find_path(graph) -> None:
    graph.create_task("A", task_id="a")
    graph.create_task("B", depends_on=["a"], task_id="b")
    graph.create_task("C", depends_on=["b"], task_id="c")
    graph.create_task("Loose", task_id="z")

    assert graph.find_path("c", "a") == ["c", "b", "a"]
    assert graph.find_path("a", "c") is None
    assert graph.find_path("z", "a") is None
    assert graph.find_path("a", "A") == ["a"]


def test_list_ready_respects_blockers_and_hierarchy(graph) -> None:
    graph.create_task("Epic", level=TaskLevel.EPIC, task_id="e")
    graph.create_task("Ticket", level=TaskLevel.TICKET, parent_id="e", task_id="k")
    graph.create_task("Blocked", depends_on=["k"], task_id="blocked")
    graph.create_task("Loose", priority=TaskPriority.HIGH, task_id="loose")

    # Only the highest ready item of each hierarchy is offered
    assert [t.id for t in graph.list_ready(TaskStatus.TODO)] == ["e", "loose"]


def test_list_ready_skips_containers_with_started_work(graph) -> None:
    graph.create_task("Epic", level=TaskLevel.EPIC, task_id="e")
    graph.create_task("Started", parent_id="e", status=TaskStatus.IN_PROGRESS, task_id="s")
    graph.create_task("Sibling", parent_id="e", task_id="sib")

    assert [t.id for t in graph.list_ready(TaskStatus.TODO)] == ["sib"]


def test_list_ready_orders_by_level_then_priority(graph) -> None:
    graph.create_task("Low", priority=TaskPriority.LOW, task_id="low")
    graph.create_task("Critical", priority=TaskPriority.CRITICAL, task_id="crit")
    graph.create_task("None", task_id="none")
    graph.create_task("Ticket", level=TaskLevel.TICKET, task_id="tick")

    assert [t.id for t in graph.list_ready(TaskStatus.TODO)] == ["tick", "crit", "low", "none"]


def test_task_stats(graph) -> None:
    graph.create_task("Parent", task_id="p")
    graph.create_task("Child", parent_id="p", status=TaskStatus.BACKLOG, task_id="c")
    graph.create_task("Dependent", depends_on=["c"], status=TaskStatus.DONE, task_id="d")

    stats = graph.get_task_stats()

    assert stats["total"] == 3
    assert stats["todo"] == 1
    assert stats["backlog"] == 1
    assert stats["done"] == 1
    assert stats["root_tasks"] == 2
    assert stats["leaf_tasks"] == 2
    assert stats["child_of_edges"] == 1
    assert stats["depends_on_edges"] == 1


def test_dependency_cycle_leaves_edges_unchanged(graph) -> None:
    graph.create_task("A", task_id="a")
    graph.create_task("B", depends_on=["a"], task_id="b")

    with pytest.raises(CycleDetected):
        graph.relationships.create_depends_on("a", "b")

    assert graph.relationships.export_all_depends_on() == [("b", "a")]
