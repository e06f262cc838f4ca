# tests/test_transfer.py

import io
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from workgraph.errors import InvalidPath, ParentConflict
from workgraph.task_graph import TaskGraph
from workgraph.task_node import SectionType, TaskLevel, TaskPriority, TaskStatus
from workgraph.transfer import (
    ChildOfRecord,
    DependsOnRecord,
    TaskRecord,
    export_graph,
    import_graph,
    parse_record,
)


@pytest.fixture()
def populated(graph: TaskGraph) -> TaskGraph:
    graph.create_task("Epic", level=TaskLevel.EPIC, task_id="e1")
    graph.create_task("Ticket", level=TaskLevel.TICKET, parent_id="e1", task_id="k1",
                      priority=TaskPriority.HIGH, tags=["api"])
    graph.create_task("Task", parent_id="k1", depends_on=["e1"], task_id="t1",
                      status=TaskStatus.BACKLOG, description="details")
    graph.tasks.add_section("t1", SectionType.STEP, "do it")
    return graph


def _snapshot(graph: TaskGraph):
    tasks = {task_id: task.model_dump() for task_id, task in graph.tasks.export_all()}
    return (
        tasks,
        sorted(graph.relationships.export_all_child_of()),
        sorted(graph.relationships.export_all_depends_on()),
    )


def test_export_writes_tasks_then_edges(populated: TaskGraph) -> None:
    out = io.StringIO()

    result = export_graph(populated, stream=out)

    lines = [json.loads(line) for line in out.getvalue().splitlines()]
    assert [line["type"] for line in lines] == ["task", "task", "task", "child_of", "child_of", "depends_on"]
    assert lines[3] == {"type": "child_of", "child": "k1", "parent": "e1"}
    assert lines[5] == {"type": "depends_on", "task": "t1", "blocker": "e1"}
    assert "priority" not in lines[0]
    assert (result.tasks, result.child_of, result.depends_on) == (3, 2, 1)
    assert result.destination == "stdout"


def test_export_result_text(populated: TaskGraph, tmp_path: Path) -> None:
    target = tmp_path / "out.jsonl"

    result = export_graph(populated, output_path=target)

    assert str(result) == (
        "Export complete!\n"
        "  Tasks: 3\n"
        "  Child relationships: 2\n"
        "  Dependencies: 1\n"
        f"  Output: {target}"
    )


def test_round_trip_into_empty_store(populated: TaskGraph, tmp_path: Path) -> None:
    target = tmp_path / "graph.jsonl"
    export_graph(populated, output_path=target)

    fresh = TaskGraph(tmp_path / "fresh.db")
    result = import_graph(fresh, input_path=target)

    assert (result.imported, result.skipped, result.child_of, result.depends_on) == (3, 0, 2, 1)
    assert _snapshot(fresh) == _snapshot(populated)


def test_relationships_before_tasks_still_import(graph: TaskGraph) -> None:
    data = "\n".join([
        '{"type":"depends_on","task":"b","blocker":"a"}',
        '{"type":"child_of","child":"b","parent":"a"}',
        "",
        '{"type":"task","id":"A","title":"First"}',
        '{"type":"task","id":"b","title":"Second","status":"backlog"}',
    ])

    result = import_graph(graph, stream=io.StringIO(data))

    assert result.imported == 2
    assert result.source == "stdin"
    assert graph.relationships.get_parent("b") == "a"
    assert graph.relationships.get_dependencies("b") == ["a"]
    assert graph.get_task("b").status == TaskStatus.BACKLOG
    assert graph.get_task("a").created_at is not None


def test_skip_existing_leaves_task_untouched(graph: TaskGraph, monkeypatch) -> None:
    graph.create_task("Original", task_id="t1")
    before = graph.get_task("t1")

    def fail(*args, **kwargs):
        raise AssertionError("should not be called")

    monkeypatch.setattr(graph.tasks, "delete", fail)
    monkeypatch.setattr(graph.tasks, "create", fail)

    result = import_graph(
        graph,
        stream=io.StringIO('{"type":"task","id":"T1","title":"Replacement"}\n'),
        skip_existing=True,
    )

    assert result.skipped == 1
    assert result.imported == 0
    assert "  Tasks skipped: 1\n" in str(result)
    assert graph.get_task("t1") == before


def test_existing_task_is_overwritten(graph: TaskGraph) -> None:
    graph.create_task("Original", task_id="t1", tags=["old"])

    import_graph(graph, stream=io.StringIO('{"type":"task","id":"t1","title":"Replacement"}\n'))

    task = graph.get_task("t1")
    assert task.title == "Replacement"
    assert task.tags == []


def test_import_result_text_without_skips(graph: TaskGraph) -> None:
    result = import_graph(graph, stream=io.StringIO('{"type":"task","id":"t1","title":"One"}\n'))

    assert str(result) == (
        "Import complete!\n"
        "  Tasks imported: 1\n"
        "  Child relationships: 0\n"
        "  Dependencies: 0\n"
        "  Source: stdin"
    )


def test_malformed_line_aborts_before_writing(graph: TaskGraph) -> None:
    data = '{"type":"task","id":"t1","title":"One"}\n{not json}\n'

    with pytest.raises(InvalidPath, match="Error parsing line 2"):
        import_graph(graph, stream=io.StringIO(data))

    assert not graph.tasks.exists("t1")


def test_unknown_record_type_is_an_error(graph: TaskGraph) -> None:
    data = '{"type":"label","id":"t1"}\n'

    with pytest.raises(InvalidPath, match="Error parsing line 1"):
        import_graph(graph, stream=io.StringIO(data))


def test_failing_relationship_rolls_back_everything(graph: TaskGraph) -> None:
    graph.create_task("Parent A", task_id="a")
    graph.create_task("Parent B", task_id="b")
    graph.create_task("Child", parent_id="a", task_id="c")
    data = "\n".join([
        '{"type":"task","id":"new","title":"New"}',
        '{"type":"child_of","child":"c","parent":"b"}',
    ])

    with pytest.raises(ParentConflict):
        import_graph(graph, stream=io.StringIO(data))

    assert not graph.tasks.exists("new")
    assert graph.relationships.get_parent("c") == "a"


def test_missing_input_file(graph: TaskGraph, tmp_path: Path) -> None:
    missing = tmp_path / "missing.jsonl"

    with pytest.raises(InvalidPath) as exc_info:
        import_graph(graph, input_path=missing)

    assert exc_info.value.path == str(missing)


def test_parse_record_variants() -> None:
    assert isinstance(parse_record('{"type":"task","id":"x","title":"X"}'), TaskRecord)
    assert isinstance(parse_record('{"type":"child_of","child":"a","parent":"b"}'), ChildOfRecord)
    assert isinstance(parse_record('{"type":"depends_on","task":"a","blocker":"b"}'), DependsOnRecord)


def test_restore_after_reparent(graph: TaskGraph, tmp_path: Path) -> None:
    graph.create_task("Parent A", task_id="a")
    graph.create_task("Parent B", task_id="b")
    graph.create_task("Child", parent_id="a", task_id="c")
    backup = tmp_path / "backup.jsonl"
    export_graph(graph, output_path=backup)

    graph.relationships.remove_child_of("c")
    graph.relationships.create_child_of("c", "b")
    result = import_graph(graph, input_path=backup)

    assert result.imported == 3
    assert graph.relationships.get_parent("c") == "a"
    assert graph.relationships.get_children("b") == []


def test_overwrite_replaces_dependencies(graph: TaskGraph) -> None:
    graph.create_task("Blocker", task_id="x")
    graph.create_task("Blocked", task_id="t1", depends_on=["x"])

    import_graph(graph, stream=io.StringIO('{"type":"task","id":"t1","title":"Fresh"}\n'))

    assert graph.relationships.get_dependencies("t1") == []
    assert graph.relationships.get_dependents("x") == []


def test_non_utf8_file_is_rejected(graph: TaskGraph, tmp_path: Path) -> None:
    bad = tmp_path / "bad.jsonl"
    bad.write_bytes(b'{"type":"task","id":"ok","title":"Fine"}\n{"type":"task","id":"t1","title":"\xff\xfe"}\n')

    with pytest.raises(InvalidPath, match="Error parsing line 2") as exc_info:
        import_graph(graph, input_path=bad)

    assert exc_info.value.path == str(bad)
    assert not graph.tasks.exists("ok")


def test_non_utf8_stream_is_rejected(graph: TaskGraph) -> None:
    stream = io.TextIOWrapper(io.BytesIO(b'{"type":"task","id":"t1","title":"\xff"}\n'), encoding="utf-8")

    with pytest.raises(InvalidPath) as exc_info:
        import_graph(graph, stream=stream)

    assert exc_info.value.path == "stdin"
    assert not graph.tasks.exists("t1")


def test_naive_timestamps_are_read_as_utc(graph: TaskGraph) -> None:
    graph.create_task("Stamped by the clock", task_id="clocked")
    data = '{"type":"task","id":"n","title":"Naive","created_at":"2024-01-01T00:00:00"}\n'

    import_graph(graph, stream=io.StringIO(data))

    task = graph.get_task("n")
    assert task.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert task.updated_at.tzinfo is not None
    assert [t.id for t in graph.tasks.list()] == ["clocked", "n"]
    assert {t.id for t in graph.list_ready(TaskStatus.TODO)} == {"clocked", "n"}
