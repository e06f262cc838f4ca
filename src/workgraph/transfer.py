"""
Export and import of the task graph as newline-delimited JSON.

Each line holds one record::

    {"type":"task","id":"<id>", ...task fields...}
    {"type":"child_of","child":"<id>","parent":"<id>"}
    {"type":"depends_on","task":"<id>","blocker":"<id>"}
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .errors import InvalidPath
from .ids import normalize_id
from .task_graph import TaskGraph
from .task_node import TaskNode

logger = logging.getLogger(__name__)


class TaskRecord(TaskNode):
    """A full task, flattened into one record."""

    type: Literal["task"] = "task"
    id: str = Field(..., min_length=1)

    @classmethod
    def from_task(cls, task: TaskNode) -> "TaskRecord":
        return cls(**task.model_dump())

    def to_task(self) -> TaskNode:
        return TaskNode.model_validate(self.model_dump(exclude={"type"}))


class ChildOfRecord(BaseModel):
    type: Literal["child_of"] = "child_of"
    child: str = Field(..., min_length=1)
    parent: str = Field(..., min_length=1)


class DependsOnRecord(BaseModel):
    type: Literal["depends_on"] = "depends_on"
    task: str = Field(..., min_length=1)
    blocker: str = Field(..., min_length=1)


Record = Annotated[
    Union[TaskRecord, ChildOfRecord, DependsOnRecord],
    Field(discriminator="type"),
]

_RECORD_ADAPTER: TypeAdapter = TypeAdapter(Record)


def parse_record(line: str) -> Union[TaskRecord, ChildOfRecord, DependsOnRecord]:
    """Parse one JSON line. Unknown record types are rejected."""
    return _RECORD_ADAPTER.validate_json(line)


@dataclass
class ExportResult:
    tasks: int
    child_of: int
    depends_on: int
    destination: str

    def __str__(self) -> str:
        return (
            "Export complete!\n"
            f"  Tasks: {self.tasks}\n"
            f"  Child relationships: {self.child_of}\n"
            f"  Dependencies: {self.depends_on}\n"
            f"  Output: {self.destination}"
        )


@dataclass
class ImportResult:
    imported: int
    skipped: int
    child_of: int
    depends_on: int
    source: str

    def __str__(self) -> str:
        text = f"Import complete!\n  Tasks imported: {self.imported}\n"
        if self.skipped > 0:
            text += f"  Tasks skipped: {self.skipped}\n"
        text += (
            f"  Child relationships: {self.child_of}\n"
            f"  Dependencies: {self.depends_on}\n"
            f"  Source: {self.source}"
        )
        return text


def _collect_records(graph: TaskGraph) -> List[BaseModel]:
    records: List[BaseModel] = [TaskRecord.from_task(task) for _, task in graph.tasks.export_all()]
    records.extend(
        ChildOfRecord(child=child, parent=parent)
        for child, parent in graph.relationships.export_all_child_of()
    )
    records.extend(
        DependsOnRecord(task=task, blocker=blocker)
        for task, blocker in graph.relationships.export_all_depends_on()
    )
    return records


def export_graph(
    graph: TaskGraph,
    output_path: Optional[Path] = None,
    stream: Optional[IO[str]] = None,
) -> ExportResult:
    """
    Write every task, then every child_of edge, then every depends_on edge.

    Writes to ``output_path`` when given (the file is created or truncated),
    otherwise to ``stream`` (stdout by default).
    """
    records = _collect_records(graph)
    counts = {"task": 0, "child_of": 0, "depends_on": 0}
    for record in records:
        counts[record.type] += 1

    lines = "".join(record.model_dump_json(exclude_none=True) + "\n" for record in records)

    if output_path is not None:
        destination = str(output_path)
        try:
            with open(output_path, "w", encoding="utf-8") as f:
                f.write(lines)
        except OSError as e:
            raise InvalidPath(output_path, str(e)) from e
    else:
        out = stream if stream is not None else sys.stdout
        destination = "stdout"
        try:
            out.write(lines)
            out.flush()
        except OSError as e:
            raise InvalidPath(destination, str(e)) from e

    result = ExportResult(
        tasks=counts["task"],
        child_of=counts["child_of"],
        depends_on=counts["depends_on"],
        destination=destination,
    )
    logger.info(
        "Exported %d tasks, %d child_of, %d depends_on to %s",
        result.tasks, result.child_of, result.depends_on, destination,
    )
    return result


def _read_records(
    source: str, handle: Union[IO[str], IO[bytes]]
) -> Tuple[List[TaskRecord], List[Union[ChildOfRecord, DependsOnRecord]]]:
    tasks: List[TaskRecord] = []
    edges: List[Union[ChildOfRecord, DependsOnRecord]] = []

    for line_no, line in enumerate(handle, start=1):
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                raise InvalidPath(source, f"Error parsing line {line_no}: {e}") from e
        if not line.strip():
            continue
        try:
            record = parse_record(line)
        except ValidationError as e:
            raise InvalidPath(source, f"Error parsing line {line_no}: {e}") from e
        if isinstance(record, TaskRecord):
            tasks.append(record)
        else:
            edges.append(record)

    return tasks, edges


def import_graph(
    graph: TaskGraph,
    input_path: Optional[Path] = None,
    stream: Optional[IO[str]] = None,
    skip_existing: bool = False,
) -> ImportResult:
    """
    Load records produced by ``export_graph``.

    The whole input is parsed before anything is written. Task records are
    applied before relationship records regardless of their order in the
    input, and everything runs in one transaction: a failure leaves the
    store as it was.

    Existing tasks are overwritten unless ``skip_existing`` is set, in which
    case they are left untouched and counted as skipped. An overwritten task
    loses its stored edges; the input's relationship records replace them.
    Input must be UTF-8.
    """
    if input_path is not None:
        source = str(input_path)
        try:
            with open(input_path, "rb") as f:
                task_records, edge_records = _read_records(source, f)
        except OSError as e:
            raise InvalidPath(input_path, str(e)) from e
    else:
        source = "stdin"
        handle = stream if stream is not None else sys.stdin
        try:
            task_records, edge_records = _read_records(source, handle)
        except (OSError, UnicodeDecodeError) as e:
            raise InvalidPath(source, str(e)) from e

    imported = skipped = child_of = depends_on = 0

    with graph.storage.transaction():
        for record in task_records:
            task_id = normalize_id(record.id)
            if graph.tasks.exists(task_id):
                if skip_existing:
                    skipped += 1
                    continue
                graph.relationships.remove_all_relationships(task_id)
                graph.tasks.delete(task_id)
            graph.tasks.create(task_id, record.to_task())
            imported += 1

        for record in edge_records:
            if isinstance(record, ChildOfRecord):
                graph.relationships.create_child_of(record.child, record.parent)
                child_of += 1
            else:
                graph.relationships.create_depends_on(record.task, record.blocker)
                depends_on += 1

    result = ImportResult(
        imported=imported,
        skipped=skipped,
        child_of=child_of,
        depends_on=depends_on,
        source=source,
    )
    logger.info(
        "Imported %d tasks (%d skipped), %d child_of, %d depends_on from %s",
        imported, skipped, child_of, depends_on, source,
    )
    return result
