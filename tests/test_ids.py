# tests/test_ids.py

import pytest

from workgraph.errors import InvalidPath
from workgraph.ids import ID_ALPHABET, generate_id, normalize_id


def test_normalize_id_lowercases() -> None:
    assert normalize_id("ABC-12") == "abc-12"
    assert normalize_id("MiXeD") == normalize_id("mixed")


def test_normalize_id_is_idempotent() -> None:
    once = normalize_id("Task-X")
    assert normalize_id(once) == once


def test_generate_id_avoids_taken_ids() -> None:
    seen: list[str] = []

    def exists(candidate: str) -> bool:
        seen.append(candidate)
        return len(seen) < 3

    new_id = generate_id(exists)
    assert new_id == seen[-1]
    assert len(seen) == 3
    assert len(new_id) == 6
    assert all(c in ID_ALPHABET for c in new_id)


def test_generate_id_gives_up() -> None:
    with pytest.raises(InvalidPath):
        generate_id(lambda _: True, attempts=3)


def test_mixed_case_ids_address_same_task(graph) -> None:
    graph.create_task("Write docs", task_id="Doc-1")

    assert graph.tasks.exists("doc-1")
    assert graph.tasks.exists("DOC-1")
    assert graph.get_task("dOc-1").id == "doc-1"
