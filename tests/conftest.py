# tests/conftest.py

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from workgraph.task_graph import TaskGraph


class StepClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)) -> None:
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture()
def clock() -> StepClock:
    return StepClock()


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "tasks.db"


@pytest.fixture()
def graph(db_path: Path, clock: StepClock) -> TaskGraph:
    """Task graph on a fresh SQLite file per test."""
    return TaskGraph(db_path, clock=clock)
