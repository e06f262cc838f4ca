# tests/test_status_machine.py

import itertools

import pytest

from workgraph import lifecycle, status_machine
from workgraph.errors import InvalidStatusTransition
from workgraph.task_node import TaskStatus


def test_every_pair_is_allowed_or_rejected() -> None:
    for from_status, to_status in itertools.product(TaskStatus, TaskStatus):
        if from_status == to_status:
            continue
        if status_machine.is_allowed(from_status, to_status):
            status_machine.validate_transition("t", from_status, to_status)
        else:
            with pytest.raises(InvalidStatusTransition) as exc_info:
                status_machine.validate_transition("t", from_status, to_status)
            assert exc_info.value.from_status == from_status.value
            assert exc_info.value.to_status == to_status.value


@pytest.mark.parametrize(
    "from_status,to_status",
    [
        (TaskStatus.BACKLOG, TaskStatus.TODO),
        (TaskStatus.TODO, TaskStatus.IN_PROGRESS),
        (TaskStatus.TODO, TaskStatus.REJECTED),
        (TaskStatus.IN_PROGRESS, TaskStatus.PENDING_REVIEW),
        (TaskStatus.PENDING_REVIEW, TaskStatus.IN_PROGRESS),
        (TaskStatus.PENDING_REVIEW, TaskStatus.DONE),
    ],
)
def test_allowed_transitions(from_status, to_status) -> None:
    assert status_machine.is_allowed(from_status, to_status)


@pytest.mark.parametrize(
    "from_status,to_status",
    [
        (TaskStatus.TODO, TaskStatus.PENDING_REVIEW),
        (TaskStatus.TODO, TaskStatus.DONE),
        (TaskStatus.BACKLOG, TaskStatus.IN_PROGRESS),
        (TaskStatus.IN_PROGRESS, TaskStatus.DONE),
        (TaskStatus.DONE, TaskStatus.TODO),
        (TaskStatus.REJECTED, TaskStatus.TODO),
    ],
)
def test_rejected_transitions(from_status, to_status) -> None:
    assert not status_machine.is_allowed(from_status, to_status)


def test_terminal_statuses_have_no_targets() -> None:
    assert status_machine.allowed_targets(TaskStatus.DONE) == set()
    assert status_machine.allowed_targets(TaskStatus.REJECTED) == set()


def test_error_message_names_both_endpoints() -> None:
    with pytest.raises(InvalidStatusTransition, match="from todo to pending_review"):
        status_machine.validate_transition("t2", TaskStatus.TODO, TaskStatus.PENDING_REVIEW)


@pytest.mark.parametrize("status", list(TaskStatus))
def test_same_status_never_consults_the_table(graph, monkeypatch, status) -> None:
    graph.create_task("Anything", status=status, task_id="t1")

    def fail(*args, **kwargs):
        raise AssertionError("transition table consulted")

    monkeypatch.setattr(status_machine, "validate_transition", fail)

    result = lifecycle.transition_to(graph, "T1", status, skip_validation=True)

    assert result.already_in_target
    assert graph.get_task("t1").status == status
