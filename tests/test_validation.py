# tests/test_validation.py

from workgraph.task_node import Section, SectionType, TaskNode
from workgraph.validation import SectionRule, Severity, TriageValidator


def _task(*types: SectionType) -> TaskNode:
    return TaskNode(
        id="t",
        title="Task",
        sections=[Section(type=t, content=f"{t.value} body") for t in types],
    )


def test_empty_task_reports_every_rule() -> None:
    result = TriageValidator().validate(_task())

    assert not result.is_valid()
    assert len(result.errors) == 4
    assert len(result.warnings) == 2
    assert len(result.notes) == 2


def test_desired_behavior_satisfies_objective_rule() -> None:
    result = TriageValidator().validate(_task(SectionType.DESIRED_BEHAVIOR))

    messages = [issue.message for issue in result.errors]
    assert not any("goal OR desired_behavior" in m for m in messages)


def test_counts_are_reported() -> None:
    result = TriageValidator().validate(_task(SectionType.TESTING_CRITERION))

    criterion = [i for i in result.errors if SectionType.TESTING_CRITERION in i.section_types][0]
    assert criterion.current_count == 1
    assert criterion.required_count == 2
    assert criterion.message == "Required: at least 2 testing_criterion(s), found 1"


def test_result_renders_grouped_issues() -> None:
    result = TriageValidator().validate(_task())
    text = str(result)

    assert text.startswith("ERRORS (4):\n  - Required:")
    assert "WARNINGS (2):" in text
    assert "NOTES (2):" in text


def test_custom_rules() -> None:
    validator = TriageValidator([SectionRule((SectionType.STEP,), 1, Severity.WARNING)])

    result = validator.validate(_task())

    assert result.is_valid()
    assert [i.severity for i in result.issues] == [Severity.WARNING]
