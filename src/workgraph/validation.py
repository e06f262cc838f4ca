"""Section checks run before a task is moved into todo."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from .task_node import SectionType, TaskNode


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    NOTE = "note"


@dataclass(frozen=True)
class SectionRule:
    """Minimum count of one (or any of several) section types."""

    section_types: Sequence[SectionType]
    min_count: int
    severity: Severity
    description: str = ""


@dataclass
class ValidationIssue:
    section_types: Sequence[SectionType]
    severity: Severity
    message: str
    current_count: int
    required_count: Optional[int]


DEFAULT_RULES: List[SectionRule] = [
    SectionRule((SectionType.GOAL, SectionType.DESIRED_BEHAVIOR), 1, Severity.ERROR,
                "clear objective (goal or desired_behavior)"),
    SectionRule((SectionType.TESTING_CRITERION,), 2, Severity.ERROR,
                "at least one unit and one integration test criterion"),
    SectionRule((SectionType.STEP,), 1, Severity.ERROR, "implementation steps"),
    SectionRule((SectionType.CONSTRAINT,), 2, Severity.ERROR,
                "architectural guidelines and test quality rules"),
    SectionRule((SectionType.ANTI_PATTERN,), 1, Severity.WARNING, "what to avoid"),
    SectionRule((SectionType.FAILURE_TEST,), 1, Severity.WARNING, "expected error scenarios"),
    SectionRule((SectionType.CONTEXT,), 1, Severity.NOTE, "background info"),
    SectionRule((SectionType.CURRENT_BEHAVIOR,), 1, Severity.NOTE, "for changes/bugs"),
]


@dataclass
class TriageValidationResult:
    task_id: str
    issues: List[ValidationIssue] = field(default_factory=list)

    def _of(self, severity: Severity) -> List[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == severity]

    @property
    def errors(self) -> List[ValidationIssue]:
        return self._of(Severity.ERROR)

    @property
    def warnings(self) -> List[ValidationIssue]:
        return self._of(Severity.WARNING)

    @property
    def notes(self) -> List[ValidationIssue]:
        return self._of(Severity.NOTE)

    def is_valid(self) -> bool:
        return not self.errors

    def __str__(self) -> str:
        lines = []
        for title, issues in (("ERRORS", self.errors), ("WARNINGS", self.warnings), ("NOTES", self.notes)):
            if issues:
                lines.append(f"{title} ({len(issues)}):")
                lines.extend(f"  - {issue.message}" for issue in issues)
        return "\n".join(lines)


class TriageValidator:
    """Checks a task's sections against a rule set."""

    def __init__(self, rules: Optional[Sequence[SectionRule]] = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def validate(self, task: TaskNode) -> TriageValidationResult:
        result = TriageValidationResult(task_id=task.id or "")

        for rule in self.rules:
            count = sum(1 for s in task.sections if s.type in rule.section_types)
            if count >= rule.min_count:
                continue

            names = " OR ".join(t.value for t in rule.section_types)
            if rule.severity == Severity.ERROR:
                message = f"Required: at least {rule.min_count} {names}(s), found {count}"
            elif rule.severity == Severity.WARNING:
                message = f"Encouraged: at least {rule.min_count} {names}(s), found {count}"
            else:
                message = f"Recommended: add a {names} section"

            result.issues.append(
                ValidationIssue(
                    section_types=rule.section_types,
                    severity=rule.severity,
                    message=message,
                    current_count=count,
                    required_count=rule.min_count,
                )
            )

        return result
