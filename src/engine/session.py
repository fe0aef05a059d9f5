"""Execution session records aggregated per processed event."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

STATUS_PASSED = "PASSED"
STATUS_FAILED = "FAILED"
STATUS_SKIPPED = "SKIPPED"

ACTION_SUCCESS = "SUCCESS"
ACTION_FAILED = "FAILED"
ACTION_SKIPPED = "SKIPPED"


@dataclass
class FieldChange:
    field_name: str
    old_value: Any
    new_value: Any
    change_type: str = "UPDATE"


@dataclass
class ActionOutcome:
    action_name: str
    condition_type: str
    execution_order: int
    status: str
    error_message: str | None = None
    parameters: dict[str, str] = field(default_factory=dict)
    field_changes: list[FieldChange] = field(default_factory=list)


@dataclass
class RuleExecutionResult:
    rule_name: str
    rule_set: str
    applies_to: str
    priority: int
    expression: str
    status: str
    error_message: str | None = None
    actions: list[ActionOutcome] = field(default_factory=list)

    @property
    def field_changes(self) -> list[FieldChange]:
        return [change for action in self.actions for change in action.field_changes]


@dataclass
class ExecutionSession:
    """Summary of one event's rule run; not mutated after it is flushed."""

    session_id: str
    work_item_id: int
    work_item_type: str
    project_name: str
    start_time: datetime
    end_time: datetime | None = None
    total_rules: int = 0
    results: list[RuleExecutionResult] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for result in self.results if result.status == status)

    @property
    def passed_rules(self) -> int:
        return self._count(STATUS_PASSED)

    @property
    def failed_rules(self) -> int:
        return self._count(STATUS_FAILED)

    @property
    def skipped_rules(self) -> int:
        return self._count(STATUS_SKIPPED)

    @property
    def executed_rules(self) -> int:
        return self.passed_rules + self.failed_rules

    @property
    def duration_ms(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds() * 1000

    @property
    def success_rate(self) -> float:
        if not self.executed_rules:
            return 0.0
        return round(self.passed_rules * 100 / self.executed_rules, 2)

    def counts(self) -> dict[str, int]:
        return {
            "total": self.total_rules,
            "passed": self.passed_rules,
            "failed": self.failed_rules,
            "skipped": self.skipped_rules,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "work_item_id": self.work_item_id,
            "work_item_type": self.work_item_type,
            "project_name": self.project_name,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "success_rate": self.success_rate,
            **{f"{key}_rules": value for key, value in self.counts().items()},
            "results": [
                {
                    "rule_name": result.rule_name,
                    "rule_set": result.rule_set,
                    "applies_to": result.applies_to,
                    "priority": result.priority,
                    "expression": result.expression,
                    "status": result.status,
                    "error_message": result.error_message,
                    "actions": [
                        {
                            "action_name": action.action_name,
                            "condition_type": action.condition_type,
                            "execution_order": action.execution_order,
                            "status": action.status,
                            "error_message": action.error_message,
                            "parameters": dict(action.parameters),
                        }
                        for action in result.actions
                    ],
                    "field_changes": [
                        {
                            "field_name": change.field_name,
                            "old_value": change.old_value,
                            "new_value": change.new_value,
                            "change_type": change.change_type,
                        }
                        for change in result.field_changes
                    ],
                }
                for result in self.results
            ],
        }
