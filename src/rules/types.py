"""
src/rules/types.py
Typed records for rules, rule actions, and the work-item execution context.
Exports: WorkItemContext, RuleDefinition, RuleActionSpec, is_script_expression, script_expression
"""

from dataclasses import dataclass, field
import re
from typing import Any

SCRIPT_SENTINEL = "XmlCalculationRule("
CONDITION_SUCCESS = "Success"
CONDITION_FAILURE = "Failure"
DEFAULT_PRIORITY = 100
WILDCARD_APPLIES_TO = "All"
MANUAL_REVIEW_SUFFIX = "_ManualReview"

PROJECT_FIELD = "System_TeamProject"
WORK_ITEM_TYPE_FIELD = "System_WorkItemType"

_SCRIPT_NAME_PATTERN = re.compile(r'XmlCalculationRule\(\s*"([^"]*)"\s*\)', re.IGNORECASE)


def normalize_field_name(name: str) -> str:
    """Return the flattened payload key for a dotted tracker field name."""
    return name.strip().replace(".", "_")


def external_field_name(name: str) -> str:
    """Return the dotted tracker field name for a flattened payload key."""
    name = name.strip()
    return name if "." in name else name.replace("_", ".")


def is_script_expression(expression: str | None) -> bool:
    """Return whether a rule expression is the script-rule sentinel."""
    return (expression or "").strip().lower().startswith(SCRIPT_SENTINEL.lower())


def script_expression(rule_name: str) -> str:
    """Build the sentinel expression that marks a script rule."""
    return f'XmlCalculationRule("{rule_name}")'


def script_rule_name(expression: str) -> str | None:
    """Extract the quoted script name from a sentinel expression."""
    match = _SCRIPT_NAME_PATTERN.search(expression or "")
    return match.group(1) if match else None


@dataclass
class WorkItemContext:
    """Flattened view of one work item, owned by a single execution."""

    id: int
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def project(self) -> str:
        return str(self.fields.get(PROJECT_FIELD) or "")

    @property
    def work_item_type(self) -> str:
        return str(self.fields.get(WORK_ITEM_TYPE_FIELD) or "")

    def get(self, name: str, default: Any = None) -> Any:
        """Read a field by dotted or flattened name."""
        return self.fields.get(normalize_field_name(name), default)

    def apply_changes(self, changes: dict[str, Any]) -> None:
        """Merge successful tracker writes into the flattened field map."""
        for name, value in changes.items():
            self.fields[normalize_field_name(name)] = value


@dataclass
class RuleActionSpec:
    """One named, parameterized side effect attached to a rule outcome."""

    action_name: str
    condition_type: str = CONDITION_SUCCESS
    execution_order: int = 1
    parameters: list[tuple[str, str]] = field(default_factory=list)

    def param(self, key: str, default: str = "") -> str:
        """Case-insensitive parameter lookup."""
        wanted = key.lower()
        for name, value in self.parameters:
            if name.lower() == wanted:
                return value if value else default
        return default

    def params_dict(self) -> dict[str, str]:
        return {name: value for name, value in self.parameters}


@dataclass
class RuleDefinition:
    """A named conditional rule scoped to a rule set (project)."""

    name: str
    expression: str
    applies_to: str = WILDCARD_APPLIES_TO
    rule_set: str = ""
    priority: int = DEFAULT_PRIORITY
    is_active: bool = True
    actions: list[RuleActionSpec] = field(default_factory=list)
    id: int | None = None

    @property
    def is_script_rule(self) -> bool:
        return is_script_expression(self.expression)

    def applies_to_type(self, work_item_type: str) -> bool:
        """
        Match a work-item type against the comma-separated applies-to list.

        Blank or "All" matches every type; otherwise membership is
        case-insensitive over the trimmed entries.
        """
        raw = (self.applies_to or "").strip()
        if not raw or raw.lower() == WILDCARD_APPLIES_TO.lower():
            return True
        wanted = (work_item_type or "").strip().lower()
        return any(part.strip().lower() == wanted for part in raw.split(",") if part.strip())

    def actions_for(self, condition_type: str) -> list[RuleActionSpec]:
        """Return actions for one outcome in ascending execution order."""
        wanted = condition_type.lower()
        selected = [a for a in self.actions if (a.condition_type or "").lower() == wanted]
        return sorted(selected, key=lambda action: action.execution_order)
