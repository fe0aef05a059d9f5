"""
src/actions/fields.py
SetField and UpdateField actions.
Exports: SetFieldHandler, UpdateFieldHandler, resolve_placeholder, calculate_value
"""

from typing import Any

from src.actions.base import ActionHandler, field_text
from src.rules.types import RuleActionSpec, WorkItemContext, normalize_field_name

EFFORT_FIELD = "Microsoft_VSTS_Scheduling_Effort"
SPLIT_SUFFIX = ".Split"


def resolve_placeholder(value: str, context: WorkItemContext) -> str:
    """
    Resolve a whole-value `{Field.Name}` placeholder from the context.

    `{Field.Name.Split}` keeps the text before the first "<". Placeholders
    naming an absent field are returned unchanged.
    """
    if not (value.startswith("{") and value.endswith("}")) or len(value) < 3:
        return value
    name = value[1:-1].strip()
    split = name.endswith(SPLIT_SUFFIX)
    if split:
        name = name[: -len(SPLIT_SUFFIX)]
    key = normalize_field_name(name)
    if key not in context.fields:
        return value
    text = field_text(context, key)
    return text.split("<", 1)[0] if split else text


def _format_number(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else repr(number)


def _parse_number(text: str) -> float | None:
    try:
        return float(str(text).strip())
    except ValueError:
        return None


def effort_to_size(context: WorkItemContext) -> str:
    effort = _parse_number(field_text(context, EFFORT_FIELD))
    if effort is None:
        return "Unknown"
    if effort <= 25:
        return "small"
    if effort < 65:
        return "medium"
    return "large"


def calculate_value(formula: str, current: str, context: WorkItemContext) -> str:
    """
    Apply a CALCULATE formula.

    Args:
        formula: EFFORT_TO_SIZE, ADD:<n>, MULTIPLY:<n>, or a literal.
        current: Current field value as text.
        context: Work-item context (for EFFORT_TO_SIZE).
    Returns:
        New field value; arithmetic parse failures keep `current`.
    """
    formula = formula.strip()
    upper = formula.upper()
    if upper == "EFFORT_TO_SIZE":
        return effort_to_size(context)
    for prefix in ("ADD:", "MULTIPLY:"):
        if upper.startswith(prefix):
            base = _parse_number(current)
            operand = _parse_number(formula[len(prefix) :])
            if base is None or operand is None:
                return current
            result = base + operand if prefix == "ADD:" else base * operand
            return _format_number(result)
    return formula


class SetFieldHandler(ActionHandler):
    action_name = "SetField"

    def execute(self, context: WorkItemContext, action: RuleActionSpec) -> dict[str, Any]:
        field_name = action.param("FieldName").strip()
        if not field_name:
            self.logger.warning("SetField on work item %s has no FieldName.", context.id)
            return {}
        value = resolve_placeholder(action.param("FieldValue"), context)
        self.logger.info("SetField %s = %r on work item %s.", field_name, value, context.id)
        return self.write_fields(context, {field_name: value})


class UpdateFieldHandler(ActionHandler):
    action_name = "UpdateField"

    def execute(self, context: WorkItemContext, action: RuleActionSpec) -> dict[str, Any]:
        field_name = action.param("FieldName").strip()
        if not field_name:
            self.logger.warning("UpdateField on work item %s has no FieldName.", context.id)
            return {}
        update_type = (action.param("UpdateType") or "SET").strip().upper()
        value = action.param("Value")
        current = field_text(context, field_name)
        if update_type == "APPEND":
            final = f"{current}{value}"
        elif update_type == "PREPEND":
            final = f"{value}{current}"
        elif update_type == "CALCULATE":
            final = calculate_value(value, current, context)
        else:
            final = value
        self.logger.info(
            "UpdateField %s (%s) = %r on work item %s.", field_name, update_type, final, context.id
        )
        return self.write_fields(context, {field_name: final})
