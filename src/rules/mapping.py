"""Conversion between rule records and JSON-friendly dicts (camelCase or snake_case)."""

from typing import Any

from src.rules.types import (
    CONDITION_SUCCESS,
    DEFAULT_PRIORITY,
    WILDCARD_APPLIES_TO,
    RuleActionSpec,
    RuleDefinition,
)


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in {"0", "false", "no", "off"}
    return bool(value)


def _parameters_from(raw: Any) -> list[tuple[str, str]]:
    """Accept a {key: value} map or a list of {paramKey, paramValue} entries."""
    if isinstance(raw, dict):
        return [(str(key), "" if value is None else str(value)) for key, value in raw.items()]
    parameters: list[tuple[str, str]] = []
    seen: set[str] = set()
    for item in raw or []:
        if not isinstance(item, dict):
            continue
        key = str(_pick(item, "paramKey", "param_key", "key", default="")).strip()
        if not key or key.lower() in seen:
            continue
        seen.add(key.lower())
        value = _pick(item, "paramValue", "param_value", "value", default="")
        parameters.append((key, str(value)))
    return parameters


def action_from_dict(data: dict[str, Any], default_order: int = 1) -> RuleActionSpec:
    """Build a RuleActionSpec from a request/storage dict."""
    name = str(_pick(data, "actionName", "action_name", default="")).strip()
    if not name:
        raise ValueError("Rule action is missing actionName.")
    return RuleActionSpec(
        action_name=name,
        condition_type=str(_pick(data, "conditionType", "condition_type", default=CONDITION_SUCCESS)),
        execution_order=int(_pick(data, "executionOrder", "execution_order", default=default_order)),
        parameters=_parameters_from(_pick(data, "parameters", default=[])),
    )


def rule_from_dict(data: dict[str, Any]) -> RuleDefinition:
    """
    Build a RuleDefinition from a request/storage dict.

    Args:
        data: Rule fields in camelCase (API) or snake_case (storage) form.
    Returns:
        Parsed RuleDefinition.
    Raises:
        ValueError: When name or expression is missing.
    """
    name = str(_pick(data, "name", "ruleName", "rule_name", default="")).strip()
    expression = str(_pick(data, "expression", default="")).strip()
    if not name:
        raise ValueError("Rule is missing name.")
    if not expression:
        raise ValueError(f"Rule '{name}' is missing expression.")
    return RuleDefinition(
        name=name,
        expression=expression,
        applies_to=str(_pick(data, "appliesTo", "applies_to", default=WILDCARD_APPLIES_TO)),
        rule_set=str(_pick(data, "ruleSet", "rule_set", default="")).strip(),
        priority=int(_pick(data, "priority", default=DEFAULT_PRIORITY)),
        is_active=_as_bool(_pick(data, "isActive", "is_active", default=True)),
        actions=[action_from_dict(item) for item in _pick(data, "actions", default=[]) or []],
        id=_pick(data, "id"),
    )


def action_to_dict(action: RuleActionSpec) -> dict[str, Any]:
    return {
        "actionName": action.action_name,
        "conditionType": action.condition_type,
        "executionOrder": action.execution_order,
        "parameters": [{"paramKey": key, "paramValue": value} for key, value in action.parameters],
    }


def rule_to_dict(rule: RuleDefinition) -> dict[str, Any]:
    """Serialize a RuleDefinition to the camelCase API shape."""
    payload: dict[str, Any] = {
        "name": rule.name,
        "expression": rule.expression,
        "appliesTo": rule.applies_to,
        "ruleSet": rule.rule_set,
        "priority": rule.priority,
        "isActive": rule.is_active,
        "actions": [action_to_dict(action) for action in rule.actions],
    }
    if rule.id is not None:
        payload["id"] = rule.id
    return payload
