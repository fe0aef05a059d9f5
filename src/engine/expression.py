"""
src/engine/expression.py
Boolean rule expressions evaluated with simpleeval over the flattened payload.
Exports: evaluate_rule_expression, normalize_expression, extract_referenced_fields, HELPER_NAMES
"""

import re
from types import SimpleNamespace
from typing import Any

from simpleeval import SimpleEval

from src.common.source_scan import iter_segments
from src.rules.types import WorkItemContext

FIELD_REFERENCE_PATTERN = re.compile(r"body\.Fields\.(\w+)")
_CAST_PATTERN = re.compile(r"\(\s*(?:string|int|double|bool|decimal|float|long)\s*\)\s*")
_NOT_PATTERN = re.compile(r"!(?!=)")
_KEYWORDS = (
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"\bnull\b"), "None"),
    (re.compile(r"\btrue\b"), "True"),
    (re.compile(r"\bfalse\b"), "False"),
)


class ExpressionError(ValueError):
    """Raised when a rule expression cannot be parsed or evaluated."""


def _is_null_or_empty(value: Any) -> bool:
    return value is None or str(value) == ""


def _is_null_or_white_space(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def to_double(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    return float(str(value).strip())


def to_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, float):
        return int(round(value))
    if isinstance(value, int):
        return value
    return int(str(value).strip())


def to_string(value: Any) -> str:
    return "" if value is None else str(value)


HELPER_NAMES: dict[str, Any] = {
    "string": SimpleNamespace(
        IsNullOrEmpty=_is_null_or_empty,
        IsNullOrWhiteSpace=_is_null_or_white_space,
        Empty="",
    ),
    "Convert": SimpleNamespace(ToDouble=to_double, ToInt32=to_int, ToString=to_string),
    "double": SimpleNamespace(Parse=to_double),
    "int": SimpleNamespace(Parse=to_int),
    "Math": SimpleNamespace(Round=round, Max=max, Min=min, Abs=abs),
}


class FieldView:
    """Attribute access over flattened fields; missing fields read as None."""

    def __init__(self, fields: dict[str, Any]):
        self._fields = fields

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return self._fields.get(name)


def normalize_expression(expression: str) -> str:
    """Rewrite C#-style operators and literals into Python syntax outside string literals."""
    parts: list[str] = []
    for is_literal, chunk in iter_segments(expression.strip()):
        if is_literal:
            parts.append(chunk)
            continue
        chunk = _CAST_PATTERN.sub("", chunk)
        for pattern, replacement in _KEYWORDS:
            chunk = pattern.sub(replacement, chunk)
        chunk = _NOT_PATTERN.sub(" not ", chunk)
        parts.append(chunk)
    return re.sub(r"[ \t]+", " ", "".join(parts)).strip()


def extract_referenced_fields(expression: str) -> set[str]:
    """Return flattened field names referenced as `body.Fields.<Name>`."""
    return set(FIELD_REFERENCE_PATTERN.findall(expression or ""))


def build_evaluator(names: dict[str, Any], functions: dict[str, Any] | None = None) -> SimpleEval:
    """Create a simpleeval evaluator with the shared helper namespaces."""
    return SimpleEval(names={**HELPER_NAMES, **names}, functions=dict(functions or {}))


def evaluate_rule_expression(expression: str, context: WorkItemContext) -> bool:
    """
    Evaluate one rule expression against the work-item context.

    Args:
        expression: Rule expression using `body.Fields.<Name>` references.
        context: Flattened work-item context.
    Returns:
        Boolean result.
    Raises:
        ExpressionError: When the expression is malformed, fails, or is not boolean.
    """
    body = SimpleNamespace(Fields=FieldView(context.fields), WorkItemId=context.id)
    evaluator = build_evaluator({"body": body})
    try:
        result = evaluator.eval(normalize_expression(expression))
    except Exception as exc:
        raise ExpressionError(f"Expression evaluation failed: {exc}") from exc
    if not isinstance(result, bool):
        raise ExpressionError(
            f"Expression did not evaluate to a boolean (got {type(result).__name__})."
        )
    return result
