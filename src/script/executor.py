"""
src/script/executor.py
Runs script rules: adapt, parse, interpret against a FieldAccessor, push one batch.
Exports: ScriptRuleExecutor, ScriptRunResult, ScriptInterpreter
"""

from dataclasses import dataclass, field
import logging
from typing import Any

from src.common.source_scan import strip_comments
from src.engine.expression import to_double, to_int, build_evaluator, normalize_expression
from src.rules.types import WorkItemContext
from src.script.accessor import FieldAccessor, ScriptText, as_script_number, as_script_text
from src.script.adapt import adapt_script_source
from src.script.parser import (
    Assignment,
    Block,
    ExpressionStatement,
    IfStatement,
    ReturnStatement,
    Statement,
    parse_script,
)
from src.tracker.client import TrackerClient

logger = logging.getLogger(__name__)

_DEFAULTS: dict[str, Any] = {
    "string": ScriptText(""),
    "int": as_script_number(0),
    "long": as_script_number(0),
    "double": as_script_number(0.0),
    "float": as_script_number(0.0),
    "decimal": as_script_number(0.0),
    "bool": False,
}


class _ReturnSignal(Exception):
    pass


def _coerce(declared_type: str | None, value: Any) -> Any:
    if declared_type in {"int", "long"}:
        return as_script_number(to_int(value))
    if declared_type in {"double", "float", "decimal"}:
        return as_script_number(to_double(value))
    if declared_type == "bool":
        return bool(value)
    if declared_type == "string" or isinstance(value, str):
        return as_script_text(value)
    return as_script_number(value)


class ScriptInterpreter:
    """Executes a parsed snippet with locals and the accessor's get/set."""

    def __init__(self, accessor: FieldAccessor):
        self.accessor = accessor
        self.locals: dict[str, Any] = {}
        self._types: dict[str, str | None] = {}
        self._evaluator = build_evaluator({}, {"get": accessor.get, "set": accessor.set})

    def execute(self, program: Block) -> None:
        try:
            self._run(program)
        except _ReturnSignal:
            pass

    def evaluate(self, expression: str) -> Any:
        self._evaluator.names.update(self.locals)
        return self._evaluator.eval(normalize_expression(expression))

    def _run(self, statement: Statement) -> None:
        if isinstance(statement, Block):
            for child in statement.statements:
                self._run(child)
        elif isinstance(statement, IfStatement):
            if self.evaluate(statement.condition):
                self._run(statement.then)
            elif statement.otherwise is not None:
                self._run(statement.otherwise)
        elif isinstance(statement, Assignment):
            self._assign(statement)
        elif isinstance(statement, ExpressionStatement):
            self.evaluate(statement.expression)
        elif isinstance(statement, ReturnStatement):
            raise _ReturnSignal()

    def _assign(self, statement: Assignment) -> None:
        name = statement.name
        if statement.declared_type is not None:
            declared = None if statement.declared_type == "var" else statement.declared_type
            self._types[name] = declared
            if statement.expression is None:
                self.locals[name] = _DEFAULTS.get(statement.declared_type)
                return
            self.locals[name] = _coerce(declared, self.evaluate(statement.expression))
            return
        if name not in self.locals:
            raise NameError(f"Assignment to undeclared variable '{name}'.")
        value = self.evaluate(statement.expression or "")
        current = self.locals[name]
        if statement.operator == "+=":
            value = current + as_script_text(value) if isinstance(current, str) else current + value
        elif statement.operator == "-=":
            value = current - value
        elif statement.operator == "*=":
            value = current * value
        elif statement.operator == "/=":
            value = current / value
        self.locals[name] = _coerce(self._types.get(name), value)


@dataclass
class ScriptRunResult:
    success: bool
    changes: dict[str, str] = field(default_factory=dict)
    error: str | None = None


class ScriptRuleExecutor:
    """Runs legacy snippet rules and forwards their writes as one batch."""

    def __init__(self, tracker: TrackerClient):
        self.tracker = tracker

    def run(self, source: str, context: WorkItemContext, rule_name: str = "script") -> ScriptRunResult:
        """
        Execute one snippet against the work item.

        Args:
            source: Legacy snippet source.
            context: Work-item context; fields are updated only after a successful push.
            rule_name: Name used in logs.
        Returns:
            ScriptRunResult; failures are logged and returned, never raised.
        """
        accessor = FieldAccessor(context.fields)
        try:
            program = parse_script(adapt_script_source(strip_comments(source)))
            ScriptInterpreter(accessor).execute(program)
        except Exception as exc:
            logger.exception("Script rule %s failed for work item %s.", rule_name, context.id)
            return ScriptRunResult(success=False, error=str(exc))

        changes = accessor.changes()
        if not changes:
            logger.info("Script rule %s completed with no field changes.", rule_name)
            return ScriptRunResult(success=True)
        try:
            self.tracker.update_fields(context.id, changes, context.project)
        except Exception as exc:
            logger.exception("Script rule %s could not push %s field changes.", rule_name, len(changes))
            return ScriptRunResult(success=False, changes=changes, error=str(exc))
        context.apply_changes(changes)
        logger.info("Script rule %s updated %s fields on work item %s.", rule_name, len(changes), context.id)
        return ScriptRunResult(success=True, changes=changes)
