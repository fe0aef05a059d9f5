"""
src/engine/orchestrator.py
Rule execution pipeline for one work-item event.
Exports: EngineRuntime, execute_rules, ensure_referenced_fields
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Callable
from uuid import uuid4

from src.actions.registry import ActionDispatcher
from src.actions.script import script_source
from src.engine.expression import ExpressionError, evaluate_rule_expression, extract_referenced_fields
from src.engine.guard import ExecutionGuard
from src.engine.session import (
    ACTION_FAILED,
    ACTION_SUCCESS,
    STATUS_FAILED,
    STATUS_PASSED,
    STATUS_SKIPPED,
    ActionOutcome,
    ExecutionSession,
    FieldChange,
    RuleExecutionResult,
)
from src.rules.types import (
    CONDITION_FAILURE,
    CONDITION_SUCCESS,
    RuleDefinition,
    WorkItemContext,
    normalize_field_name,
    script_rule_name,
)
from src.script.executor import ScriptRuleExecutor

logger = logging.getLogger(__name__)

SCRIPT_ACTION_NAME = "ExecuteXmlCalculation"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EngineRuntime:
    """Collaborators for one engine instance; injected so tests can swap them."""

    get_active_rules: Callable[[str], list[RuleDefinition]]
    dispatcher: ActionDispatcher
    script_executor: ScriptRuleExecutor
    guard: ExecutionGuard
    record_session: Callable[[ExecutionSession], None] | None = None
    clock: Callable[[], datetime] = field(default=_utc_now)


def ensure_referenced_fields(context: WorkItemContext, rules: list[RuleDefinition]) -> list[str]:
    """Add referenced-but-absent fields as None so expressions can read them."""
    added: list[str] = []
    for rule in rules:
        for name in sorted(extract_referenced_fields(rule.expression)):
            if name not in context.fields:
                context.fields[name] = None
                added.append(name)
    if added:
        logger.debug("Pre-populated missing fields for work item %s: %s", context.id, added)
    return added


def _result(rule: RuleDefinition, status: str, error: str | None = None) -> RuleExecutionResult:
    return RuleExecutionResult(
        rule_name=rule.name,
        rule_set=rule.rule_set,
        applies_to=rule.applies_to,
        priority=rule.priority,
        expression=rule.expression,
        status=status,
        error_message=error,
    )


def _evaluate_rule(
    rule: RuleDefinition, context: WorkItemContext, runtime: EngineRuntime
) -> RuleExecutionResult:
    try:
        passed = evaluate_rule_expression(rule.expression, context)
    except ExpressionError as exc:
        logger.warning("Rule %s failed to evaluate for work item %s: %s", rule.name, context.id, exc)
        return _result(rule, STATUS_FAILED, str(exc))

    if passed:
        runtime.guard.record(rule.name, context)
    result = _result(rule, STATUS_PASSED if passed else STATUS_FAILED)
    actions = rule.actions_for(CONDITION_SUCCESS if passed else CONDITION_FAILURE)
    result.actions = runtime.dispatcher.execute(actions, context)
    logger.info(
        "Rule %s %s for work item %s (%s actions).",
        rule.name,
        result.status,
        context.id,
        len(result.actions),
    )
    return result


def _run_script_rule(
    rule: RuleDefinition, context: WorkItemContext, runtime: EngineRuntime
) -> RuleExecutionResult:
    action = next(
        (a for a in rule.actions if a.action_name.strip().lower() == SCRIPT_ACTION_NAME.lower()),
        None,
    )
    source = script_source(action) if action is not None else ""
    if action is None or not source:
        logger.warning("Script rule %s has no script source; skipping.", rule.name)
        return _result(rule, STATUS_SKIPPED, "Script rule has no script source.")

    name = script_rule_name(rule.expression) or rule.name
    before = dict(context.fields)
    run = runtime.script_executor.run(source, context, rule_name=name)
    result = _result(rule, STATUS_PASSED if run.success else STATUS_FAILED, run.error)
    result.actions = [
        ActionOutcome(
            action_name=action.action_name,
            condition_type=action.condition_type,
            execution_order=action.execution_order,
            status=ACTION_SUCCESS if run.success else ACTION_FAILED,
            error_message=run.error,
            parameters={"XmlRuleName": name},
            field_changes=[
                FieldChange(field_name, before.get(normalize_field_name(field_name)), value)
                for field_name, value in run.changes.items()
            ]
            if run.success
            else [],
        )
    ]
    return result


def execute_rules(context: WorkItemContext, runtime: EngineRuntime) -> ExecutionSession:
    """
    Run every applicable active rule for one work-item event.

    Expression rules run in ascending priority behind the execution guard;
    script rules run afterwards in store order and bypass the guard.

    Args:
        context: Parsed work-item context; mutated in place by successful writes.
        runtime: Engine collaborators.
    Returns:
        The finished ExecutionSession (also handed to the session sink).
    """
    session = ExecutionSession(
        session_id=uuid4().hex,
        work_item_id=context.id,
        work_item_type=context.work_item_type,
        project_name=context.project,
        start_time=runtime.clock(),
    )
    rules = [rule for rule in runtime.get_active_rules(context.project) if rule.is_active]
    rules.sort(key=lambda rule: rule.priority)
    logger.info(
        "Work item %s (%s / %s): %s active rules.",
        context.id,
        context.project or "-",
        context.work_item_type or "-",
        len(rules),
    )

    if rules:
        ensure_referenced_fields(context, rules)
        work_item_type = context.work_item_type
        expression_rules = [
            rule for rule in rules if not rule.is_script_rule and rule.applies_to_type(work_item_type)
        ]
        script_rules = [rule for rule in rules if rule.is_script_rule]

        admitted, blocked = runtime.guard.filter_rules(expression_rules, context)
        admitted_ids = {id(rule) for rule in admitted}
        reasons = {id(rule): reason for rule, reason in blocked}
        for rule in expression_rules:
            if id(rule) in admitted_ids:
                try:
                    session.results.append(_evaluate_rule(rule, context, runtime))
                finally:
                    runtime.guard.release(rule.name, context)
            else:
                session.results.append(_result(rule, STATUS_SKIPPED, reasons.get(id(rule))))

        for rule in script_rules:
            if not rule.applies_to_type(work_item_type):
                logger.debug(
                    "Script rule %s does not apply to %s (appliesTo=%s).",
                    rule.name,
                    work_item_type,
                    rule.applies_to,
                )
                continue
            session.results.append(_run_script_rule(rule, context, runtime))

    session.total_rules = len(session.results)
    session.end_time = runtime.clock()
    logger.info(
        "Session %s for work item %s: passed=%s failed=%s skipped=%s in %.1f ms.",
        session.session_id,
        context.id,
        session.passed_rules,
        session.failed_rules,
        session.skipped_rules,
        session.duration_ms,
    )
    if runtime.record_session is not None:
        try:
            runtime.record_session(session)
        except Exception:
            logger.exception("Failed to record execution session %s.", session.session_id)
    return session
