"""
src/actions/registry.py
Action dispatcher: name -> handler resolution with per-action failure isolation.
Exports: ActionDispatcher, build_default_handlers
"""

import logging

from src.actions.base import ActionHandler
from src.actions.comment import AddCommentHandler
from src.actions.fields import SetFieldHandler, UpdateFieldHandler
from src.actions.risk import RiskCalculationHandler
from src.actions.script import ExecuteXmlCalculationHandler
from src.actions.state import ChangeStateHandler, TransitionToStateHandler
from src.engine.session import (
    ACTION_FAILED,
    ACTION_SKIPPED,
    ACTION_SUCCESS,
    ActionOutcome,
    FieldChange,
)
from src.rules.types import RuleActionSpec, WorkItemContext, normalize_field_name
from src.script.executor import ScriptRuleExecutor
from src.tracker.client import TrackerClient

logger = logging.getLogger(__name__)


def build_default_handlers(
    tracker: TrackerClient, script_executor: ScriptRuleExecutor | None = None
) -> list[ActionHandler]:
    """Instantiate every built-in handler against one tracker client."""
    return [
        AddCommentHandler(tracker),
        SetFieldHandler(tracker),
        UpdateFieldHandler(tracker),
        ChangeStateHandler(tracker),
        TransitionToStateHandler(tracker),
        RiskCalculationHandler(tracker),
        ExecuteXmlCalculationHandler(tracker, script_executor),
    ]


class ActionDispatcher:
    """Resolves action names (case-insensitive) and runs them one by one."""

    def __init__(self, handlers: list[ActionHandler]):
        self._handlers: dict[str, ActionHandler] = {}
        for handler in handlers:
            key = handler.action_name.strip().lower()
            if not key:
                raise ValueError(f"Handler {type(handler).__name__} has no action_name.")
            if key in self._handlers:
                raise ValueError(f"Duplicate action handler registered for '{handler.action_name}'.")
            self._handlers[key] = handler

    @property
    def action_names(self) -> list[str]:
        return sorted(handler.action_name for handler in self._handlers.values())

    def resolve(self, action_name: str) -> ActionHandler | None:
        return self._handlers.get((action_name or "").strip().lower())

    def execute(self, actions: list[RuleActionSpec], context: WorkItemContext) -> list[ActionOutcome]:
        """
        Run actions in ascending execution order.

        Args:
            actions: Actions for one rule outcome.
            context: Work-item context, updated in place by successful writes.
        Returns:
            One ActionOutcome per action; failures never stop later actions.
        """
        outcomes: list[ActionOutcome] = []
        for action in sorted(actions, key=lambda item: item.execution_order):
            outcome = ActionOutcome(
                action_name=action.action_name,
                condition_type=action.condition_type,
                execution_order=action.execution_order,
                status=ACTION_SUCCESS,
                parameters=action.params_dict(),
            )
            handler = self.resolve(action.action_name)
            if handler is None:
                logger.warning(
                    "No handler for action '%s' on work item %s; skipping.",
                    action.action_name,
                    context.id,
                )
                outcome.status = ACTION_SKIPPED
                outcome.error_message = f"Unknown action: {action.action_name}"
                outcomes.append(outcome)
                continue

            before = dict(context.fields)
            try:
                written = handler.execute(context, action) or {}
            except Exception as exc:
                logger.exception(
                    "Action %s failed for work item %s.", action.action_name, context.id
                )
                outcome.status = ACTION_FAILED
                outcome.error_message = str(exc)
                outcomes.append(outcome)
                continue

            outcome.field_changes = [
                FieldChange(
                    field_name=name,
                    old_value=before.get(normalize_field_name(name)),
                    new_value=value,
                )
                for name, value in written.items()
            ]
            context.apply_changes(written)
            outcomes.append(outcome)
        return outcomes
