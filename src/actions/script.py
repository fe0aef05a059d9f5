"""ExecuteXmlCalculation action: runs a stored legacy snippet."""

from typing import Any

from src.actions.base import ActionHandler
from src.rules.types import RuleActionSpec, WorkItemContext
from src.script.executor import ScriptRuleExecutor
from src.tracker.client import TrackerClient

SCRIPT_NAME_PARAM = "XmlRuleName"
SCRIPT_SOURCE_PARAMS = ("CSharpCode", "ScriptSource")


class ScriptRunError(RuntimeError):
    """Raised when a snippet run reports failure."""


def script_source(action: RuleActionSpec) -> str:
    for key in SCRIPT_SOURCE_PARAMS:
        value = action.param(key)
        if value.strip():
            return value
    return ""


class ExecuteXmlCalculationHandler(ActionHandler):
    action_name = "ExecuteXmlCalculation"

    def __init__(self, tracker: TrackerClient, executor: ScriptRuleExecutor | None = None):
        super().__init__(tracker)
        self.executor = executor or ScriptRuleExecutor(tracker)

    def execute(self, context: WorkItemContext, action: RuleActionSpec) -> dict[str, Any]:
        name = action.param(SCRIPT_NAME_PARAM).strip()
        source = script_source(action)
        if not name or not source:
            self.logger.warning(
                "ExecuteXmlCalculation on work item %s is missing XmlRuleName or CSharpCode.",
                context.id,
            )
            return {}
        result = self.executor.run(source, context, rule_name=name)
        if not result.success:
            raise ScriptRunError(f"Script '{name}' failed: {result.error}")
        return result.changes
