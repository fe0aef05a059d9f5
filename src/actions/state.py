"""ChangeState and TransitionToState actions."""

from typing import Any

from src.actions.base import ActionHandler
from src.rules.types import RuleActionSpec, WorkItemContext


class ChangeStateHandler(ActionHandler):
    """Writes every parameter as a field in one batch."""

    action_name = "ChangeState"

    def execute(self, context: WorkItemContext, action: RuleActionSpec) -> dict[str, Any]:
        fields = {key: value for key, value in action.parameters if key.strip()}
        if not fields:
            self.logger.warning("ChangeState on work item %s has no parameters.", context.id)
            return {}
        return self.write_fields(context, fields)


class TransitionToStateHandler(ActionHandler):
    action_name = "TransitionToState"

    def execute(self, context: WorkItemContext, action: RuleActionSpec) -> dict[str, Any]:
        new_state = action.param("NewState").strip()
        if not new_state:
            raise ValueError("TransitionToState requires NewState.")
        fields = {"System.State": new_state}
        reason = action.param("Reason").strip()
        if reason:
            fields["System.Reason"] = reason
        written = self.write_fields(context, fields)
        self.logger.info("Work item %s transitioned to %s.", context.id, new_state)

        comment = action.param("Comment").strip()
        if comment:
            try:
                self.tracker.add_comment(context.id, comment, context.project)
            except Exception:
                self.logger.exception(
                    "Transition comment failed for work item %s; state change kept.", context.id
                )
        return written
