"""AddComment action."""

from typing import Any

from src.actions.base import ActionHandler
from src.rules.types import RuleActionSpec, WorkItemContext


class AddCommentHandler(ActionHandler):
    action_name = "AddComment"

    def execute(self, context: WorkItemContext, action: RuleActionSpec) -> dict[str, Any]:
        text = action.param("CommentText").strip()
        if not text:
            self.logger.warning(
                "AddComment on work item %s has no CommentText; nothing posted.", context.id
            )
            return {}
        self.tracker.add_comment(context.id, text, context.project)
        self.logger.info("Comment added to work item %s.", context.id)
        return {}
