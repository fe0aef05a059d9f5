"""Base class shared by all action handlers."""

import logging
from typing import Any

from src.rules.types import RuleActionSpec, WorkItemContext
from src.tracker.client import TrackerClient


class ActionHandler:
    """
    Strategy for one named action.

    Subclasses set `action_name` and implement `execute`, returning the field
    writes that reached the tracker (dotted name -> value). Failures raise;
    the dispatcher records them.
    """

    action_name = ""

    def __init__(self, tracker: TrackerClient):
        self.tracker = tracker
        self.logger = logging.getLogger(f"src.actions.{self.action_name or 'handler'}")

    def execute(self, context: WorkItemContext, action: RuleActionSpec) -> dict[str, Any]:
        raise NotImplementedError

    def write_fields(self, context: WorkItemContext, fields: dict[str, Any]) -> dict[str, Any]:
        """Push one batch of field writes and return it for bookkeeping."""
        self.tracker.update_fields(context.id, fields, context.project)
        return dict(fields)


def field_text(context: WorkItemContext, name: str) -> str:
    """Read a field as text; missing or null reads as ""."""
    value = context.get(name)
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
