"""Tracker write client: comments and field updates through Composio tools."""

from dataclasses import dataclass
import logging
from typing import Any, Callable

from src.common.tool_response import response_indicates_failure, summarize_tool_response

logger = logging.getLogger(__name__)

DEFAULT_COMMENT_TOOL = "JIRA_ADD_COMMENT"
DEFAULT_UPDATE_TOOL = "JIRA_EDIT_ISSUE"


class TrackerWriteError(RuntimeError):
    """Raised when the tracking system rejects or fails a write."""


@dataclass
class TrackerClient:
    """Performs work-item writes by executing named Composio tools."""

    execute_tool: Callable[[str, dict[str, Any]], Any]
    comment_tool: str = DEFAULT_COMMENT_TOOL
    update_tool: str = DEFAULT_UPDATE_TOOL

    def add_comment(self, work_item_id: int, text: str, project: str = "") -> None:
        """Post one comment on a work item."""
        self._run(
            self.comment_tool,
            {"issue_id_or_key": str(work_item_id), "comment": text},
            project=project,
        )

    def update_fields(self, work_item_id: int, fields: dict[str, Any], project: str = "") -> None:
        """Write a batch of field values in a single tool call."""
        if not fields:
            return
        self._run(
            self.update_tool,
            {"issue_id_or_key": str(work_item_id), "fields": dict(fields)},
            project=project,
        )

    def _run(self, slug: str, arguments: dict[str, Any], *, project: str) -> Any:
        try:
            response = self.execute_tool(slug, arguments)
        except Exception as exc:
            raise TrackerWriteError(f"{slug} failed: {exc}") from exc
        if response_indicates_failure(response):
            raise TrackerWriteError(f"{slug} failed: {summarize_tool_response(response)}")
        logger.info(
            "Tracker write %s succeeded for work item %s (project=%s).",
            slug,
            arguments.get("issue_id_or_key"),
            project or "-",
        )
        return response
