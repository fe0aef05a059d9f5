"""
src/shared.py
Shared environment helpers for the RuleBridge service.
Exports: composio_user_id, build_db_path, store_enabled, build_tracker_client
"""

import os

from src.integrations.composio_provider import build_tool_executor
from src.tracker.client import DEFAULT_COMMENT_TOOL, DEFAULT_UPDATE_TOOL, TrackerClient

DEFAULT_DB_PATH = "data/rulebridge.db"


def composio_user_id() -> str:
    """Return configured Composio user id with default fallback."""
    return os.getenv("COMPOSIO_USER_ID", "default")


def build_db_path() -> str:
    """Return configured SQLite path for rules and execution sessions."""
    return os.getenv("RULEBRIDGE_DB_PATH", DEFAULT_DB_PATH)


def store_enabled() -> bool:
    """Return whether execution sessions are persisted."""
    value = os.getenv("RULEBRIDGE_STORE_ENABLED", "true").strip().lower()
    return value not in {"0", "false", "no", "off"}


def build_tracker_client() -> TrackerClient:
    """Build the tracker write client backed by Composio tool execution."""
    return TrackerClient(
        execute_tool=build_tool_executor(user_id=composio_user_id()),
        comment_tool=os.getenv("RULEBRIDGE_COMMENT_TOOL", DEFAULT_COMMENT_TOOL).strip(),
        update_tool=os.getenv("RULEBRIDGE_UPDATE_TOOL", DEFAULT_UPDATE_TOOL).strip(),
    )
