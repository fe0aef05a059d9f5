"""
src/rule_runner.py
Work-item rules engine public wrapper.
Exports: run_rules_for_event(payload) -> RuleRunResult, build_engine_runtime, get_guard, get_webhook_throttle
"""

from dataclasses import dataclass
import logging
import threading
from typing import Any

from src.actions.registry import ActionDispatcher, build_default_handlers
from src.config import Config
from src.engine.guard import ExecutionGuard, WebhookThrottle
from src.engine.orchestrator import EngineRuntime, execute_rules
from src.engine.payload import parse_work_item_event
from src.engine.session import ExecutionSession
from src.rule_store import get_active_rules, record_execution_session
from src.script.executor import ScriptRuleExecutor
from src.shared import build_db_path, build_tracker_client, store_enabled

logger = logging.getLogger(__name__)

_state_lock = threading.Lock()
_guard: ExecutionGuard | None = None
_throttle: WebhookThrottle | None = None


@dataclass
class RuleRunResult:
    """Return type for one processed webhook event."""

    status: str
    work_item_id: int
    session: ExecutionSession | None = None


def get_guard() -> ExecutionGuard:
    """Return the process-wide execution guard, creating it on first use."""
    global _guard
    with _state_lock:
        if _guard is None:
            _guard = ExecutionGuard(Config.get_guard_settings())
        return _guard


def get_webhook_throttle() -> WebhookThrottle:
    """Return the process-wide webhook throttle, creating it on first use."""
    global _throttle
    with _state_lock:
        if _throttle is None:
            _throttle = WebhookThrottle(min_interval=Config.get_webhook_min_interval())
        return _throttle


def reset_runtime_state() -> None:
    """Drop the process-wide guard and throttle (used by tests)."""
    global _guard, _throttle
    with _state_lock:
        _guard = None
        _throttle = None


def build_engine_runtime() -> EngineRuntime:
    """Wire the engine to the SQLite store and the Composio-backed tracker client."""
    tracker = build_tracker_client()
    script_executor = ScriptRuleExecutor(tracker)
    db_path = build_db_path()

    def record_session(session: ExecutionSession) -> None:
        record_execution_session(db_path, session)

    return EngineRuntime(
        get_active_rules=lambda rule_set: get_active_rules(db_path, rule_set),
        dispatcher=ActionDispatcher(build_default_handlers(tracker, script_executor)),
        script_executor=script_executor,
        guard=get_guard(),
        record_session=record_session if store_enabled() else None,
    )


def run_rules_for_event(payload: dict[str, Any]) -> RuleRunResult:
    """Run the rules engine for one work-item webhook.

    Args:
        payload: Work-item service-hook JSON body.
    Returns:
        RuleRunResult with "accepted" (and the session) or "rate_limited".
    Raises:
        PayloadError: Invalid payload.
        RuntimeError: Missing configuration.
    """
    context = parse_work_item_event(payload)
    if not get_webhook_throttle().allow(context.id):
        logger.info("Webhook for work item %s rate limited.", context.id)
        return RuleRunResult(status="rate_limited", work_item_id=context.id)
    session = execute_rules(context, build_engine_runtime())
    return RuleRunResult(status="accepted", work_item_id=context.id, session=session)
