"""
src/main.py
FastAPI application - all endpoints for RuleBridge.
Endpoints: GET /health, POST /webhooks/workitem, GET /rules/{rule_set}, POST /rules/save,
POST /rules/import-xml, POST /rules/convert-xml-to-json, GET /rules/manual-review/pending,
POST /rules/manual-review/{rule_id}/complete, POST /rules/manual-review/{rule_id}/reject
"""

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Any
import logging

from fastapi import FastAPI, HTTPException
from dotenv import load_dotenv

from src.engine.guard import ExecutionGuard
from src.engine.payload import PayloadError
from src.rule_runner import get_guard, run_rules_for_event
from src.rule_store import (
    delete_rule,
    find_rule,
    get_active_rules,
    get_rule_by_id,
    init_rule_db,
    list_manual_review_rules,
    save_rules,
    update_rule,
    upsert_rule,
)
from src.rules.converter import DEFAULT_RULE_SET, convert_xml_rules
from src.rules.importer import DEFAULT_IMPORT_RULE_SET, import_xml_rules
from src.rules.mapping import rule_from_dict, rule_to_dict
from src.rules.review import complete_review, completion_from_dict, reject_rule, review_item
from src.rules.types import RuleDefinition
from src.shared import build_db_path

logger = logging.getLogger(__name__)
load_dotenv()


def initialize_store() -> None:
    """Initialize SQLite rule store schema at app startup (best-effort)."""
    try:
        init_rule_db(build_db_path())
    except Exception:
        logger.exception("Failed to initialize RuleBridge rule store.")


async def sweep_guard_periodically(guard: ExecutionGuard) -> None:
    """Run the guard eviction sweep on its configured interval until cancelled."""
    interval = guard.settings.sweep_interval.total_seconds()
    while True:
        await asyncio.sleep(interval)
        try:
            guard.sweep()
            logger.debug("Guard stats after sweep: %s", guard.stats())
        except Exception:
            logger.exception("Scheduled guard sweep failed.")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """FastAPI lifespan hook for startup/shutdown side effects."""
    initialize_store()
    sweeper = asyncio.create_task(sweep_guard_periodically(get_guard()))
    yield
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper


app = FastAPI(title="RuleBridge", lifespan=lifespan)


@app.get("/health")
def health_check() -> dict[str, str]:
    """Return service health status."""
    return {"status": "ok"}


@app.post("/webhooks/workitem")
def workitem_webhook(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Run the rules engine for a work-item change event.

    Args:
        payload: Work-item service-hook JSON body.
    Returns:
        "accepted" with session counts, or "rate_limited".
    Raises:
        HTTPException 400: Invalid payload or missing env vars.
        HTTPException 500: Unexpected engine failure.
    """
    try:
        result = run_rules_for_event(payload=payload)
    except PayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"Rule run failed: {exc}") from exc
    response: dict[str, Any] = {"status": result.status, "work_item_id": result.work_item_id}
    if result.session is not None:
        response["session_id"] = result.session.session_id
        response.update(result.session.counts())
    return response


@app.get("/rules/manual-review/pending")
def manual_review_rules(rule_set: str | None = None) -> dict[str, Any]:
    """List inactive placeholder rules produced by the converter."""
    rules = list_manual_review_rules(build_db_path(), rule_set)
    return {
        "count": len(rules),
        "rules": [rule_to_dict(rule) for rule in rules],
        "reviews": [review_item(rule) for rule in rules],
    }


def _stored_rule(db_path: str, rule_id: int) -> RuleDefinition:
    """Return a stored rule by id, or raise 404."""
    rule = get_rule_by_id(db_path, rule_id)
    if rule is None:
        raise HTTPException(status_code=404, detail=f"Rule {rule_id} not found.")
    return rule


def _save_reviewed(db_path: str, rule_id: int, rule: RuleDefinition) -> None:
    """Overwrite a reviewed rule, or raise 409 when its new name is taken."""
    clash = find_rule(db_path, rule.name, rule.rule_set)
    if clash is not None and clash.id != rule_id:
        raise HTTPException(
            status_code=409,
            detail=f"Rule '{rule.name}' already exists in rule set '{rule.rule_set}'.",
        )
    update_rule(db_path, rule_id, rule)


@app.post("/rules/manual-review/{rule_id}/complete")
def complete_manual_review(rule_id: int, payload: dict[str, Any]) -> dict[str, Any]:
    """
    Replace a manual-review placeholder with its reviewed expression and actions.

    Args:
        rule_id: Placeholder rule id.
        payload: reviewedExpression, reviewedActions, reviewerName, and optional
            newRuleName, appliesTo, ruleSet, priority, activateImmediately, reviewNotes.
    Returns:
        The stored rule.
    Raises:
        HTTPException 400: Missing expression or actions.
        HTTPException 404: Unknown rule id.
        HTTPException 409: The reviewed name is used by another rule.
    """
    db_path = build_db_path()
    placeholder = _stored_rule(db_path, rule_id)
    try:
        completion = completion_from_dict(payload)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    rule = complete_review(placeholder, completion)
    _save_reviewed(db_path, rule_id, rule)
    logger.info(
        "Manual review completed for rule %s (%s -> %s) by %s; active=%s.",
        rule_id,
        placeholder.name,
        rule.name,
        completion.reviewer_name or "-",
        rule.is_active,
    )
    return {"status": "completed", "reviewed_by": completion.reviewer_name, "rule": rule_to_dict(rule)}


@app.post("/rules/manual-review/{rule_id}/reject")
def reject_manual_review(rule_id: int, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    """Delete a placeholder, or deactivate it under a _Rejected name."""
    payload = payload or {}
    db_path = build_db_path()
    rule = _stored_rule(db_path, rule_id)
    reason = str(payload.get("rejectionReason") or payload.get("rejection_reason") or "")
    if payload.get("deleteRule") or payload.get("delete_rule"):
        delete_rule(db_path, rule_id)
        logger.info("Rule %s deleted after manual review rejection: %s", rule_id, reason or "-")
        return {"status": "deleted", "rule_id": rule_id, "reason": reason}
    rejected = reject_rule(rule)
    _save_reviewed(db_path, rule_id, rejected)
    logger.info("Rule %s rejected and deactivated: %s", rule_id, reason or "-")
    return {"status": "rejected", "reason": reason, "rule": rule_to_dict(rejected)}


@app.get("/rules/{rule_set}")
def active_rules(rule_set: str) -> dict[str, Any]:
    """Return active rules for one rule set in priority order."""
    rules = get_active_rules(build_db_path(), rule_set)
    return {"rule_set": rule_set, "count": len(rules), "rules": [rule_to_dict(rule) for rule in rules]}


@app.post("/rules/save")
def save_rule_definitions(payload: dict[str, Any] | list[dict[str, Any]]) -> dict[str, Any]:
    """
    Upsert rules by (name, rule set).

    Args:
        payload: A list of rules, or {"rules": [...]}.
    Returns:
        Inserted and updated counts.
    Raises:
        HTTPException 400: When a rule is malformed.
    """
    items = payload.get("rules", []) if isinstance(payload, dict) else payload
    try:
        rules = [rule_from_dict(item) for item in items]
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not rules:
        raise HTTPException(status_code=400, detail="No rules provided.")
    counts = save_rules(build_db_path(), rules)
    return {"status": "saved", **counts}


def _legacy_source(payload: dict[str, Any]) -> str:
    """Return legacy rule source from xml_content or xml_lines, or raise 400."""
    source = str(payload.get("xml_content") or "").strip()
    lines = payload.get("xml_lines")
    if not source and isinstance(lines, list):
        source = "\n".join(str(line) for line in lines).strip()
    if not source:
        raise HTTPException(status_code=400, detail="xml_content or xml_lines is required.")
    return source


def _coerce_priority(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail="priority must be an integer.") from exc


@app.post("/rules/import-xml")
def import_legacy_rules(payload: dict[str, Any]) -> dict[str, Any]:
    """Import legacy rule blocks as executable script rules."""
    source = _legacy_source(payload)
    rule_set = str(payload.get("rule_set") or DEFAULT_IMPORT_RULE_SET).strip()
    db_path = build_db_path()
    result = import_xml_rules(
        source,
        upsert_rule=lambda rule: upsert_rule(db_path, rule),
        rule_set=rule_set,
        priority=_coerce_priority(payload.get("priority")),
    )
    return {
        "status": "imported" if result.imported_count else "no_rules_imported",
        "imported_count": result.imported_count,
        "inserted": result.count("inserted"),
        "updated": result.count("updated"),
        "failed": result.count("failed"),
        "rules": [
            {"name": rule.name, "status": rule.status, "error": rule.error} for rule in result.rules
        ],
    }


@app.post("/rules/convert-xml-to-json")
def convert_legacy_rules(payload: dict[str, Any]) -> dict[str, Any]:
    """Convert legacy rule blocks into structured rule JSON without saving them."""
    source = _legacy_source(payload)
    priority = _coerce_priority(payload.get("priority"))
    result = convert_xml_rules(
        source,
        rule_set=str(payload.get("rule_set") or DEFAULT_RULE_SET).strip(),
        priority=100 if priority is None else priority,
    )
    if not result.ok:
        raise HTTPException(status_code=400, detail=f"Conversion failed: {result.error}")
    active = sum(1 for rule in result.rules if rule.is_active)
    return {
        "status": "converted",
        "rules": [rule_to_dict(rule) for rule in result.rules],
        "notes": result.notes,
        "summary": {
            "total": len(result.rules),
            "active": active,
            "manual_review": len(result.rules) - active,
        },
    }
