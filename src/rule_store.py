"""
src/rule_store.py
Facade for RuleBridge SQLite persistence helpers.
Exports: init_rule_db, get_active_rules, find_rule, get_rule_by_id, upsert_rule, update_rule, delete_rule, save_rules, list_manual_review_rules, record_execution_session, query_recent_sessions
"""

from src.store.rules import (
    delete_rule,
    find_rule,
    get_active_rules,
    get_rule_by_id,
    list_manual_review_rules,
    save_rules,
    update_rule,
    upsert_rule,
)
from src.store.schema import init_rule_db
from src.store.sessions import query_recent_sessions, record_execution_session

__all__ = [
    "init_rule_db",
    "get_active_rules",
    "find_rule",
    "get_rule_by_id",
    "upsert_rule",
    "update_rule",
    "delete_rule",
    "save_rules",
    "list_manual_review_rules",
    "record_execution_session",
    "query_recent_sessions",
]
