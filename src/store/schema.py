"""SQLite schema initialization for the RuleBridge rule store."""

import sqlite3
from pathlib import Path


def prepare_db_path(db_path: str) -> Path:
    """Create parent directories for file-backed SQLite paths."""
    path = Path(db_path)
    if str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    return path


def init_rule_db(db_path: str) -> None:
    """
    Create rule and session tables and indexes when absent.

    Args:
        db_path: SQLite file path.
    Side effects:
        Creates SQLite file, schema, and indexes.
    """
    path = prepare_db_path(db_path)
    with sqlite3.connect(path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                expression TEXT NOT NULL,
                applies_to TEXT NOT NULL DEFAULT 'All',
                rule_set TEXT NOT NULL,
                priority INTEGER NOT NULL DEFAULT 100,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(name, rule_set)
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rule_actions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rule_id INTEGER NOT NULL,
                action_name TEXT NOT NULL,
                condition_type TEXT NOT NULL DEFAULT 'Success',
                execution_order INTEGER NOT NULL DEFAULT 1
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rule_action_parameters (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                action_id INTEGER NOT NULL,
                param_key TEXT NOT NULL,
                param_value TEXT NOT NULL DEFAULT '',
                UNIQUE(action_id, param_key)
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS execution_sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL UNIQUE,
                work_item_id INTEGER NOT NULL,
                work_item_type TEXT,
                project_name TEXT,
                total_rules INTEGER NOT NULL,
                passed_rules INTEGER NOT NULL,
                failed_rules INTEGER NOT NULL,
                skipped_rules INTEGER NOT NULL,
                duration_ms REAL NOT NULL,
                session_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_rules_set_priority ON rules(rule_set, is_active, priority)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_actions_rule ON rule_actions(rule_id)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_params_action ON rule_action_parameters(action_id)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_sessions_item_created ON execution_sessions(work_item_id, created_at DESC)"
        )
