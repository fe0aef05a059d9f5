"""Execution-session sink and lookups."""

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

from src.engine.session import ExecutionSession
from src.store.schema import init_rule_db


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_text(value: dict[str, Any] | None) -> str:
    return json.dumps(value or {}, ensure_ascii=True, default=str)


def record_execution_session(db_path: str, session: ExecutionSession) -> None:
    """Insert one finished execution session row."""
    init_rule_db(db_path)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO execution_sessions (
                session_id, work_item_id, work_item_type, project_name, total_rules,
                passed_rules, failed_rules, skipped_rules, duration_ms, session_json, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session.session_id,
                session.work_item_id,
                session.work_item_type,
                session.project_name,
                session.total_rules,
                session.passed_rules,
                session.failed_rules,
                session.skipped_rules,
                session.duration_ms,
                _json_text(session.to_dict()),
                _utc_now_iso(),
            ),
        )


def query_recent_sessions(db_path: str, work_item_id: int, limit: int = 10) -> list[dict[str, Any]]:
    """Return the most recent session payloads for one work item, newest first."""
    init_rule_db(db_path)
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(
            """
            SELECT session_json
            FROM execution_sessions
            WHERE work_item_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (work_item_id, limit),
        ).fetchall()
    return [json.loads(row[0]) for row in rows]
