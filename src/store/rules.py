"""Read/write helpers for rules, their actions, and action parameters."""

from datetime import datetime, timezone
import sqlite3

from src.rules.types import MANUAL_REVIEW_SUFFIX, RuleActionSpec, RuleDefinition
from src.store.schema import init_rule_db


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _load_actions(conn: sqlite3.Connection, rule_ids: list[int]) -> dict[int, list[RuleActionSpec]]:
    if not rule_ids:
        return {}
    marks = ",".join("?" for _ in rule_ids)
    action_rows = conn.execute(
        f"""
        SELECT id, rule_id, action_name, condition_type, execution_order
        FROM rule_actions
        WHERE rule_id IN ({marks})
        ORDER BY execution_order ASC, id ASC
        """,
        rule_ids,
    ).fetchall()
    action_ids = [row[0] for row in action_rows]
    params: dict[int, list[tuple[str, str]]] = {}
    if action_ids:
        param_marks = ",".join("?" for _ in action_ids)
        for action_id, key, value in conn.execute(
            f"""
            SELECT action_id, param_key, param_value
            FROM rule_action_parameters
            WHERE action_id IN ({param_marks})
            ORDER BY id ASC
            """,
            action_ids,
        ).fetchall():
            params.setdefault(action_id, []).append((key, value))
    actions: dict[int, list[RuleActionSpec]] = {}
    for action_id, rule_id, name, condition_type, order in action_rows:
        actions.setdefault(rule_id, []).append(
            RuleActionSpec(
                action_name=name,
                condition_type=condition_type,
                execution_order=order,
                parameters=params.get(action_id, []),
            )
        )
    return actions


def _rules_from_rows(conn: sqlite3.Connection, rows: list[tuple]) -> list[RuleDefinition]:
    actions = _load_actions(conn, [row[0] for row in rows])
    return [
        RuleDefinition(
            id=rule_id,
            name=name,
            expression=expression,
            applies_to=applies_to,
            rule_set=rule_set,
            priority=priority,
            is_active=bool(is_active),
            actions=actions.get(rule_id, []),
        )
        for rule_id, name, expression, applies_to, rule_set, priority, is_active in rows
    ]


_RULE_COLUMNS = "id, name, expression, applies_to, rule_set, priority, is_active"


def get_active_rules(db_path: str, rule_set: str) -> list[RuleDefinition]:
    """
    Return active rules for a rule set with actions and parameters loaded.

    Args:
        db_path: SQLite file path.
        rule_set: Rule set (project) name, matched case-insensitively.
    Returns:
        Rules ordered by ascending priority, then insertion order.
    """
    init_rule_db(db_path)
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(
            f"""
            SELECT {_RULE_COLUMNS}
            FROM rules
            WHERE is_active = 1 AND rule_set = ? COLLATE NOCASE
            ORDER BY priority ASC, id ASC
            """,
            (rule_set,),
        ).fetchall()
        return _rules_from_rows(conn, rows)


def find_rule(db_path: str, name: str, rule_set: str) -> RuleDefinition | None:
    """Return one rule by (name, rule_set) or None."""
    init_rule_db(db_path)
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(
            f"SELECT {_RULE_COLUMNS} FROM rules WHERE name = ? AND rule_set = ?",
            (name, rule_set),
        ).fetchall()
        rules = _rules_from_rows(conn, rows)
    return rules[0] if rules else None


def get_rule_by_id(db_path: str, rule_id: int) -> RuleDefinition | None:
    """Return one rule by primary key or None."""
    init_rule_db(db_path)
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(f"SELECT {_RULE_COLUMNS} FROM rules WHERE id = ?", (rule_id,)).fetchall()
        rules = _rules_from_rows(conn, rows)
    return rules[0] if rules else None


def _replace_actions(conn: sqlite3.Connection, rule_id: int, actions: list[RuleActionSpec]) -> None:
    old_ids = [row[0] for row in conn.execute("SELECT id FROM rule_actions WHERE rule_id = ?", (rule_id,))]
    if old_ids:
        marks = ",".join("?" for _ in old_ids)
        conn.execute(f"DELETE FROM rule_action_parameters WHERE action_id IN ({marks})", old_ids)
        conn.execute("DELETE FROM rule_actions WHERE rule_id = ?", (rule_id,))
    for action in actions:
        cursor = conn.execute(
            """
            INSERT INTO rule_actions (rule_id, action_name, condition_type, execution_order)
            VALUES (?, ?, ?, ?)
            """,
            (rule_id, action.action_name, action.condition_type, action.execution_order),
        )
        conn.executemany(
            """
            INSERT OR REPLACE INTO rule_action_parameters (action_id, param_key, param_value)
            VALUES (?, ?, ?)
            """,
            [(cursor.lastrowid, key, value or "") for key, value in action.parameters],
        )


def upsert_rule(db_path: str, rule: RuleDefinition) -> str:
    """
    Insert a rule or replace the existing one with the same (name, rule_set).

    Returns:
        "inserted" or "updated".
    """
    init_rule_db(db_path)
    now = _utc_now_iso()
    with sqlite3.connect(db_path) as conn:
        existing = conn.execute(
            "SELECT id FROM rules WHERE name = ? AND rule_set = ?", (rule.name, rule.rule_set)
        ).fetchone()
        if existing:
            rule_id = existing[0]
            conn.execute(
                """
                UPDATE rules
                SET expression = ?, applies_to = ?, priority = ?, is_active = ?, updated_at = ?
                WHERE id = ?
                """,
                (rule.expression, rule.applies_to, rule.priority, int(rule.is_active), now, rule_id),
            )
            status = "updated"
        else:
            cursor = conn.execute(
                """
                INSERT INTO rules (
                    name, expression, applies_to, rule_set, priority, is_active, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    rule.name,
                    rule.expression,
                    rule.applies_to,
                    rule.rule_set,
                    rule.priority,
                    int(rule.is_active),
                    now,
                    now,
                ),
            )
            rule_id = cursor.lastrowid
            status = "inserted"
        _replace_actions(conn, rule_id, rule.actions)
    rule.id = rule_id
    return status


def update_rule(db_path: str, rule_id: int, rule: RuleDefinition) -> bool:
    """
    Overwrite an existing rule in place, including its name and rule set.

    Returns:
        False when no rule has this id.
    Raises:
        sqlite3.IntegrityError: When the new (name, rule_set) belongs to another rule.
    """
    init_rule_db(db_path)
    with sqlite3.connect(db_path) as conn:
        cursor = conn.execute(
            """
            UPDATE rules
            SET name = ?, expression = ?, applies_to = ?, rule_set = ?, priority = ?,
                is_active = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                rule.name,
                rule.expression,
                rule.applies_to,
                rule.rule_set,
                rule.priority,
                int(rule.is_active),
                _utc_now_iso(),
                rule_id,
            ),
        )
        if cursor.rowcount == 0:
            return False
        _replace_actions(conn, rule_id, rule.actions)
    rule.id = rule_id
    return True


def delete_rule(db_path: str, rule_id: int) -> bool:
    """Delete a rule with its actions and parameters. Returns whether it existed."""
    init_rule_db(db_path)
    with sqlite3.connect(db_path) as conn:
        _replace_actions(conn, rule_id, [])
        cursor = conn.execute("DELETE FROM rules WHERE id = ?", (rule_id,))
    return cursor.rowcount > 0


def save_rules(db_path: str, rules: list[RuleDefinition]) -> dict[str, int]:
    """Upsert many rules and return inserted/updated counts."""
    counts = {"inserted": 0, "updated": 0}
    for rule in rules:
        counts[upsert_rule(db_path, rule)] += 1
    return counts


def list_manual_review_rules(db_path: str, rule_set: str | None = None) -> list[RuleDefinition]:
    """Return inactive manual-review placeholder rules awaiting human conversion."""
    init_rule_db(db_path)
    query = (
        f"SELECT {_RULE_COLUMNS} FROM rules "
        "WHERE is_active = 0 AND name LIKE ? ESCAPE '\\'"
    )
    params: list[object] = [f"%\\{MANUAL_REVIEW_SUFFIX}"]
    if rule_set:
        query += " AND rule_set = ? COLLATE NOCASE"
        params.append(rule_set)
    query += " ORDER BY rule_set ASC, priority ASC, id ASC"
    with sqlite3.connect(db_path) as conn:
        rows = conn.execute(query, params).fetchall()
        return _rules_from_rows(conn, rows)
