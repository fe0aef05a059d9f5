"""
tests/test_main.py
Unit tests for src/main.py (FastAPI endpoints).
"""

import pytest
from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient


@pytest.fixture
def client():
    from src.main import app
    return TestClient(app)


LEGACY_XML = (
    '<rules><rule name="FlagActive" appliesTo="Task">'
    'if (self["System.State"] == "Active") { self["Custom.Flag"] = "Yes"; }'
    '</rule><rule name="LoopRule">while (true) { }</rule></rules>'
)


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@patch("src.main.build_db_path", return_value=":memory:")
@patch("src.main.init_rule_db")
def test_initialize_store_calls_db_init(mock_init_db, mock_db_path):
    from src.main import initialize_store

    initialize_store()
    mock_init_db.assert_called_once_with(":memory:")


@patch("src.main.init_rule_db", side_effect=RuntimeError("db init failed"))
def test_initialize_store_is_best_effort_on_error(mock_init_db):
    from src.main import initialize_store

    initialize_store()


@patch("src.main.run_rules_for_event")
def test_workitem_webhook_accepted(mock_run, client):
    session = MagicMock(session_id="abc")
    session.counts.return_value = {"total": 2, "passed": 1, "failed": 0, "skipped": 1}
    mock_run.return_value = MagicMock(status="accepted", work_item_id=42, session=session)

    response = client.post("/webhooks/workitem", json={"resource": {"workItemId": 42}})

    assert response.status_code == 200
    assert response.json() == {
        "status": "accepted",
        "work_item_id": 42,
        "session_id": "abc",
        "total": 2,
        "passed": 1,
        "failed": 0,
        "skipped": 1,
    }


@patch("src.main.run_rules_for_event")
def test_workitem_webhook_rate_limited(mock_run, client):
    mock_run.return_value = MagicMock(status="rate_limited", work_item_id=42, session=None)

    response = client.post("/webhooks/workitem", json={"id": 42})

    assert response.status_code == 200
    assert response.json() == {"status": "rate_limited", "work_item_id": 42}


def test_workitem_webhook_invalid_payload_returns_400(client):
    response = client.post("/webhooks/workitem", json={"resource": {"fields": {"System.State": "New"}}})
    assert response.status_code == 400
    assert "id is missing" in response.json()["detail"]


@patch("src.main.run_rules_for_event")
def test_workitem_webhook_runtime_error_returns_400(mock_run, client):
    mock_run.side_effect = RuntimeError("Missing required env var: COMPOSIO_API_KEY")
    response = client.post("/webhooks/workitem", json={"id": 1})
    assert response.status_code == 400
    assert "COMPOSIO_API_KEY" in response.json()["detail"]


@patch("src.main.run_rules_for_event")
def test_workitem_webhook_unexpected_error_returns_500(mock_run, client):
    mock_run.side_effect = Exception("engine boom")
    response = client.post("/webhooks/workitem", json={"id": 1})
    assert response.status_code == 500
    assert "engine boom" in response.json()["detail"]


def test_save_and_list_rules(client):
    response = client.post(
        "/rules/save",
        json={
            "rules": [
                {
                    "name": "r1",
                    "expression": "1 == 1",
                    "ruleSet": "Alpha",
                    "priority": 2,
                    "actions": [
                        {"actionName": "AddComment", "parameters": {"CommentText": "hi"}}
                    ],
                },
                {"name": "r0", "expression": "1 == 1", "ruleSet": "Alpha", "priority": 1},
            ]
        },
    )
    assert response.status_code == 200
    assert response.json() == {"status": "saved", "inserted": 2, "updated": 0}

    listed = client.get("/rules/Alpha").json()
    assert listed["count"] == 2
    assert [rule["name"] for rule in listed["rules"]] == ["r0", "r1"]
    assert listed["rules"][1]["actions"][0]["parameters"] == [
        {"paramKey": "CommentText", "paramValue": "hi"}
    ]


def test_save_rules_rejects_bad_rule(client):
    response = client.post("/rules/save", json={"rules": [{"name": "no-expression"}]})
    assert response.status_code == 400
    assert "missing expression" in response.json()["detail"]


def test_save_rules_rejects_empty_payload(client):
    response = client.post("/rules/save", json={"rules": []})
    assert response.status_code == 400


def test_import_xml_stores_script_rules(client):
    response = client.post(
        "/rules/import-xml", json={"xml_content": LEGACY_XML, "rule_set": "Alpha", "priority": 9}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "imported"
    assert data["imported_count"] == 2
    assert data["inserted"] == 2

    rules = client.get("/rules/Alpha").json()["rules"]
    assert rules[0]["expression"] == 'XmlCalculationRule("FlagActive")'
    assert rules[0]["priority"] == 9


def test_import_xml_requires_source(client):
    response = client.post("/rules/import-xml", json={"xml_lines": []})
    assert response.status_code == 400


def test_import_xml_rejects_bad_priority(client):
    response = client.post("/rules/import-xml", json={"xml_content": LEGACY_XML, "priority": "high"})
    assert response.status_code == 400


def test_convert_xml_to_json_summarizes(client):
    response = client.post("/rules/convert-xml-to-json", json={"xml_lines": LEGACY_XML.replace("><", ">\n<").splitlines()}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["summary"] == {"total": 2, "active": 1, "manual_review": 1}
    assert data["rules"][0]["expression"] == 'body.Fields.System_State == "Active"'
    assert data["rules"][1]["name"] == "LoopRule_ManualReview"


def test_manual_review_pending_lists_saved_placeholders(client):
    converted = client.post("/rules/convert-xml-to-json", json={"xml_content": LEGACY_XML}).json()
    client.post("/rules/save", json={"rules": converted["rules"]})

    response = client.get("/rules/manual-review/pending")

    assert response.status_code == 200
    assert [rule["name"] for rule in response.json()["rules"]] == ["LoopRule_ManualReview"]


def _saved_placeholder_id(client):
    converted = client.post("/rules/convert-xml-to-json", json={"xml_content": LEGACY_XML}).json()
    client.post("/rules/save", json={"rules": converted["rules"]})
    return client.get("/rules/manual-review/pending").json()["reviews"][0]["id"]


def test_manual_review_pending_describes_legacy_script(client):
    _saved_placeholder_id(client)

    review = client.get("/rules/manual-review/pending").json()["reviews"][0]

    assert review["name"] == "LoopRule_ManualReview"
    assert "while (true)" in review["legacyScript"]
    assert review["complexityReasons"] == ["Loops"]


def test_complete_manual_review_activates_reviewed_rule(client):
    rule_id = _saved_placeholder_id(client)

    response = client.post(
        f"/rules/manual-review/{rule_id}/complete",
        json={
            "reviewedExpression": 'body.Fields.System_State == "Active"',
            "reviewedActions": [
                {"actionName": "SetField", "parameters": {"FieldName": "Custom.Loop", "FieldValue": "done"}}
            ],
            "reviewerName": "Ada",
            "activateImmediately": True,
            "reviewNotes": "Loop replaced by a field write.",
        },
    )

    assert response.status_code == 200
    rule = response.json()["rule"]
    assert rule["id"] == rule_id
    assert rule["name"] == "LoopRule"
    assert rule["isActive"] is True
    assert [action["executionOrder"] for action in rule["actions"]] == [1, 999]
    assert rule["actions"][1]["parameters"] == [
        {"paramKey": "CommentText", "paramValue": "MANUAL REVIEW COMPLETED by Ada: Loop replaced by a field write."}
    ]
    assert client.get("/rules/manual-review/pending").json()["count"] == 0
    active = client.get(f"/rules/{rule['ruleSet']}").json()["rules"]
    assert "LoopRule" in [item["name"] for item in active]


def test_complete_manual_review_requires_expression_and_actions(client):
    rule_id = _saved_placeholder_id(client)

    no_expression = client.post(
        f"/rules/manual-review/{rule_id}/complete",
        json={"reviewedActions": [{"actionName": "AddComment"}]},
    )
    no_actions = client.post(
        f"/rules/manual-review/{rule_id}/complete",
        json={"reviewedExpression": "1 == 1", "reviewedActions": []},
    )

    assert no_expression.status_code == 400
    assert no_actions.status_code == 400
    assert client.get("/rules/manual-review/pending").json()["count"] == 1


def test_complete_manual_review_rejects_taken_name(client):
    rule_id = _saved_placeholder_id(client)

    response = client.post(
        f"/rules/manual-review/{rule_id}/complete",
        json={
            "newRuleName": "FlagActive",
            "reviewedExpression": "1 == 1",
            "reviewedActions": [{"actionName": "AddComment"}],
        },
    )

    assert response.status_code == 409


def test_manual_review_unknown_rule_returns_404(client):
    complete = client.post(
        "/rules/manual-review/999/complete",
        json={"reviewedExpression": "1 == 1", "reviewedActions": [{"actionName": "AddComment"}]},
    )
    reject = client.post("/rules/manual-review/999/reject", json={})

    assert complete.status_code == 404
    assert reject.status_code == 404


def test_reject_manual_review_deactivates_and_renames(client):
    rule_id = _saved_placeholder_id(client)

    response = client.post(
        f"/rules/manual-review/{rule_id}/reject", json={"rejectionReason": "Obsolete loop."}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "rejected"
    assert data["rule"]["name"] == "LoopRule_ManualReview_Rejected"
    assert data["rule"]["isActive"] is False
    assert client.get("/rules/manual-review/pending").json()["count"] == 0


def test_reject_manual_review_can_delete_rule(client):
    rule_id = _saved_placeholder_id(client)

    response = client.post(f"/rules/manual-review/{rule_id}/reject", json={"deleteRule": True})

    assert response.json()["status"] == "deleted"
    assert client.post(f"/rules/manual-review/{rule_id}/reject", json={}).status_code == 404
