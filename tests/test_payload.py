"""
tests/test_payload.py
Unit tests for src/engine/payload.py.
"""

import pytest


def test_service_hook_payload_flattens_revision_fields():
    from src.engine.payload import parse_work_item_event

    context = parse_work_item_event(
        {
            "eventType": "workitem.updated",
            "resource": {
                "workItemId": 42,
                "revision": {
                    "fields": {
                        "System.TeamProject": "Alpha",
                        "System.WorkItemType": "Task",
                        "System.AssignedTo": {"displayName": "Ada Lovelace", "uniqueName": "ada@x"},
                        "Microsoft.VSTS.Scheduling.Effort": 30,
                        "Custom.Tags": ["a", "b"],
                    }
                },
            },
        }
    )

    assert context.id == 42
    assert context.project == "Alpha"
    assert context.work_item_type == "Task"
    assert context.fields["System_AssignedTo"] == "Ada Lovelace"
    assert context.fields["Microsoft_VSTS_Scheduling_Effort"] == 30
    assert context.fields["Custom_Tags"] == '["a", "b"]'


def test_flat_payload_uses_id_and_fields():
    from src.engine.payload import parse_work_item_event

    context = parse_work_item_event({"id": "7", "fields": {"System.State": "New"}})

    assert context.id == 7
    assert context.fields == {"System_State": "New"}


def test_missing_id_raises():
    from src.engine.payload import PayloadError, parse_work_item_event

    with pytest.raises(PayloadError, match="id is missing"):
        parse_work_item_event({"resource": {"fields": {"System.State": "New"}}})


def test_non_integer_id_raises():
    from src.engine.payload import PayloadError, parse_work_item_event

    with pytest.raises(PayloadError, match="not an integer"):
        parse_work_item_event({"id": "abc", "fields": {"System.State": "New"}})


def test_empty_fields_raise():
    from src.engine.payload import PayloadError, parse_work_item_event

    with pytest.raises(PayloadError, match="no fields"):
        parse_work_item_event({"resource": {"id": 5, "fields": {}}})
