"""
tests/test_tracker_client.py
Unit tests for src/tracker/client.py and src/common/tool_response.py.
"""

from unittest.mock import MagicMock

import pytest


def test_add_comment_executes_comment_tool():
    from src.tracker.client import TrackerClient

    execute = MagicMock(return_value={"successful": True, "data": {}})
    client = TrackerClient(execute_tool=execute)

    client.add_comment(42, "hello", project="Alpha")

    execute.assert_called_once_with("JIRA_ADD_COMMENT", {"issue_id_or_key": "42", "comment": "hello"})


def test_update_fields_batches_and_skips_empty():
    from src.tracker.client import TrackerClient

    execute = MagicMock(return_value={"successful": True})
    client = TrackerClient(execute_tool=execute, update_tool="CUSTOM_UPDATE")

    client.update_fields(42, {})
    client.update_fields(42, {"Custom.Size": "large", "System.State": "Closed"})

    execute.assert_called_once_with(
        "CUSTOM_UPDATE",
        {"issue_id_or_key": "42", "fields": {"Custom.Size": "large", "System.State": "Closed"}},
    )


def test_failure_response_raises_tracker_write_error():
    from src.tracker.client import TrackerClient, TrackerWriteError

    client = TrackerClient(
        execute_tool=MagicMock(return_value={"successful": False, "error": "Issue does not exist"})
    )

    with pytest.raises(TrackerWriteError, match="Issue does not exist"):
        client.update_fields(42, {"A": "1"})


def test_tool_exception_is_wrapped():
    from src.tracker.client import TrackerClient, TrackerWriteError

    client = TrackerClient(execute_tool=MagicMock(side_effect=ConnectionError("timeout")))

    with pytest.raises(TrackerWriteError, match="JIRA_ADD_COMMENT failed: timeout"):
        client.add_comment(42, "x")


@pytest.mark.parametrize(
    ("response", "expected"),
    [
        (None, True),
        ({"successful": True, "data": {"message": "error-free"}}, False),
        ({"status": "FAILED"}, True),
        ({"errors": ["bad field"]}, True),
        ({"data": {"id": 1}}, False),
        ("403 Forbidden", True),
        ("no error", False),
    ],
)
def test_response_indicates_failure(response, expected):
    from src.common.tool_response import response_indicates_failure

    assert response_indicates_failure(response) is expected


def test_summarize_tool_response_truncates():
    from src.common.tool_response import summarize_tool_response

    summary = summarize_tool_response({"error": "x" * 400}, max_chars=20)

    assert summary == "x" * 17 + "..."
