"""Helpers for judging and summarizing Composio tool execution responses."""

from typing import Any

_FAILURE_STATUS = {"error", "failed", "failure"}
_FAILURE_TOKENS = {"error", "failed", "forbidden", "unauthorized", "not found", "exception"}


def _response_text(value: Any) -> str:
    """Flatten nested response payloads into one line of text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list):
        parts = [_response_text(item) for item in value]
        return " ".join(part for part in parts if part)
    if isinstance(value, dict):
        for key in ("error", "message", "detail", "data"):
            if value.get(key):
                return _response_text(value[key])
        parts = [_response_text(item) for item in value.values()]
        return " ".join(part for part in parts if part)
    return str(value)


def response_indicates_failure(response: Any) -> bool:
    """Return whether a tool response payload appears to represent failure."""
    if response is None:
        return True
    if isinstance(response, dict):
        if response.get("successful") is False or response.get("success") is False:
            return True
        if response.get("error") or response.get("errors"):
            return True
        status = str(response.get("status", "")).strip().lower()
        if status in _FAILURE_STATUS:
            return True
        if response.get("successful") is True or response.get("success") is True:
            return False
    if not isinstance(response, str):
        return False
    text = response.strip().lower()
    if not text or "no error" in text:
        return False
    return any(token in text for token in _FAILURE_TOKENS)


def summarize_tool_response(response: Any, max_chars: int = 280) -> str:
    """Return a compact, readable summary for logs and error messages."""
    text = _response_text(response) or str(response)
    return text if len(text) <= max_chars else f"{text[: max_chars - 3]}..."
