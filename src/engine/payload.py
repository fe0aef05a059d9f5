"""Inbound work-item webhook parsing into a flattened WorkItemContext."""

import json
from typing import Any

from src.rules.types import WorkItemContext, normalize_field_name


class PayloadError(ValueError):
    """Raised when a webhook payload cannot be turned into a work-item context."""


def _flatten_value(value: Any) -> Any:
    """Reduce nested field values to the closed str/int/float/bool/None variant."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        for key in ("displayName", "uniqueName", "name", "value"):
            if isinstance(value.get(key), (str, int, float)):
                return value[key]
        return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)
    return json.dumps(value, ensure_ascii=False, default=str)


def _work_item_id(resource: dict[str, Any]) -> int:
    raw = resource.get("workItemId")
    if raw is None:
        raw = resource.get("id")
    if isinstance(raw, bool) or raw is None:
        raise PayloadError("Work item id is missing.")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"Work item id is not an integer: {raw!r}") from exc


def _raw_fields(resource: dict[str, Any]) -> Any:
    revision = resource.get("revision")
    if isinstance(revision, dict) and revision.get("fields"):
        return revision["fields"]
    return resource.get("fields")


def parse_work_item_event(payload: dict[str, Any]) -> WorkItemContext:
    """
    Parse a service-hook body (or a flat {id, fields} body) into a context.

    Args:
        payload: Webhook JSON body.
    Returns:
        WorkItemContext with dotted field names flattened to underscores.
    Raises:
        PayloadError: When the id or fields are missing or malformed.
    """
    if not isinstance(payload, dict):
        raise PayloadError("Payload must be a JSON object.")
    resource = payload.get("resource")
    if not isinstance(resource, dict):
        resource = payload
    work_item_id = _work_item_id(resource)
    fields = _raw_fields(resource)
    if not isinstance(fields, dict) or not fields:
        raise PayloadError(f"Work item {work_item_id} has no fields in payload.")
    flattened = {
        normalize_field_name(str(name)): _flatten_value(value) for name, value in fields.items()
    }
    return WorkItemContext(id=work_item_id, fields=flattened)
