"""
src/rules/review.py
Manual-review workflow for converter placeholder rules.
Exports: ReviewCompletion, completion_from_dict, complete_review, reject_rule, review_item
"""

from dataclasses import dataclass, replace
from typing import Any

from src.rules.converter import MANUAL_REVIEW_COMMENT_PREFIX
from src.rules.mapping import action_from_dict
from src.rules.types import CONDITION_SUCCESS, MANUAL_REVIEW_SUFFIX, RuleActionSpec, RuleDefinition

REJECTED_SUFFIX = "_Rejected"
REVIEW_COMMENT_ORDER = 999

_COMPLEXITY_MARKERS = (
    ("HasParent()", "Parent check"),
    ("Parent.", "Parent property access"),
    ("DateTime.Now", "Date/time operations"),
    ("Contains(", "Collection operations"),
    ("string[]", "Array declarations"),
    ("for (", "Loops"),
    ("while (", "Loops"),
    ("switch (", "Switch statements"),
    ("try {", "Exception handling"),
)


@dataclass
class ReviewCompletion:
    reviewed_expression: str
    reviewed_actions: list[RuleActionSpec]
    reviewer_name: str = ""
    new_rule_name: str | None = None
    applies_to: str | None = None
    rule_set: str | None = None
    priority: int | None = None
    activate: bool = False
    review_notes: str | None = None


def _text(data: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = data.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def completion_from_dict(data: dict[str, Any]) -> ReviewCompletion:
    """
    Parse a review completion request body.

    Args:
        data: camelCase or snake_case completion fields.
    Returns:
        ReviewCompletion with actions ordered by position when no order is given.
    Raises:
        ValueError: When the expression or every action is missing.
    """
    expression = _text(data, "reviewedExpression", "reviewed_expression")
    if expression is None:
        raise ValueError("Reviewed expression is required.")
    raw_actions = data.get("reviewedActions", data.get("reviewed_actions")) or []
    if not isinstance(raw_actions, list) or not raw_actions:
        raise ValueError("At least one reviewed action is required.")
    priority = data.get("priority")
    return ReviewCompletion(
        reviewed_expression=expression,
        reviewed_actions=[
            action_from_dict(item, default_order=index) for index, item in enumerate(raw_actions, start=1)
        ],
        reviewer_name=_text(data, "reviewerName", "reviewer_name") or "",
        new_rule_name=_text(data, "newRuleName", "new_rule_name"),
        applies_to=_text(data, "appliesTo", "applies_to"),
        rule_set=_text(data, "ruleSet", "rule_set"),
        priority=None if priority is None else int(priority),
        activate=bool(data.get("activateImmediately", data.get("activate_immediately", False))),
        review_notes=_text(data, "reviewNotes", "review_notes"),
    )


def reviewed_name(name: str) -> str:
    """Drop the manual-review suffix from a placeholder name."""
    return name.replace(MANUAL_REVIEW_SUFFIX, "")


def complete_review(placeholder: RuleDefinition, completion: ReviewCompletion) -> RuleDefinition:
    """
    Build the live rule that replaces a manual-review placeholder.

    Review notes become a trailing Success comment so the outcome is visible
    on every work item the rule touches.
    """
    actions = list(completion.reviewed_actions)
    if completion.review_notes:
        reviewer = completion.reviewer_name or "unknown reviewer"
        actions.append(
            RuleActionSpec(
                "AddComment",
                CONDITION_SUCCESS,
                REVIEW_COMMENT_ORDER,
                [("CommentText", f"MANUAL REVIEW COMPLETED by {reviewer}: {completion.review_notes}")],
            )
        )
    return RuleDefinition(
        id=placeholder.id,
        name=completion.new_rule_name or reviewed_name(placeholder.name),
        expression=completion.reviewed_expression,
        applies_to=completion.applies_to or placeholder.applies_to,
        rule_set=completion.rule_set or placeholder.rule_set,
        priority=placeholder.priority if completion.priority is None else completion.priority,
        is_active=completion.activate,
        actions=actions,
    )


def reject_rule(rule: RuleDefinition) -> RuleDefinition:
    """Return the deactivated, renamed form of a rejected placeholder."""
    name = rule.name if rule.name.endswith(REJECTED_SUFFIX) else f"{rule.name}{REJECTED_SUFFIX}"
    return replace(rule, name=name, is_active=False)


def legacy_script(rule: RuleDefinition) -> str:
    """Return the legacy script carried by a placeholder's comment action."""
    for action in rule.actions:
        if action.action_name != "AddComment":
            continue
        text = action.param("CommentText") or ""
        start = text.find(MANUAL_REVIEW_COMMENT_PREFIX)
        if start >= 0:
            return text[start + len(MANUAL_REVIEW_COMMENT_PREFIX) :]
    return ""


def complexity_reasons(code: str) -> list[str]:
    reasons: list[str] = []
    for marker, reason in _COMPLEXITY_MARKERS:
        if marker in code and reason not in reasons:
            reasons.append(reason)
    return reasons or ["Complex logic"]


def review_item(rule: RuleDefinition) -> dict[str, Any]:
    """Describe one pending placeholder for reviewers."""
    code = legacy_script(rule)
    return {
        "id": rule.id,
        "name": rule.name,
        "ruleSet": rule.rule_set,
        "appliesTo": rule.applies_to,
        "priority": rule.priority,
        "legacyScript": code,
        "complexityReasons": complexity_reasons(code),
    }
