"""Import legacy rule blocks as executable script rules."""

from dataclasses import dataclass, field
import logging
from typing import Callable

from src.rules.blocks import parse_rule_blocks
from src.rules.types import (
    CONDITION_SUCCESS,
    DEFAULT_PRIORITY,
    RuleActionSpec,
    RuleDefinition,
    script_expression,
)

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_RULE_SET = "ImportedRules"


@dataclass
class ImportedRule:
    name: str
    status: str
    error: str | None = None


@dataclass
class ImportResult:
    rules: list[ImportedRule] = field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for rule in self.rules if rule.status == status)

    @property
    def imported_count(self) -> int:
        return self.count("inserted") + self.count("updated")


def script_rule_from_block(
    name: str, applies_to: str, code: str, rule_set: str, priority: int
) -> RuleDefinition:
    """Wrap one snippet as an active script rule with a single ExecuteXmlCalculation action."""
    if not code.strip():
        raise ValueError(f"Rule '{name}' has no code.")
    return RuleDefinition(
        name=name,
        expression=script_expression(name),
        applies_to=applies_to,
        rule_set=rule_set,
        priority=priority,
        is_active=True,
        actions=[
            RuleActionSpec(
                "ExecuteXmlCalculation",
                CONDITION_SUCCESS,
                1,
                [("XmlRuleName", name), ("CSharpCode", code)],
            )
        ],
    )


def import_xml_rules(
    source: str,
    *,
    upsert_rule: Callable[[RuleDefinition], str],
    rule_set: str = DEFAULT_IMPORT_RULE_SET,
    priority: int | None = None,
) -> ImportResult:
    """
    Parse legacy blocks and upsert each as a script rule.

    Args:
        source: Legacy rule XML or bare snippet.
        upsert_rule: Persists one rule, returning "inserted" or "updated".
        rule_set: Target rule set.
        priority: Priority for every imported rule (default 100).
    Returns:
        Per-rule status list; parse failures are reported, not raised.
    """
    result = ImportResult()
    try:
        blocks = parse_rule_blocks(source)
    except Exception as exc:
        logger.exception("Legacy rule import could not parse source.")
        result.rules.append(ImportedRule(name="XML_PARSE_ERROR", status="failed", error=str(exc)))
        return result
    for block in blocks:
        try:
            rule = script_rule_from_block(
                block.name,
                block.applies_to,
                block.code,
                rule_set,
                DEFAULT_PRIORITY if priority is None else priority,
            )
            status = upsert_rule(rule)
        except Exception as exc:
            logger.warning("Legacy rule %s failed to import: %s", block.name, exc)
            result.rules.append(ImportedRule(name=block.name, status="failed", error=str(exc)))
            continue
        result.rules.append(ImportedRule(name=block.name, status=status))
    logger.info(
        "Imported %s legacy rules into %s (%s inserted, %s updated, %s failed).",
        result.imported_count,
        rule_set,
        result.count("inserted"),
        result.count("updated"),
        result.count("failed"),
    )
    return result
