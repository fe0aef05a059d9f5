"""
src/rules/converter.py
Heuristic converter from legacy snippet rules to structured rule definitions.
Exports: convert, convert_xml_rules, analyze_code, ConversionResult, CodeAnalysis
"""

from dataclasses import dataclass, field
import logging
import re

from src.common.source_scan import (
    find_closing,
    iter_segments,
    skip_string,
    split_top_level,
    strip_comments,
)
from src.rules.blocks import parse_rule_blocks
from src.rules.types import (
    CONDITION_SUCCESS,
    DEFAULT_PRIORITY,
    MANUAL_REVIEW_SUFFIX,
    RuleActionSpec,
    RuleDefinition,
)

logger = logging.getLogger(__name__)

DEFAULT_RULE_SET = "ConvertedRules"
MANUAL_REVIEW_COMMENT_PREFIX = "MANUAL REVIEW REQUIRED - Original script:\n"
DEFAULT_SIZE_FIELD = "Custom.Size"
ALWAYS_TRUE = "1 == 1"
CALCULATION_EXPRESSION = (
    "body.Fields.Microsoft_VSTS_Scheduling_Effort != null"
    " && body.Fields.Microsoft_VSTS_Scheduling_Effort != 0"
)

KIND_SIMPLE = "simple-condition"
KIND_CALCULATION = "calculation"
KIND_MANUAL = "manual-review"

_IF_KEYWORD = re.compile(r"\bif\s*\(")
_ELSE_KEYWORD = re.compile(r"else\b")
_INDEX_ASSIGNMENT = re.compile(r'^self\[\s*"([^"]+)"\s*\]\s*=(?!=)\s*(.+)$', re.DOTALL)
_PROPERTY_ASSIGNMENT = re.compile(
    r'^self\.Fields\[\s*"([^"]+)"\s*\]\.Value\s*=(?!=)\s*(.+)$', re.DOTALL
)
_TRANSITION = re.compile(r"self\.TransitionToState\s*\(")
_INDEX_READ = re.compile(r'self\[\s*"([^"]+)"\s*\]')
_PROPERTY_READ = re.compile(r'self\.Fields\[\s*"([^"]+)"\s*\]\.Value')
_CAST = re.compile(r"\(\s*(?:string|int|double|float|decimal|bool|long)\s*\)\s*")
_NUMERIC_LOCAL = re.compile(r"\b(?:int|double|float|decimal|long)\s+[A-Za-z_]\w*\s*(?:=|;)")
_EFFORT_KEYWORD = re.compile(r"effort|efor", re.IGNORECASE)

_COMPLEXITY_MARKERS = (
    ("parent traversal", re.compile(r"HasParent\s*\(\s*\)|\bParent\.")),
    ("date/time access", re.compile(r"\bDateTime\.")),
    ("collection Contains", re.compile(r"\.Contains\s*\(")),
    ("array declaration", re.compile(r"\b\w+\s*\[\s*\]")),
    ("loop", re.compile(r"\b(?:for|foreach|while)\s*\(|\bdo\s*\{")),
    ("switch", re.compile(r"\bswitch\s*\(")),
    ("exception handling", re.compile(r"\btry\s*\{|\bcatch\b|\bthrow\b")),
)


@dataclass
class FieldAssignment:
    field_name: str
    value: str


@dataclass
class StateTransition:
    new_state: str
    comment: str = ""


@dataclass
class CodeAnalysis:
    if_conditions: list[str] = field(default_factory=list)
    assignments: list[FieldAssignment] = field(default_factory=list)
    transitions: list[StateTransition] = field(default_factory=list)
    complexity: list[str] = field(default_factory=list)
    has_calculation: bool = False

    @property
    def kind(self) -> str:
        if self.complexity:
            return KIND_MANUAL
        if self.if_conditions:
            return KIND_SIMPLE
        if self.has_calculation:
            return KIND_CALCULATION
        return KIND_MANUAL


@dataclass
class ConversionResult:
    rules: list[RuleDefinition] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    ok: bool = True
    error: str | None = None


def extract_if_conditions(code: str) -> list[str]:
    """Return the text inside every `if (...)`, using balanced-paren scanning."""
    conditions: list[str] = []
    i = 0
    while i < len(code):
        if code[i] in "\"'":
            i = skip_string(code, i)
            continue
        match = _IF_KEYWORD.match(code, i)
        if match and (i == 0 or not (code[i - 1].isalnum() or code[i - 1] == "_")):
            open_index = match.end() - 1
            close = find_closing(code, open_index)
            if close < 0:
                break
            condition = code[open_index + 1 : close].strip()
            if condition:
                conditions.append(condition)
            i = open_index + 1
            continue
        i += 1
    return conditions


def _statements(code: str) -> list[str]:
    """Split code into `;`-terminated statements, peeling off block/if headers."""
    statements: list[str] = []
    flattened = "".join(
        chunk if is_literal else chunk.replace("{", ";").replace("}", ";")
        for is_literal, chunk in iter_segments(code)
    )
    for raw in split_top_level(flattened, ";"):
        text = raw.strip()
        while True:
            match = _IF_KEYWORD.match(text)
            if match:
                close = find_closing(text, match.end() - 1)
                if close < 0:
                    break
                text = text[close + 1 :].strip()
                continue
            match = _ELSE_KEYWORD.match(text)
            if match:
                text = text[match.end() :].strip()
                continue
            break
        if text:
            statements.append(text)
    return statements


def extract_assignments(code: str) -> list[FieldAssignment]:
    assignments: list[FieldAssignment] = []
    for statement in _statements(code):
        match = _INDEX_ASSIGNMENT.match(statement) or _PROPERTY_ASSIGNMENT.match(statement)
        if match:
            assignments.append(FieldAssignment(match.group(1), match.group(2).strip()))
    return assignments


def _unquote(text: str) -> str | None:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        return text[1:-1]
    return None


def extract_transitions(code: str) -> list[StateTransition]:
    transitions: list[StateTransition] = []
    for match in _TRANSITION.finditer(code):
        close = find_closing(code, match.end() - 1)
        if close < 0:
            continue
        args = split_top_level(code[match.end() : close])
        state = _unquote(args[0]) if args else None
        if not state:
            continue
        comment = _unquote(args[1]) if len(args) > 1 else None
        transitions.append(StateTransition(state, comment or ""))
    return transitions


def analyze_code(code: str) -> CodeAnalysis:
    """Classify one snippet and collect its conditions, assignments, and transitions."""
    clean = strip_comments(code).replace("\r\n", "\n")
    return CodeAnalysis(
        if_conditions=extract_if_conditions(clean),
        assignments=extract_assignments(clean),
        transitions=extract_transitions(clean),
        complexity=[label for label, pattern in _COMPLEXITY_MARKERS if pattern.search(clean)],
        has_calculation=bool(_NUMERIC_LOCAL.search(clean) or _EFFORT_KEYWORD.search(clean)),
    )


def condition_to_expression(condition: str) -> str:
    """Translate a snippet condition into a rule expression over `body.Fields`."""
    expression = _CAST.sub("", condition)
    expression = _PROPERTY_READ.sub(
        lambda m: f"body.Fields.{m.group(1).replace('.', '_')}", expression
    )
    expression = _INDEX_READ.sub(lambda m: f"body.Fields.{m.group(1).replace('.', '_')}", expression)
    expression = re.sub(r"\bstring\.IsNullOrEmpty\b", "string.IsNullOrWhiteSpace", expression)
    return expression.strip()


def value_to_literal(value: str) -> str:
    """Turn an assigned value into a SetField literal or `{Field}` placeholder."""
    value = value.strip()
    field_ref = _PROPERTY_READ.fullmatch(value) or _INDEX_READ.fullmatch(_CAST.sub("", value))
    if field_ref:
        return "{" + field_ref.group(1) + "}"
    quoted = _unquote(value)
    return quoted if quoted is not None else value


def _boolean_rule(
    name: str, applies_to: str, rule_set: str, priority: int, analysis: CodeAnalysis
) -> RuleDefinition:
    actions: list[RuleActionSpec] = []
    order = 1
    for transition in analysis.transitions:
        parameters = [("NewState", transition.new_state)]
        if transition.comment.strip():
            parameters.append(("Comment", transition.comment))
        actions.append(RuleActionSpec("TransitionToState", CONDITION_SUCCESS, order, parameters))
        order += 1
    for assignment in analysis.assignments:
        actions.append(
            RuleActionSpec(
                "SetField",
                CONDITION_SUCCESS,
                order,
                [("FieldName", assignment.field_name), ("FieldValue", value_to_literal(assignment.value))],
            )
        )
        order += 1
    return RuleDefinition(
        name=name,
        expression=condition_to_expression(analysis.if_conditions[0]),
        applies_to=applies_to,
        rule_set=rule_set,
        priority=priority,
        is_active=True,
        actions=actions,
    )


def _calculation_rule(
    name: str, applies_to: str, rule_set: str, priority: int, analysis: CodeAnalysis
) -> RuleDefinition:
    target = analysis.assignments[0].field_name if analysis.assignments else DEFAULT_SIZE_FIELD
    return RuleDefinition(
        name=name,
        expression=CALCULATION_EXPRESSION,
        applies_to=applies_to,
        rule_set=rule_set,
        priority=priority,
        is_active=True,
        actions=[
            RuleActionSpec(
                "UpdateField",
                CONDITION_SUCCESS,
                1,
                [("FieldName", target), ("UpdateType", "CALCULATE"), ("Value", "EFFORT_TO_SIZE")],
            )
        ],
    )


def _manual_review_rule(
    name: str, applies_to: str, rule_set: str, priority: int, code: str
) -> RuleDefinition:
    return RuleDefinition(
        name=f"{name}{MANUAL_REVIEW_SUFFIX}",
        expression=ALWAYS_TRUE,
        applies_to=applies_to,
        rule_set=rule_set,
        priority=priority,
        is_active=False,
        actions=[
            RuleActionSpec(
                "AddComment",
                CONDITION_SUCCESS,
                1,
                [("CommentText", f"{MANUAL_REVIEW_COMMENT_PREFIX}{code}")],
            )
        ],
    )


def convert_block(
    name: str, applies_to: str, code: str, rule_set: str, priority: int
) -> tuple[RuleDefinition, str]:
    """Convert one block and return the rule plus a classification note."""
    analysis = analyze_code(code)
    kind = analysis.kind
    if kind == KIND_SIMPLE:
        return _boolean_rule(name, applies_to, rule_set, priority, analysis), (
            f"{name}: converted to boolean expression"
        )
    if kind == KIND_CALCULATION:
        return _calculation_rule(name, applies_to, rule_set, priority, analysis), (
            f"{name}: converted to calculation rule"
        )
    reason = ", ".join(analysis.complexity) or "no extractable condition"
    return _manual_review_rule(name, applies_to, rule_set, priority, code), (
        f"{name}: manual review required ({reason})"
    )


def convert_xml_rules(
    source: str, *, rule_set: str = DEFAULT_RULE_SET, priority: int = DEFAULT_PRIORITY
) -> ConversionResult:
    """
    Convert every legacy rule block in `source`.

    Args:
        source: XML rule document, `<rule>` fragments, or a bare snippet.
        rule_set: Rule set assigned to the produced rules.
        priority: Priority assigned to the produced rules.
    Returns:
        ConversionResult with rules and one note per block. A block that
        fails to convert adds a note instead of raising.
    """
    result = ConversionResult()
    try:
        blocks = parse_rule_blocks(source)
    except Exception as exc:
        logger.exception("Legacy rule source could not be parsed.")
        return ConversionResult(ok=False, error=str(exc))
    for block in blocks:
        try:
            rule, note = convert_block(block.name, block.applies_to, block.code, rule_set, priority)
        except Exception as exc:
            logger.warning("Failed to convert rule %s: %s", block.name, exc)
            result.notes.append(f"{block.name}: conversion failed - {exc}")
            continue
        result.rules.append(rule)
        result.notes.append(note)
    logger.info("Converted %s of %s legacy rule blocks.", len(result.rules), len(blocks))
    return result


def convert(source: str) -> list[RuleDefinition]:
    """Convert legacy rule source into structured rule definitions."""
    return convert_xml_rules(source).rules
