"""
src/script/parser.py
Statement parser for the small C-like snippet language used by script rules.
Exports: parse_script, Block, IfStatement, Assignment, ExpressionStatement, ReturnStatement, ScriptSyntaxError

Supported: blocks, if / else if / else, typed or `var` declarations,
assignments (=, +=, -=, *=, /=, ++, --), call statements, return.
Expressions stay as source text and are evaluated later.
"""

from dataclasses import dataclass, field
import re
from typing import Union

from src.common.source_scan import find_closing, skip_string

DECLARATION_TYPES = {"var", "string", "int", "double", "bool", "float", "decimal", "long"}
UNSUPPORTED_KEYWORDS = {
    "for",
    "foreach",
    "while",
    "do",
    "switch",
    "try",
    "catch",
    "finally",
    "throw",
    "goto",
    "using",
    "class",
}

_WORD = re.compile(r"[A-Za-z_]\w*")
_DECLARATION = re.compile(
    r"^(?P<type>[A-Za-z_]\w*)\s+(?P<name>[A-Za-z_]\w*)\s*(?:=(?!=)\s*(?P<expr>.+))?$", re.DOTALL
)
_ASSIGNMENT = re.compile(
    r"^(?P<name>[A-Za-z_]\w*)\s*(?P<op>\+=|-=|\*=|/=|=(?!=))\s*(?P<expr>.+)$", re.DOTALL
)
_STEP = re.compile(r"^(?P<name>[A-Za-z_]\w*)\s*(?P<op>\+\+|--)$|^(?P<op2>\+\+|--)\s*(?P<name2>[A-Za-z_]\w*)$")


class ScriptSyntaxError(ValueError):
    """Raised when a snippet uses syntax outside the supported subset."""


@dataclass
class Block:
    statements: list["Statement"] = field(default_factory=list)


@dataclass
class IfStatement:
    condition: str
    then: "Statement"
    otherwise: Union["Statement", None] = None


@dataclass
class Assignment:
    name: str
    operator: str
    expression: str | None
    declared_type: str | None = None


@dataclass
class ExpressionStatement:
    expression: str


@dataclass
class ReturnStatement:
    pass


Statement = Union[Block, IfStatement, Assignment, ExpressionStatement, ReturnStatement]


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def parse(self) -> Block:
        statements: list[Statement] = []
        while self._skip_ws() < len(self.text):
            statements.append(self._statement())
        return Block(statements)

    def _skip_ws(self) -> int:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1
        return self.pos

    def _statement(self) -> Statement:
        self._skip_ws()
        if self.pos >= len(self.text):
            raise ScriptSyntaxError("Unexpected end of script.")
        ch = self.text[self.pos]
        if ch == "{":
            close = find_closing(self.text, self.pos)
            if close < 0:
                raise ScriptSyntaxError("Unbalanced '{' in script.")
            inner = _Parser(self.text[self.pos + 1 : close]).parse()
            self.pos = close + 1
            return inner
        if ch == ";":
            self.pos += 1
            return Block()
        match = _WORD.match(self.text, self.pos)
        word = match.group(0) if match else ""
        if word == "if":
            return self._if_statement(match.end())
        if word == "else":
            raise ScriptSyntaxError("'else' without matching 'if'.")
        if word in UNSUPPORTED_KEYWORDS:
            raise ScriptSyntaxError(f"Unsupported statement '{word}'.")
        end = self._statement_end()
        body = self.text[self.pos : end].strip()
        self.pos = end + 1
        if word == "return":
            return ReturnStatement()
        return _simple_statement(body)

    def _statement_end(self) -> int:
        i = self.pos
        depth = 0
        while i < len(self.text):
            ch = self.text[i]
            if ch in "\"'":
                i = skip_string(self.text, i)
                continue
            if ch in "([{":
                depth += 1
            elif ch in ")]}":
                depth -= 1
            elif ch == ";" and depth == 0:
                return i
            i += 1
        raise ScriptSyntaxError(f"Missing ';' after: {self.text[self.pos:].strip()[:60]}")

    def _if_statement(self, after_keyword: int) -> IfStatement:
        self.pos = after_keyword
        self._skip_ws()
        if self.pos >= len(self.text) or self.text[self.pos] != "(":
            raise ScriptSyntaxError("Expected '(' after 'if'.")
        close = find_closing(self.text, self.pos)
        if close < 0:
            raise ScriptSyntaxError("Unbalanced '(' in if condition.")
        condition = self.text[self.pos + 1 : close].strip()
        if not condition:
            raise ScriptSyntaxError("Empty if condition.")
        self.pos = close + 1
        then = self._statement()
        saved = self.pos
        self._skip_ws()
        match = _WORD.match(self.text, self.pos)
        if match and match.group(0) == "else":
            self.pos = match.end()
            return IfStatement(condition, then, self._statement())
        self.pos = saved
        return IfStatement(condition, then)


def _simple_statement(body: str) -> Statement:
    if re.search(r"\w\s*\[\s*\]", body):
        raise ScriptSyntaxError(f"Arrays are not supported: {body[:60]}")
    declaration = _DECLARATION.match(body)
    if declaration and declaration.group("type") in DECLARATION_TYPES:
        return Assignment(
            name=declaration.group("name"),
            operator="=",
            expression=(declaration.group("expr") or "").strip() or None,
            declared_type=declaration.group("type"),
        )
    assignment = _ASSIGNMENT.match(body)
    if assignment:
        return Assignment(
            name=assignment.group("name"),
            operator=assignment.group("op"),
            expression=assignment.group("expr").strip(),
        )
    step = _STEP.match(body)
    if step:
        name = step.group("name") or step.group("name2")
        op = step.group("op") or step.group("op2")
        return Assignment(name=name, operator="+=" if op == "++" else "-=", expression="1")
    if body.endswith(")"):
        return ExpressionStatement(body)
    raise ScriptSyntaxError(f"Unsupported statement: {body[:60]}")


def parse_script(source: str) -> Block:
    """
    Parse an adapted snippet into a statement tree.

    Args:
        source: Snippet text after field-access adaptation.
    Returns:
        Root Block.
    Raises:
        ScriptSyntaxError: For loops, switch, try, arrays, or malformed statements.
    """
    return _Parser(source).parse()
