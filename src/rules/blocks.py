"""Parse legacy `<rule name=".." appliesTo="..">code</rule>` blocks."""

from dataclasses import dataclass
import logging
import re
from xml.etree import ElementTree
from xml.sax.saxutils import unescape

from src.rules.types import WILDCARD_APPLIES_TO

logger = logging.getLogger(__name__)

UNNAMED_RULE = "UnnamedRule"

_BLOCK = re.compile(r"<rule\b(?P<attrs>[^>]*)>(?P<body>.*?)</rule\s*>", re.DOTALL | re.IGNORECASE)
_ATTR = re.compile(r'(\w+)\s*=\s*"([^"]*)"')
_CDATA = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)


@dataclass
class RuleBlock:
    name: str
    applies_to: str
    code: str


def _from_tree(source: str) -> list[RuleBlock] | None:
    try:
        root = ElementTree.fromstring(source)
    except ElementTree.ParseError:
        return None
    elements = [root] if root.tag == "rule" else list(root.iter("rule"))
    return [
        RuleBlock(
            name=(element.get("name") or UNNAMED_RULE).strip(),
            applies_to=(element.get("appliesTo") or WILDCARD_APPLIES_TO).strip(),
            code="".join(element.itertext()).strip(),
        )
        for element in elements
    ]


def _from_scan(source: str) -> list[RuleBlock]:
    blocks: list[RuleBlock] = []
    for match in _BLOCK.finditer(source):
        attrs = dict(_ATTR.findall(match.group("attrs")))
        body = _CDATA.sub(lambda cdata: cdata.group(1), match.group("body"))
        blocks.append(
            RuleBlock(
                name=unescape(attrs.get("name", "")).strip() or UNNAMED_RULE,
                applies_to=unescape(attrs.get("appliesTo", "")).strip() or WILDCARD_APPLIES_TO,
                code=unescape(body, {"&quot;": '"', "&apos;": "'"}).strip(),
            )
        )
    return blocks


def parse_rule_blocks(source: str) -> list[RuleBlock]:
    """
    Split legacy rule source into named blocks.

    Well-formed XML is read with ElementTree; snippets with unescaped code
    fall back to a tolerant block scanner. Source without any `<rule>` block
    is treated as one unnamed rule.

    Args:
        source: XML document, loose `<rule>` fragments, or a bare snippet.
    Returns:
        Blocks in document order.
    """
    text = (source or "").strip()
    if not text:
        return []
    blocks = _from_tree(text)
    if blocks is None:
        blocks = _from_scan(text)
        if blocks:
            logger.debug("Rule source is not well-formed XML; scanned %s blocks.", len(blocks))
    if not blocks and not _BLOCK.search(text) and "<rule" not in text.lower():
        return [RuleBlock(name=UNNAMED_RULE, applies_to=WILDCARD_APPLIES_TO, code=text)]
    return blocks
