"""Rewrite legacy `self["Field"]` syntax into accessor `get` / `set` calls."""

import re

_CAST = r"(?:\(\s*(?:string|int|double|bool|decimal|float|long)\s*\)\s*)?"

_PROPERTY_WRITE = re.compile(
    r'self\.Fields\[\s*"([^"]+)"\s*\]\.Value\s*=(?!=)\s*([^;]+);', re.IGNORECASE
)
_INDEX_APPEND = re.compile(r'self\[\s*"([^"]+)"\s*\]\s*\+=\s*([^;]+);', re.IGNORECASE)
_INDEX_WRITE = re.compile(r'self\[\s*"([^"]+)"\s*\]\s*=(?!=)\s*([^;]+);', re.IGNORECASE)
_PROPERTY_READ = re.compile(_CAST + r'self\.Fields\[\s*"([^"]+)"\s*\]\.Value', re.IGNORECASE)
_INDEX_READ = re.compile(_CAST + r'self\[\s*"([^"]+)"\s*\]', re.IGNORECASE)


def adapt_script_source(source: str) -> str:
    """
    Translate field access forms into accessor calls.

    Writes are rewritten first so their right-hand sides can still contain
    reads, which the read passes then convert.

    Args:
        source: Legacy snippet body.
    Returns:
        Snippet using only `get("F")` and `set("F", value);` for field access.
    """
    adapted = _PROPERTY_WRITE.sub(r'set("\1", \2);', source)
    adapted = _INDEX_APPEND.sub(r'set("\1", get("\1") + \2);', adapted)
    adapted = _INDEX_WRITE.sub(r'set("\1", \2);', adapted)
    adapted = _PROPERTY_READ.sub(r'get("\1")', adapted)
    return _INDEX_READ.sub(r'get("\1")', adapted)
