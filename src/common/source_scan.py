"""String-aware scanning helpers for C-like rule snippets."""

from typing import Iterator

_PAIRS = {"(": ")", "{": "}", "[": "]"}
_CLOSERS = set(_PAIRS.values())


def skip_string(text: str, index: int) -> int:
    """Return the index just past the quoted literal that starts at `index`."""
    quote = text[index]
    i = index + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    return len(text)


def find_closing(text: str, open_index: int) -> int:
    """
    Find the bracket matching the opener at `open_index`.

    Args:
        text: Source text.
        open_index: Index of "(", "{" or "[".
    Returns:
        Index of the matching closer, or -1 when unbalanced.
    """
    opener = text[open_index]
    closer = _PAIRS[opener]
    depth = 0
    i = open_index
    while i < len(text):
        ch = text[i]
        if ch in "\"'":
            i = skip_string(text, i)
            continue
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def split_top_level(text: str, separator: str = ",") -> list[str]:
    """Split on `separator` where it is outside brackets and string literals."""
    parts: list[str] = []
    depth = 0
    start = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in "\"'":
            i = skip_string(text, i)
            continue
        if ch in _PAIRS:
            depth += 1
        elif ch in _CLOSERS:
            depth -= 1
        elif ch == separator and depth == 0:
            parts.append(text[start:i].strip())
            start = i + 1
        i += 1
    tail = text[start:].strip()
    if tail or parts:
        parts.append(tail)
    return parts


def iter_segments(text: str) -> Iterator[tuple[bool, str]]:
    """Yield `(is_literal, chunk)` pairs, splitting code from quoted literals."""
    start = 0
    i = 0
    while i < len(text):
        if text[i] in "\"'":
            if i > start:
                yield False, text[start:i]
            end = skip_string(text, i)
            yield True, text[i:end]
            start = i = end
            continue
        i += 1
    if start < len(text):
        yield False, text[start:]


def strip_comments(code: str) -> str:
    """Remove `//` line comments and `/* */` block comments outside literals."""
    out: list[str] = []
    i = 0
    while i < len(code):
        ch = code[i]
        if ch in "\"'":
            end = skip_string(code, i)
            out.append(code[i:end])
            i = end
            continue
        if code.startswith("//", i):
            newline = code.find("\n", i)
            i = len(code) if newline == -1 else newline
            continue
        if code.startswith("/*", i):
            close = code.find("*/", i + 2)
            i = len(code) if close == -1 else close + 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)
