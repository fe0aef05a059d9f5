"""
tests/test_source_scan.py
Unit tests for src/common/source_scan.py.
"""

from src.common.source_scan import find_closing, iter_segments, split_top_level, strip_comments


def test_find_closing_handles_nested_parentheses():
    text = 'if ((a == 1) && (b == "x"))'
    open_index = text.index("(")
    assert find_closing(text, open_index) == len(text) - 1


def test_find_closing_ignores_parentheses_inside_strings():
    text = '(self["A"] == ")(" )'
    assert find_closing(text, 0) == len(text) - 1


def test_find_closing_returns_minus_one_when_unbalanced():
    assert find_closing("((a)", 0) == -1


def test_split_top_level_respects_brackets_and_literals():
    assert split_top_level('"Closed", "done, really", f(a, b)') == [
        '"Closed"',
        '"done, really"',
        "f(a, b)",
    ]


def test_iter_segments_separates_literals():
    segments = list(iter_segments('a && "b && c"'))
    assert segments == [(False, "a && "), (True, '"b && c"')]


def test_strip_comments_keeps_slashes_in_strings():
    code = 'x = "http://host"; // trailing\n/* block */y = 1;'
    assert strip_comments(code) == 'x = "http://host"; \ny = 1;'
