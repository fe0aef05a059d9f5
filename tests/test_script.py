"""
tests/test_script.py
Unit tests for src/script/*.py: accessor, source adaptation, parser, and executor.
"""

import pytest

from src.rules.types import WorkItemContext


def _context(**fields):
    base = {"System_TeamProject": "Alpha", "System_WorkItemType": "Task"}
    base.update(fields)
    return WorkItemContext(id=42, fields=base)


def test_accessor_reads_text_and_buffers_writes():
    from src.script.accessor import FieldAccessor

    fields = {"Microsoft_VSTS_Scheduling_Effort": 40.0, "System_Title": None}
    accessor = FieldAccessor(fields)

    assert accessor.get("Microsoft.VSTS.Scheduling.Effort") == "40"
    assert accessor.get("System.Title") == ""
    assert accessor.get("Unknown.Field").Length == 0

    accessor.set("Custom.Size", "medium")

    assert accessor.get("Custom.Size") == "medium"
    assert accessor.changes() == {"Custom.Size": "medium"}
    assert "Custom_Size" not in fields


def test_script_text_members():
    from src.script.accessor import ScriptText

    text = ScriptText("  Hello World ")

    assert text.Trim() == "Hello World"
    assert text.Trim().ToUpper().StartsWith("HELLO")
    assert text.Contains("World")
    assert text.Trim().Split(" ") == ["Hello", "World"]
    assert text.Trim().Substring(6) == "World"
    assert text.Trim().Substring(0, 5) == "Hello"
    assert text.IndexOf("Z") == -1


def test_adapt_rewrites_reads_and_writes():
    from src.script.adapt import adapt_script_source

    source = (
        'if ((string)self["System.State"] == "Active") { self["Custom.Flag"] = self["System.Title"]; }\n'
        'self.Fields["Custom.Note"].Value = "x";\n'
        'self["Custom.Log"] += "!";'
    )

    assert adapt_script_source(source) == (
        'if (get("System.State") == "Active") { set("Custom.Flag", get("System.Title")); }\n'
        'set("Custom.Note", "x");\n'
        'set("Custom.Log", get("Custom.Log") + "!");'
    )


def test_parser_builds_if_else_chain():
    from src.script.parser import Assignment, Block, ExpressionStatement, IfStatement, parse_script

    program = parse_script(
        'double effort = 0; if (effort > 1) { set("A", "1"); } else if (effort > 0) effort++; else return;'
    )

    assert isinstance(program, Block)
    declaration, branch = program.statements
    assert declaration == Assignment("effort", "=", "0", "double")
    assert isinstance(branch, IfStatement)
    assert isinstance(branch.then, Block)
    assert isinstance(branch.then.statements[0], ExpressionStatement)
    assert isinstance(branch.otherwise, IfStatement)
    assert branch.otherwise.then == Assignment("effort", "+=", "1")


@pytest.mark.parametrize(
    "source",
    [
        "for (int i = 0; i < 3; i++) { }",
        "while (true) { }",
        'string[] parts = get("A").Split(",");',
        "x = 1",
        "else { }",
        "foo bar baz;",
    ],
)
def test_parser_rejects_unsupported_syntax(source):
    from src.script.parser import ScriptSyntaxError, parse_script

    with pytest.raises(ScriptSyntaxError):
        parse_script(source)


def test_executor_sizes_by_effort_in_one_batch(tracker):
    from src.script.executor import ScriptRuleExecutor

    source = """
    // Size from effort
    double effort = Convert.ToDouble(self["Microsoft.VSTS.Scheduling.Effort"]);
    string size = "small";
    if (effort > 25 && effort < 65) { size = "medium"; }
    else if (effort >= 65) { size = "large"; }
    self["Custom.Size"] = size;
    self["Custom.Note"] = "sized " + size;
    """
    context = _context(Microsoft_VSTS_Scheduling_Effort=40)

    result = ScriptRuleExecutor(tracker).run(source, context, rule_name="Size")

    assert result.success
    assert result.changes == {"Custom.Size": "medium", "Custom.Note": "sized medium"}
    tracker.update_fields.assert_called_once_with(
        42, {"Custom.Size": "medium", "Custom.Note": "sized medium"}, "Alpha"
    )
    assert context.fields["Custom_Size"] == "medium"


def test_executor_supports_compound_assignment_and_return(tracker):
    from src.script.executor import ScriptRuleExecutor

    source = """
    int count = 1;
    count += 2;
    count++;
    string label = "n=";
    label += count;
    self["Custom.Count"] = label;
    return;
    self["Custom.Never"] = "x";
    """

    result = ScriptRuleExecutor(tracker).run(source, _context())

    assert result.changes == {"Custom.Count": "n=4"}


def test_executor_formats_numeric_locals_as_text(tracker):
    from src.script.executor import ScriptRuleExecutor

    source = """
    double effort = Convert.ToDouble(self["Microsoft.VSTS.Scheduling.Effort"]);
    int points = 3;
    self["Custom.Summary"] = "Size: " + effort;
    self["Custom.Points"] = points.ToString();
    double scaled = effort * 1.5;
    self["Custom.Ratio"] = scaled.ToString() + " / " + points;
    """
    context = _context(Microsoft_VSTS_Scheduling_Effort=40)

    result = ScriptRuleExecutor(tracker).run(source, context)

    assert result.success, result.error
    assert result.changes == {
        "Custom.Summary": "Size: 40",
        "Custom.Points": "3",
        "Custom.Ratio": "60 / 3",
    }


def test_executor_without_writes_skips_tracker(tracker):
    from src.script.executor import ScriptRuleExecutor

    result = ScriptRuleExecutor(tracker).run('if (self["System.State"] == "Done") { return; }', _context())

    assert result.success
    assert result.changes == {}
    tracker.update_fields.assert_not_called()


def test_executor_failure_writes_nothing(tracker):
    from src.script.executor import ScriptRuleExecutor

    source = 'self["Custom.Size"] = "large"; undeclared = 5;'
    context = _context()

    result = ScriptRuleExecutor(tracker).run(source, context)

    assert not result.success
    assert "undeclared" in result.error
    tracker.update_fields.assert_not_called()
    assert "Custom_Size" not in context.fields


def test_executor_push_failure_leaves_context_unchanged(tracker):
    from src.script.executor import ScriptRuleExecutor

    tracker.update_fields.side_effect = RuntimeError("JIRA_EDIT_ISSUE failed: forbidden")
    context = _context()

    result = ScriptRuleExecutor(tracker).run('self["Custom.Size"] = "large";', context)

    assert not result.success
    assert result.changes == {"Custom.Size": "large"}
    assert "forbidden" in result.error
    assert "Custom_Size" not in context.fields
