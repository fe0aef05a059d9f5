"""
tests/test_orchestrator.py
Unit tests for src/engine/orchestrator.py.
"""

from unittest.mock import MagicMock

from src.rules.types import RuleActionSpec, RuleDefinition, WorkItemContext, script_expression


def _runtime(rules, tracker, clock, record_session=None):
    from src.actions.registry import ActionDispatcher, build_default_handlers
    from src.engine.guard import ExecutionGuard
    from src.engine.orchestrator import EngineRuntime
    from src.script.executor import ScriptRuleExecutor

    executor = ScriptRuleExecutor(tracker)
    return EngineRuntime(
        get_active_rules=lambda rule_set: list(rules),
        dispatcher=ActionDispatcher(build_default_handlers(tracker, executor)),
        script_executor=executor,
        guard=ExecutionGuard(clock=clock),
        record_session=record_session,
        clock=clock,
    )


def _context(**fields):
    base = {"System_TeamProject": "Alpha", "System_WorkItemType": "Task", "System_State": "Active"}
    base.update(fields)
    return WorkItemContext(id=42, fields=base)


def _set_field(name, value, condition="Success", order=1):
    return RuleActionSpec("SetField", condition, order, [("FieldName", name), ("FieldValue", value)])


def test_rules_run_in_priority_order_with_success_and_failure_actions(tracker, clock):
    from src.engine.orchestrator import execute_rules

    rules = [
        RuleDefinition(
            name="late",
            expression='body.Fields.Custom_Flag == "A"',
            priority=20,
            actions=[_set_field("Custom.Second", "yes")],
        ),
        RuleDefinition(
            name="early",
            expression='body.Fields.System_State == "Closed"',
            priority=10,
            actions=[_set_field("Custom.Flag", "B"), _set_field("Custom.Flag", "A", "Failure")],
        ),
    ]

    session = execute_rules(_context(), _runtime(rules, tracker, clock))

    assert [r.rule_name for r in session.results] == ["early", "late"]
    assert [r.status for r in session.results] == ["FAILED", "PASSED"]
    assert session.results[0].actions[0].condition_type == "Failure"
    assert session.counts() == {"total": 2, "passed": 1, "failed": 1, "skipped": 0}


def test_applies_to_and_inactive_rules_are_excluded(tracker, clock):
    from src.engine.orchestrator import execute_rules

    rules = [
        RuleDefinition(name="bugs", expression="1 == 1", applies_to="Bug"),
        RuleDefinition(name="off", expression="1 == 1", is_active=False),
        RuleDefinition(name="tasks", expression="1 == 1", applies_to="Task, Bug"),
    ]

    session = execute_rules(_context(), _runtime(rules, tracker, clock))

    assert [r.rule_name for r in session.results] == ["tasks"]
    assert session.total_rules == 1


def test_referenced_missing_fields_are_populated_before_evaluation(tracker, clock):
    from src.engine.orchestrator import execute_rules

    context = _context()
    rules = [RuleDefinition(name="r", expression="body.Fields.Custom_Missing == null")]

    session = execute_rules(context, _runtime(rules, tracker, clock))

    assert session.results[0].status == "PASSED"
    assert "Custom_Missing" in context.fields


def test_expression_error_fails_rule_without_actions(tracker, clock):
    from src.engine.orchestrator import execute_rules

    rules = [
        RuleDefinition(
            name="broken",
            expression="body.Fields.System_State +",
            actions=[_set_field("A.B", "1"), _set_field("A.B", "2", "Failure")],
        )
    ]

    session = execute_rules(_context(), _runtime(rules, tracker, clock))

    result = session.results[0]
    assert result.status == "FAILED"
    assert result.actions == []
    assert "evaluation failed" in result.error_message
    tracker.update_fields.assert_not_called()


def test_guard_skips_resent_event_after_rule_writes(tracker, clock):
    from src.engine.orchestrator import execute_rules

    rules = [
        RuleDefinition(
            name="resolve",
            expression='body.Fields.System_State == "Active"',
            applies_to="Task",
            actions=[_set_field("Custom.Touched", "1")],
        )
    ]
    runtime = _runtime(rules, tracker, clock)

    first = execute_rules(_context(), runtime)
    clock.advance(1)
    second = execute_rules(_context(), runtime)

    assert first.counts() == {"total": 1, "passed": 1, "failed": 0, "skipped": 0}
    assert len(first.results[0].field_changes) == 1
    assert second.results[0].status == "SKIPPED"
    assert "minimum interval" in second.results[0].error_message
    assert tracker.update_fields.call_count == 1


def test_resent_event_inside_duplicate_window_is_skipped_after_state_write(tracker, clock):
    from src.engine.orchestrator import execute_rules

    rules = [
        RuleDefinition(
            name="resolve",
            expression="1 == 1",
            actions=[_set_field("System.State", "Resolved")],
        )
    ]
    runtime = _runtime(rules, tracker, clock)

    first = execute_rules(_context(), runtime)
    clock.advance(6)
    second = execute_rules(_context(), runtime)

    assert first.results[0].status == "PASSED"
    assert second.results[0].status == "SKIPPED"
    assert second.results[0].error_message == "duplicate event with unchanged relevant fields"
    assert tracker.update_fields.call_count == 1
    assert runtime.guard.stats()["in_flight"] == 0


def test_failed_rule_releases_guard_reservation(tracker, clock):
    from src.engine.orchestrator import execute_rules

    rules = [RuleDefinition(name="never", expression="1 == 2")]
    runtime = _runtime(rules, tracker, clock)

    first = execute_rules(_context(), runtime)
    second = execute_rules(_context(), runtime)

    assert [first.results[0].status, second.results[0].status] == ["FAILED", "FAILED"]
    assert runtime.guard.stats()["in_flight"] == 0


def test_script_rules_run_after_expression_rules_and_bypass_guard(tracker, clock):
    from src.engine.orchestrator import execute_rules

    script = RuleDefinition(
        name="Size",
        expression=script_expression("Size"),
        priority=1,
        actions=[
            RuleActionSpec(
                "ExecuteXmlCalculation",
                parameters=[("XmlRuleName", "Size"), ("CSharpCode", 'self["Custom.Size"] = "large";')],
            )
        ],
    )
    expression_rule = RuleDefinition(name="expr", expression="1 == 1", priority=50)
    runtime = _runtime([script, expression_rule], tracker, clock)
    context = _context()

    first = execute_rules(context, runtime)
    second = execute_rules(context, runtime)

    assert [r.rule_name for r in first.results] == ["expr", "Size"]
    assert [r.status for r in second.results] == ["SKIPPED", "PASSED"]
    change = second.results[1].actions[0].field_changes[0]
    assert (change.field_name, change.old_value, change.new_value) == ("Custom.Size", "large", "large")


def test_script_rule_without_source_is_skipped(tracker, clock):
    from src.engine.orchestrator import execute_rules

    rules = [RuleDefinition(name="Empty", expression=script_expression("Empty"))]

    session = execute_rules(_context(), _runtime(rules, tracker, clock))

    assert session.results[0].status == "SKIPPED"
    assert session.results[0].error_message == "Script rule has no script source."


def test_failed_script_rule_is_recorded_as_failed(tracker, clock):
    from src.engine.orchestrator import execute_rules

    rules = [
        RuleDefinition(
            name="Loop",
            expression=script_expression("Loop"),
            actions=[
                RuleActionSpec(
                    "ExecuteXmlCalculation",
                    parameters=[("XmlRuleName", "Loop"), ("CSharpCode", "while (true) { }")],
                )
            ],
        )
    ]

    session = execute_rules(_context(), _runtime(rules, tracker, clock))

    assert session.results[0].status == "FAILED"
    assert session.results[0].actions[0].status == "FAILED"
    tracker.update_fields.assert_not_called()


def test_effort_sizing_end_to_end(tracker, clock):
    from src.engine.orchestrator import execute_rules

    rules = [
        RuleDefinition(
            name="SizeFromEffort",
            expression="body.Fields.Microsoft_VSTS_Scheduling_Effort != null",
            applies_to="Task",
            rule_set="Alpha",
            priority=1,
            actions=[
                RuleActionSpec(
                    "UpdateField",
                    parameters=[
                        ("FieldName", "Custom.Size"),
                        ("UpdateType", "CALCULATE"),
                        ("Value", "EFFORT_TO_SIZE"),
                    ],
                ),
                RuleActionSpec("AddComment", execution_order=2, parameters=[("CommentText", "Sized.")]),
            ],
        )
    ]
    context = _context(Microsoft_VSTS_Scheduling_Effort=40)

    session = execute_rules(context, _runtime(rules, tracker, clock))

    assert session.work_item_id == 42
    assert session.project_name == "Alpha"
    assert session.results[0].status == "PASSED"
    tracker.update_fields.assert_called_once_with(42, {"Custom.Size": "medium"}, "Alpha")
    tracker.add_comment.assert_called_once_with(42, "Sized.", "Alpha")
    assert context.fields["Custom_Size"] == "medium"


def test_session_sink_failure_is_logged_not_raised(tracker, clock):
    from src.engine.orchestrator import execute_rules

    sink = MagicMock(side_effect=RuntimeError("disk full"))

    session = execute_rules(_context(), _runtime([], tracker, clock, record_session=sink))

    sink.assert_called_once_with(session)
    assert session.total_rules == 0
    assert session.end_time is not None
