"""
Tests for the sequential workflow engine.

Actions are scripted: each tool name maps to a list of outcomes consumed one per
call (True succeeds, False fails), or to a single outcome used for every call.
"""

import logging
from typing import Any
from unittest.mock import patch

from stepflow.application.adapter import RunFinalizer, ToolInvoker, build_execution_context
from stepflow.application.port import ActionExecutor
from stepflow.application.service import load_request
from stepflow.domain.entity import GroupResult, RunSummary
from stepflow.domain.value_object import (
    ContentItem,
    ExecutionMode,
    ExecutionOptions,
    GroupStatus,
    RunStatus,
    StepStatus,
    ToolOutput,
)
from stepflow.errors import ActionError, ActionErrorKind
from stepflow.infrastructure.adapter.expression.evaluator import ExpressionConditionEvaluator
from stepflow.infrastructure.adapter.in_memory.sequential_engine import PRIOR_ERROR_REASON, SequentialWorkflowEngine


class ScriptedExecutor(ActionExecutor):
    def __init__(self, scripts: dict[str, Any] | None = None):
        self.scripts = scripts or {}
        self.calls: list[tuple[str, dict]] = []

    def invoke(self, tool_name: str, arguments: dict[str, Any]) -> ToolOutput:
        self.calls.append((tool_name, arguments))
        script = self.scripts.get(tool_name, True)
        ok = script.pop(0) if isinstance(script, list) else script
        if not ok:
            raise ActionError(ActionErrorKind.INTERNAL, f"{tool_name} failed")
        return ToolOutput(content=[ContentItem(type="json", data={"tool": tool_name})])

    @property
    def called(self) -> list[str]:
        return [name for name, _ in self.calls]


class TestSequentialWorkflowEngine:
    """Test cases for SequentialWorkflowEngine."""

    def run(self, data: dict, scripts: dict[str, Any] | None = None, inputs: dict | None = None) -> RunSummary:
        self.executor = ScriptedExecutor(scripts)
        engine = SequentialWorkflowEngine(
            invoker=ToolInvoker(self.executor),
            condition_evaluator=ExpressionConditionEvaluator(),
            finalizer=RunFinalizer(self.executor),
            execution_options=ExecutionOptions(retry_interval=0),
        )
        request = load_request(data)
        context = build_execution_context(request.variables, inputs if inputs is not None else request.inputs)
        return engine.run(request, context)

    def test_all_steps_succeed(self):
        summary = self.run({"steps": [{"tool_name": "a"}, {"tool_name": "b", "id": "second"}]})

        assert summary.status == RunStatus.SUCCESS
        assert summary.execution_mode == ExecutionMode.SEQUENTIAL
        assert summary.total_tools == 2
        assert summary.executed_tools == 2
        assert summary.iteration_limit_reached is False
        assert [r.index for r in summary.results] == [0, 1]
        assert summary.results[1].step_id == "second"
        assert summary.results[1].result["content"] == [{"tool": "b"}]
        assert self.executor.called == ["a", "b"]

    def test_arguments_are_templated(self):
        self.run(
            {
                "variables": {"count": {"type": "number", "default": 5}},
                "inputs": {"user": {"name": "Alice"}},
                "steps": [{"tool_name": "a", "arguments": {"n": "{{count}}", "text": "Hi {{user.name}}"}}],
            }
        )

        assert self.executor.calls == [("a", {"n": 5, "text": "Hi Alice"})]

    def test_fallback_jump_skips_intermediate_steps(self):
        summary = self.run(
            {
                "steps": [
                    {"id": "a", "tool_name": "A", "fallback_id": "c", "continue_on_error": True},
                    {"id": "b", "tool_name": "B"},
                    {"id": "c", "tool_name": "C"},
                ]
            },
            scripts={"A": False},
        )

        assert self.executor.called == ["A", "C"]
        assert [r.index for r in summary.results] == [0, 2]
        assert summary.results[0].status == StepStatus.SKIPPED
        assert summary.results[0].error == "internal: A failed"
        assert summary.status == RunStatus.COMPLETED_WITH_ERRORS

    def test_fallback_after_critical_failure_is_skipped(self):
        summary = self.run(
            {
                "steps": [
                    {"id": "a", "tool_name": "A", "fallback_id": "c"},
                    {"id": "b", "tool_name": "B"},
                    {"id": "c", "tool_name": "C"},
                ]
            },
            scripts={"A": False},
        )

        assert self.executor.called == ["A"]
        assert [r.index for r in summary.results] == [0, 2]
        assert summary.results[1].reason == PRIOR_ERROR_REASON
        assert summary.status == RunStatus.PARTIAL_SUCCESS

    def test_fallback_can_jump_backwards(self):
        summary = self.run(
            {
                "steps": [
                    {"id": "setup", "tool_name": "setup"},
                    {"id": "check", "tool_name": "check", "fallback_id": "setup", "continue_on_error": True},
                ]
            },
            scripts={"check": [False, True]},
        )

        assert self.executor.called == ["setup", "check", "setup", "check"]
        assert [r.index for r in summary.results] == [0, 1, 0, 1]

    def test_unknown_fallback_continues(self, caplog):
        with caplog.at_level(logging.WARNING):
            summary = self.run(
                {
                    "steps": [
                        {"tool_name": "A", "fallback_id": "ghost", "continue_on_error": True},
                        {"tool_name": "B"},
                    ]
                },
                scripts={"A": False},
            )

        assert self.executor.called == ["A", "B"]
        assert "fallback_id 'ghost' for step 0 not found" in caplog.text
        assert summary.status == RunStatus.COMPLETED_WITH_ERRORS

    def test_always_steps_run_after_critical_failure(self):
        summary = self.run(
            {
                "steps": [
                    {"tool_name": "A"},
                    {"tool_name": "B"},
                    {"tool_name": "cleanup", "if": "always()"},
                    {"tool_name": "D", "if": "true"},
                ]
            },
            scripts={"A": False},
        )

        assert self.executor.called == ["A", "cleanup"]
        statuses = [r.status for r in summary.results]
        assert statuses == [StepStatus.ERROR, StepStatus.SKIPPED, StepStatus.SUCCESS, StepStatus.SKIPPED]
        assert summary.results[1].reason == PRIOR_ERROR_REASON
        assert summary.results[3].reason == PRIOR_ERROR_REASON
        assert summary.status == RunStatus.PARTIAL_SUCCESS

    def test_condition_not_met(self):
        summary = self.run(
            {
                "inputs": {"mode": "dev"},
                "steps": [{"tool_name": "A", "if": "mode == 'prod'"}, {"tool_name": "B", "if": "mode == 'dev'"}],
            }
        )

        assert self.executor.called == ["B"]
        assert summary.results[0].status == StepStatus.SKIPPED
        assert summary.results[0].reason == "if_expr not met: mode == 'prod'"
        assert summary.status == RunStatus.SUCCESS

    def test_condition_on_object_and_array_skips_step(self):
        summary = self.run(
            {
                "inputs": {"obj": {"a": 1}, "arr": [1]},
                "steps": [{"tool_name": "A", "if": "contains(obj, arr)"}, {"tool_name": "B"}],
            }
        )

        assert self.executor.called == ["B"]
        assert summary.results[0].status == StepStatus.SKIPPED
        assert summary.status == RunStatus.SUCCESS

    def test_retry_until_success(self, caplog):
        with caplog.at_level(logging.WARNING):
            summary = self.run({"steps": [{"tool_name": "A", "retries": 2}]}, scripts={"A": [False, False, True]})

        assert self.executor.called == ["A", "A", "A"]
        assert len(summary.results) == 1
        assert summary.results[0].status == StepStatus.SUCCESS
        assert summary.status == RunStatus.SUCCESS
        assert "Step 0 failed on attempt 1/2. Retrying..." in caplog.text

    def test_retries_exhausted(self):
        summary = self.run({"steps": [{"tool_name": "A", "retries": 1}, {"tool_name": "B"}]}, scripts={"A": False})

        assert self.executor.called == ["A", "A"]
        assert summary.results[0].status == StepStatus.ERROR
        assert summary.results[1].status == StepStatus.SKIPPED
        assert summary.status == RunStatus.PARTIAL_SUCCESS

    def test_retry_interval_between_attempts(self):
        self.executor = ScriptedExecutor({"A": [False, True]})
        engine = SequentialWorkflowEngine(
            ToolInvoker(self.executor),
            ExpressionConditionEvaluator(),
            RunFinalizer(self.executor),
            ExecutionOptions(retry_interval=0.5),
        )
        request = load_request({"steps": [{"tool_name": "A", "retries": 3}]})

        with patch("stepflow.infrastructure.adapter.in_memory.sequential_engine.time.sleep") as sleep:
            engine.run(request, build_execution_context())

        sleep.assert_called_once_with(0.5)

    def test_delay_applied_after_failed_attempt(self):
        with patch("stepflow.infrastructure.adapter.in_memory.sequential_engine.time.sleep") as sleep:
            self.run(
                {
                    "steps": [
                        {"tool_name": "A", "delay_ms": 250, "continue_on_error": True},
                        {"tool_name": "B", "delay_ms": 100},
                    ]
                },
                scripts={"A": False},
            )

        sleep.assert_called_once_with(0.25)

    def test_summary_results_without_detail(self):
        summary = self.run({"include_detailed_results": False, "steps": [{"tool_name": "A"}]})

        assert summary.results[0].result == {
            "type": "summary",
            "content": "Tool executed successfully",
            "content_count": 1,
        }

    def test_group_success(self):
        summary = self.run({"steps": [{"group_name": "login", "steps": [{"tool_name": "x"}, {"tool_name": "y"}]}]})

        group = summary.results[0]
        assert isinstance(group, GroupResult)
        assert group.status == GroupStatus.SUCCESS
        assert group.group_name == "login"
        assert [r.index for r in group.results] == [0, 1]
        assert summary.status == RunStatus.SUCCESS

    def test_group_critical_failure_stops_group_and_run(self):
        summary = self.run(
            {
                "steps": [
                    {"group_name": "g", "steps": [{"tool_name": "x"}, {"tool_name": "y"}, {"tool_name": "z"}]},
                    {"tool_name": "after"},
                ]
            },
            scripts={"y": False},
        )

        assert self.executor.called == ["x", "y"]
        assert summary.results[0].status == GroupStatus.PARTIAL_SUCCESS
        assert summary.results[1].reason == PRIOR_ERROR_REASON
        assert summary.status == RunStatus.PARTIAL_SUCCESS

    def test_skippable_group_failure(self):
        summary = self.run(
            {
                "steps": [
                    {
                        "group_name": "optional",
                        "skippable": True,
                        "steps": [{"tool_name": "x"}, {"tool_name": "y"}, {"tool_name": "z"}],
                    },
                    {"tool_name": "after"},
                ]
            },
            scripts={"y": False},
        )

        assert self.executor.called == ["x", "y", "after"]
        assert summary.results[0].status == GroupStatus.PARTIAL_SUCCESS
        assert summary.status == RunStatus.COMPLETED_WITH_ERRORS

    def test_group_with_tolerated_inner_failure(self):
        data = {
            "steps": [
                {"group_name": "g", "steps": [{"tool_name": "x", "continue_on_error": True}, {"tool_name": "y"}]},
                {"tool_name": "after"},
            ]
        }

        summary = self.run(data, scripts={"x": False})

        assert self.executor.called == ["x", "y"]
        assert summary.status == RunStatus.PARTIAL_SUCCESS

    def test_group_failure_critical_without_stop_on_error(self):
        data = {
            "stop_on_error": False,
            "steps": [
                {"group_name": "g", "steps": [{"tool_name": "x", "continue_on_error": True}, {"tool_name": "y"}]},
                {"tool_name": "after"},
                {"tool_name": "cleanup", "if": "always()"},
            ],
        }

        summary = self.run(data, scripts={"x": False})

        assert self.executor.called == ["x", "y", "cleanup"]
        assert summary.results[1].reason == PRIOR_ERROR_REASON
        assert summary.status == RunStatus.PARTIAL_SUCCESS

    def test_group_retry_reruns_whole_group(self):
        summary = self.run(
            {"steps": [{"group_name": "g", "retries": 1, "steps": [{"tool_name": "x"}, {"tool_name": "y"}]}]},
            scripts={"y": [False, True]},
        )

        assert self.executor.called == ["x", "y", "x", "y"]
        assert summary.results[0].status == GroupStatus.SUCCESS
        assert summary.status == RunStatus.SUCCESS

    def test_successful_group_stops_retrying(self):
        self.run({"steps": [{"group_name": "g", "retries": 3, "steps": [{"tool_name": "x"}, {"tool_name": "y"}]}]})

        assert self.executor.called == ["x", "y"]

    def test_fallback_cycle_hits_iteration_bound(self, caplog):
        with caplog.at_level(logging.WARNING):
            summary = self.run(
                {
                    "steps": [
                        {"id": "a", "tool_name": "A", "fallback_id": "b", "continue_on_error": True},
                        {"id": "b", "tool_name": "B", "fallback_id": "a", "continue_on_error": True},
                    ]
                },
                scripts={"A": False, "B": False},
            )

        assert summary.iteration_limit_reached is True
        assert summary.executed_tools == 20
        assert len(summary.results) == 20
        assert summary.status == RunStatus.COMPLETED_WITH_ERRORS
        assert "Maximum iteration count reached" in caplog.text

    def test_duplicate_ids_later_occurrence_wins(self):
        self.run(
            {
                "steps": [
                    {"tool_name": "A", "fallback_id": "dup", "continue_on_error": True},
                    {"id": "dup", "tool_name": "first"},
                    {"id": "dup", "tool_name": "second"},
                ]
            },
            scripts={"A": False},
        )

        assert self.executor.called == ["A", "second"]
