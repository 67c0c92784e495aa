import logging
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from stepflow.application.adapter import ExecutionContext, RunFinalizer, ToolInvoker, substitute_variables
from stepflow.application.port import ConditionEvaluator, WorkflowEngine
from stepflow.domain.entity import GroupResult, GroupStep, RunRequest, RunSummary, StepResult, ToolStep, step_kind
from stepflow.domain.service import aggregate_status, build_step_index
from stepflow.domain.value_object import ExecutionMode, ExecutionOptions, GroupStatus, StepStatus

logger = logging.getLogger(__name__)

PRIOR_ERROR_REASON = "Skipped due to a previous unrecoverable error in the sequence."


def pause(delay_ms: int | None) -> None:
    if delay_ms is not None and delay_ms > 0:
        time.sleep(delay_ms / 1000)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class SequentialWorkflowEngine(WorkflowEngine):
    """Runs steps one at a time with conditions, retries, fallback jumps and groups.

    A critical failure skips every later step except those whose condition is
    ``always()``. A failed step with a known ``fallback_id`` jumps to that step, which
    may lie before it; the number of iterations is bounded to stop fallback cycles.
    """

    def __init__(
        self,
        invoker: ToolInvoker,
        condition_evaluator: ConditionEvaluator,
        finalizer: RunFinalizer,
        execution_options: ExecutionOptions | None = None,
    ):
        self.invoker = invoker
        self.condition_evaluator = condition_evaluator
        self.finalizer = finalizer
        self.execution_options = execution_options if execution_options is not None else ExecutionOptions()

    def run(self, request: RunRequest, context: Mapping[str, Any]) -> RunSummary:
        if not isinstance(context, ExecutionContext):
            context = ExecutionContext(context)
        started = time.monotonic()
        steps = request.steps
        id_to_index = build_step_index(steps)
        max_iterations = len(steps) * self.execution_options.max_iterations_factor

        results: list[StepResult | GroupResult] = []
        had_errors = False
        critical = False
        current = 0
        iterations = 0

        while current < len(steps) and iterations < max_iterations:
            iterations += 1
            step = steps[current]
            is_always = step.is_always()

            if critical and not is_always:
                results.append(
                    StepResult(index=current, status=StepStatus.SKIPPED, step_id=step.id, reason=PRIOR_ERROR_REASON)
                )
                current += 1
                continue

            if step.if_ is not None and not is_always and not self.condition_evaluator.evaluate(step.if_, context):
                logger.info("Skipping step %d due to if expression not met: `%s`", current, step.if_)
                results.append(
                    StepResult(
                        index=current,
                        status=StepStatus.SKIPPED,
                        step_id=step.id,
                        reason=f"if_expr not met: {step.if_}",
                    )
                )
                current += 1
                continue

            if step_kind(step) == "group":
                result, failed, step_critical = self._run_group_with_retries(step, current, request, context)
            else:
                result, failed, step_critical = self._run_tool_with_retries(step, current, request, context)

            results.append(result)
            had_errors = had_errors or failed
            critical = critical or step_critical

            if not failed:
                current += 1
            elif step.fallback_id is not None:
                if step.fallback_id in id_to_index:
                    target = id_to_index[step.fallback_id]
                    logger.info(
                        "Step %d failed. Jumping to fallback step with id '%s' (index %d).",
                        current,
                        step.fallback_id,
                        target,
                    )
                    current = target
                else:
                    logger.warning(
                        "fallback_id '%s' for step %d not found. Continuing to next step.", step.fallback_id, current
                    )
                    current += 1
            else:
                current += 1

        limit_reached = current < len(steps)
        if limit_reached:
            logger.warning("Maximum iteration count reached. Possible infinite fallback loop detected.")

        summary = RunSummary(
            status=aggregate_status(had_errors, critical),
            execution_mode=ExecutionMode.SEQUENTIAL,
            total_tools=len(steps),
            executed_tools=len(results),
            duration_ms=int((time.monotonic() - started) * 1000),
            timestamp=utc_timestamp(),
            results=results,
            iteration_limit_reached=limit_reached,
        )
        return self.finalizer.finalize(summary, request, context)

    def _run_tool_with_retries(
        self, step: ToolStep, index: int, request: RunRequest, context: ExecutionContext
    ) -> tuple[StepResult, bool, bool]:
        result: StepResult | None = None
        critical = False
        for attempt in range(step.retries + 1):
            result, critical = self.invoker.invoke(
                step.tool_name,
                substitute_variables(step.arguments, context),
                index=index,
                step_id=step.id,
                continue_on_error=step.continue_on_error,
                include_detailed=request.include_detailed_results,
            )
            if result.succeeded:
                return result, False, False
            pause(step.delay_ms)
            self._before_retry(index, attempt, step.retries)
        return result, True, critical

    def _run_group_with_retries(
        self, step: GroupStep, index: int, request: RunRequest, context: ExecutionContext
    ) -> tuple[GroupResult, bool, bool]:
        result: GroupResult | None = None
        critical = False
        for attempt in range(step.retries + 1):
            result, critical = self._run_group(step, index, request, context)
            if result.status == GroupStatus.SUCCESS:
                return result, False, False
            self._before_retry(index, attempt, step.retries)
        return result, True, critical

    def _run_group(
        self, step: GroupStep, index: int, request: RunRequest, context: ExecutionContext
    ) -> tuple[GroupResult, bool]:
        """Runs one attempt of a group; returns its result and whether it made the run critical."""
        inner_results: list[StepResult] = []
        had_errors = False
        for position, tool in enumerate(step.steps):
            result, tool_critical = self.invoker.invoke(
                tool.tool_name,
                substitute_variables(tool.arguments, context),
                index=position,
                step_id=tool.id,
                continue_on_error=tool.continue_on_error,
                include_detailed=request.include_detailed_results,
            )
            inner_results.append(result)
            pause(tool.delay_ms)
            if result.succeeded:
                continue
            had_errors = True
            if tool_critical or step.skippable:
                break

        # Any inner failure of a non-skippable group is critical for the run
        critical = had_errors and not step.skippable
        status = GroupStatus.PARTIAL_SUCCESS if had_errors else GroupStatus.SUCCESS
        return GroupResult(index=index, group_name=step.group_name, status=status, results=inner_results), critical

    def _before_retry(self, index: int, attempt: int, retries: int) -> None:
        if attempt < retries:
            logger.warning("Step %d failed on attempt %d/%d. Retrying...", index, attempt + 1, retries)
            if self.execution_options.retry_interval > 0:
                time.sleep(self.execution_options.retry_interval)
