import concurrent.futures
import logging
import time
from collections.abc import Mapping
from typing import Any

from stepflow.application.adapter import ExecutionContext, RunFinalizer, ToolInvoker, substitute_variables
from stepflow.application.port import ExecutionPlanner, WorkflowEngine
from stepflow.domain.entity import RunRequest, RunSummary, StepResult, ToolStep, step_kind
from stepflow.domain.service import aggregate_status
from stepflow.domain.value_object import ExecutionMode, ExecutionOptions, StepStatus
from stepflow.errors import WorkflowValidationError
from stepflow.infrastructure.adapter.in_memory.sequential_engine import pause, utc_timestamp

logger = logging.getLogger(__name__)


class ParallelWorkflowEngine(WorkflowEngine):
    """Runs steps following an execution plan, dispatching each parallel group on a thread pool.

    Conditions, retries and fallbacks are not supported in this mode and are ignored
    with a warning. Group steps are rejected.
    """

    def __init__(
        self,
        invoker: ToolInvoker,
        planner: ExecutionPlanner,
        finalizer: RunFinalizer,
        execution_options: ExecutionOptions | None = None,
    ):
        self.invoker = invoker
        self.planner = planner
        self.finalizer = finalizer
        self.execution_options = execution_options if execution_options is not None else ExecutionOptions()

    def run(self, request: RunRequest, context: Mapping[str, Any]) -> RunSummary:
        if not isinstance(context, ExecutionContext):
            context = ExecutionContext(context)
        started = time.monotonic()
        steps = request.steps
        self._check_steps(steps)

        plan = self.planner.plan(steps)
        plan.validate(len(steps))
        group_of = {index: group for group in plan.groups for index in group}
        logger.info(
            "Executing sequence with %d sequential steps and %d parallel groups", len(plan.solo), len(plan.groups)
        )

        results: list[StepResult] = []
        had_errors = False
        critical = False
        dispatched: set[int] = set()

        for position in range(len(steps)):
            if critical and request.stop_on_error:
                break
            if position in dispatched:
                continue

            if position in group_of:
                group = group_of[position]
                batch = self._run_batch(group, steps, request, context)
                dispatched.update(group)
            else:
                step = steps[position]
                batch = [self._run_one(position, step, request, context)]
                dispatched.add(position)
                pause(step.delay_ms)

            for result, step_critical in batch:
                results.append(result)
                if not result.succeeded:
                    had_errors = True
                    critical = critical or step_critical

        summary = RunSummary(
            status=aggregate_status(had_errors, critical),
            execution_mode=ExecutionMode.PARALLEL,
            total_tools=len(steps),
            executed_tools=len(results),
            duration_ms=int((time.monotonic() - started) * 1000),
            timestamp=utc_timestamp(),
            results=results,
        )
        return self.finalizer.finalize(summary, request, context)

    def _check_steps(self, steps: list) -> None:
        for index, step in enumerate(steps):
            if step_kind(step) == "group":
                raise WorkflowValidationError(
                    f"Group step {index} ('{step.group_name}') is not supported in parallel execution mode",
                    {"index": index, "group_name": step.group_name},
                )
            ignored = [
                name
                for name, present in (
                    ("if", step.if_ is not None),
                    ("retries", step.retries > 0),
                    ("fallback_id", step.fallback_id is not None),
                )
                if present
            ]
            if ignored:
                logger.warning("Step %d: %s ignored in parallel execution mode", index, ", ".join(ignored))

    def _run_one(
        self, index: int, step: ToolStep, request: RunRequest, context: ExecutionContext
    ) -> tuple[StepResult, bool]:
        return self.invoker.invoke(
            step.tool_name,
            substitute_variables(step.arguments, context),
            index=index,
            step_id=step.id,
            continue_on_error=step.continue_on_error,
            include_detailed=request.include_detailed_results,
        )

    def _run_batch(
        self, group: list[int], steps: list, request: RunRequest, context: ExecutionContext
    ) -> list[tuple[StepResult, bool]]:
        """Runs every index of a group concurrently; results come back in index order."""
        batch: list[tuple[StepResult, bool]] = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.execution_options.max_workers) as executor:
            futures = {executor.submit(self._run_one, index, steps[index], request, context): index for index in group}
            for future in concurrent.futures.as_completed(futures):
                index = futures[future]
                try:
                    batch.append(future.result())
                except Exception as e:
                    logger.exception("Parallel task for step %d failed", index)
                    step = steps[index]
                    failed = StepResult(
                        index=index,
                        status=StepStatus.ERROR,
                        step_id=step.id,
                        tool_name=step.tool_name,
                        error=f"Task join error: {e}",
                    )
                    batch.append((failed, True))
        batch.sort(key=lambda item: item[0].index)
        return batch
