import logging
from collections.abc import Iterable

from stepflow.application.port import ExecutionPlanner
from stepflow.domain.entity import StepTypes, ToolStep
from stepflow.domain.value_object import ExecutionPlan

logger = logging.getLogger(__name__)

# Read-only inspection tools that never change UI state.
DEFAULT_PARALLEL_SAFE_TOOLS = frozenset(
    {
        "get_window_tree",
        "get_focused_window_tree",
        "get_applications",
        "validate_element",
        "is_toggled",
        "is_selected",
        "get_range_value",
        "list_options",
        "capture_element_screenshot",
    }
)


class ConsecutiveToolPlanner(ExecutionPlanner):
    """Groups runs of two or more consecutive parallel-safe tool steps; every other step runs solo."""

    def __init__(self, parallel_safe_tools: Iterable[str] | None = None):
        self.parallel_safe_tools = (
            frozenset(parallel_safe_tools) if parallel_safe_tools is not None else DEFAULT_PARALLEL_SAFE_TOOLS
        )

    def _is_safe(self, step: StepTypes) -> bool:
        return isinstance(step, ToolStep) and step.tool_name in self.parallel_safe_tools

    def plan(self, steps: list[StepTypes]) -> ExecutionPlan:
        solo: list[int] = []
        groups: list[list[int]] = []
        run: list[int] = []

        def flush() -> None:
            if len(run) >= 2:
                groups.append(list(run))
            else:
                solo.extend(run)
            run.clear()

        for index, step in enumerate(steps):
            if self._is_safe(step):
                run.append(index)
            else:
                flush()
                solo.append(index)
        flush()

        logger.info("Execution plan: %d solo steps, %d parallel groups", len(solo), len(groups))
        return ExecutionPlan(solo=sorted(solo), groups=groups)
