import logging
from typing import Any

from stepflow.domain.entity import StepTypes
from stepflow.domain.value_object import RunStatus
from stepflow.errors import WorkflowValidationError

logger = logging.getLogger(__name__)


def normalize_step(raw: Any, position: int) -> dict[str, Any]:
    """
    Tags a raw step mapping with its ``kind`` so it can be decoded as a tagged union.

    A step carrying ``tool_name`` is a tool step, one carrying ``group_name`` is a group
    step. Inngest-style steps that nest the call under ``run`` are flattened first.

    :param raw: The step as loaded from JSON or a workflow module
    :type raw: Any
    :param position: Position of the step, used in error messages
    :type position: int
    :returns: A new mapping with ``kind`` set
    :rtype: dict[str, Any]
    :raises WorkflowValidationError: If the step is neither a tool step nor a group step
    """
    if not isinstance(raw, dict):
        raise WorkflowValidationError(f"Step {position} must be an object", {"invalid_step": raw})

    step = dict(raw)
    run = step.get("run")
    if step.get("tool_name") is None and isinstance(run, dict) and run.get("tool_name") is not None:
        del step["run"]
        step.update(run)

    if step.get("tool_name") is not None:
        step["kind"] = "tool"
        if step.get("arguments") is None:
            step["arguments"] = {}
        return step

    if step.get("group_name") is not None:
        step["kind"] = "group"
        inner = step.get("steps") or []
        if not isinstance(inner, list):
            raise WorkflowValidationError(f"Group step {position} 'steps' must be a list", {"invalid_step": raw})
        tagged = []
        for inner_position, inner_step in enumerate(inner):
            normalized = normalize_step(inner_step, inner_position)
            if normalized["kind"] != "tool":
                raise WorkflowValidationError(
                    f"Group step {position} may only contain tool steps", {"invalid_step": inner_step}
                )
            tagged.append(normalized)
        step["steps"] = tagged
        return step

    raise WorkflowValidationError(
        "Each step must have either tool_name (for single tools) or group_name (for groups)",
        {"invalid_step": raw},
    )


def normalize_steps(raw_steps: Any) -> list[dict[str, Any]]:
    """Tags every step of a raw step list; see :func:`normalize_step`."""
    if not isinstance(raw_steps, list):
        raise WorkflowValidationError("'steps' must be a list", {"steps": raw_steps})
    return [normalize_step(step, position) for position, step in enumerate(raw_steps)]


def validate_steps(steps: list[StepTypes]) -> bool:
    """
    Validates a decoded step list.

    :param steps: The steps to validate
    :type steps: list[StepTypes]
    :returns: True if the steps are valid
    :rtype: bool
    :raises WorkflowValidationError: If there are no steps or a step is malformed
    """
    if not steps:
        raise WorkflowValidationError("Workflow must have at least one step")
    for position, step in enumerate(steps):
        if step.retries < 0:
            raise WorkflowValidationError(f"Step {position} has negative retries: {step.retries}")
    return True


def build_step_index(steps: list[StepTypes]) -> dict[str, int]:
    """
    Maps step ids to their original positions; a duplicated id resolves to its last occurrence.

    :param steps: The steps of a run
    :type steps: list[StepTypes]
    :returns: Mapping of step id to index
    :rtype: dict[str, int]
    """
    index: dict[str, int] = {}
    for position, step in enumerate(steps):
        if step.id is None:
            continue
        if step.id in index:
            logger.warning("Duplicate step id '%s' found; later occurrence overrides earlier.", step.id)
        index[step.id] = position
    return index


def aggregate_status(had_errors: bool, critical_error_occurred: bool) -> RunStatus:
    """
    Folds per-step outcomes into the run status.

    :param had_errors: Whether any step ultimately failed
    :param critical_error_occurred: Whether any of those failures was critical
    :returns: ``success`` without failures, ``partial_success`` after a critical failure,
        ``completed_with_errors`` when only skippable failures occurred
    :rtype: RunStatus
    """
    if not had_errors:
        return RunStatus.SUCCESS
    if critical_error_occurred:
        return RunStatus.PARTIAL_SUCCESS
    return RunStatus.COMPLETED_WITH_ERRORS
