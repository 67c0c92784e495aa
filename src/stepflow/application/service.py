import logging
from typing import Any

import msgspec

from stepflow.application.adapter import build_execution_context
from stepflow.application.port import WorkflowEngine
from stepflow.domain.entity import RunRequest, RunSummary, WorkflowDefinition, step_kind
from stepflow.domain.service import normalize_steps, validate_steps
from stepflow.errors import WorkflowValidationError

logger = logging.getLogger(__name__)


def _tagged(data: dict) -> dict:
    if not isinstance(data, dict):
        raise WorkflowValidationError(f"Expected an object, got {type(data).__name__}")
    if "steps" not in data:
        raise WorkflowValidationError("Workflow must have at least one step")
    tagged = dict(data)
    tagged["steps"] = normalize_steps(data["steps"])
    return tagged


def load_workflow(data: dict | WorkflowDefinition) -> WorkflowDefinition:
    """Decodes and validates a workflow definition from a Python dictionary.

    Args:
        data: The workflow data as a dictionary.

    Returns:
        A validated WorkflowDefinition.
    """
    if isinstance(data, WorkflowDefinition):
        validate_steps(data.steps)
        return data

    try:
        workflow = msgspec.convert(_tagged(data), type=WorkflowDefinition)
    except msgspec.ValidationError as e:
        raise WorkflowValidationError(f"Invalid workflow definition: {e}") from e
    validate_steps(workflow.steps)
    return workflow


def load_request(data: dict | RunRequest) -> RunRequest:
    """Decodes and validates a run request from a Python dictionary.

    Args:
        data: The request as a dictionary, e.g. decoded from a JSON payload.

    Returns:
        A validated RunRequest.
    """
    if isinstance(data, RunRequest):
        validate_steps(data.steps)
        return data

    try:
        request = msgspec.convert(_tagged(data), type=RunRequest)
    except msgspec.ValidationError as e:
        raise WorkflowValidationError(f"Invalid run request: {e}") from e
    validate_steps(request.steps)
    return request


def to_run_request(definition: WorkflowDefinition, **overrides: Any) -> RunRequest:
    """
    Converts a parsed workflow definition into the canonical run input.

    :param definition: The workflow definition
    :param overrides: Extra run switches such as ``inputs`` or ``parallel_execution``
    :returns: A run request carrying the definition's steps, variables, inputs and selectors
    :rtype: RunRequest
    """
    fields: dict[str, Any] = {
        "steps": definition.steps,
        "variables": definition.variables,
        "inputs": definition.inputs,
        "selectors": definition.selectors,
        "timeout_ms": definition.timeout,
    }
    fields.update(overrides)
    return RunRequest(**fields)


class WorkflowClient:
    """
    Validates a run request, builds its execution context and hands it to an engine.

    Sequential requests go to ``sequential_engine``; requests with ``parallel_execution``
    go to ``parallel_engine``.
    """

    def __init__(self, sequential_engine: WorkflowEngine, parallel_engine: WorkflowEngine):
        self.sequential_engine = sequential_engine
        self.parallel_engine = parallel_engine

    def run(self, request: dict | RunRequest) -> RunSummary:
        """
        Runs a request to completion.

        :param request: The request as a dictionary or RunRequest
        :returns: The run summary
        :rtype: RunSummary
        :raises WorkflowValidationError: If the request or its variables are invalid
        """
        request = load_request(request)
        context = build_execution_context(request.variables, request.inputs, request.selectors)

        if request.parallel_execution:
            for position, step in enumerate(request.steps):
                if step_kind(step) == "group":
                    raise WorkflowValidationError(
                        f"Group step {position} ('{step.group_name}') is not supported in parallel execution mode",
                        {"index": position, "group_name": step.group_name},
                    )
            logger.info("Running %d steps in parallel mode", len(request.steps))
            return self.parallel_engine.run(request, context)

        logger.info("Running %d steps in sequential mode", len(request.steps))
        return self.sequential_engine.run(request, context)
