from typing import Any

import msgspec

from stepflow.domain.value_object import ContentItem, ExecutionMode, GroupStatus, RunStatus, StepStatus


class Step(msgspec.Struct, tag_field="kind", kw_only=True):
    """
    Base class for workflow steps.

    Steps form a tagged union discriminated by ``kind``; the tag is derived on load
    from whether the raw step carries ``tool_name`` or ``group_name``.
    """

    id: str | None = None
    retries: int = 0
    if_: str | None = msgspec.field(default=None, name="if")
    fallback_id: str | None = None

    def is_always(self) -> bool:
        """Returns True when the step's condition is the literal ``always()``."""
        return self.if_ is not None and self.if_.strip() == "always()"


class ToolStep(Step, kw_only=True, tag="tool"):
    """A single named action call with JSON arguments."""

    tool_name: str
    arguments: dict[str, Any] = {}
    continue_on_error: bool = False
    delay_ms: int | None = None


class GroupStep(Step, kw_only=True, tag="group"):
    """A named, ordered batch of tool calls sharing one skippable flag."""

    group_name: str
    steps: list[ToolStep] = []
    skippable: bool = False


StepTypes = ToolStep | GroupStep


def step_kind(step: Step) -> str:
    """Returns the discriminant of a step: ``"tool"`` or ``"group"``."""
    return type(step).__struct_config__.tag


class VariableDefinition(msgspec.Struct, kw_only=True):
    """Schema entry for one workflow variable."""

    type: str
    default: Any = msgspec.UNSET
    required: bool = True
    options: list[str] | None = None
    label: str | None = None
    description: str | None = None

    def has_default(self) -> bool:
        return self.default is not msgspec.UNSET


class WorkflowDefinition(msgspec.Struct, kw_only=True, omit_defaults=True):
    """A parsed workflow: ordered steps plus variable, input and selector metadata."""

    id: str | None = None
    name: str | None = None
    description: str | None = None
    version: str | None = None
    timeout: int | None = None
    variables: dict[str, VariableDefinition] | None = None
    inputs: dict[str, Any] | None = None
    selectors: Any = None
    steps: list[StepTypes]
    metadata: Any = None


class RunRequest(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Canonical input of a single run."""

    steps: list[StepTypes]
    variables: dict[str, VariableDefinition] | None = None
    inputs: Any = None
    selectors: Any = None
    output_parser: Any = None
    parallel_execution: bool = False
    stop_on_error: bool = True
    include_detailed_results: bool = True
    timeout_ms: int | None = None


class StepResult(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Outcome of one tool step, or of a step that was skipped without running."""

    index: int
    status: StepStatus
    step_id: str | None = None
    tool_name: str | None = None
    duration_ms: int | None = None
    result: Any = None
    error: str | None = None
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == StepStatus.SUCCESS


class GroupResult(msgspec.Struct, kw_only=True):
    """Aggregated outcome of a group step."""

    index: int
    group_name: str
    status: GroupStatus
    results: list[StepResult] = []


class RunSummary(msgspec.Struct, kw_only=True, omit_defaults=True):
    """Result of a run: aggregate status plus one entry per executed or skipped step."""

    status: RunStatus
    execution_mode: ExecutionMode
    total_tools: int
    executed_tools: int
    duration_ms: int
    timestamp: str
    results: list[Any] = []
    parsed_output: Any = msgspec.UNSET
    parser_error: str | None = None
    iteration_limit_reached: bool = False
    attachments: list[ContentItem] = []

    def to_dict(self) -> dict:
        """Convert the RunSummary to a dictionary."""
        return msgspec.to_builtins(self)

    def to_json(self) -> str:
        """Convert the RunSummary to a JSON string."""
        return msgspec.json.encode(self).decode()

    def to_yaml(self) -> str:
        """Convert the RunSummary to a YAML string."""
        return msgspec.yaml.encode(self).decode()
