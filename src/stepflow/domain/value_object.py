from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

import msgspec


@dataclass
class ExecutionOptions:
    retry_interval: float = 0.5
    max_iterations_factor: int = 10
    max_workers: int | None = None


class RunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    COMPLETED_WITH_ERRORS = "completed_with_errors"


class StepStatus(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


class GroupStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class VariableType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    ARRAY = "array"
    OBJECT = "object"

    @classmethod
    def parse(cls, value: str) -> "VariableType":
        """Looks up a type name case-insensitively, so `String` and `string` agree."""
        return cls(value.strip().lower())


class ContentItem(msgspec.Struct, omit_defaults=True):
    """One piece of content returned by an action: structured JSON, plain text or binary image data."""

    type: Literal["json", "text", "image"]
    data: Any = None
    mime_type: str | None = None

    def to_json_value(self) -> Any:
        """Renders the item as a JSON value suitable for a step result."""
        if self.type == "json":
            return self.data
        if self.type == "text":
            return {"type": "text", "text": self.data}
        size = len(self.data) if isinstance(self.data, (bytes, bytearray)) else None
        return {"type": "image", "mime_type": self.mime_type, "size": size}


class ToolOutput(msgspec.Struct):
    """Successful result of a single action invocation."""

    content: list[ContentItem] = []


class ExecutionPlan(msgspec.Struct):
    """
    Partition of step indices for parallel execution.

    ``solo`` indices run one at a time; every list in ``groups`` is a set of
    mutually independent indices dispatched together.
    """

    solo: list[int]
    groups: list[list[int]] = []

    def validate(self, step_count: int) -> None:
        """
        Checks that every index in ``range(step_count)`` appears exactly once.

        :raises ValueError: If the plan is not an exhaustive, disjoint partition
        """
        seen: list[int] = list(self.solo)
        for group in self.groups:
            if not group:
                raise ValueError("Execution plan contains an empty parallel group")
            seen.extend(group)
        if sorted(seen) != list(range(step_count)):
            raise ValueError(
                f"Execution plan must cover each of the {step_count} step indices exactly once, got {sorted(seen)}"
            )
