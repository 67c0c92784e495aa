from enum import Enum
from typing import Any


class StepflowError(Exception):
    """Base class for all errors raised by stepflow."""


class WorkflowValidationError(StepflowError, ValueError):
    """Raised when a run request or its variables fail validation before any step runs."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ParseError(StepflowError, ValueError):
    """
    Raised when workflow source text cannot be turned into a definition.

    :param message: Human readable description of the failure
    :param snippet: The offending source fragment, truncated for diagnostics
    """

    snippet_limit = 200

    def __init__(self, message: str, snippet: str = ""):
        self.message = message
        self.snippet = snippet[: self.snippet_limit]
        super().__init__(f"{message}: {self.snippet}" if self.snippet else message)


class ExportNotFoundError(ParseError):
    """No supported export idiom was found in the source."""


class UnbalancedBracesError(ParseError):
    """The exported object literal never closes."""


class MalformedObjectError(ParseError):
    """The normalised object literal is not valid JSON."""


class WorkflowDefinitionError(ParseError):
    """The object literal parsed but is not a valid workflow definition."""


class ActionErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_ARGUMENTS = "invalid_arguments"
    INTERNAL = "internal"


class ActionError(StepflowError):
    """Typed failure returned by an action executor for a single tool invocation."""

    def __init__(self, kind: ActionErrorKind, message: str, data: Any = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.data = data

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"
