from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from stepflow.domain.entity import RunRequest, RunSummary, StepTypes
from stepflow.domain.port import ActionPlugin
from stepflow.domain.value_object import ContentItem, ExecutionPlan, ToolOutput


class ActionExecutor(ABC):
    """Performs one named action with already substituted arguments."""

    @abstractmethod
    def invoke(self, tool_name: str, arguments: dict[str, Any]) -> ToolOutput:
        """
        Invoke an action.

        :param tool_name: Name of the action to perform
        :type tool_name: str
        :param arguments: JSON arguments for the action
        :type arguments: dict[str, Any]
        :returns: The structured content produced by the action
        :rtype: ToolOutput
        :raises ActionError: If the action is unknown, the arguments are invalid or it fails
        """

    def capture_diagnostic(self) -> ContentItem | None:
        """
        Best-effort diagnostic capture (e.g. a screenshot) after an unsuccessful run.

        :returns: A content item, or None when nothing could be captured
        :rtype: ContentItem | None
        """
        return None


class ConditionEvaluator(ABC):
    """Evaluates a step's ``if`` expression against the execution context."""

    @abstractmethod
    def evaluate(self, expression: str, context: Mapping[str, Any]) -> bool:
        """
        Evaluate an expression.

        :param expression: The condition text
        :type expression: str
        :param context: The read-only execution context
        :type context: Mapping[str, Any]
        :returns: Whether the condition holds
        :rtype: bool
        """


class OutputParser(ABC):
    """Extracts structured data from a finished run summary."""

    @abstractmethod
    def parse(self, definition: Any, summary: dict[str, Any]) -> Any | None:
        """
        Run the parser.

        :param definition: The parser definition, already templated against the context
        :type definition: Any
        :param summary: The run summary as builtins
        :type summary: dict[str, Any]
        :returns: The extracted value, or None when there is nothing to extract
        :rtype: Any | None
        :raises Exception: Any failure is reported as ``parser_error`` on the summary
        """


class ExecutionPlanner(ABC):
    """Partitions steps into solo indices and groups of mutually independent indices."""

    @abstractmethod
    def plan(self, steps: list[StepTypes]) -> ExecutionPlan:
        """
        Build an execution plan.

        :param steps: The ordered steps of the run
        :type steps: list[StepTypes]
        :returns: A plan in which each index appears exactly once
        :rtype: ExecutionPlan
        """


class WorkflowEngine(ABC):
    """Abstract base class defining the workflow engine interface."""

    @abstractmethod
    def run(self, request: RunRequest, context: Mapping[str, Any]) -> RunSummary:
        """
        Runs the steps of a request against a prepared context.

        :param request: The validated run request
        :type request: RunRequest
        :param context: The read-only execution context
        :type context: Mapping[str, Any]
        :returns: The run summary
        :rtype: RunSummary
        """
        ...


class TaskRunner(ABC):
    """Abstract interface for running action plugins."""

    @abstractmethod
    def run(self, plugin: ActionPlugin, bound: dict[str, Any]) -> Any:
        """
        Run a plugin with bound parameters.

        :param plugin: The plugin to run
        :type plugin: ActionPlugin
        :param bound: Dictionary of bound parameters
        :type bound: dict[str, Any]
        :returns: The result of running the plugin
        :rtype: Any
        """


class PluginResolver(ABC):
    """Abstract base class defining plugin resolution interface."""

    @abstractmethod
    def resolve(self, name: str) -> ActionPlugin:
        """
        Resolves and returns a plugin instance by its tool name.

        :param name: The tool name of the plugin to resolve
        :type name: str
        :returns: The resolved plugin instance
        :rtype: ActionPlugin
        :raises: KeyError if the plugin is not found
        """
        ...


class Binder(ABC):
    """Abstract interface for binding arguments to plugin methods."""

    @abstractmethod
    def bind(self, plugin: ActionPlugin, params: dict[str, Any]) -> dict[str, Any]:
        """
        Bind arguments to a plugin's execute method.

        :param plugin: The plugin to bind arguments for
        :type plugin: ActionPlugin
        :param params: The arguments to bind
        :type params: dict[str, Any]
        :returns: Dictionary of bound arguments
        :rtype: dict[str, Any]
        """
