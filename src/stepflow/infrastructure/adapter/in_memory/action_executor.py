import logging
from typing import Any

from stepflow.application.port import ActionExecutor, Binder, PluginResolver, TaskRunner
from stepflow.domain.value_object import ContentItem, ToolOutput
from stepflow.errors import ActionError, ActionErrorKind

logger = logging.getLogger(__name__)


def to_tool_output(value: Any) -> ToolOutput:
    """
    Wraps a plugin's return value as tool output.

    A ``ToolOutput`` passes through, ``ContentItem`` values (alone or in a list) are
    wrapped, ``bytes`` become a PNG image item and anything else becomes a JSON item.
    """
    if isinstance(value, ToolOutput):
        return value
    if isinstance(value, ContentItem):
        return ToolOutput(content=[value])
    if isinstance(value, list) and value and all(isinstance(v, ContentItem) for v in value):
        return ToolOutput(content=list(value))
    if isinstance(value, (bytes, bytearray)):
        return ToolOutput(content=[ContentItem(type="image", data=bytes(value), mime_type="image/png")])
    return ToolOutput(content=[ContentItem(type="json", data=value)])


class InMemoryActionExecutor(ActionExecutor):
    """Runs actions implemented as in-process plugins.

    :param resolver: Maps tool names to plugin instances
    :param binder: Binds JSON arguments to the plugin's ``execute`` signature
    :param task_runner: Calls the plugin
    :param diagnostic_tool: Optional tool invoked after an unsuccessful run to capture a screenshot
    """

    def __init__(
        self,
        resolver: PluginResolver,
        binder: Binder,
        task_runner: TaskRunner,
        diagnostic_tool: str | None = None,
    ):
        self.resolver = resolver
        self.binder = binder
        self.task_runner = task_runner
        self.diagnostic_tool = diagnostic_tool

    def invoke(self, tool_name: str, arguments: dict[str, Any]) -> ToolOutput:
        try:
            plugin = self.resolver.resolve(tool_name)
        except KeyError as e:
            raise ActionError(ActionErrorKind.NOT_FOUND, f"Unknown tool '{tool_name}'") from e
        bound = self.binder.bind(plugin, arguments)
        return to_tool_output(self.task_runner.run(plugin, bound))

    def capture_diagnostic(self) -> ContentItem | None:
        if self.diagnostic_tool is None:
            return None
        output = self.invoke(self.diagnostic_tool, {})
        for item in output.content:
            if item.type == "image":
                return item
        logger.debug("Diagnostic tool '%s' returned no image", self.diagnostic_tool)
        return None
