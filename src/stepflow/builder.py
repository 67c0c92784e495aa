import copy
from typing import Any

import msgspec

from stepflow.application.service import load_workflow
from stepflow.domain.entity import VariableDefinition, WorkflowDefinition


def _step_options(options: dict[str, Any]) -> dict[str, Any]:
    # ``if`` is a keyword, so callers pass ``if_``
    if "if_" in options:
        options["if"] = options.pop("if_")
    return options


class WorkflowBuilder:
    """
    Fluent builder for workflow definitions.

    Example::

        workflow = (
            define_workflow("notepad", "Notepad greeting")
            .variable("user_name", "string", default="World")
            .step("open_application", {"app_name": "notepad"}, id="open", delay_ms=2000)
            .step("type_into_element", {"selector": "role:Edit", "text": "Hello, {{user_name}}!"})
            .build()
        )
    """

    def __init__(self, id: str, name: str):
        self._data: dict[str, Any] = {"id": id, "name": name, "steps": []}

    def description(self, description: str) -> "WorkflowBuilder":
        self._data["description"] = description
        return self

    def version(self, version: str) -> "WorkflowBuilder":
        self._data["version"] = version
        return self

    def timeout(self, timeout_ms: int) -> "WorkflowBuilder":
        self._data["timeout"] = timeout_ms
        return self

    def tags(self, *tags: str) -> "WorkflowBuilder":
        """Records tags under the workflow metadata."""
        self._data.setdefault("metadata", {})["tags"] = list(tags)
        return self

    def metadata(self, **values: Any) -> "WorkflowBuilder":
        self._data.setdefault("metadata", {}).update(values)
        return self

    def variable(
        self, name: str, definition: str | VariableDefinition | dict[str, Any], **options: Any
    ) -> "WorkflowBuilder":
        """
        Declares a variable.

        :param name: Variable name
        :param definition: A type name such as ``"string"``, or a complete definition
        :param options: ``default``, ``required``, ``options``, ``label`` or ``description``
            when ``definition`` is a type name
        """
        if isinstance(definition, VariableDefinition):
            entry = msgspec.to_builtins(definition)
        elif isinstance(definition, dict):
            entry = dict(definition)
        else:
            entry = {"type": definition, **options}
        self._data.setdefault("variables", {})[name] = entry
        return self

    def input(self, name: str, value: Any) -> "WorkflowBuilder":
        self._data.setdefault("inputs", {})[name] = value
        return self

    def selector(self, name: str, selector: str) -> "WorkflowBuilder":
        self._data.setdefault("selectors", {})[name] = selector
        return self

    def step(self, tool_name: str, arguments: dict[str, Any] | None = None, **options: Any) -> "WorkflowBuilder":
        """Appends a tool step; ``options`` carries ``id``, ``if_``, ``retries``, ``delay_ms`` and the like."""
        self._data["steps"].append({"tool_name": tool_name, "arguments": arguments or {}, **_step_options(options)})
        return self

    def group(self, group_name: str, steps: list[dict[str, Any]], **options: Any) -> "WorkflowBuilder":
        """Appends a group of tool steps given as mappings with ``tool_name`` and ``arguments``."""
        self._data["steps"].append({"group_name": group_name, "steps": list(steps), **_step_options(options)})
        return self

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def build(self) -> WorkflowDefinition:
        """Validates and returns the definition; raises WorkflowValidationError when it has no steps."""
        return load_workflow(self.to_dict())


def define_workflow(id: str, name: str) -> WorkflowBuilder:
    return WorkflowBuilder(id, name)
