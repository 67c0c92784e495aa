from pathlib import Path
from typing import Any

from stepflow.application.service import WorkflowClient, load_workflow, to_run_request
from stepflow.domain.entity import RunRequest, RunSummary, WorkflowDefinition
from stepflow.domain.port import ActionPlugin
from stepflow.infrastructure.adapter.in_memory.plugin_resolver import InMemoryPluginResolver
from stepflow.infrastructure.adapter.js_module.parser import load_workflow_file, parse_workflow


class Client:
    """
    Unified client façade for workflow execution.

    The Client is the only thing users interact with. It exposes methods like .plugin(),
    .run() and .run_text(), and holds the wired workflow client under the hood.
    """

    def __init__(self, workflow_client: WorkflowClient, plugin_resolver: InMemoryPluginResolver):
        """
        Initialize the client.

        Args:
            workflow_client: Validates requests and dispatches them to the step engines
            plugin_resolver: The resolver actions are looked up in
        """
        self._workflow_client = workflow_client
        self._resolver = plugin_resolver

    def plugin(self, plugin: type[ActionPlugin]) -> "Client":
        """
        Register an action plugin with the client.

        Args:
            plugin: The plugin class to register

        Returns:
            The client instance for method chaining
        """
        self._resolver.register(plugin)
        return self

    def run(self, request: dict | RunRequest) -> RunSummary:
        """
        Execute a run request.

        Args:
            request: The request as a dictionary (``steps``, ``variables``, ``inputs``, ...) or RunRequest

        Returns:
            The run summary
        """
        return self._workflow_client.run(request)

    def run_workflow(self, definition: dict | WorkflowDefinition, **overrides: Any) -> RunSummary:
        """
        Execute a workflow definition.

        Args:
            definition: The workflow definition
            **overrides: Run switches such as ``inputs``, ``parallel_execution`` or ``stop_on_error``

        Returns:
            The run summary
        """
        return self.run(to_run_request(load_workflow(definition), **overrides))

    def run_text(self, text: str, **overrides: Any) -> RunSummary:
        """Parse a JavaScript / TypeScript workflow module and execute it."""
        return self.run_workflow(parse_workflow(text), **overrides)

    def run_file(self, path: str | Path, **overrides: Any) -> RunSummary:
        """Load a workflow module from disk and execute it."""
        return self.run_workflow(load_workflow_file(path), **overrides)

    def load_plugins(self) -> list[type[ActionPlugin]]:
        """
        Get all registered plugins.

        Returns:
            List of registered plugin classes
        """
        return ActionPlugin._plugins
