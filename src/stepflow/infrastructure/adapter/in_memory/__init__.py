"""In-process adapters: plugin-backed actions, planner and the two step engines."""

from .action_executor import InMemoryActionExecutor, to_tool_output
from .client import InMemoryClient, create
from .parallel_engine import ParallelWorkflowEngine
from .planner import DEFAULT_PARALLEL_SAFE_TOOLS, ConsecutiveToolPlanner
from .plugin_resolver import InMemoryPluginResolver
from .sequential_engine import SequentialWorkflowEngine
from .task_runner import InMemoryTaskRunner

__all__ = [
    "InMemoryActionExecutor",
    "InMemoryClient",
    "InMemoryPluginResolver",
    "InMemoryTaskRunner",
    "ConsecutiveToolPlanner",
    "DEFAULT_PARALLEL_SAFE_TOOLS",
    "SequentialWorkflowEngine",
    "ParallelWorkflowEngine",
    "create",
    "to_tool_output",
]
