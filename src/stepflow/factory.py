from stepflow.application.port import ConditionEvaluator, ExecutionPlanner, OutputParser
from stepflow.client import Client
from stepflow.domain.port import ActionPlugin
from stepflow.domain.value_object import ExecutionOptions
from stepflow.infrastructure.adapter.in_memory.client import create as create_in_memory_client


def create(
    plugins: list[type[ActionPlugin]] | None = None,
    planner: ExecutionPlanner | None = None,
    condition_evaluator: ConditionEvaluator | None = None,
    output_parser: OutputParser | None = None,
    diagnostic_tool: str | None = None,
    execution_options: ExecutionOptions | None = None,
) -> Client:
    """
    Factory function to create a Client.

    Args:
        plugins: Optional list of action plugin classes to pre-register
        planner: Partitions steps for parallel runs; defaults to ConsecutiveToolPlanner
        condition_evaluator: Evaluates step ``if`` expressions; defaults to ExpressionConditionEvaluator
        output_parser: Optional parser applied to run summaries that request one
        diagnostic_tool: Optional tool invoked to capture a screenshot when a run does not succeed
        execution_options: Retry interval, iteration bound and thread pool size

    Returns:
        A configured Client instance
    """
    in_memory_client = create_in_memory_client(
        plugins=plugins or [],
        planner=planner,
        condition_evaluator=condition_evaluator,
        output_parser=output_parser,
        diagnostic_tool=diagnostic_tool,
        execution_options=execution_options,
    )
    return Client(workflow_client=in_memory_client, plugin_resolver=in_memory_client.resolver)
