from stepflow.application.adapter import ParameterBinder, RunFinalizer, ToolInvoker
from stepflow.application.port import ConditionEvaluator, ExecutionPlanner, OutputParser
from stepflow.application.service import WorkflowClient
from stepflow.domain.port import ActionPlugin
from stepflow.domain.value_object import ExecutionOptions
from stepflow.infrastructure.adapter.expression.evaluator import ExpressionConditionEvaluator
from stepflow.infrastructure.adapter.in_memory.action_executor import InMemoryActionExecutor
from stepflow.infrastructure.adapter.in_memory.parallel_engine import ParallelWorkflowEngine
from stepflow.infrastructure.adapter.in_memory.planner import ConsecutiveToolPlanner
from stepflow.infrastructure.adapter.in_memory.plugin_resolver import InMemoryPluginResolver
from stepflow.infrastructure.adapter.in_memory.sequential_engine import SequentialWorkflowEngine
from stepflow.infrastructure.adapter.in_memory.task_runner import InMemoryTaskRunner


class InMemoryClient(WorkflowClient):
    """Workflow client whose actions are in-process plugins."""

    def __init__(
        self,
        sequential_engine: SequentialWorkflowEngine,
        parallel_engine: ParallelWorkflowEngine,
        plugin_resolver: InMemoryPluginResolver,
        action_executor: InMemoryActionExecutor,
    ):
        super().__init__(sequential_engine, parallel_engine)
        self.resolver = plugin_resolver
        self.action_executor = action_executor


def create(
    plugins: list[type[ActionPlugin]] | None = None,
    planner: ExecutionPlanner | None = None,
    condition_evaluator: ConditionEvaluator | None = None,
    output_parser: OutputParser | None = None,
    diagnostic_tool: str | None = None,
    execution_options: ExecutionOptions | None = None,
) -> InMemoryClient:
    execution_options = execution_options if execution_options is not None else ExecutionOptions()
    resolver = InMemoryPluginResolver(plugins)
    action_executor = InMemoryActionExecutor(
        resolver=resolver,
        binder=ParameterBinder(),
        task_runner=InMemoryTaskRunner(),
        diagnostic_tool=diagnostic_tool,
    )
    invoker = ToolInvoker(action_executor)
    finalizer = RunFinalizer(action_executor, output_parser)

    sequential_engine = SequentialWorkflowEngine(
        invoker=invoker,
        condition_evaluator=condition_evaluator if condition_evaluator is not None else ExpressionConditionEvaluator(),
        finalizer=finalizer,
        execution_options=execution_options,
    )
    parallel_engine = ParallelWorkflowEngine(
        invoker=invoker,
        planner=planner if planner is not None else ConsecutiveToolPlanner(),
        finalizer=finalizer,
        execution_options=execution_options,
    )

    return InMemoryClient(
        sequential_engine=sequential_engine,
        parallel_engine=parallel_engine,
        plugin_resolver=resolver,
        action_executor=action_executor,
    )
