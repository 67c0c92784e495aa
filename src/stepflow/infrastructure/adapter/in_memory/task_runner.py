from typing import Any

from stepflow.application.port import TaskRunner
from stepflow.domain.port import ActionPlugin
from stepflow.errors import ActionError, ActionErrorKind


class InMemoryTaskRunner(TaskRunner):
    """Calls a plugin in the current thread; untyped failures are reported as internal action errors."""

    def run(self, plugin: ActionPlugin, bound: dict[str, Any]) -> Any:
        try:
            return plugin.execute(**bound)
        except ActionError:
            raise
        except Exception as e:
            raise ActionError(ActionErrorKind.INTERNAL, str(e) or type(e).__name__) from e
