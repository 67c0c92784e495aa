from stepflow.application.port import PluginResolver
from stepflow.domain.port import ActionPlugin


def tool_name_of(cls: type[ActionPlugin]) -> str:
    """Returns the name a plugin is invoked by: its ``tool_name`` attribute, else its class name."""
    return getattr(cls, "tool_name", cls.__name__)


class InMemoryPluginResolver(PluginResolver):
    """Resolves action plugins from an in-memory registry keyed by tool name."""

    def __init__(self, plugins: list[type[ActionPlugin]] | None = None):
        """Initializes resolver with optional plugin list."""
        self._registry: dict[str, type[ActionPlugin]] = {}
        for cls in plugins or []:
            self.register(cls)

    def register(self, cls: type[ActionPlugin]) -> None:
        """Adds or replaces a plugin under its tool name."""
        self._registry[tool_name_of(cls)] = cls

    def resolve(self, name: str) -> ActionPlugin:
        """Returns a plugin instance matching the given tool name, raises KeyError if not found."""
        try:
            cls = self._registry[name]
        except KeyError:
            raise KeyError(f"No action registered for tool '{name}'") from None
        return cls()
