from typing import Any


class ActionPlugin:
    """Base class for all actions. Enforces 'execute' method and registers subclasses."""

    _plugins = []

    def __init_subclass__(cls, **kwargs):
        """
        Registers subclass and ensures 'execute' method is defined.

        :param kwargs: Additional keyword arguments passed to super().__init_subclass__
        :raises TypeError: If the subclass doesn't define an 'execute' method
        """
        super().__init_subclass__(**kwargs)

        if "execute" not in cls.__dict__:
            raise TypeError(f"{cls.__name__} must define a 'execute' method")

        ActionPlugin._plugins.append(cls)

    def execute(self, *args, **kwargs) -> Any:
        """
        Abstract execute method to be implemented by actions.

        The return value becomes the content of the tool result: a ``ToolOutput`` or
        ``ContentItem`` is used as-is, ``bytes`` become an image and anything else
        is treated as JSON.

        :raises NotImplementedError: Must be implemented by subclasses
        """
        raise NotImplementedError("Actions must implement the execute method")
