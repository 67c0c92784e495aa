"""
Tests for the in-memory task runner.
"""

import pytest

from stepflow.domain.port import ActionPlugin
from stepflow.errors import ActionError, ActionErrorKind
from stepflow.infrastructure.adapter.in_memory.task_runner import InMemoryTaskRunner


class EchoAction(ActionPlugin):
    def execute(self, text: str) -> str:
        return text


class RaisingAction(ActionPlugin):
    def execute(self, exc: Exception) -> None:
        raise exc


class TestInMemoryTaskRunner:
    """Test cases for InMemoryTaskRunner."""

    def setup_method(self):
        self.runner = InMemoryTaskRunner()

    def test_run_returns_plugin_result(self):
        assert self.runner.run(EchoAction(), {"text": "hi"}) == "hi"

    def test_action_error_propagates_unchanged(self):
        error = ActionError(ActionErrorKind.INVALID_ARGUMENTS, "bad selector")

        with pytest.raises(ActionError) as exc_info:
            self.runner.run(RaisingAction(), {"exc": error})

        assert exc_info.value is error

    def test_untyped_error_becomes_internal(self):
        with pytest.raises(ActionError) as exc_info:
            self.runner.run(RaisingAction(), {"exc": RuntimeError("boom")})

        assert exc_info.value.kind == ActionErrorKind.INTERNAL
        assert str(exc_info.value) == "internal: boom"

    def test_empty_message_uses_type_name(self):
        with pytest.raises(ActionError, match="TimeoutError"):
            self.runner.run(RaisingAction(), {"exc": TimeoutError()})
