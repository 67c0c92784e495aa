"""
Tests for domain value objects.
"""

import pytest

from stepflow.domain.value_object import (
    ContentItem,
    ExecutionOptions,
    ExecutionPlan,
    RunStatus,
    ToolOutput,
    VariableType,
)


class TestExecutionOptions:
    def test_defaults(self):
        options = ExecutionOptions()

        assert options.retry_interval == 0.5
        assert options.max_iterations_factor == 10
        assert options.max_workers is None


class TestVariableType:
    @pytest.mark.parametrize("name", ["string", "String", " STRING "])
    def test_parse_case_insensitive(self, name):
        assert VariableType.parse(name) == VariableType.STRING

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            VariableType.parse("date")


class TestRunStatus:
    def test_values(self):
        assert RunStatus.COMPLETED_WITH_ERRORS.value == "completed_with_errors"


class TestContentItem:
    """Test cases for rendering content items into step results."""

    def test_json_item_renders_data(self):
        assert ContentItem(type="json", data={"ok": True}).to_json_value() == {"ok": True}

    def test_text_item(self):
        assert ContentItem(type="text", data="hello").to_json_value() == {"type": "text", "text": "hello"}

    def test_image_item_hides_bytes(self):
        item = ContentItem(type="image", data=b"\x89PNG1234", mime_type="image/png")

        assert item.to_json_value() == {"type": "image", "mime_type": "image/png", "size": 8}

    def test_tool_output_default_content(self):
        assert ToolOutput().content == []


class TestExecutionPlan:
    """Test cases for ExecutionPlan validation."""

    def test_valid_plan(self):
        ExecutionPlan(solo=[0, 3], groups=[[1, 2]]).validate(4)

    def test_missing_index(self):
        with pytest.raises(ValueError):
            ExecutionPlan(solo=[0], groups=[[1]]).validate(3)

    def test_duplicate_index(self):
        with pytest.raises(ValueError):
            ExecutionPlan(solo=[0, 1], groups=[[1, 2]]).validate(3)

    def test_out_of_range_index(self):
        with pytest.raises(ValueError):
            ExecutionPlan(solo=[0, 5]).validate(2)

    def test_empty_group(self):
        with pytest.raises(ValueError):
            ExecutionPlan(solo=[0], groups=[[]]).validate(1)
