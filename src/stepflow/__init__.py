"""
Stepflow - Workflow Sequencing Engine

Parse workflow definitions from JavaScript-module text or plain data, then run their
steps sequentially or in parallel with conditions, retries, fallbacks and groups,
producing a structured run summary.
"""

from stepflow.builder import WorkflowBuilder, define_workflow
from stepflow.client import Client
from stepflow.domain.entity import RunRequest, RunSummary, WorkflowDefinition
from stepflow.domain.port import ActionPlugin
from stepflow.domain.value_object import ContentItem, ExecutionOptions, ToolOutput
from stepflow.errors import ActionError, ActionErrorKind, ParseError, StepflowError, WorkflowValidationError
from stepflow.factory import create
from stepflow.infrastructure.adapter.js_module.parser import parse_workflow

__all__ = [
    "Client",
    "create",
    "ActionPlugin",
    "ActionError",
    "ActionErrorKind",
    "ContentItem",
    "ExecutionOptions",
    "ToolOutput",
    "RunRequest",
    "RunSummary",
    "WorkflowDefinition",
    "WorkflowBuilder",
    "define_workflow",
    "parse_workflow",
    "ParseError",
    "StepflowError",
    "WorkflowValidationError",
]
