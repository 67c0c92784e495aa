import copy
import inspect
import logging
import re
import time
import types
import typing
from collections.abc import Iterator, Mapping
from typing import Any, Union, get_args, get_origin

import msgspec
from msgspec import structs

from stepflow.application.port import ActionExecutor, Binder, OutputParser
from stepflow.domain.entity import RunRequest, RunSummary, StepResult, VariableDefinition
from stepflow.domain.port import ActionPlugin
from stepflow.domain.value_object import RunStatus, StepStatus, VariableType
from stepflow.errors import ActionError, ActionErrorKind, WorkflowValidationError

logger = logging.getLogger(__name__)


class ExecutionContext(Mapping):
    """Flat, read-only variable table for one run.

    Built once from variable defaults, caller inputs and selectors; steps only read it.
    """

    def __init__(self, values: Mapping[str, Any] | None = None):
        self._values: dict[str, Any] = copy.deepcopy(dict(values or {}))

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ExecutionContext({self._values!r})"

    def lookup(self, path: str) -> tuple[bool, Any]:
        """Resolves a dotted path such as ``user.name`` or ``items.0``.

        Returns a ``(found, value)`` pair so that a stored ``None`` is distinguishable
        from a missing path.
        """
        current: Any = self._values
        for part in path.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return False, None
        return True, current

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self._values)


def _matches_type(value: Any, var_type: VariableType, definition: VariableDefinition) -> bool:
    if var_type == VariableType.STRING:
        return isinstance(value, str)
    if var_type == VariableType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if var_type == VariableType.BOOLEAN:
        return isinstance(value, bool)
    if var_type == VariableType.ARRAY:
        return isinstance(value, list)
    if var_type == VariableType.OBJECT:
        return isinstance(value, dict)
    # Enum
    if not isinstance(value, str):
        return False
    return definition.options is None or value in definition.options


def validate_variables(variables: Mapping[str, VariableDefinition] | None, inputs: Mapping[str, Any]) -> None:
    """
    Checks every declared variable against its effective value.

    :param variables: The variable schema, keyed by name
    :param inputs: Caller supplied values
    :raises WorkflowValidationError: On a missing required variable, an unknown type or a type mismatch
    """
    for name, definition in (variables or {}).items():
        try:
            var_type = VariableType.parse(definition.type)
        except ValueError:
            raise WorkflowValidationError(
                f"Variable '{name}' has unknown type '{definition.type}'.", {"type": definition.type}
            ) from None

        if name in inputs:
            value = inputs[name]
        elif definition.has_default():
            value = definition.default
        else:
            if definition.required:
                raise WorkflowValidationError(f"Required variable '{name}' is missing.")
            continue

        if not _matches_type(value, var_type, definition):
            details: dict[str, Any] = {"value": value, "expected": var_type.value}
            if var_type == VariableType.ENUM:
                details["allowed_options"] = definition.options
            raise WorkflowValidationError(f"Variable '{name}' must be a valid {var_type.value}.", details)


def build_execution_context(
    variables: Mapping[str, VariableDefinition] | None = None,
    inputs: Any = None,
    selectors: Any = None,
) -> ExecutionContext:
    """
    Merges variable defaults, caller inputs and selectors into a run's context.

    Inputs override defaults. Selectors land under the reserved ``selectors`` key; a
    string holding JSON is decoded first and any other string is stored as-is.

    :raises WorkflowValidationError: If inputs or selectors have the wrong shape or a
        variable fails validation
    """
    if inputs is None:
        inputs = {}
    if not isinstance(inputs, dict):
        raise WorkflowValidationError(
            f"Invalid inputs: expected object, got {type(inputs).__name__}", {"inputs": inputs}
        )

    validate_variables(variables, inputs)

    values: dict[str, Any] = {}
    for name, definition in (variables or {}).items():
        if definition.has_default():
            values[name] = definition.default
    values.update(inputs)

    if selectors is not None:
        if not isinstance(selectors, (dict, str)):
            raise WorkflowValidationError(
                f"Invalid selectors: expected object or string, got {type(selectors).__name__}",
                {"selectors": selectors},
            )
        if isinstance(selectors, str):
            try:
                selectors = msgspec.json.decode(selectors)
            except msgspec.DecodeError:
                pass  # a plain selector string is kept raw
        values["selectors"] = selectors

    return ExecutionContext(values)


class VariableResolver:
    """Resolves ``{{path}}`` placeholders in arbitrarily nested data structures.

    Rules:
    - If a string is exactly one placeholder like ``"{{count}}"`` and the path resolves,
      return the referenced value as-is (preserve type).
    - Otherwise interpolate: resolved strings are spliced in raw, other values as compact JSON.
    - Only plain paths (letters, digits, ``.``, ``_``, ``-``) are substituted. Unknown paths
      and richer expressions such as ``{{contains(a, 'b')}}`` are left verbatim.
    """

    _pattern = re.compile(r"\{\{(.*?)\}\}")
    _var_path = re.compile(r"^[a-zA-Z0-9_.-]+$")

    def __init__(self, ctx: ExecutionContext):
        self.ctx = ctx

    def resolve_any(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self.resolve_any(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve_any(v) for v in value]
        if isinstance(value, str):
            return self._resolve_string(value)
        return value

    def _resolve_string(self, s: str) -> Any:
        # Exact single-token match => return raw value to preserve type
        m = self._pattern.search(s)
        if m is not None and m.group(0) == s:
            found, val = self._lookup_token(m.group(1))
            return copy.deepcopy(val) if found else s

        def repl(match: re.Match) -> str:
            found, val = self._lookup_token(match.group(1))
            if not found:
                return match.group(0)
            if isinstance(val, str):
                return val
            return msgspec.json.encode(val).decode()

        return self._pattern.sub(repl, s)

    def _lookup_token(self, token: str) -> tuple[bool, Any]:
        token = token.strip()
        if not self._var_path.match(token):
            return False, None
        return self.ctx.lookup(token)


def substitute_variables(value: Any, context: ExecutionContext) -> Any:
    """Returns ``value`` with every resolvable ``{{path}}`` placeholder substituted from ``context``."""
    return VariableResolver(context).resolve_any(value)


class ParameterBinder(Binder):
    """Binds arguments (accepting mixed types) to action execute method parameters with type coercion.

    Strings are coerced to the annotated target type when necessary. Missing required
    parameters and failed coercions are reported as invalid arguments.
    """

    def bind(self, plugin: ActionPlugin, params: dict[str, Any]) -> dict[str, Any]:
        sig = inspect.signature(plugin.execute)
        hints = typing.get_type_hints(plugin.execute, include_extras=False)
        bound: dict[str, Any] = {}
        accepts_kwargs = False
        for name, param in sig.parameters.items():
            if name == "self" or param.kind == inspect.Parameter.VAR_POSITIONAL:
                continue
            if param.kind == inspect.Parameter.VAR_KEYWORD:
                accepts_kwargs = True
                continue
            if name not in params:
                if param.default is inspect.Parameter.empty:
                    raise ActionError(ActionErrorKind.INVALID_ARGUMENTS, f"Missing required argument '{name}'")
                continue
            target = hints.get(name, Any)
            try:
                bound[name] = self._coerce(params[name], target)
            except (TypeError, ValueError) as e:
                raise ActionError(
                    ActionErrorKind.INVALID_ARGUMENTS, f"Invalid value for argument '{name}': {e}"
                ) from e
        if accepts_kwargs:
            for name, value in params.items():
                bound.setdefault(name, value)
        return bound

    def _coerce(self, value: Any, target_type: Any) -> Any:
        """Coerces a string value to the target type, handling Optional and Union types, including PEP 604 unions."""
        # If already the right type, return as-is
        if target_type is Any or (isinstance(target_type, type) and isinstance(value, target_type)):
            return value
        origin = get_origin(target_type)
        # Handle typing.Union and PEP 604 UnionType (e.g. int | None)
        if isinstance(target_type, types.UnionType) or origin is Union:
            args = get_args(target_type)
            if value is None and type(None) in args:
                return None
            for t in args:
                if t is type(None):
                    continue
                try:
                    return self._coerce(value, t)
                except (TypeError, ValueError):
                    continue
            return value
        # Primitive coercions from string
        if isinstance(value, str):
            if target_type is int:
                return int(value)
            if target_type is float:
                return float(value)
            if target_type is bool:
                v = value.strip().lower()
                if v in {"true", "1", "yes", "y"}:
                    return True
                if v in {"false", "0", "no", "n"}:
                    return False
                raise ValueError(f"cannot interpret {value!r} as a boolean")
        return value


class ToolInvoker:
    """Invokes one tool through an action executor and records the outcome as a StepResult.

    Failures never propagate: they are classified as critical, or as skippable when the
    step continues on error, and returned alongside the result.
    """

    def __init__(self, executor: ActionExecutor):
        self.executor = executor

    def invoke(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        *,
        index: int,
        step_id: str | None = None,
        continue_on_error: bool = False,
        include_detailed: bool = True,
    ) -> tuple[StepResult, bool]:
        """
        Run a tool and capture its result.

        :returns: The step result and whether a failure was critical
        :rtype: tuple[StepResult, bool]
        """
        started = time.monotonic()
        try:
            output = self.executor.invoke(tool_name, arguments)
        except ActionError as e:
            error = str(e)
        except Exception as e:
            logger.exception("Action executor raised an untyped error for tool '%s'", tool_name)
            error = str(ActionError(ActionErrorKind.INTERNAL, str(e)))
        else:
            if include_detailed:
                payload = {
                    "type": "tool_result",
                    "content_count": len(output.content),
                    "content": [item.to_json_value() for item in output.content],
                }
            else:
                payload = {
                    "type": "summary",
                    "content": "Tool executed successfully",
                    "content_count": len(output.content),
                }
            result = StepResult(
                index=index,
                status=StepStatus.SUCCESS,
                step_id=step_id,
                tool_name=tool_name,
                duration_ms=_elapsed_ms(started),
                result=payload,
            )
            return result, False

        if not continue_on_error:
            logger.warning("Tool '%s' at index %d failed. Reason: %s", tool_name, index, error)
        result = StepResult(
            index=index,
            status=StepStatus.SKIPPED if continue_on_error else StepStatus.ERROR,
            step_id=step_id,
            tool_name=tool_name,
            duration_ms=_elapsed_ms(started),
            error=error,
        )
        return result, not continue_on_error


class RunFinalizer:
    """Applies the output parser and failure diagnostics to a finished run summary."""

    def __init__(self, executor: ActionExecutor, output_parser: OutputParser | None = None):
        self.executor = executor
        self.output_parser = output_parser

    def finalize(self, summary: RunSummary, request: RunRequest, context: ExecutionContext) -> RunSummary:
        if request.output_parser is not None:
            summary = self._apply_output_parser(summary, request.output_parser, context)
        if summary.status != RunStatus.SUCCESS:
            summary = self._attach_diagnostic(summary)
        return summary

    def _apply_output_parser(self, summary: RunSummary, definition: Any, context: ExecutionContext) -> RunSummary:
        if self.output_parser is None:
            logger.warning("Run requested an output parser but none is configured")
            return structs.replace(summary, parser_error="No output parser configured")
        definition = substitute_variables(definition, context)
        try:
            parsed = self.output_parser.parse(definition, summary.to_dict())
        except Exception as e:
            logger.warning("Output parser failed: %s", e)
            return structs.replace(summary, parser_error=str(e))
        return structs.replace(summary, parsed_output=parsed if parsed is not None else {})

    def _attach_diagnostic(self, summary: RunSummary) -> RunSummary:
        try:
            item = self.executor.capture_diagnostic()
        except Exception as e:
            logger.warning("Diagnostic capture failed: %s", e)
            return summary
        if item is None:
            return summary
        return structs.replace(summary, attachments=[*summary.attachments, item])


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
