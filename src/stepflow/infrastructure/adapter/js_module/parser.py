import logging
import re
from pathlib import Path

import msgspec

from stepflow.application.service import load_workflow
from stepflow.domain.entity import WorkflowDefinition
from stepflow.errors import (
    ExportNotFoundError,
    MalformedObjectError,
    UnbalancedBracesError,
    WorkflowDefinitionError,
    WorkflowValidationError,
)
from stepflow.infrastructure.adapter.js_module.scanner import QUOTES, find_export, remove_comments

logger = logging.getLogger(__name__)

_KEY = re.compile(r"(?m)(^\s*|[{\[,]\s*)([A-Za-z_$][\w$]*)\s*:")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_MASK = re.compile(r"\x00(\d+)\x00")

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "0": "\0",
    "\n": "",
}


def _read_string(text: str, start: int) -> tuple[str, int]:
    """Decodes the quoted literal opening at ``start``; returns its value and the index after it."""
    quote = text[start]
    chars: list[str] = []
    i, n = start + 1, len(text)
    while i < n:
        ch = text[i]
        if ch == quote:
            return "".join(chars), i + 1
        if ch != "\\" or i + 1 >= n:
            chars.append(ch)
            i += 1
            continue
        esc = text[i + 1]
        if esc == "u" and re.fullmatch(r"[0-9a-fA-F]{4}", text[i + 2 : i + 6]):
            chars.append(chr(int(text[i + 2 : i + 6], 16)))
            i += 6
        elif esc == "x" and re.fullmatch(r"[0-9a-fA-F]{2}", text[i + 2 : i + 4]):
            chars.append(chr(int(text[i + 2 : i + 4], 16)))
            i += 4
        else:
            chars.append(_SIMPLE_ESCAPES.get(esc, esc))
            i += 2
    raise MalformedObjectError("Unterminated string literal", text[start:])


def normalize_object_literal(literal: str) -> str:
    """
    Rewrites a JavaScript object literal as strict JSON text.

    String literals of every quote style are lifted out first and re-emitted as JSON
    strings, so key quoting and trailing comma removal never touch string contents
    (URLs, ``${{ expr }}`` markers, escaped quotes).

    :param literal: A balanced ``{...}`` literal without comments
    :returns: JSON text
    """
    strings: list[str] = []
    masked: list[str] = []
    i, n = 0, len(literal)
    while i < n:
        ch = literal[i]
        if ch in QUOTES:
            value, i = _read_string(literal, i)
            masked.append(f"\x00{len(strings)}\x00")
            strings.append(value)
            continue
        masked.append(ch)
        i += 1

    text = "".join(masked)
    text = _KEY.sub(r'\1"\2":', text)
    text = _TRAILING_COMMA.sub(r"\1", text)
    return _MASK.sub(lambda m: msgspec.json.encode(strings[int(m.group(1))]).decode(), text)


def parse_workflow(text: str) -> WorkflowDefinition:
    """
    Parses a JavaScript / TypeScript workflow module into a workflow definition.

    Supported exports, tried in order: ``export const workflow = {...}``,
    ``export const <name> = {...}``, ``export default {...}`` and ``module.exports = {...}``.

    :param text: The module source
    :returns: The parsed workflow definition
    :rtype: WorkflowDefinition
    :raises ExportNotFoundError: If no supported export is present
    :raises UnbalancedBracesError: If the exported object literal never closes
    :raises MalformedObjectError: If the literal cannot be read as JSON
    :raises WorkflowDefinitionError: If the object is not a valid workflow, e.g. it has no steps
    """
    logger.debug("Parsing JavaScript workflow")
    source = remove_comments(text)

    found = find_export(source)
    if found is None:
        raise ExportNotFoundError(
            "Could not find workflow export. Expected 'export const workflow = {...}' or similar pattern",
            source.strip(),
        )
    idiom, literal = found
    if literal is None:
        raise UnbalancedBracesError(f"Unbalanced braces in object exported via '{idiom}'", source.strip())
    logger.debug("Extracted object via '%s' (first 200 chars): %s", idiom, literal[:200])

    json_text = normalize_object_literal(literal)
    try:
        data = msgspec.json.decode(json_text)
    except msgspec.DecodeError as e:
        raise MalformedObjectError(f"Failed to parse object as JSON ({e})", json_text) from e

    if not isinstance(data, dict):
        raise WorkflowDefinitionError("Workflow export must be an object", json_text)
    if not data.get("steps"):
        raise WorkflowDefinitionError("Workflow must have at least one step", json_text)

    try:
        workflow = load_workflow(data)
    except WorkflowValidationError as e:
        raise WorkflowDefinitionError(e.message, json_text) from e

    logger.debug("Successfully parsed JavaScript workflow with %d steps", len(workflow.steps))
    return workflow


def load_workflow_file(path: str | Path) -> WorkflowDefinition:
    """Reads and parses a workflow module from disk."""
    return parse_workflow(Path(path).read_text(encoding="utf-8"))
