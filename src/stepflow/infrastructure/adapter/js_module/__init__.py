"""Reading workflow definitions from JavaScript / TypeScript module text."""

from .parser import load_workflow_file, normalize_object_literal, parse_workflow
from .scanner import extract_balanced_braces, find_export, remove_comments

__all__ = [
    "parse_workflow",
    "load_workflow_file",
    "normalize_object_literal",
    "remove_comments",
    "extract_balanced_braces",
    "find_export",
]
