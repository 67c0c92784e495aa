import logging
import re
from collections.abc import Mapping
from typing import Any

from stepflow.application.port import ConditionEvaluator

logger = logging.getLogger(__name__)

_TOKEN = re.compile(
    r"""
    \s*(?:
        (?P<number>-?\d+(?:\.\d+)?)
      | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<op>\|\||&&|==|!=|<=|>=|[<>!(),])
      | (?P<name>[A-Za-z_$][\w$-]*(?:\.[\w$-]+)*)
    )
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False, "null": None}


class ExpressionSyntaxError(ValueError):
    """Raised for an expression that cannot be tokenized or parsed."""


def tokenize(expression: str) -> list[tuple[str, str]]:
    """Splits an expression into ``(kind, text)`` tokens."""
    tokens: list[tuple[str, str]] = []
    pos = 0
    stripped = expression.rstrip()
    while pos < len(stripped):
        match = _TOKEN.match(stripped, pos)
        if match is None or match.end() == pos:
            raise ExpressionSyntaxError(f"Unexpected character at {pos}: {stripped[pos:]!r}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def truthy(value: Any) -> bool:
    """JSON truthiness: null, false, 0 and "" are false; every array and object is true."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0
    if isinstance(value, str):
        return value != ""
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _contains(haystack: Any, needle: Any) -> bool:
    if isinstance(haystack, str):
        return needle is not None and str(needle) in haystack
    if isinstance(haystack, list):
        return needle in haystack
    if isinstance(haystack, Mapping):
        return isinstance(needle, str) and needle in haystack
    return False


def _starts_with(value: Any, prefix: Any) -> bool:
    return isinstance(value, str) and isinstance(prefix, str) and value.startswith(prefix)


def _ends_with(value: Any, suffix: Any) -> bool:
    return isinstance(value, str) and isinstance(suffix, str) and value.endswith(suffix)


FUNCTIONS = {
    "always": (0, lambda: True),
    "contains": (2, _contains),
    "startsWith": (2, _starts_with),
    "endsWith": (2, _ends_with),
}


class _Parser:
    """
    Recursive-descent parser and evaluator.

    Grammar::

        or      := and ("||" and)*
        and     := unary ("&&" unary)*
        unary   := "!" unary | compare
        compare := primary (("==" | "!=" | "<" | "<=" | ">" | ">=") primary)?
        primary := literal | call | path | "(" or ")"
    """

    def __init__(self, tokens: list[tuple[str, str]], context: Mapping[str, Any]):
        self.tokens = tokens
        self.pos = 0
        self.context = context

    def parse(self) -> Any:
        value = self._or()
        if self.pos != len(self.tokens):
            raise ExpressionSyntaxError(f"Unexpected token {self.tokens[self.pos][1]!r}")
        return value

    def _peek(self) -> str | None:
        return self.tokens[self.pos][1] if self.pos < len(self.tokens) else None

    def _take(self, expected: str | None = None) -> tuple[str, str]:
        if self.pos >= len(self.tokens):
            raise ExpressionSyntaxError("Unexpected end of expression")
        token = self.tokens[self.pos]
        if expected is not None and token[1] != expected:
            raise ExpressionSyntaxError(f"Expected {expected!r}, got {token[1]!r}")
        self.pos += 1
        return token

    def _or(self) -> Any:
        value = self._and()
        while self._peek() == "||":
            self._take()
            right = self._and()
            value = value if truthy(value) else right
        return value

    def _and(self) -> Any:
        value = self._unary()
        while self._peek() == "&&":
            self._take()
            right = self._unary()
            value = right if truthy(value) else value
        return value

    def _unary(self) -> Any:
        if self._peek() == "!":
            self._take()
            return not truthy(self._unary())
        return self._compare()

    def _compare(self) -> Any:
        left = self._primary()
        op = self._peek()
        if op not in {"==", "!=", "<", "<=", ">", ">="}:
            return left
        self._take()
        right = self._primary()
        if op == "==":
            return left == right
        if op == "!=":
            return left != right
        comparable = (_is_number(left) and _is_number(right)) or (isinstance(left, str) and isinstance(right, str))
        if not comparable:
            return False
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left >= right

    def _primary(self) -> Any:
        kind, text = self._take()
        if kind == "number":
            return float(text) if "." in text else int(text)
        if kind == "string":
            return _unquote(text)
        if text == "(":
            value = self._or()
            self._take(")")
            return value
        if kind != "name":
            raise ExpressionSyntaxError(f"Unexpected token {text!r}")
        if text in _KEYWORDS:
            return _KEYWORDS[text]
        if self._peek() == "(":
            return self._call(text)
        return self._lookup(text)

    def _call(self, name: str) -> Any:
        if name not in FUNCTIONS:
            raise ExpressionSyntaxError(f"Unknown function {name!r}")
        arity, func = FUNCTIONS[name]
        self._take("(")
        args: list[Any] = []
        if self._peek() != ")":
            args.append(self._or())
            while self._peek() == ",":
                self._take()
                args.append(self._or())
        self._take(")")
        if len(args) != arity:
            raise ExpressionSyntaxError(f"{name}() takes {arity} arguments, got {len(args)}")
        return func(*args)

    def _lookup(self, path: str) -> Any:
        current: Any = self.context
        for part in path.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return None
        return current


def _unquote(text: str) -> str:
    body = text[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


def _strip_template(expression: str) -> str:
    expr = expression.strip()
    for opener in ("${{", "{{"):
        if expr.startswith(opener) and expr.endswith("}}"):
            return expr[len(opener) : -2].strip()
    return expr


class ExpressionConditionEvaluator(ConditionEvaluator):
    """Evaluates step ``if`` conditions.

    Supports ``||``, ``&&``, ``!``, parentheses, comparisons, JSON literals, dotted
    context paths (missing paths are null) and the functions ``contains``,
    ``startsWith``, ``endsWith`` and ``always``. A surrounding ``{{ }}`` or ``${{ }}``
    is ignored.
    """

    def evaluate(self, expression: str, context: Mapping[str, Any]) -> bool:
        try:
            tokens = tokenize(_strip_template(expression))
            if not tokens:
                raise ExpressionSyntaxError("Empty expression")
            return truthy(_Parser(tokens, context).parse())
        except (ExpressionSyntaxError, TypeError, RecursionError) as e:
            logger.warning("Failed to evaluate condition '%s': %s", expression, e)
            return False
