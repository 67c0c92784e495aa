import re

QUOTES = {'"', "'", "`"}

# Tried in order; the first idiom that yields a balanced object literal wins.
EXPORT_IDIOMS: list[tuple[str, re.Pattern]] = [
    ("export const workflow", re.compile(r"export\s+const\s+workflow\s*=\s*")),
    ("export const", re.compile(r"export\s+const\s+[A-Za-z_$][\w$]*\s*=\s*")),
    ("export default", re.compile(r"export\s+default\s+")),
    ("module.exports", re.compile(r"\b[A-Za-z_$][\w$]*\.exports\s*=\s*")),
]


def remove_comments(source: str) -> str:
    """
    Strips ``//`` line comments and ``/* */`` block comments.

    Quoted runs (double, single and backtick) are copied untouched, so ``https://``
    inside a string survives. Line comments keep their terminating newline.

    :param source: JavaScript / TypeScript module text
    :returns: The text without comments
    """
    out: list[str] = []
    i, n = 0, len(source)
    quote: str | None = None
    while i < n:
        ch = source[i]
        if ch == "\\":
            out.append(source[i : i + 2])
            i += 2
            continue
        if quote is not None:
            if ch == quote:
                quote = None
            out.append(ch)
            i += 1
            continue
        if ch in QUOTES:
            quote = ch
            out.append(ch)
            i += 1
            continue
        if source.startswith("/*", i):
            end = source.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        if source.startswith("//", i):
            end = source.find("\n", i + 2)
            i = n if end == -1 else end
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def extract_balanced_braces(text: str) -> str | None:
    """
    Returns the ``{...}`` object literal at the start of ``text``.

    String runs are opaque, backslash escapes are honoured and ``${{ ... }}`` template
    spans are skipped up to their closing ``}}``.

    :param text: Text positioned at (or just before) an opening brace
    :returns: The literal including both braces, or None when it does not start with
        ``{`` or never closes
    """
    text = text.lstrip()
    if not text.startswith("{"):
        return None

    depth = 0
    quote: str | None = None
    i, n = 0, len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if quote is not None:
            if ch == quote:
                quote = None
            i += 1
            continue
        if ch in QUOTES:
            quote = ch
            i += 1
            continue
        if text.startswith("${{", i):
            end = text.find("}}", i + 3)
            if end == -1:
                return None
            i = end + 2
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[: i + 1]
        i += 1
    return None


def find_export(source: str) -> tuple[str, str | None] | None:
    """
    Locates the exported workflow object.

    :param source: Comment-free module text
    :returns: ``(idiom, literal)`` for the first idiom whose object literal is balanced.
        When idioms matched but none closed, the first matching idiom is returned with
        ``None``. When nothing matched at all, returns None.
    """
    unbalanced: tuple[str, str | None] | None = None
    for idiom, pattern in EXPORT_IDIOMS:
        for match in pattern.finditer(source):
            literal = extract_balanced_braces(source[match.end() :])
            if literal is not None:
                return idiom, literal
            if unbalanced is None:
                unbalanced = (idiom, None)
    return unbalanced
