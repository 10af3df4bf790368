"""Glob-style key patterns used by KEYS and SCAN MATCH."""

import re
from typing import Pattern

from .commands import CommandError


def compile_pattern(glob: str) -> Pattern:
    """
    Translate a glob into a regex anchored at both ends.

    ``*`` matches any run of characters, ``?`` exactly one, ``[...]`` a
    character class (``[^...]`` negated) and ``\\x`` a literal ``x``.
    Everything else is literal.

    Raises:
        CommandError: If a character class is not a valid range, e.g. ``[z-a]``

    Examples:
        >>> bool(compile_pattern("a*").fullmatch("abc"))
        True
        >>> bool(compile_pattern("a.c").fullmatch("abc"))
        False
    """
    parts = []
    i = 0
    n = len(glob)
    while i < n:
        char = glob[i]
        i += 1
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "\\" and i < n:
            parts.append(re.escape(glob[i]))
            i += 1
        elif char == "[":
            end = glob.find("]", i)
            body = glob[i:end]
            negate = body.startswith("^")
            if negate:
                body = body[1:]
            if end == -1 or not body:
                # Unterminated or empty class, match the bracket literally
                parts.append(re.escape(char))
                continue
            i = end + 1
            body = re.sub(r"([\\\[\]&~|])", r"\\\1", body)
            parts.append(f"[{'^' if negate else ''}{body}]")
        else:
            parts.append(re.escape(char))
    try:
        return re.compile("".join(parts), re.DOTALL)
    except re.error:
        raise CommandError("invalid pattern") from None


def matches(pattern: Pattern, key: str) -> bool:
    """Check the whole key against a compiled pattern."""
    return pattern.fullmatch(key) is not None
