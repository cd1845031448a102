"""Balanced scanning helpers for embedded Python expressions.

Template expressions are plain Python, so delimiters such as ``}}`` or
``)`` may legitimately appear inside string literals or nested brackets.
These helpers walk the source once, tracking quote state and bracket
depth, and only accept a closer at depth zero outside of strings.
"""

from __future__ import annotations

import re

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = frozenset(")]}")
_NAMED_ARG_RE = re.compile(r"^([A-Za-z_]\w*)\s*=(?!=)\s*(.*)$", re.DOTALL)


def _skip_string(source: str, pos: int) -> int:
    """Return the index just past the string literal starting at ``pos``."""
    quote = source[pos]
    triple = source.startswith(quote * 3, pos)
    end_quote = quote * 3 if triple else quote
    i = pos + len(end_quote)
    length = len(source)
    while i < length:
        char = source[i]
        if char == "\\":
            i += 2
            continue
        if source.startswith(end_quote, i):
            return i + len(end_quote)
        i += 1
    return -1


def find_closing(source: str, start: int, closer: str) -> int:
    """Find ``closer`` at bracket depth zero, outside string literals.

    Args:
        source: Text to scan.
        start: Offset to begin scanning from.
        closer: Delimiter to find, e.g. ``"}}"`` or ``")"``.

    Returns:
        Offset of the closer, or -1 when the text ends first or the
        brackets are unbalanced.

    Example:
        >>> find_closing("{'a': '}}'} }} tail", 0, "}}")
        12
    """
    depth = 0
    i = start
    length = len(source)
    while i < length:
        char = source[i]
        if char in "\"'":
            i = _skip_string(source, i)
            if i < 0:
                return -1
            continue
        if depth == 0 and source.startswith(closer, i):
            return i
        if char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            if depth == 0:
                return -1
            depth -= 1
        i += 1
    return -1


def split_arguments(raw: str) -> list[str]:
    """Split a raw argument string on top-level commas.

    Example:
        >>> split_arguments("'a, b', items[1, 2], key=f(x, y)")
        ["'a, b'", 'items[1, 2]', 'key=f(x, y)']
    """
    args: list[str] = []
    depth = 0
    current_start = 0
    i = 0
    length = len(raw)
    while i < length:
        char = raw[i]
        if char in "\"'":
            end = _skip_string(raw, i)
            i = length if end < 0 else end
            continue
        if char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth = max(0, depth - 1)
        elif char == "," and depth == 0:
            args.append(raw[current_start:i].strip())
            current_start = i + 1
        i += 1
    tail = raw[current_start:].strip()
    if tail or args:
        args.append(tail)
    return [arg for arg in args if arg]


def split_named(argument: str) -> tuple[str | None, str]:
    """Split ``name=value`` into its parts; positional arguments get None.

    Comparison operators are not mistaken for keywords:

        >>> split_named("a == b")
        (None, 'a == b')
        >>> split_named("title = 'Home'")
        ('title', "'Home'")
    """
    match = _NAMED_ARG_RE.match(argument)
    if match is None:
        return None, argument
    return match.group(1), match.group(2).strip()
