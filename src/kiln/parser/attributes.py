"""Attribute scanning for element tags.

Handles the four attribute forms:

- ``name="text"`` / ``name='text'`` / ``name=text``: literal values
- ``name``: bare attribute, value ``True``
- ``name={expr}``: expression attribute, braces balanced
- ``{...expr}``: spread of a mapping into the attribute set
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from kiln.nodes import AttrValue, ExpressionValue, LiteralValue, SpreadValue
from kiln.parser.scanner import find_closing

_NAME_RE = re.compile(r"[A-Za-z_:@#][\w:.\-@#]*")
_UNQUOTED_RE = re.compile(r"[^\s\"'=<>`/]+")


class AttributeSyntaxError(ValueError):
    """Malformed attribute syntax at ``position``."""

    def __init__(self, message: str, position: int):
        self.position = position
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class TagHead:
    """Result of scanning an opening tag up to and including ``>``."""

    attributes: tuple[tuple[str | None, AttrValue], ...]
    end: int
    self_closing: bool


def scan_tag_attributes(source: str, pos: int) -> TagHead:
    """Scan attributes from ``pos`` (just after the tag name) to the tag end.

    Raises:
        AttributeSyntaxError: On unterminated values or an unclosed tag.
    """
    attributes: list[tuple[str | None, AttrValue]] = []
    length = len(source)
    while True:
        while pos < length and source[pos].isspace():
            pos += 1
        if pos >= length:
            raise AttributeSyntaxError("Unclosed tag", pos)
        if source.startswith("/>", pos):
            return TagHead(tuple(attributes), pos + 2, True)
        if source[pos] == ">":
            return TagHead(tuple(attributes), pos + 1, False)

        if source.startswith("{...", pos):
            end = find_closing(source, pos + 1, "}")
            if end < 0:
                raise AttributeSyntaxError("Unclosed spread attribute", pos)
            code = source[pos + 4 : end].strip()
            if not code:
                raise AttributeSyntaxError("Empty spread attribute", pos)
            attributes.append((None, SpreadValue(code)))
            pos = end + 1
            continue

        name_match = _NAME_RE.match(source, pos)
        if name_match is None:
            raise AttributeSyntaxError(f"Unexpected character {source[pos]!r} in tag", pos)
        name = name_match.group()
        pos = name_match.end()

        ahead = pos
        while ahead < length and source[ahead].isspace():
            ahead += 1
        if ahead >= length or source[ahead] != "=":
            attributes.append((name, LiteralValue(True)))
            continue

        pos = ahead + 1
        while pos < length and source[pos].isspace():
            pos += 1
        if pos >= length:
            raise AttributeSyntaxError(f"Missing value for attribute {name!r}", pos)

        char = source[pos]
        if char in "\"'":
            end = source.find(char, pos + 1)
            if end < 0:
                raise AttributeSyntaxError(f"Unterminated value for attribute {name!r}", pos)
            attributes.append((name, LiteralValue(source[pos + 1 : end])))
            pos = end + 1
        elif char == "{":
            end = find_closing(source, pos + 1, "}")
            if end < 0:
                raise AttributeSyntaxError(f"Unclosed expression for attribute {name!r}", pos)
            code = source[pos + 1 : end].strip()
            if not code:
                raise AttributeSyntaxError(f"Empty expression for attribute {name!r}", pos)
            attributes.append((name, ExpressionValue(code)))
            pos = end + 1
        else:
            value_match = _UNQUOTED_RE.match(source, pos)
            if value_match is None:
                raise AttributeSyntaxError(f"Missing value for attribute {name!r}", pos)
            attributes.append((name, LiteralValue(value_match.group())))
            pos = value_match.end()
