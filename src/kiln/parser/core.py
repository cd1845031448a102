"""Template parser for kiln.

A single forward scan over the source with an explicit frame stack.
At each position the parser tries, in priority order:

1. ``@verbatim ... @endverbatim`` raw regions
2. escapes: ``@@`` (literal ``@``) and ``@{{`` (literal ``{{``)
3. ``{{-- comment --}}``, ``{{{ raw }}}`` and ``{{ escaped }}`` interpolation
4. ``@name(args)`` directive heads, ``@end`` / ``@endname`` block closers
   and sub-directives of the innermost open block
5. ``<tag ...>``, ``<tag/>`` and ``</tag>`` for registered elements

Everything else is literal text. Adjacent text is merged into one node.

Example:
    >>> parser = Parser("Hi {{ name }}!", directives, elements)
    >>> parser.parse()
    [Text(lineno=1, col_offset=0, value='Hi '), Interpolation(...), Text(...)]

"""

from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from kiln.environment.exceptions import ErrorCode
from kiln.nodes import Directive, Element, Interpolation, LiteralValue, Node, Text
from kiln.parser.attributes import AttributeSyntaxError, scan_tag_attributes
from kiln.parser.errors import ParseError
from kiln.parser.scanner import find_closing

if TYPE_CHECKING:
    from kiln.environment.registry import (
        DirectiveDefinition,
        DirectiveRegistry,
        ElementDefinition,
        ElementRegistry,
    )

_DIRECTIVE_RE = re.compile(r"@([A-Za-z_]\w*)")
_OPEN_TAG_RE = re.compile(r"<([A-Za-z][\w\-.:]*)")
_CLOSE_TAG_RE = re.compile(r"</([A-Za-z][\w\-.:]*)\s*>")
_SPECIAL_RE = re.compile(r"[@{<]")

_VERBATIM_OPEN = "verbatim"
_VERBATIM_CLOSE = "@endverbatim"


def _is_ident_char(char: str) -> bool:
    return char.isalnum() or char in "_."


def _is_glued(source: str, pos: int) -> bool:
    """True when the ``@`` at ``pos`` follows a word that is not a directive."""
    start = pos
    while start > 0 and _is_ident_char(source[start - 1]):
        start -= 1
    return start < pos and (start == 0 or source[start - 1] != "@")


def _branch_for(definition: DirectiveDefinition, name: str) -> DirectiveDefinition | None:
    """Sub-directive named ``name``, or the longest one ``name`` starts with.

    ``@elseB`` inside ``@if`` is ``@else`` followed by the text ``B``.
    """
    exact = definition.branch(name)
    if exact is not None:
        return exact
    candidates = [branch for branch in definition.branches if name.startswith(branch.name)]
    return max(candidates, key=lambda branch: len(branch.name), default=None)


@dataclass(slots=True)
class _Segment:
    """One link of a directive chain (the head or a sub-directive)."""

    name: str
    raw_args: str | None
    position: int
    children: list[Node] | None


@dataclass(slots=True)
class _Frame:
    """An open block: directive chain, element or slot."""

    kind: str
    name: str
    position: int
    children: list[Node]
    definition: DirectiveDefinition | ElementDefinition | None = None
    segments: list[_Segment] = field(default_factory=list)
    attributes: tuple = ()
    slots: dict[str, tuple[Node, ...]] = field(default_factory=dict)
    slot_name: str | None = None


class Parser:
    """Parse template source into a node tree.

    Args:
        source: Template text.
        directives: Registry consulted for directive names and block shape.
        elements: Registry consulted for element tags.
        name: Template name for error messages.
        strict: Raise on unknown directives and stray ``@end`` instead of
            passing them through as literal text.
        slot_tag: Tag collected into ``Element.slots`` inside elements.
    """

    __slots__ = (
        "_source",
        "_directives",
        "_elements",
        "_name",
        "_strict",
        "_slot_tag",
        "_root",
        "_stack",
        "_line_starts",
    )

    def __init__(
        self,
        source: str,
        directives: DirectiveRegistry,
        elements: ElementRegistry,
        *,
        name: str | None = None,
        strict: bool = False,
        slot_tag: str = "x-slot",
    ):
        self._source = source
        self._directives = directives
        self._elements = elements
        self._name = name
        self._strict = strict
        self._slot_tag = slot_tag
        self._root: list[Node] = []
        self._stack: list[_Frame] = []
        self._line_starts = [0] + [i + 1 for i, char in enumerate(source) if char == "\n"]

    def parse(self) -> list[Node]:
        """Parse the whole source.

        Raises:
            ParseError: For unterminated blocks, interpolations or tags.
        """
        source = self._source
        length = len(source)
        pos = 0
        while pos < length:
            char = source[pos]
            if char == "@":
                pos = self._parse_at(pos)
            elif char == "{" and source.startswith("{{", pos):
                pos = self._parse_interpolation(pos)
            elif char == "<":
                pos = self._parse_tag(pos)
            else:
                match = _SPECIAL_RE.search(source, pos + 1)
                end = match.start() if match else length
                self._add_text(source[pos:end], pos)
                pos = end

        if self._stack:
            frame = self._stack[-1]
            lineno, _ = self._location(frame.position)
            if frame.kind == "directive":
                raise self._error(
                    f"Unclosed @{frame.name} block (opened at line {lineno})",
                    frame.position,
                    code=ErrorCode.UNCLOSED_BLOCK,
                    suggestion=f"Close it with @end or @end{frame.name}",
                )
            raise self._error(
                f"Unclosed <{frame.name}> element (opened at line {lineno})",
                frame.position,
                code=ErrorCode.UNCLOSED_BLOCK,
                suggestion=f"Close it with </{frame.name}> or use <{frame.name} />",
            )
        return self._root

    # ------------------------------------------------------------------
    # Positions and output
    # ------------------------------------------------------------------

    def _location(self, pos: int) -> tuple[int, int]:
        index = bisect_right(self._line_starts, pos) - 1
        return index + 1, pos - self._line_starts[index]

    def _error(
        self,
        message: str,
        pos: int,
        *,
        code: ErrorCode | None = None,
        suggestion: str | None = None,
    ) -> ParseError:
        return ParseError(
            message, pos, self._source, self._name, code=code, suggestion=suggestion
        )

    def _target(self) -> list[Node]:
        return self._stack[-1].children if self._stack else self._root

    def _add(self, node: Node) -> None:
        self._target().append(node)

    def _add_text(self, value: str, pos: int) -> None:
        if not value:
            return
        target = self._target()
        if target and isinstance(target[-1], Text):
            last = target[-1]
            target[-1] = Text(last.lineno, last.col_offset, last.value + value)
            return
        lineno, col = self._location(pos)
        target.append(Text(lineno, col, value))

    # ------------------------------------------------------------------
    # Directives and escapes
    # ------------------------------------------------------------------

    def _parse_at(self, pos: int) -> int:
        source = self._source

        run_end = pos
        while run_end < len(source) and source[run_end] == "@":
            run_end += 1
        run = run_end - pos
        if run > 1:
            # @@name renders @name, @@@name renders @@name
            self._add_text("@" * (run - 1), pos)
            match = _DIRECTIVE_RE.match(source, run_end - 1)
            if match is not None:
                self._add_text(match.group(1), match.start(1))
                return match.end()
            return run_end

        if source.startswith("@{{", pos):
            self._add_text("{{", pos)
            return pos + 3

        match = _DIRECTIVE_RE.match(source, pos)
        if match is None:
            self._add_text("@", pos)
            return pos + 1
        # Closers and branches may follow a word; new directives may not (user@if.com)
        glued = _is_glued(source, pos)

        name = match.group(1)
        end = match.end()

        if name == _VERBATIM_OPEN and not glued:
            close = source.find(_VERBATIM_CLOSE, end)
            if close < 0:
                raise self._error(
                    "Unterminated @verbatim block", pos, code=ErrorCode.UNCLOSED_BLOCK
                )
            self._add_text(source[end:close], end)
            return close + len(_VERBATIM_CLOSE)

        if self._is_closer(name) and not (glued and not self._stack):
            return self._close_directive(name, pos, end)

        frame = self._stack[-1] if self._stack else None
        if frame is not None and frame.kind == "directive":
            branch = _branch_for(frame.definition, name)
            # A sub-directive without parameters leaves @name(...) to the directive
            if (
                branch is not None
                and not branch.params
                and branch.name == name
                and source.startswith("(", end)
                and name in self._directives
            ):
                branch = None
            if branch is not None:
                end = match.start(1) + len(branch.name)
                raw_args, end = self._parse_args(end, branch.name, pos, branch)
                segment = _Segment(
                    branch.name, raw_args, pos, [] if branch.children else None
                )
                frame.segments.append(segment)
                if segment.children is not None:
                    frame.children = segment.children
                return end

        definition = None if glued else self._directives.get(name)
        if definition is None:
            if glued:
                self._add_text("@", pos)
                return pos + 1
            if self._strict:
                raise self._error(
                    f"Unknown directive @{name}", pos, code=ErrorCode.UNKNOWN_DIRECTIVE
                )
            self._add_text(match.group(), pos)
            return end

        raw_args, end = self._parse_args(end, name, pos, definition)
        has_block = definition.children
        if has_block == "auto":
            has_block = self._has_block(end)

        lineno, col = self._location(pos)
        if not has_block:
            self._add(Directive(lineno, col, name, raw_args))
            return end

        children: list[Node] = []
        self._stack.append(
            _Frame(
                kind="directive",
                name=name,
                position=pos,
                children=children,
                definition=definition,
                segments=[_Segment(name, raw_args, pos, children)],
            )
        )
        return end

    def _parse_args(
        self, pos: int, name: str, head: int, definition: DirectiveDefinition
    ) -> tuple[str | None, int]:
        source = self._source
        ahead = pos
        if definition.params:
            while ahead < len(source) and source[ahead] in " \t":
                ahead += 1
        if ahead >= len(source) or source[ahead] != "(":
            return None, pos
        close = find_closing(source, ahead + 1, ")")
        if close < 0:
            raise self._error(
                f"Unclosed argument list for @{name}",
                head,
                code=ErrorCode.UNCLOSED_BLOCK,
            )
        return source[ahead + 1 : close].strip(), close + 1

    def _is_closer(self, name: str) -> bool:
        if name == "end":
            return True
        if not name.startswith("end"):
            return False
        return any(
            frame.kind == "directive" and frame.name == name[3:] for frame in self._stack
        )

    def _close_directive(self, name: str, pos: int, end: int) -> int:
        frame = self._stack[-1] if self._stack else None
        if frame is not None and frame.kind == "directive" and (
            name == "end" or name[3:] == frame.name
        ):
            self._stack.pop()
            self._add(self._build_directive(frame))
            return end

        if any(f.kind == "directive" for f in self._stack):
            label = f"@{frame.name} block" if frame.kind == "directive" else f"<{frame.name}>"
            raise self._error(
                f"@{name} found while {label} is still open",
                pos,
                code=ErrorCode.UNEXPECTED_CLOSE,
                suggestion="Close inner blocks before the outer one",
            )
        if self._strict:
            raise self._error(
                f"Unexpected @{name} with no open block", pos, code=ErrorCode.UNEXPECTED_CLOSE
            )
        self._add_text(self._source[pos:end], pos)
        return end

    def _build_directive(self, frame: _Frame) -> Directive:
        head, *rest = frame.segments
        related = []
        for segment in rest:
            lineno, col = self._location(segment.position)
            children = tuple(segment.children) if segment.children is not None else None
            related.append(Directive(lineno, col, segment.name, segment.raw_args, children))
        lineno, col = self._location(head.position)
        return Directive(
            lineno, col, head.name, head.raw_args, tuple(head.children), tuple(related)
        )

    def _has_block(self, pos: int) -> bool:
        """Look ahead for an ``@end`` balancing a directive opened before ``pos``."""
        source = self._source
        depth = 1
        for match in _DIRECTIVE_RE.finditer(source, pos):
            start = match.start()
            if start > 0 and source[start - 1] == "@":
                continue
            glued = _is_glued(source, start)
            name = match.group(1)
            if name == "end" or (
                name.startswith("end") and name[3:] in self._directives
            ):
                depth -= 1
                if depth == 0:
                    return True
                continue
            definition = None if glued else self._directives.get(name)
            if definition is not None and definition.children is True:
                depth += 1
        return False

    # ------------------------------------------------------------------
    # Interpolation
    # ------------------------------------------------------------------

    def _parse_interpolation(self, pos: int) -> int:
        source = self._source
        if source.startswith("{{--", pos):
            close = source.find("--}}", pos + 4)
            if close < 0:
                raise self._error(
                    "Unclosed comment", pos, code=ErrorCode.UNCLOSED_INTERPOLATION
                )
            return close + 4

        if source.startswith("{{{", pos):
            opener, closer, escaped = "{{{", "}}}", False
        else:
            opener, closer, escaped = "{{", "}}", True
        close = find_closing(source, pos + len(opener), closer)
        if close < 0:
            raise self._error(
                f"Unclosed interpolation, expected '{closer}'",
                pos,
                code=ErrorCode.UNCLOSED_INTERPOLATION,
            )
        expr = source[pos + len(opener) : close].strip()
        if not expr:
            raise self._error(
                "Empty interpolation", pos, code=ErrorCode.UNCLOSED_INTERPOLATION
            )
        lineno, col = self._location(pos)
        self._add(Interpolation(lineno, col, expr, escaped))
        return close + len(closer)

    # ------------------------------------------------------------------
    # Elements
    # ------------------------------------------------------------------

    def _slot_owner(self) -> _Frame | None:
        """Nearest open element frame, looking through directive blocks."""
        for frame in reversed(self._stack):
            if frame.kind == "directive":
                continue
            if frame.kind == "element" and frame.name != self._slot_tag:
                return frame
            return None
        return None

    def _parse_tag(self, pos: int) -> int:
        source = self._source
        if source.startswith("</", pos):
            match = _CLOSE_TAG_RE.match(source, pos)
            if match is not None:
                return self._close_tag(match.group(1), pos, match.end())
            self._add_text("<", pos)
            return pos + 1

        match = _OPEN_TAG_RE.match(source, pos)
        if match is None:
            self._add_text("<", pos)
            return pos + 1
        tag = match.group(1)

        top = self._stack[-1] if self._stack else None
        owner = self._slot_owner() if tag == self._slot_tag else None
        is_slot = owner is not None
        element_match = None if is_slot else self._elements.match(tag)
        if not is_slot and element_match is None:
            self._add_text("<", pos)
            return pos + 1

        try:
            head = scan_tag_attributes(source, match.end())
        except AttributeSyntaxError as exc:
            raise self._error(
                f"Malformed tag <{tag}>: {exc}", exc.position, code=ErrorCode.MALFORMED_TAG
            ) from exc

        if is_slot:
            slot_name = None
            for attr_name, value in head.attributes:
                if attr_name == "name" and isinstance(value, LiteralValue):
                    slot_name = value.value
            if not isinstance(slot_name, str) or not slot_name:
                raise self._error(
                    f"<{tag}> requires a literal name attribute",
                    pos,
                    code=ErrorCode.MALFORMED_TAG,
                )
            if owner is not top:
                # Inside a block: filled when the block runs
                if head.self_closing:
                    lineno, col = self._location(pos)
                    self._add(Element(lineno, col, tag, head.attributes, (), {}, True))
                    return head.end
                self._stack.append(
                    _Frame(
                        kind="element",
                        name=tag,
                        position=pos,
                        children=[],
                        attributes=head.attributes,
                    )
                )
                return head.end
            if head.self_closing:
                top.slots[slot_name] = ()
                return head.end
            self._stack.append(
                _Frame(kind="slot", name=tag, position=pos, children=[], slot_name=slot_name)
            )
            return head.end

        definition = element_match.definition
        if definition.void or head.self_closing:
            lineno, col = self._location(pos)
            self._add(
                Element(lineno, col, tag, head.attributes, (), {}, head.self_closing)
            )
            return head.end

        self._stack.append(
            _Frame(
                kind="element",
                name=tag,
                position=pos,
                children=[],
                definition=definition,
                attributes=head.attributes,
            )
        )
        return head.end

    def _close_tag(self, tag: str, pos: int, end: int) -> int:
        top = self._stack[-1] if self._stack else None
        if top is not None and top.kind in ("element", "slot") and top.name == tag:
            self._stack.pop()
            if top.kind == "slot":
                self._stack[-1].slots[top.slot_name] = tuple(top.children)
            else:
                lineno, col = self._location(top.position)
                self._add(
                    Element(
                        lineno, col, tag, top.attributes, tuple(top.children), dict(top.slots)
                    )
                )
            return end

        if any(f.kind in ("element", "slot") and f.name == tag for f in self._stack):
            label = f"@{top.name} block" if top.kind == "directive" else f"<{top.name}>"
            raise self._error(
                f"Unclosed {label} before </{tag}>", top.position, code=ErrorCode.UNCLOSED_BLOCK
            )

        element_match = self._elements.match(tag)
        if element_match is not None:
            if element_match.definition.void:
                raise self._error(
                    f"Void element <{tag}> cannot have a closing tag",
                    pos,
                    code=ErrorCode.MALFORMED_TAG,
                    suggestion=f"Write <{tag} ...> or <{tag} ... /> without </{tag}>",
                )
            raise self._error(
                f"Unexpected closing tag </{tag}>", pos, code=ErrorCode.UNEXPECTED_CLOSE
            )

        self._add_text(self._source[pos:end], pos)
        return end
