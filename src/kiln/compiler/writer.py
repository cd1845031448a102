"""Indented Python source writer used by the code generator.

Literal template text is buffered and flushed as a single ``_kl_append``
call whenever real code is written, so runs of text never produce more
than one statement. Every emitted line records the template line it came
from, which lets runtime errors be mapped back to template source.
"""

from __future__ import annotations

import textwrap
from collections.abc import Iterator
from contextlib import contextmanager

INDENT = "    "


class CodeWriter:
    """Accumulates lines of Python source at a tracked indentation level."""

    __slots__ = ("_lines", "_line_map", "_level", "_pending", "_block_starts", "lineno", "mark")

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._line_map: list[int] = []
        self._level = 0
        self._pending: list[str] = []
        self._block_starts: list[int] = []
        self.lineno = 0
        # bumped on every write, used to detect handlers that emitted nothing
        self.mark = 0

    @property
    def level(self) -> int:
        return self._level

    def text(self, value: str) -> None:
        """Buffer literal output text."""
        if value:
            self._pending.append(value)
            self.mark += 1

    def flush(self) -> None:
        """Emit buffered text as one append statement."""
        if self._pending:
            value = "".join(self._pending)
            self._pending.clear()
            self._emit(f"_kl_append({value!r})")

    def line(self, code: str) -> None:
        """Emit a single statement at the current indentation."""
        self.flush()
        self._emit(code)

    def write(self, code: str) -> None:
        """Emit a possibly multi-line fragment, keeping its relative indentation."""
        self.flush()
        for line in textwrap.dedent(code).strip("\n").splitlines():
            if line.strip():
                self._emit(line)

    def indent(self) -> None:
        self.flush()
        self._block_starts.append(len(self._lines))
        self._level += 1

    def dedent(self) -> None:
        self.flush()
        if not self._block_starts:
            raise ValueError("dedent() called without a matching indent()")
        start = self._block_starts.pop()
        if len(self._lines) == start:
            self._emit("pass")
        self._level -= 1

    @contextmanager
    def block(self, header: str) -> Iterator[None]:
        """Emit ``header`` and indent the statements written inside the block."""
        self.line(header)
        self.indent()
        try:
            yield
        finally:
            self.dedent()

    def close(self) -> None:
        """Flush text and close blocks left open by handlers."""
        self.flush()
        while self._block_starts:
            self.dedent()

    def items(self) -> Iterator[tuple[str, int]]:
        """Yield ``(line, template_lineno)`` pairs, one per physical line."""
        return zip(self._lines, self._line_map, strict=True)

    def extend(self, other: CodeWriter) -> None:
        """Emit the lines of ``other`` at the current indentation."""
        self.flush()
        for line, lineno in other.items():
            self.lineno = lineno
            self._emit(line)

    def _emit(self, code: str) -> None:
        prefix = INDENT * self._level
        for physical in code.split("\n"):
            self._lines.append(prefix + physical)
            self._line_map.append(self.lineno)
            prefix = ""
        self.mark += 1
