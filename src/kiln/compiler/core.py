"""Code generator for kiln templates.

Walks the node tree and produces the Python source of a single routine::

    def _kl_render(_kl_ctx):
        _kl_append = _kl_ctx.write
        _kl_escape = _kl_ctx.escape
        _kl_str = _kl_ctx.to_str
        _kl_lookup = _kl_ctx.lookup
        it = _kl_ctx.props
        user = _kl_lookup('user')       # one line per free name
        ...                             # pre() fragments
        _kl_append('Hello ')            # body
        _kl_append(_kl_escape(user.name))
        ...                             # post() fragments

The routine becomes ``async def`` when a handler calls ``mark_async()``
or any emitted code awaits. The streaming variant additionally drains
the output buffer after every top-level node, turning the routine into
a (possibly async) generator of chunks.
"""

from __future__ import annotations

import ast
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from kiln.compiler.handler import DirectiveContext, ElementContext, HandlerContext
from kiln.compiler.names import free_names, uses_await
from kiln.compiler.writer import INDENT, CodeWriter
from kiln.environment.exceptions import CompileError, ErrorCode, TemplateError
from kiln.nodes import Directive, Element, Interpolation, Node, Text

if TYPE_CHECKING:
    from kiln.environment.core import Engine

logger = logging.getLogger(__name__)

ROUTINE_NAME = "_kl_render"

_SETUP = (
    "_kl_append = _kl_ctx.write",
    "_kl_escape = _kl_ctx.escape",
    "_kl_str = _kl_ctx.to_str",
    "_kl_lookup = _kl_ctx.lookup",
)
_DRAIN = ("for _kl_chunk in _kl_ctx.drain():", INDENT + "yield _kl_chunk")


@dataclass(frozen=True, slots=True)
class GeneratedRoutine:
    """Output of code generation, ready to be compiled with ``compile()``."""

    code: str
    is_async: bool
    line_map: tuple[int, ...]
    streamable: bool


class Compiler:
    """Translate a node tree into routine source.

    One Compiler is used per compilation; it holds the three ordered
    writers (prologue, body, epilogue) and the uid counter that keeps
    identifiers emitted by different handlers from colliding.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        name: str | None = None,
        source: str = "",
        source_hash: str = "",
        streaming: bool = False,
    ):
        self.engine = engine
        self.name = name
        self.source = source
        self.source_hash = source_hash
        self.streaming = streaming
        self.prologue = CodeWriter()
        self.body = CodeWriter()
        self.epilogue = CodeWriter()
        self.is_async = False
        self.streamable = True
        self.handlers: list[HandlerContext] = []
        # per-template scratch space shared by all handlers
        self.data: dict[str, object] = {}
        self._uid = 0

    def uid(self, prefix: str = "v") -> str:
        self._uid += 1
        return f"_kl_{prefix}{self._uid}"

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def compile(self, nodes: Sequence[Node]) -> GeneratedRoutine:
        """Generate the routine for ``nodes``.

        Raises:
            CompileError: If a handler fails or the result is not valid Python.
        """
        for node in nodes:
            self.compile_node(node)
            if self.streaming:
                with self.body.block(_DRAIN[0]):
                    self.body.line("yield _kl_chunk")
        for writer in (self.prologue, self.body, self.epilogue):
            writer.close()

        # Analyse as a coroutine: it accepts await anywhere
        draft, draft_map = self._assemble((), is_async=True)
        try:
            tree = ast.parse(draft)
        except SyntaxError as exc:
            raise self._invalid_code(exc, draft, draft_map) from exc

        is_async = self.is_async or uses_await(tree)
        exclude = frozenset({self.engine.config.var_locals})
        code, line_map = self._assemble(free_names(tree, exclude), is_async=is_async)
        logger.debug(
            "Generated %s routine for %s (%d lines)",
            "async" if is_async else "sync",
            self.name or "<string>",
            len(line_map),
        )
        return GeneratedRoutine(
            code=code,
            is_async=is_async,
            line_map=tuple(line_map),
            streamable=self.streamable,
        )

    def _assemble(self, prebound: Sequence[str], *, is_async: bool) -> tuple[str, list[int]]:
        keyword = "async def" if is_async else "def"
        lines = [f"{keyword} {ROUTINE_NAME}(_kl_ctx):"]
        line_map = [0]
        setup = [*_SETUP, f"{self.engine.config.var_locals} = _kl_ctx.props"]
        setup.extend(f"{name} = _kl_lookup({name!r})" for name in prebound)
        for line in setup:
            lines.append(INDENT + line)
            line_map.append(0)
        for writer in (self.prologue, self.body, self.epilogue):
            for line, lineno in writer.items():
                lines.append(INDENT + line)
                line_map.append(lineno)
        if self.streaming:
            for line in _DRAIN:
                lines.append(INDENT + line)
                line_map.append(0)
        return "\n".join(lines) + "\n", line_map

    def _invalid_code(self, exc: SyntaxError, code: str, line_map: Sequence[int]) -> CompileError:
        lineno = None
        if exc.lineno and 0 < exc.lineno <= len(line_map):
            lineno = line_map[exc.lineno - 1] or None
        err = CompileError(
            f"Generated code is not valid Python: {exc.msg}",
            lineno=lineno,
            name=self.name,
            source=self.source,
            generated_code=code,
        )
        err.code = ErrorCode.INVALID_CODE
        return err

    def check(self, generated: GeneratedRoutine, filename: str):
        """Compile generated source to a code object, mapping syntax errors."""
        try:
            return compile(generated.code, filename, "exec")
        except SyntaxError as exc:
            raise self._invalid_code(exc, generated.code, generated.line_map) from exc

    # ------------------------------------------------------------------
    # Node dispatch
    # ------------------------------------------------------------------

    def compile_nodes(self, nodes: Sequence[Node]) -> None:
        for node in nodes:
            self.compile_node(node)

    def compile_node(self, node: Node) -> None:
        saved = self.body.lineno
        self._set_line(node.lineno)
        try:
            if isinstance(node, Text):
                self.body.text(node.value)
            elif isinstance(node, Interpolation):
                helper = "_kl_escape" if node.escaped else "_kl_str"
                self.body.line(f"_kl_append({helper}({node.expr}))")
            elif isinstance(node, Directive):
                self._compile_directive(node)
            elif isinstance(node, Element):
                self._compile_element(node)
            else:
                raise TypeError(f"Unknown node type {type(node).__name__}")
        finally:
            self._set_line(saved)

    def _set_line(self, lineno: int) -> None:
        self.prologue.lineno = lineno
        self.body.lineno = lineno
        self.epilogue.lineno = lineno

    def _compile_directive(self, node: Directive) -> None:
        definition = self.engine.directives.get(node.name)
        if definition is None:
            raise CompileError(
                f"Directive @{node.name} is no longer registered",
                lineno=node.lineno,
                name=self.name,
                source=self.source,
                col_offset=node.col_offset,
            )
        api = DirectiveContext(self, node, definition)
        api.validate()
        self._invoke(api, definition.on_call, f"@{node.name}")

    def compile_branch(self, node: Directive, parent: DirectiveContext) -> None:
        """Compile a sub-directive of ``parent`` (``@else``, ``@case``...)."""
        definition = parent.definition.branch(node.name)
        if definition is None:
            raise parent.error(f"@{node.name} is not valid inside @{parent.name}")
        saved = self.body.lineno
        self._set_line(node.lineno)
        try:
            api = DirectiveContext(self, node, definition, parent=parent)
            api.validate()
            self._invoke(api, definition.on_call, f"@{node.name}")
        finally:
            self._set_line(saved)

    def _compile_element(self, node: Element) -> None:
        match = self.engine.elements.match(node.tag)
        if match is None:
            raise CompileError(
                f"Element <{node.tag}> is no longer registered",
                lineno=node.lineno,
                name=self.name,
                source=self.source,
                col_offset=node.col_offset,
            )
        api = ElementContext(self, node, match.definition, match.wildcard)
        before = self._marks()
        self._invoke(api, match.definition.on_call, f"<{node.tag}>")

        if api.replacement is not None:
            api.text(api.replacement)
        elif api.update_expr is not None:
            with api.capture(api.slice_name):
                api.passthrough()
            api.emit(api.update_expr)
        elif self._marks() == before:
            api.passthrough()

    def _marks(self) -> tuple[int, int, int]:
        return (self.prologue.mark, self.body.mark, self.epilogue.mark)

    def _invoke(self, api: HandlerContext, handler, label: str) -> None:
        self.handlers.append(api)
        try:
            handler(api)
        except TemplateError:
            raise
        except Exception as exc:
            err = CompileError(
                f"{label} handler failed: {exc}",
                lineno=api.node.lineno,
                name=self.name,
                source=self.source,
                col_offset=api.node.col_offset,
            )
            err.code = ErrorCode.HANDLER_ERROR
            raise err from exc
        finally:
            self.handlers.pop()
