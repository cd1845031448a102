"""Handler contexts passed to directive and element handlers.

A handler never sees generated code as data. It only appends fragments
through this API, in one of three ordered streams:

- ``pre(code)``: routine prologue, runs before any output
- ``raw(code)`` / ``text()`` / ``emit()``: body, at the handler's position
- ``post(code)``: routine epilogue, runs after the body

Inside generated code the runtime ``Invocation`` is available as
``_kl_ctx`` (``api.ctx``), output is appended with ``_kl_append``, and
template locals are reachable as plain names or through ``it``.

Example:
    >>> def shout(api):
    ...     api.emit(f"str({api.param('text')}).upper()", escape=True)
    >>> engine.directive(DirectiveDefinition("shout", shout, params=["text:str"]))
    >>> engine.render("@shout('hi')")
    'HI'

"""

from __future__ import annotations

import ast
import re
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from kiln.compiler.writer import CodeWriter
from kiln.environment.exceptions import CompileError, ErrorCode
from kiln.nodes import Element, ExpressionValue, LiteralValue, Node, SpreadValue
from kiln.parser.scanner import split_arguments, split_named

if TYPE_CHECKING:
    from kiln.compiler.core import Compiler
    from kiln.environment.core import Engine
    from kiln.environment.registry import DirectiveDefinition, ElementDefinition
    from kiln.nodes import Directive

_TEMPLATE_STRING_RE = re.compile(r"\{\{(.+?)\}\}", re.DOTALL)


class HandlerContext:
    """Emission API shared by directive and element handlers.

    Attributes:
        node: The node being compiled.
        parent: Handler context of the owning block for sub-directives.
        data: Scratch space, visible to sub-directive handlers via ``parent``.
    """

    ctx = "_kl_ctx"

    def __init__(self, compiler: Compiler, node: Node, parent: HandlerContext | None = None):
        self._compiler = compiler
        self.node = node
        self.parent = parent
        self.data: dict[str, Any] = {}

    @property
    def engine(self) -> Engine:
        return self._compiler.engine

    @property
    def lineno(self) -> int:
        return self.node.lineno

    @property
    def template_name(self) -> str | None:
        return self._compiler.name

    # -- emission ------------------------------------------------------

    def raw(self, code: str) -> None:
        """Append statements to the body at the current position."""
        self._compiler.body.write(code)

    def pre(self, code: str) -> None:
        """Append statements to the routine prologue."""
        self._compiler.prologue.write(code)

    def post(self, code: str) -> None:
        """Append statements to the routine epilogue."""
        self._compiler.epilogue.write(code)

    def text(self, value: str) -> None:
        """Append literal output text."""
        self._compiler.body.text(value)

    def emit(self, expr: str, *, escape: bool = False) -> None:
        """Append the runtime value of ``expr`` to the output.

        ``None`` and undefined values produce no output.
        """
        helper = "_kl_escape" if escape else "_kl_str"
        self._compiler.body.line(f"_kl_append({helper}({expr}))")

    def indent(self) -> None:
        self._compiler.body.indent()

    def dedent(self) -> None:
        self._compiler.body.dedent()

    @contextmanager
    def block(self, header: str) -> Iterator[None]:
        """Write ``header`` (e.g. ``"if x:"``) and indent the code inside."""
        with self._compiler.body.block(header):
            yield

    @contextmanager
    def capture(self, target: str | None = None) -> Iterator[str]:
        """Capture output written inside the block into a variable.

        Yields the variable name; after the block it holds ``Markup``.
        """
        name = target or self.uid("capture")
        self.raw(f"{self.ctx}.push_buffer()")
        yield name
        self.raw(f"{name} = {self.ctx}.pop_buffer()")

    # -- compilation state ---------------------------------------------

    def mark_async(self) -> None:
        """Make the enclosing routine a coroutine (``async def``)."""
        self._compiler.is_async = True

    def require_buffering(self) -> None:
        """Disable incremental streaming for this template."""
        self._compiler.streamable = False

    @property
    def streaming(self) -> bool:
        """True while compiling the chunk-yielding variant of the routine."""
        return self._compiler.streaming

    @property
    def template_data(self) -> dict[str, Any]:
        """Scratch space shared by every handler of this compilation."""
        return self._compiler.data

    @contextmanager
    def detached(self) -> Iterator[CodeWriter]:
        """Compile into a separate writer instead of the body.

        The lines can be inspected and then placed with ``write_lines``.
        """
        body = self._compiler.body
        writer = CodeWriter()
        writer.lineno = body.lineno
        self._compiler.body = writer
        try:
            yield writer
        finally:
            writer.close()
            self._compiler.body = body

    def write_lines(self, writer: CodeWriter) -> None:
        """Emit the lines of a detached writer at the current position."""
        self._compiler.body.extend(writer)

    def uid(self, prefix: str = "v") -> str:
        """Identifier unique within this compilation."""
        return self._compiler.uid(prefix)

    def unique_key(self, prefix: str = "key") -> str:
        """Key unique across templates, stable for identical source."""
        return f"{self._compiler.source_hash[:12]}:{self.uid(prefix)}"

    def enclosing(self, *names: str) -> HandlerContext | None:
        """Nearest enclosing directive handler whose name is in ``names``."""
        for handler in reversed(self._compiler.handlers):
            if handler is self:
                continue
            if isinstance(handler, DirectiveContext) and handler.name in names:
                return handler
        return None

    def enclosing_element(self, key: str) -> ElementContext | None:
        """Nearest enclosing element handler that stored ``key`` in its ``data``."""
        for handler in reversed(self._compiler.handlers):
            if handler is not self and isinstance(handler, ElementContext) and key in handler.data:
                return handler
        return None

    def expression(self, code: str) -> str:
        """Validate ``code`` as a Python expression and return it unchanged."""
        try:
            ast.parse(code, mode="eval")
        except SyntaxError as exc:
            raise self.error(f"Invalid expression {code!r}: {exc.msg}") from exc
        return code

    def error(self, message: str, code: ErrorCode = ErrorCode.HANDLER_ERROR) -> CompileError:
        """Build a CompileError located at this node; the caller raises it."""
        err = CompileError(
            message,
            lineno=self.node.lineno,
            name=self._compiler.name,
            source=self._compiler.source,
            col_offset=self.node.col_offset,
        )
        err.code = code
        return err

    def compile_nodes(self, nodes: Sequence[Node]) -> None:
        self._compiler.compile_nodes(nodes)


class DirectiveContext(HandlerContext):
    """Handler context for ``@name(args)`` directives."""

    def __init__(
        self,
        compiler: Compiler,
        node: Directive,
        definition: DirectiveDefinition,
        parent: HandlerContext | None = None,
    ):
        super().__init__(compiler, node, parent)
        self.definition = definition
        self.args: list[str] = []
        self.kwargs: dict[str, str] = {}
        self._params: dict[str, str] = {}
        self._bind_arguments()

    @property
    def name(self) -> str:
        return self.node.name

    @property
    def raw_args(self) -> str | None:
        return self.node.raw_args

    @property
    def children(self) -> Sequence[Node]:
        return self.node.children or ()

    @property
    def related(self) -> Sequence[Directive]:
        return self.node.related

    def _bind_arguments(self) -> None:
        raw = self.node.raw_args
        if raw:
            for argument in split_arguments(raw):
                keyword, value = split_named(argument)
                if keyword is None:
                    self.args.append(value)
                else:
                    self.kwargs[keyword] = value

        positional = iter(self.args)
        for spec in self.definition.param_specs:
            if spec.name in self.kwargs:
                self._params[spec.name] = self.kwargs[spec.name]
                continue
            value = next(positional, None)
            if value is not None:
                self._params[spec.name] = value

    def validate(self) -> None:
        """Raise when a required parameter was not supplied."""
        for spec in self.definition.param_specs:
            if not spec.optional and spec.name not in self._params:
                raise self.error(
                    f"@{self.name} is missing required parameter '{spec.name}'",
                    ErrorCode.MISSING_PARAMETER,
                )

    def param(self, name: str | int, default: str | None = None) -> str | None:
        """Raw Python code of a parameter, by declared name or position."""
        if isinstance(name, int):
            return self.get_argument(name, default)
        return self._params.get(name, self.kwargs.get(name, default))

    def get_argument(self, index: int, default: str | None = None) -> str | None:
        """Raw Python code of the ``index``-th positional argument."""
        if 0 <= index < len(self.args):
            return self.args[index]
        return default

    def render_children(self, nodes: Sequence[Node] | None = None) -> None:
        """Compile the block's children (or ``nodes``) at the current position."""
        self._compiler.compile_nodes(self.children if nodes is None else nodes)

    def render_related(self) -> None:
        """Compile the chained sub-directives (``@else``, ``@empty``...) in order."""
        for node in self.related:
            self._compiler.compile_branch(node, self)


class ElementContext(HandlerContext):
    """Handler context for registered elements.

    Expression attributes are exposed as inline Python code, literal ones
    as string literals. ``attributes_code()`` builds a dict expression
    where spreads and later attributes override earlier ones.
    """

    def __init__(
        self,
        compiler: Compiler,
        node: Element,
        definition: ElementDefinition,
        wildcard: str = "",
    ):
        super().__init__(compiler, node)
        self.definition = definition
        self.wildcard = wildcard
        self.replacement: str | None = None
        self.update_expr: str | None = None
        self._slice_name: str | None = None

    @property
    def tag(self) -> str:
        return self.node.tag

    @property
    def inner(self) -> Sequence[Node]:
        return self.node.inner

    @property
    def slots(self) -> Mapping[str, Sequence[Node]]:
        return self.node.slots

    @property
    def is_void(self) -> bool:
        return self.definition.void or self.node.self_closing

    @property
    def attributes(self) -> dict[str, str]:
        """Attribute name → Python code producing its value (spreads excluded)."""
        return {
            name: self._value_code(value)
            for name, value in self.node.attributes
            if name is not None
        }

    def attribute(self, name: str) -> str | None:
        value = self.node.get_attribute(name)
        return None if value is None else self._value_code(value)

    def attributes_code(self, exclude: Sequence[str] = ()) -> str:
        """Dict display merging attributes and spreads in source order."""
        parts: list[str] = []
        for name, value in self.node.attributes:
            if name is None:
                parts.append(f"**({value.code})")
            elif name not in exclude:
                parts.append(f"{name!r}: {self._value_code(value)}")
        return "{" + ", ".join(parts) + "}"

    def _value_code(self, value: Any) -> str:
        if isinstance(value, ExpressionValue):
            return f"({value.code})"
        if isinstance(value, SpreadValue):
            return f"({value.code})"
        if isinstance(value, LiteralValue):
            if isinstance(value.value, bool):
                return repr(value.value)
            return self._template_string(value.value)
        raise TypeError(f"Unknown attribute value {value!r}")

    def _template_string(self, text: str) -> str:
        """Code for a literal that may contain ``{{ expr }}`` interpolations."""
        if "{{" not in text:
            return repr(text)
        parts: list[str] = []
        last = 0
        for match in _TEMPLATE_STRING_RE.finditer(text):
            if match.start() > last:
                parts.append(repr(text[last : match.start()]))
            parts.append(f"_kl_escape({match.group(1).strip()})")
            last = match.end()
        if last < len(text):
            parts.append(repr(text[last:]))
        return f"{self.ctx}.markup_join([{', '.join(parts)}])"

    def render_children(self, nodes: Sequence[Node] | None = None) -> None:
        """Compile the element's inner content at the current position."""
        self._compiler.compile_nodes(self.inner if nodes is None else nodes)

    def render_slot(self, name: str) -> bool:
        """Compile the named slot's content; False when the slot is absent."""
        nodes = self.slots.get(name)
        if nodes is None:
            return False
        self._compiler.compile_nodes(nodes)
        return True

    def replace(self, html: str) -> None:
        """Substitute the element's output with static markup."""
        self.replacement = html

    def update(self, expr: str) -> None:
        """Substitute the element's output with the value of ``expr``.

        ``expr`` may read the element's default rendering from the
        variable named by ``slice_name``.
        """
        self.update_expr = expr

    @property
    def slice_name(self) -> str:
        if self._slice_name is None:
            self._slice_name = self.uid("slice")
        return self._slice_name

    def passthrough(self) -> None:
        """Emit the element as written, with attributes rendered at runtime."""
        self.text(f"<{self.tag}")
        if self.node.attributes:
            self.emit(f"{self.ctx}.render_attributes({self.attributes_code()})")
        if self.is_void:
            self.text(" />" if self.node.self_closing else ">")
            return
        self.text(">")
        slot_tag = self.engine.config.slot_tag
        for name, nodes in self.slots.items():
            self.text(f'<{slot_tag} name="{name}">')
            self._compiler.compile_nodes(nodes)
            self.text(f"</{slot_tag}>")
        self._compiler.compile_nodes(self.inner)
        self.text(f"</{self.tag}>")
