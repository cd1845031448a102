"""kiln RenderContext: per-render state kept out of the template locals.

A ContextVar holds the chain of templates being compiled or executed,
so an error raised deep inside an included template can be attributed
to the right file and reported with the full chain that led to it.
ContextVars are task-local, so concurrent ``render_async`` calls on the
same event loop each see their own chain.

"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field


@dataclass
class RenderContext:
    """State of one template in the current render chain.

    Attributes:
        template_name: Template being rendered (None for anonymous source).
        source: Its source text, for code frames.
        include_depth: Nesting level (0 for the top-level render).
        max_include_depth: Limit that stops runaway recursive includes.
        template_stack: Names of the enclosing templates, outermost first.
    """

    template_name: str | None = None
    source: str | None = None
    include_depth: int = 0
    max_include_depth: int = 50
    template_stack: list[str] = field(default_factory=list)

    @property
    def chain(self) -> list[str]:
        """Enclosing templates plus this one, outermost first."""
        return [*self.template_stack, self.template_name or "<string>"]

    def check_include_depth(self, template_name: str) -> None:
        """Raise if including ``template_name`` would exceed the depth limit.

        Raises:
            TemplateRuntimeError: If depth >= max_include_depth
        """
        if self.include_depth >= self.max_include_depth:
            from kiln.environment.exceptions import ErrorCode, TemplateRuntimeError

            err = TemplateRuntimeError(
                f"Maximum include depth exceeded ({self.max_include_depth}) "
                f"when including '{template_name}'",
                template_name=self.template_name,
                template_stack=self.chain,
                suggestion="Check for circular includes: A → B → A",
            )
            err.code = ErrorCode.INCLUDE_DEPTH
            raise err

    def child_context(self, template_name: str | None, source: str | None = None) -> RenderContext:
        """Context for a nested template, one level deeper."""
        return RenderContext(
            template_name=template_name,
            source=source,
            include_depth=self.include_depth + 1,
            max_include_depth=self.max_include_depth,
            template_stack=self.chain,
        )


_render_context: ContextVar[RenderContext | None] = ContextVar(
    "kiln_render_context",
    default=None,
)


def get_render_context() -> RenderContext | None:
    """Current RenderContext, or None outside of a render."""
    return _render_context.get()


@contextmanager
def use_render_context(ctx: RenderContext) -> Iterator[RenderContext]:
    """Make ``ctx`` current for the duration of the block."""
    token: Token[RenderContext | None] = _render_context.set(ctx)
    try:
        yield ctx
    finally:
        _render_context.reset(token)


def new_render_context(
    template_name: str | None = None,
    source: str | None = None,
    *,
    max_include_depth: int = 50,
) -> RenderContext:
    """Context for a template: a child of the current one, or a new root.

    The result is not made current; see ``use_render_context``.
    """
    parent = _render_context.get()
    if parent is None:
        return RenderContext(
            template_name=template_name,
            source=source,
            max_include_depth=max_include_depth,
        )
    parent.check_include_depth(template_name or "<string>")
    return parent.child_context(template_name, source)


@contextmanager
def render_context(
    template_name: str | None = None,
    source: str | None = None,
    *,
    max_include_depth: int = 50,
) -> Iterator[RenderContext]:
    """Enter a template: a child of the current context, or a new root.

    Example:
        with render_context("pages/home.kiln", source) as ctx:
            unit = engine.compile(source, name="pages/home.kiln")
            ...
    """
    ctx = new_render_context(template_name, source, max_include_depth=max_include_depth)
    with use_render_context(ctx):
        yield ctx
