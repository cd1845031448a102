"""Document-wide content stacks: @push, @prepend, @stack and @once.

Content pushed anywhere in a render (including from components) is
collected per stack name and written where ``@stack(name)`` appears,
once the whole document has been rendered::

    <head>@stack('styles')</head>
    ...
    @push('styles')<link rel="stylesheet" href="/card.css">@end

``@once`` renders its block a single time per document, which keeps a
component used in a loop from pushing the same asset repeatedly.
"""

from __future__ import annotations

from kiln.compiler.handler import DirectiveContext
from kiln.environment.registry import DirectiveDefinition


def _push_to(prepend: bool):
    def handler(api: DirectiveContext) -> None:
        name = api.expression(api.param("name"))
        with api.capture() as content:
            api.render_children()
        api.raw(f"{api.ctx}.push_stack({name}, {content}, prepend={prepend})")

    handler.__name__ = "_prepend" if prepend else "_push"
    return handler


def _stack(api: DirectiveContext) -> None:
    # The marker is only filled after the last chunk is rendered
    api.require_buffering()
    name = api.expression(api.param("name"))
    api.raw(f"_kl_append({api.ctx}.stack_placeholder({name}))")


def _once(api: DirectiveContext) -> None:
    key = api.param("key")
    key = api.expression(key) if key is not None else repr(api.unique_key("once"))
    with api.block(f"if {api.ctx}.once({key}):"):
        api.render_children()


DIRECTIVES = (
    DirectiveDefinition(
        "push",
        _push_to(False),
        params=["name:str"],
        children=True,
        description="Appends the block's content to a named stack.",
        example="@push('scripts')\n  <script src=\"/app.js\"></script>\n@end",
    ),
    DirectiveDefinition(
        "prepend",
        _push_to(True),
        params=["name:str"],
        children=True,
        description="Adds the block's content to the front of a named stack.",
        example="@prepend('scripts')\n  <script src=\"/vendor.js\"></script>\n@end",
    ),
    DirectiveDefinition(
        "stack",
        _stack,
        params=["name:str"],
        description="Outputs everything pushed to a named stack during the render.",
        example="@stack('scripts')",
    ),
    DirectiveDefinition(
        "once",
        _once,
        params=["key?:str"],
        children=True,
        description="Renders its block only the first time it is reached in a document.",
        example="@once\n  <style>.card { padding: 1rem }</style>\n@end",
    ),
)
