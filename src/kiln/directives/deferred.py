"""@defer: blocks streamed after the rest of the page.

When a template is rendered with ``render_stream()``, a ``@defer`` block
leaves an empty ``<div id="defer-...">`` placeholder and is rendered only
once the main content has been sent. Its output then arrives as a final
chunk: a ``<template>`` plus a small script that swaps it into the
placeholder. Slow work (an ``@await`` inside the block, say) no longer
holds back the first bytes of the page::

    <main>{{ article.body }}</main>
    @defer
        <aside>@include('recommendations')</aside>
    @end

The block sees the variables as they were where ``@defer`` appeared.
A buffered render (``render()``, ``view()``) writes the block in place.
"""

from __future__ import annotations

import ast

from kiln.compiler.handler import DirectiveContext
from kiln.compiler.names import free_names, uses_await
from kiln.compiler.writer import INDENT, CodeWriter
from kiln.environment.registry import DirectiveDefinition


def _block_names(lines: CodeWriter) -> tuple[list[str], bool]:
    """Names the block reads and whether it awaits."""
    body = "".join(f"{INDENT}{line}\n" for line, _ in lines.items()) or f"{INDENT}pass\n"
    tree = ast.parse(f"async def _kl_block():\n{body}")
    return free_names(tree), uses_await(tree)


def _defer(api: DirectiveContext) -> None:
    if not api.streaming:
        api.render_children()
        return

    with api.detached() as lines:
        api.render_children()
    names, is_async = _block_names(lines)
    block = api.uid("defer")
    # Defaults bind the current values of every name the block reads
    params = ", ".join(f"{name}={name}" for name in names)
    keyword = "async def" if is_async else "def"
    with api.block(f"{keyword} {block}({params}):"):
        api.raw(f"{api.ctx}.push_buffer()")
        api.write_lines(lines)
        api.raw(f"return {api.ctx}.pop_buffer()")

    key = api.unique_key("defer")
    api.emit(f"{api.ctx}.defer({key!r}, {block})")
    call = "await _kl_block()" if is_async else "_kl_block()"
    api.post(
        f"for _kl_defer_id, _kl_block in {api.ctx}.take_deferred({key!r}):\n"
        f"    _kl_append({api.ctx}.deferred_chunk(_kl_defer_id, {call}))\n"
        f"    for _kl_chunk in {api.ctx}.drain():\n"
        f"        yield _kl_chunk\n"
    )


DIRECTIVES = (
    DirectiveDefinition(
        "defer",
        _defer,
        children=True,
        description="Streams its block after the rest of the page, into a placeholder.",
        example="@defer\n  <aside>@include('recommendations')</aside>\n@end",
    ),
)
