"""Loop directives: @for / @each with @empty, plus @break and @continue.

``@for(item in items)`` (``of`` works too) binds ``item`` and ``loop``,
a ``LoopContext``. Two names unpack each item, and mappings iterate over
their ``(key, value)`` pairs::

    @for((name, score) in scores)
        {{ loop.index }}. {{ name }}: {{ score }}
    @empty
        No scores yet.
    @end

``@each(items, 'item')`` is the positional spelling of the same loop.
"""

from __future__ import annotations

import ast
import re

from kiln.compiler.handler import DirectiveContext
from kiln.environment.registry import DirectiveDefinition

_LOOP_RE = re.compile(r"^\s*(?P<target>.+?)\s+(?:in|of)\s+(?P<items>.+?)\s*$", re.DOTALL)


def _loop_parts(api: DirectiveContext) -> tuple[str, str]:
    """Target and iterable code of a loop header."""
    if len(api.args) == 2:
        try:
            target = ast.literal_eval(api.args[1])
        except (ValueError, SyntaxError):
            target = None
        if isinstance(target, str):
            return target, api.args[0]
    expr = api.param("expr") or ""
    match = _LOOP_RE.match(expr)
    if match is None:
        raise api.error(
            f"@{api.name} expects 'item in items', got {expr!r}"
        )
    return match.group("target"), match.group("items")


def _check_target(api: DirectiveContext, target: str) -> str:
    try:
        tree = ast.parse(f"for {target} in _kl_items: pass")
    except SyntaxError as exc:
        raise api.error(f"Invalid loop variable {target!r}: {exc.msg}") from exc
    loop = tree.body[0]
    names = [node.id for node in ast.walk(loop.target) if isinstance(node, ast.Name)]
    if "loop" in names:
        raise api.error("'loop' is reserved for the loop context")
    return target


def _for(api: DirectiveContext) -> None:
    target, items = _loop_parts(api)
    target = _check_target(api, target)
    items = api.expression(items)
    loop_var = api.uid("loop")
    outer = api.uid("outer")
    api.data["loop"] = loop_var
    api.raw(f"{outer} = loop")
    api.raw(f"{loop_var} = {api.ctx}.loop({items}, {outer})")
    with api.block(f"for {target} in {loop_var}:"):
        api.raw(f"loop = {loop_var}")
        api.render_children()
    api.raw(f"loop = {outer}")
    api.render_related()


def _empty(api: DirectiveContext) -> None:
    with api.block(f"if not {api.parent.data['loop']}:"):
        api.render_children()


def _jump(keyword: str):
    def handler(api: DirectiveContext) -> None:
        if api.enclosing("for", "each") is None:
            raise api.error(f"@{keyword} must be used inside @for or @each")
        cond = api.param("cond")
        if cond is None:
            api.raw(keyword)
            return
        with api.block(f"if {api.expression(cond)}:"):
            api.raw(keyword)

    handler.__name__ = f"_{keyword}"
    return handler


EMPTY = DirectiveDefinition(
    "empty",
    _empty,
    children=True,
    description="Renders its block when the loop had nothing to iterate.",
)

DIRECTIVES = (
    DirectiveDefinition(
        "for",
        _for,
        params=["expr"],
        children=True,
        branches=(EMPTY,),
        description="Repeats a block for every item; exposes loop metadata as 'loop'.",
        example="@for(post in posts)\n  <h2>{{ post.title }}</h2>\n@empty\n  No posts.\n@end",
    ),
    DirectiveDefinition(
        "each",
        _for,
        params=["expr", "as?:str"],
        children=True,
        branches=(EMPTY,),
        description="Alias of @for that also accepts @each(items, 'item').",
        example="@each(posts, 'post')\n  {{ post.title }}\n@end",
    ),
    DirectiveDefinition(
        "break",
        _jump("break"),
        params=["cond?"],
        description="Leaves the innermost loop, optionally only when the condition holds.",
        example="@break(loop.index > 3)",
    ),
    DirectiveDefinition(
        "continue",
        _jump("continue"),
        params=["cond?"],
        description="Skips to the next iteration, optionally only when the condition holds.",
        example="@continue(item.hidden)",
    ),
)
