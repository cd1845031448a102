"""Conditional directives: @if, @unless, @isset, @empty, @error and @switch.

``@elif`` is accepted as a spelling of ``@elseif``. Outside a loop,
``@empty(value)`` renders its block when the value is missing, falsy or
an empty collection; directly inside ``@for`` a bare ``@empty`` is the
loop's empty clause. ``@error(field)`` renders when the ``errors``
mapping holds a message for ``field`` and binds it as ``message``.

Example:
    ```
    @if(user.is_admin)
        Admin dashboard
    @elseif(user)
        Hello {{ user.name }}
    @else
        Please sign in
    @end

    @switch(status)
        @case('draft', 'review') Not published
        @case('live') Live
        @default Unknown
    @end
    ```
"""

from __future__ import annotations

from kiln.compiler.handler import DirectiveContext
from kiln.environment.registry import DirectiveDefinition


def _if(api: DirectiveContext) -> None:
    cond = api.expression(api.param("cond"))
    with api.block(f"if {cond}:"):
        api.render_children()
    api.render_related()


def _unless(api: DirectiveContext) -> None:
    cond = api.expression(api.param("cond"))
    with api.block(f"if not ({cond}):"):
        api.render_children()
    api.render_related()


def _isset(api: DirectiveContext) -> None:
    expr = api.expression(api.param("expr"))
    with api.block(f"if {api.ctx}.isset(lambda: ({expr})):"):
        api.render_children()
    api.render_related()


def _empty(api: DirectiveContext) -> None:
    expr = api.expression(api.param("expr"))
    with api.block(f"if {api.ctx}.is_empty(lambda: ({expr})):"):
        api.render_children()
    api.render_related()


def _error(api: DirectiveContext) -> None:
    message = api.uid("message")
    field = api.expression(api.param("field"))
    api.raw(f"{message} = {api.ctx}.field_error({field})")
    with api.block(f"if {message} is not None:"):
        api.raw(f"message = {message}")
        api.render_children()
    api.render_related()


def _elseif(api: DirectiveContext) -> None:
    if api.parent.data.get("else"):
        raise api.error(f"@{api.name} cannot follow @else")
    cond = api.expression(api.param("cond"))
    with api.block(f"elif {cond}:"):
        api.render_children()


def _else(api: DirectiveContext) -> None:
    if api.parent.data.get("else"):
        raise api.error(f"@{api.parent.name} has more than one @else")
    api.parent.data["else"] = True
    with api.block("else:"):
        api.render_children()


def _switch(api: DirectiveContext) -> None:
    subject = api.uid("switch")
    api.data["subject"] = subject
    api.raw(f"{subject} = ({api.expression(api.param('value'))})")
    # Text between @switch and the first @case is layout whitespace
    api.render_related()


def _case(api: DirectiveContext) -> None:
    if api.parent.data.get("default"):
        raise api.error("@case cannot follow @default")
    if not api.args:
        raise api.error("@case needs at least one value")
    values = ", ".join(api.expression(value) for value in api.args)
    keyword = "elif" if api.parent.data.get("started") else "if"
    api.parent.data["started"] = True
    with api.block(f"{keyword} {api.parent.data['subject']} in ({values},):"):
        api.render_children()


def _default(api: DirectiveContext) -> None:
    header = "else:" if api.parent.data.get("started") else "if True:"
    api.parent.data["default"] = True
    with api.block(header):
        api.render_children()


ELSE = DirectiveDefinition(
    "else",
    _else,
    children=True,
    description="Renders its block when the preceding conditions are false.",
)

ELSEIF = DirectiveDefinition(
    "elseif",
    _elseif,
    params=["cond"],
    children=True,
    description="Renders its block when the preceding conditions are false and its own holds.",
)

ELIF = DirectiveDefinition(
    "elif",
    _elseif,
    params=["cond"],
    children=True,
    description="Alias of @elseif.",
)

DIRECTIVES = (
    DirectiveDefinition(
        "if",
        _if,
        params=["cond"],
        children=True,
        branches=(ELSEIF, ELIF, ELSE),
        description="Renders a block when the condition is true.",
        example="@if(user)\n  Welcome, {{ user.name }}!\n@end",
    ),
    DirectiveDefinition(
        "unless",
        _unless,
        params=["cond"],
        children=True,
        branches=(ELSE,),
        description="Renders a block when the condition is false.",
        example="@unless(user.subscribed)\n  Please subscribe.\n@end",
    ),
    DirectiveDefinition(
        "isset",
        _isset,
        params=["expr"],
        children=True,
        branches=(ELSE,),
        description="Renders a block when the value is defined and not None.",
        example="@isset(user.nickname)\n  aka {{ user.nickname }}\n@end",
    ),

    DirectiveDefinition(
        "empty",
        _empty,
        params=["expr"],
        children=True,
        branches=(ELSE,),
        description="Renders a block when the value is missing, falsy or an empty collection.",
        example="@empty(cart.items)\n  Your cart is empty.\n@end",
    ),
    DirectiveDefinition(
        "error",
        _error,
        params=["field:str"],
        children=True,
        branches=(ELSE,),
        description="Renders a block when 'errors' holds a message for the field.",
        example="@error('email')\n  <span class=\"error\">{{ message }}</span>\n@end",
    ),
    DirectiveDefinition(
        "switch",
        _switch,
        params=["value"],
        children=True,
        branches=(
            DirectiveDefinition(
                "case",
                _case,
                params=["value"],
                children=True,
                description="Renders when the @switch value equals one of the given values.",
            ),
            DirectiveDefinition(
                "default",
                _default,
                children=True,
                description="Renders when no @case matched.",
            ),
        ),
        description="Compares a value against a chain of @case clauses.",
        example="@switch(role)\n  @case('admin') Admin\n  @default Member\n@end",
    ),
)
