"""Template composition: @include, @component with @slot, and @yield.

``@include`` is soft: a view that cannot be resolved renders nothing
(and is logged). ``@component`` requires its view to exist. Both pass
the current locals down, extended by the given mapping.

Example:
    ```
    @include('partials.nav', {'active': 'home'})

    @component('components.card', {'title': 'Stats'})
        @slot('footer')<a href="/stats">More</a>@end
        <p>Body text becomes the default slot.</p>
    @end
    ```

Inside ``components/card.kiln``::

    <h2>{{ title }}</h2>
    @yield('default')
    <footer>@yield('footer', 'No footer')</footer>
"""

from __future__ import annotations

from kiln.compiler.handler import DirectiveContext, HandlerContext
from kiln.environment.registry import DirectiveDefinition


def include_call(api: HandlerContext, path: str, locals: str, *, soft: bool) -> str:
    """Expression rendering ``path``; awaits when the resolver is async."""
    if api.engine.resolver_is_async:
        return f"await {api.ctx}.include_async({path}, {locals}, soft={soft})"
    return f"{api.ctx}.include({path}, {locals}, soft={soft})"


# @layout and @extends share the @component handler
COMPONENT_NAMES = ("component", "layout", "extends")


def _include(api: DirectiveContext) -> None:
    path = api.expression(api.param("path"))
    locals = api.expression(api.param("locals", "None"))
    api.emit(include_call(api, path, locals, soft=True))


def _component(api: DirectiveContext) -> None:
    path = api.expression(api.param("path"))
    locals = api.expression(api.param("locals", "None"))
    slots = api.uid("slots")
    api.data["slots"] = slots
    api.raw(f"{slots} = {{}}")
    with api.capture() as default:
        api.render_children()
    api.raw(f"{slots}.setdefault('default', {default})")
    merged = f"{{**({locals} or {{}}), 'slots': {slots}}}"
    api.emit(include_call(api, path, merged, soft=False))


def _slot(api: DirectiveContext) -> None:
    owner = api.enclosing(*COMPONENT_NAMES)
    if owner is None:
        raise api.error(f"@{api.name} must be used inside @component")
    name = api.expression(api.param("name"))
    with api.capture() as content:
        api.render_children()
    api.raw(f"{owner.data['slots']}[{name}] = {content}")


def _yield(api: DirectiveContext) -> None:
    name = api.expression(api.param("name"))
    default = api.expression(api.param("default", "None"))
    api.emit(f"{api.ctx}.slot({name}, {default})")


COMPONENT = DirectiveDefinition(
    "component",
    _component,
    params=["path:str", "locals?:dict"],
    children=True,
    description="Renders a view with the block's content as its slots.",
    example="@component('components.card', {'title': 'Hi'})\n  Body\n@end",
)

SLOT = DirectiveDefinition(
    "slot",
    _slot,
    params=["name:str"],
    children=True,
    description="Fills a named slot of the enclosing @component.",
    example="@slot('header')\n  <h1>Title</h1>\n@end",
)

DIRECTIVES = (
    DirectiveDefinition(
        "include",
        _include,
        params=["path:str", "locals?:dict"],
        description="Renders another view here; renders nothing if it does not exist.",
        example="@include('partials.nav')",
    ),
    COMPONENT,
    SLOT,
    DirectiveDefinition(
        "yield",
        _yield,
        params=["name:str", "default?:str"],
        description="Outputs a slot passed to this component, or a default.",
        example="@yield('header', 'Untitled')",
    ),
)
