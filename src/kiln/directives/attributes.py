"""HTML attribute and form helpers.

Example:
    ```
    <li @class({'active': current == page, 'muted': page.hidden})>
    <div @style({'color': color, 'display: none': hidden})>
    <input type="checkbox" @checked(user.subscribed)>
    <form method="post">
        @csrf
        @method('delete')
    </form>
    ```
"""

from __future__ import annotations

from kiln.compiler.handler import DirectiveContext
from kiln.environment.registry import DirectiveDefinition


def _class(api: DirectiveContext) -> None:
    api.emit(f"{api.ctx}.class_attr({api.expression(api.param('spec'))})")


def _style(api: DirectiveContext) -> None:
    api.emit(f"{api.ctx}.style_attr({api.expression(api.param('spec'))})")


def _boolean_attribute(attribute: str):
    def handler(api: DirectiveContext) -> None:
        cond = api.param("cond", "True")
        with api.block(f"if {api.expression(cond)}:"):
            api.text(f" {attribute}")

    handler.__name__ = f"_{attribute}"
    return handler


def _csrf(api: DirectiveContext) -> None:
    api.emit(f"{api.ctx}.csrf_field()")


def _method(api: DirectiveContext) -> None:
    api.emit(f"{api.ctx}.method_field({api.expression(api.param('verb'))})")


DIRECTIVES = (
    DirectiveDefinition(
        "class",
        _class,
        params=["spec:str|list|dict"],
        description="Writes a class attribute from the entries whose condition holds.",
        example="<a @class(['link', {'active': active}])>",
    ),
    DirectiveDefinition(
        "style",
        _style,
        params=["spec:str|list|dict"],
        description="Writes a style attribute from a string, list or mapping.",
        example="<p @style({'color': color})>",
    ),
    *(
        DirectiveDefinition(
            name,
            _boolean_attribute(name),
            params=["cond?"],
            description=f"Writes the '{name}' attribute when the condition holds.",
            example=f"<input @{name}(flag)>",
        )
        for name in ("checked", "selected", "disabled", "readonly")
    ),
    DirectiveDefinition(
        "csrf",
        _csrf,
        description="Writes a hidden input carrying the 'csrf_token' value.",
        example="<form method=\"post\">@csrf</form>",
    ),
    DirectiveDefinition(
        "method",
        _method,
        params=["verb:str"],
        description="Writes a hidden '_method' input for HTTP method spoofing.",
        example="@method('put')",
    ),
)
