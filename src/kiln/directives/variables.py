"""Template-local names: @let, @const and @inject; @json writes a value as JSON.

``@const`` binds names that no later ``@let`` or ``@const`` in the same
template may reassign. ``@inject`` imports a module (or an attribute of
one, after a colon) under a local name::

    @const(TAX_RATE = 0.2)
    @inject('fmt', 'myapp.formatting:money')
    {{ fmt(price * (1 + TAX_RATE)) }}
"""

from __future__ import annotations

import ast

from kiln.compiler.handler import DirectiveContext
from kiln.environment.registry import DirectiveDefinition
from kiln.parser.scanner import split_arguments, split_named


def _constants(api: DirectiveContext) -> set[str]:
    return api.template_data.setdefault("constants", set())


def _check_name(api: DirectiveContext, name: str) -> None:
    if name == api.engine.config.var_locals or name.startswith("_kl_"):
        raise api.error(f"Cannot assign to reserved name {name!r}")
    if name in _constants(api):
        raise api.error(f"Cannot reassign constant {name!r}")


def _assigned_names(target: ast.expr) -> list[str]:
    return [node.id for node in ast.walk(target) if isinstance(node, ast.Name)]


def _let(api: DirectiveContext) -> None:
    if not api.raw_args:
        raise api.error("@let needs an assignment, e.g. @let(total = price * qty)")
    for argument in split_arguments(api.raw_args):
        name, value = split_named(argument)
        if name is not None:
            _check_name(api, name)
            api.raw(f"{name} = ({api.expression(value)})")
            continue
        try:
            tree = ast.parse(argument)
        except SyntaxError as exc:
            raise api.error(f"Invalid @let statement {argument!r}: {exc.msg}") from exc
        if len(tree.body) != 1 or not isinstance(
            tree.body[0], ast.Assign | ast.AugAssign | ast.AnnAssign
        ):
            raise api.error(f"@let only accepts assignments, got {argument!r}")
        statement = tree.body[0]
        targets = statement.targets if isinstance(statement, ast.Assign) else [statement.target]
        for target in targets:
            for assigned in _assigned_names(target):
                _check_name(api, assigned)
        api.raw(argument)


def _const(api: DirectiveContext) -> None:
    if not api.raw_args:
        raise api.error("@const needs an assignment, e.g. @const(LIMIT = 10)")
    for argument in split_arguments(api.raw_args):
        name, value = split_named(argument)
        if name is None:
            raise api.error(f"@const expects name = value, got {argument!r}")
        _check_name(api, name)
        api.raw(f"{name} = ({api.expression(value)})")
        _constants(api).add(name)


def _inject(api: DirectiveContext) -> None:
    try:
        name = ast.literal_eval(api.param("name") or "")
    except (ValueError, SyntaxError):
        name = None
    if not isinstance(name, str) or not name.isidentifier():
        raise api.error("@inject needs a literal variable name, e.g. @inject('fmt', 'app.fmt')")
    _check_name(api, name)
    target = api.expression(api.param("module"))
    api.raw(f"{name} = {api.ctx}.inject({target})")


def _json(api: DirectiveContext) -> None:
    value = api.expression(api.param("value"))
    indent = api.param("indent", "None")
    api.emit(f"{api.ctx}.json({value}, {api.expression(indent)})")


DIRECTIVES = (
    DirectiveDefinition(
        "let",
        _let,
        description="Assigns one or more names for the rest of the template.",
        example="@let(total = price * qty, label = 'Total')",
    ),
    DirectiveDefinition(
        "const",
        _const,
        description="Assigns names that cannot be reassigned later in the template.",
        example="@const(TAX_RATE = 0.2)",
    ),
    DirectiveDefinition(
        "inject",
        _inject,
        params=["name:str", "module:str"],
        description="Imports a module, or 'module:attribute', under a local name.",
        example="@inject('fmt', 'myapp.formatting:money')",
    ),
    DirectiveDefinition(
        "json",
        _json,
        params=["value", "indent?:int"],
        description="Writes a value as JSON that is safe inside <script> tags.",
        example="<script>const state = @json(state);</script>",
    ),
)
