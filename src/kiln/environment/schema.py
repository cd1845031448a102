"""Package schemas: a JSON-serializable inventory of an engine's extensions.

Editors and documentation tooling consume the schema to offer
completion for directives, elements, attributes and globals. Global
values are described by shape only (type names), never by value.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from kiln.environment.registry import DirectiveDefinition, ElementDefinition

if TYPE_CHECKING:
    from kiln.environment.core import Engine

SCHEMA_ID = "kiln-package/1"


def type_shape(value: Any) -> Any:
    """Type names of ``value``, recursing into mappings and lists."""
    if isinstance(value, Mapping):
        return {str(key): type_shape(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [type_shape(item) for item in value]
    if callable(value):
        return "callable"
    return type(value).__name__


def directive_schema(definition: DirectiveDefinition) -> dict[str, Any]:
    return {
        "name": definition.name,
        "params": [str(spec) for spec in definition.param_specs],
        "children": definition.children,
        "related": [branch.name for branch in definition.branches],
        "description": definition.description,
        "example": definition.example,
    }


def element_schema(definition: ElementDefinition) -> dict[str, Any]:
    return {
        "name": definition.label,
        "matcher": definition.kind.value,
        "void": definition.void,
        "attributes": list(definition.attributes),
        "description": definition.description,
        "example": definition.example,
    }


def build_package_schema(
    engine: Engine,
    name: str,
    *,
    version: str | None = None,
    repository: str | None = None,
) -> dict[str, Any]:
    """Schema of everything registered on ``engine`` (and its parents)."""
    values = {**engine.globals.flatten(), **engine.context.flatten()}
    schematics = engine.shared.schematics
    elements = [element_schema(definition) for definition in engine.elements]
    for element_name, extra in schematics.get("elements", {}).items():
        elements.append({"name": element_name, **extra})
    return {
        "schema": SCHEMA_ID,
        "package": name,
        "version": version,
        "repository": repository,
        "directives": sorted(
            (directive_schema(definition) for definition in engine.directives),
            key=lambda item: item["name"],
        ),
        "elements": elements,
        "globals": {key: type_shape(value) for key, value in sorted(values.items())},
        "attributes": schematics.get("attributes", {}),
    }
