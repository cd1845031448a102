"""Native elements shipped with kiln."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from kiln.elements.natives import DEFAULT_PREFIX, component_element

if TYPE_CHECKING:
    from kiln.environment.core import Engine

__all__ = ["DEFAULT_PREFIX", "component_element", "register_elements"]


def register_elements(engine: Engine, options: Any = None) -> None:
    """Register the ``x-*`` component element.

    Options:
        components: View prefix for component tags (default ``"components"``).
        components_path: When given, maps that prefix to a directory.
    """
    options = options or {}
    prefix = options.get("components", DEFAULT_PREFIX)
    if options.get("components_path"):
        engine.namespace(prefix, options["components_path"])
    engine.element(component_element(prefix))
