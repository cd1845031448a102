"""Plugins bundle directives, elements, globals and engine extensions.

A plugin is any object with a ``load(engine, options)`` method (and,
optionally, ``name`` and ``sort``), or a plain function taking
``(engine, options)``. Plugins passed to ``Engine(plugins=...)`` load in
ascending ``sort`` order (default 100).

Example:
    >>> @define_plugin("greetings")
    ... def greetings(engine, options):
    ...     engine.set_global("greeting", (options or {}).get("text", "Hello"))
    >>> engine = Engine(plugins=[(greetings, {"text": "Hi"})])
    >>> engine.render("{{ greeting }}")
    'Hi'
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from kiln.environment.core import Engine

DEFAULT_SORT = 100


@runtime_checkable
class Plugin(Protocol):
    """Structural type of a plugin object."""

    name: str

    def load(self, engine: Engine, options: Any = None) -> None: ...


@dataclass(frozen=True, slots=True)
class FunctionPlugin:
    """A plugin built from a ``(engine, options)`` function."""

    name: str
    setup: Callable[[Engine, Any], Any]
    sort: int = DEFAULT_SORT
    options: Any = None

    def load(self, engine: Engine, options: Any = None) -> None:
        self.setup(engine, self.options if options is None else options)


def define_plugin(
    name: str, *, sort: int = DEFAULT_SORT, options: Any = None
) -> Callable[[Callable[[Engine, Any], Any]], FunctionPlugin]:
    """Decorator turning a setup function into a ``FunctionPlugin``."""

    def decorator(setup: Callable[[Engine, Any], Any]) -> FunctionPlugin:
        return FunctionPlugin(name, setup, sort=sort, options=options)

    return decorator


def plugin_sort(plugin: Any) -> int:
    target = plugin[0] if isinstance(plugin, tuple) else plugin
    sort = getattr(target, "sort", None)
    return DEFAULT_SORT if sort is None else sort


def plugin_name(plugin: Any) -> str:
    """Name a plugin is de-duplicated by."""
    if callable(getattr(plugin, "load", None)):
        return getattr(plugin, "name", None) or type(plugin).__name__
    return getattr(plugin, "name", None) or getattr(plugin, "__name__", repr(plugin))


def load_plugin(engine: Engine, plugin: Any, options: Any = None) -> str:
    """Load ``plugin`` into ``engine`` and return its name."""
    load = getattr(plugin, "load", None)
    if callable(load):
        load(engine, options)
        return plugin_name(plugin)
    if callable(plugin):
        plugin(engine, options)
        return plugin_name(plugin)
    raise TypeError(f"Plugins must define load(engine, options) or be callable, got {plugin!r}")
