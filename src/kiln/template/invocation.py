"""Per-call state handed to generated routines as ``_kl_ctx``.

An ``Invocation`` owns the output buffers of one render and resolves the
free names of the routine. Name lookup order:

1. render locals
2. the invocation's context layer (over the engine's context chain)
3. engine globals (and their parents, for forks)
4. ``true`` / ``false`` / ``null``
5. Python builtins
6. ``Undefined(name)``

Nested templates (``@include``, components) run in child invocations
that share document-wide state: ``@push`` stacks, ``@once`` keys,
``@define`` sections and deferred blocks.
"""

from __future__ import annotations

import importlib
import json
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from kiln.environment.exceptions import (
    ErrorCode,
    ResolutionError,
    TemplateRuntimeError,
    UndefinedError,
)
from kiln.template.helpers import BUILTINS, TEMPLATE_CONSTANTS, Props, Undefined, wrap
from kiln.template.loop_context import LoopContext
from kiln.utils.html import Markup, escape, format_attributes

if TYPE_CHECKING:
    from kiln.environment.core import Engine

logger = logging.getLogger(__name__)


def _selected(value: Any) -> list[str]:
    """Entries of a conditional class/style spec whose condition holds."""
    if value is None or isinstance(value, Undefined):
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, Mapping):
        return [str(key) for key, enabled in value.items() if enabled]
    entries: list[str] = []
    for item in value:
        entries.extend(_selected(item))
    return entries


def _json_default(value: Any) -> Any:
    if isinstance(value, Undefined):
        return None
    if isinstance(value, Mapping):
        return dict(value)
    return str(value)


class Invocation:
    """Runtime context of a single routine execution."""

    __slots__ = (
        "engine",
        "locals",
        "props",
        "layer",
        "stacks",
        "once_keys",
        "finish_hooks",
        "defines",
        "defined_refs",
        "deferred",
        "token",
        "_out",
        "_buffers",
    )

    def __init__(
        self,
        engine: Engine,
        locals: Mapping[str, Any] | None = None,
        *,
        parent: Invocation | None = None,
    ):
        self.engine = engine
        self.locals: Mapping[str, Any] = locals if locals is not None else {}
        self.props = Props(self.locals, engine.config.var_locals)
        self._out: list[str] = []
        self._buffers: list[list[str]] = []
        if parent is None:
            self.layer = engine.context.new_child()
            self.stacks: dict[str, list[str]] = {}
            self.once_keys: set[str] = set()
            self.finish_hooks: list[Callable[[str], str]] = []
            self.defines: dict[str, str] = {}
            self.defined_refs: list[tuple[str, str]] = []
            self.deferred: dict[str, list[tuple[str, Callable[[], Any]]]] = {}
            self.token = uuid.uuid4().hex
        else:
            self.layer = parent.layer.new_child()
            self.stacks = parent.stacks
            self.once_keys = parent.once_keys
            self.finish_hooks = parent.finish_hooks
            self.defines = parent.defines
            self.defined_refs = parent.defined_refs
            self.deferred = parent.deferred
            self.token = parent.token

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def write(self, value: str) -> None:
        self._out.append(value)

    def escape(self, value: Any) -> str:
        """HTML-escape a value; None and undefined render as ''."""
        if value is None or isinstance(value, Undefined):
            return ""
        return escape(value)

    def to_str(self, value: Any) -> str:
        """String form of a value; None and undefined render as ''."""
        if value is None or isinstance(value, Undefined):
            return ""
        return str(value)

    def markup_join(self, parts: Iterable[Any]) -> Markup:
        return Markup("").join(self.escape(part) if part is None else part for part in parts)

    def push_buffer(self) -> None:
        """Redirect output into a fresh buffer (see ``pop_buffer``)."""
        self._buffers.append(self._out)
        self._out = []

    def pop_buffer(self) -> Markup:
        """Return the captured output and restore the previous buffer."""
        captured = "".join(self._out)
        self._out = self._buffers.pop()
        return Markup(captured)

    def drain(self) -> list[str]:
        """Take the output written so far, for streaming."""
        if self._buffers or not self._out:
            return []
        chunk = "".join(self._out)
        self._out.clear()
        return [chunk]

    def result(self, *, final: bool = True) -> str:
        """The rendered output.

        The top-level call (``final=True``) also fills ``@defined`` and
        ``@stack`` markers and then passes the document through the finish
        hooks in order.
        """
        output = "".join(self._out)
        if not final:
            return output
        for index, (name, fallback) in enumerate(self.defined_refs):
            output = output.replace(self._defined_marker(index), self.defines.get(name, fallback))
        for name, entries in self.stacks.items():
            output = output.replace(self._stack_marker(name), "\n".join(entries))
        for hook in self.finish_hooks:
            output = hook(output)
        return output

    def on_finish(self, hook: Callable[[str], str]) -> None:
        """Register ``hook(document) -> document`` for the end of the render."""
        self.finish_hooks.append(hook)

    # ------------------------------------------------------------------
    # Names
    # ------------------------------------------------------------------

    def lookup(self, name: str) -> Any:
        """Resolve a free name of the routine (see module docstring)."""
        if name in self.locals:
            return wrap(self.locals[name], name)
        layer = self.layer
        if name in layer:
            return wrap(layer[name], name)
        engine_globals = self.engine.globals
        if name in engine_globals:
            return wrap(engine_globals[name], name)
        if name in TEMPLATE_CONSTANTS:
            return TEMPLATE_CONSTANTS[name]
        if name in BUILTINS:
            return BUILTINS[name]
        return Undefined(name)

    def set(self, name: str, value: Any) -> None:
        """Write a value into this invocation's context layer."""
        self.layer[name] = value

    def is_set(self, value: Any) -> bool:
        return value is not None and not isinstance(value, Undefined)

    def isset(self, getter: Callable[[], Any]) -> bool:
        """Whether ``getter()`` yields a set value; a missing link counts as unset."""
        try:
            value = getter()
        except (UndefinedError, AttributeError, KeyError, IndexError):
            return False
        return self.is_set(value)

    def is_empty(self, getter: Callable[[], Any]) -> bool:
        """True when ``getter()`` is unset, falsy or empty, or hits a missing link."""
        try:
            value = getter()
        except (UndefinedError, AttributeError, KeyError, IndexError):
            return True
        return not self.is_set(value) or not value

    def field_error(self, field: str) -> Any:
        """First validation message for ``field`` from the ``errors`` value, or None."""
        errors = self.lookup("errors")
        if not isinstance(errors, Mapping):
            return None
        message = errors.get(field)
        if isinstance(message, list | tuple):
            message = message[0] if message else None
        return message if self.is_set(message) and message != "" else None

    def inject(self, target: str) -> Any:
        """Import ``package.module`` or ``package.module:attribute`` for a template."""
        module_name, _, attribute = target.partition(":")
        try:
            value = importlib.import_module(module_name)
            for part in filter(None, attribute.split(".")):
                value = getattr(value, part)
        except (ImportError, AttributeError) as exc:
            raise TemplateRuntimeError(
                f"@inject could not load {target!r}: {exc}",
                suggestion="Use a dotted module path, optionally followed by ':attribute'",
            ) from exc
        return value

    # ------------------------------------------------------------------
    # Nested templates
    # ------------------------------------------------------------------

    def _child_locals(self, locals: Mapping[str, Any] | None) -> dict[str, Any]:
        merged = dict(self.locals)
        if locals:
            merged.update(locals)
        return merged

    def include(self, path: str, locals: Mapping[str, Any] | None = None, *, soft: bool = True) -> Markup:
        """Render another view with this invocation's locals plus ``locals``.

        With ``soft=True`` a view that cannot be resolved renders as ''.
        """
        try:
            return Markup(self.engine.include(self, path, self._child_locals(locals)))
        except ResolutionError as exc:
            if not soft:
                raise
            logger.warning("Skipping include of '%s': %s", path, exc.message)
            return Markup("")

    async def include_async(
        self, path: str, locals: Mapping[str, Any] | None = None, *, soft: bool = True
    ) -> Markup:
        """Async form of ``include``, awaiting the resolver and async routines."""
        try:
            return Markup(
                await self.engine.include_async(self, path, self._child_locals(locals))
            )
        except ResolutionError as exc:
            if not soft:
                raise
            logger.warning("Skipping include of '%s': %s", path, exc.message)
            return Markup("")

    def slot(self, name: str, default: Any = None) -> Markup:
        """Content passed to a component for slot ``name``."""
        slots = self.locals.get("slots")
        if isinstance(slots, Mapping):
            content = slots.get(name)
            if content:
                return Markup(content)
        return Markup(self.escape(default))

    # ------------------------------------------------------------------
    # Loops, stacks and once
    # ------------------------------------------------------------------

    def loop(self, items: Any, parent: Any = None) -> LoopContext:
        return LoopContext(items, parent)

    def push_stack(self, name: str, content: str, *, prepend: bool = False) -> None:
        entries = self.stacks.setdefault(name, [])
        if prepend:
            entries.insert(0, content)
        else:
            entries.append(content)

    def _stack_marker(self, name: str) -> str:
        return f"<!--kiln-stack:{name}:{self.token}-->"

    def stack_placeholder(self, name: str) -> str:
        """Marker replaced by the pushed content once the whole document is rendered."""
        self.stacks.setdefault(name, [])
        return self._stack_marker(name)

    def once(self, key: str) -> bool:
        """True the first time ``key`` is seen in this document."""
        if key in self.once_keys:
            return False
        self.once_keys.add(key)
        return True

    # ------------------------------------------------------------------
    # Defined sections and deferred blocks
    # ------------------------------------------------------------------

    def define(self, name: str, content: str) -> None:
        self.defines[name] = content

    def _defined_marker(self, index: int) -> str:
        return f"<!--kiln-defined:{index}:{self.token}-->"

    def defined(self, name: str, fallback: str = "") -> str:
        """Marker replaced by the content defined for ``name``, or ``fallback``.

        The content may be defined anywhere in the document, before or
        after this point.
        """
        self.defined_refs.append((name, fallback))
        return self._defined_marker(len(self.defined_refs) - 1)

    def defer(self, key: str, block: Callable[[], Any]) -> Markup:
        """Queue ``block`` to render after the main content; return its placeholder."""
        defer_id = f"defer-{uuid.uuid4().hex[:12]}"
        self.deferred.setdefault(key, []).append((defer_id, block))
        return Markup(f'<div id="{defer_id}"></div>')

    def take_deferred(self, key: str) -> list[tuple[str, Callable[[], Any]]]:
        return self.deferred.pop(key, [])

    def deferred_chunk(self, defer_id: str, content: str) -> Markup:
        """Template holding deferred content plus the script that swaps it in."""
        template_id = f"tpl-{defer_id}"
        return Markup(
            f'<template id="{template_id}">{content}</template>'
            "<script>(function(){"
            f"var src=document.getElementById('{template_id}');"
            f"var dest=document.getElementById('{defer_id}');"
            "if(src&&dest){dest.replaceWith(src.content);src.remove();}"
            "})();</script>"
        )

    # ------------------------------------------------------------------
    # HTML helpers
    # ------------------------------------------------------------------

    def render_attributes(self, attributes: Mapping[str, Any]) -> Markup:
        clean = {
            name: value
            for name, value in attributes.items()
            if not isinstance(value, Undefined)
        }
        return format_attributes(clean)

    def class_attr(self, spec: Any) -> Markup:
        classes = _selected(spec)
        return Markup(f' class="{escape(" ".join(classes))}"') if classes else Markup("")

    def style_attr(self, spec: Any) -> Markup:
        """``style`` attribute from a string, a list or a mapping.

        Mapping entries render as ``key`` when the value is True, as
        ``key: value`` for other truthy values, and are skipped otherwise.
        """
        if isinstance(spec, Mapping):
            rules = [
                str(key) if value is True else f"{key}: {value}"
                for key, value in spec.items()
                if value and not isinstance(value, Undefined)
            ]
        else:
            rules = _selected(spec)
        rules = [rule.strip().rstrip(";") for rule in rules if rule.strip()]
        return Markup(f' style="{escape("; ".join(rules))}"') if rules else Markup("")

    def csrf_field(self) -> Markup:
        token = self.lookup("csrf_token")
        if isinstance(token, Undefined):
            token = self.lookup("csrf")
        if callable(token) and not isinstance(token, Undefined):
            token = token()
        if not self.is_set(token):
            err = TemplateRuntimeError(
                "@csrf needs a 'csrf_token' value",
                suggestion="engine.set_global('csrf_token', ...) or pass it in the render locals",
            )
            err.code = ErrorCode.RUNTIME_ERROR
            raise err
        return Markup(f'<input type="hidden" name="_token" value="{escape(token)}">')

    def method_field(self, method: Any) -> Markup:
        verb = escape(str(method).upper())
        return Markup(f'<input type="hidden" name="_method" value="{verb}">')

    def json(self, value: Any, indent: int | None = None) -> Markup:
        """JSON for embedding in HTML, with ``<``, ``>`` and ``&`` escaped."""
        text = json.dumps(value, indent=indent, default=_json_default)
        text = text.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")
        return Markup(text)
