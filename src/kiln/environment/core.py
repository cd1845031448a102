"""The kiln Engine: compile, cache and render templates.

An ``Engine`` owns a ``SharedState`` (directive and element registries,
the compiled-unit cache, namespaces, mounts, the plugin cache and
extensions) plus its own ``globals`` and ``context`` layers. ``fork()``
returns an engine that references the same ``SharedState`` and chains
new layers to the parent's, so forks are cheap and per-request data
never leaks back to the parent.

Example:
    >>> engine = Engine()
    >>> engine.render("Hello {{ name }}!", {"name": "<World>"})
    'Hello &lt;World&gt;!'

    >>> _ = engine.namespace("~", "/app/views")
    >>> engine.resolve_path("~/header")
    '/app/views/header.kiln'

Error policy:
    Failures are enriched once, at the innermost template that saw them
    (name, line, code frame, generated code, template chain). A
    top-level ``render``/``view`` then either returns an HTML diagnostic
    page and logs the error (default) or propagates the exception
    (``silent=True`` or ``strict=True``). ``ResolutionError`` from a
    direct ``view()`` always propagates.

"""

from __future__ import annotations

import inspect
import logging
import time
from collections import ChainMap
from collections.abc import AsyncIterator, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MethodType
from typing import Any

from kiln.compiler import Compiler
from kiln.environment.config import EngineConfig
from kiln.environment.exceptions import (
    ErrorCode,
    TemplateError,
    TemplateRuntimeError,
)
from kiln.environment.layers import LayeredMap
from kiln.environment.loaders import FileSystemResolver
from kiln.environment.paths import NamespaceResolver
from kiln.environment.plugins import Plugin, load_plugin, plugin_name, plugin_sort
from kiln.environment.registry import (
    DirectiveDefinition,
    DirectiveRegistry,
    ElementDefinition,
    ElementRegistry,
)
from kiln.environment.reporter import ErrorReport
from kiln.nodes import Node
from kiln.parser import Parser
from kiln.render_context import (
    get_render_context,
    new_render_context,
    render_context,
    use_render_context,
)
from kiln.template.cache import UnitCache, content_hash
from kiln.template.core import CompiledUnit, build_unit, unit_filename
from kiln.template.invocation import Invocation

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Any]


@dataclass(slots=True)
class SharedState:
    """State shared by reference between an engine and all its forks."""

    directives: DirectiveRegistry = field(default_factory=DirectiveRegistry)
    elements: ElementRegistry = field(default_factory=ElementRegistry)
    cache: UnitCache = field(default_factory=UnitCache)
    namespaces: NamespaceResolver = field(default_factory=NamespaceResolver)
    mounts: dict[str, dict[str, Any]] = field(default_factory=dict)
    plugin_cache: dict[str, dict[str, Any]] = field(default_factory=dict)
    extensions: dict[str, Callable[..., Any]] = field(default_factory=dict)
    schematics: dict[str, Any] = field(default_factory=dict)
    loaded_plugins: list[str] = field(default_factory=list)


def _describe(exc: BaseException) -> str:
    """Readable message for an arbitrary exception, even an empty one."""
    text = str(exc).strip()
    name = type(exc).__name__
    if not text:
        return f"{name} (no details available)"
    return f"{name}: {text}"


class Engine:
    """Template engine: parsing, compilation, caching and rendering.

    Args:
        resolver: ``(path) -> str`` or ``async (path) -> str`` returning
            template source (default: ``FileSystemResolver()``).
        readdir: Optional ``(pattern) -> list[str]`` used by ``glob()``.
        natives: Load the native directives and elements.
        plugins: Plugins to load, as objects or ``(plugin, options)`` pairs.
        globals: Initial global values.
        config: A ready ``EngineConfig``; otherwise built with
            ``EngineConfig.from_env(**options)``.
        **options: ``EngineConfig`` fields (``production``, ``silent``...).
    """

    def __init__(
        self,
        *,
        resolver: Resolver | None = None,
        readdir: Callable[[str], Any] | None = None,
        natives: bool = True,
        plugins: Sequence[Any] = (),
        globals: Mapping[str, Any] | None = None,
        config: EngineConfig | None = None,
        **options: Any,
    ):
        self.config = config if config is not None else EngineConfig.from_env(**options)
        self._shared = SharedState(namespaces=NamespaceResolver(self.config.default_namespace))
        self.globals = LayeredMap(globals)
        self.context = LayeredMap()
        self.resolver: Resolver = resolver if resolver is not None else FileSystemResolver()
        self.readdir = readdir
        self.parent: Engine | None = None

        if natives:
            from kiln.directives import natives as native_plugin

            self.plugin(native_plugin)
        for plugin in sorted(plugins, key=plugin_sort):
            self.plugin(plugin)

    # ------------------------------------------------------------------
    # Shared state
    # ------------------------------------------------------------------

    @property
    def shared(self) -> SharedState:
        return self._shared

    @property
    def directives(self) -> DirectiveRegistry:
        return self._shared.directives

    @property
    def elements(self) -> ElementRegistry:
        return self._shared.elements

    @property
    def cache(self) -> UnitCache:
        return self._shared.cache

    @property
    def namespaces(self) -> NamespaceResolver:
        return self._shared.namespaces

    @property
    def mounts(self) -> dict[str, dict[str, Any]]:
        return self._shared.mounts

    @property
    def loaded_plugins(self) -> list[str]:
        """Names of plugins loaded into this engine and its forks."""
        return self._shared.loaded_plugins

    @property
    def production(self) -> bool:
        return self.config.production

    @property
    def resolver_is_async(self) -> bool:
        """True when reading a template must be awaited."""
        resolver = self.resolver
        if getattr(resolver, "is_async", False):
            return True
        return inspect.iscoroutinefunction(resolver) or inspect.iscoroutinefunction(
            getattr(resolver, "__call__", None)
        )

    def __getattr__(self, name: str) -> Any:
        # Methods attached by plugins through extend()
        if name.startswith("_"):
            raise AttributeError(name)
        extension = self._shared.extensions.get(name)
        if extension is None:
            raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")
        return MethodType(extension, self)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def namespace(self, alias: str, root_path: str) -> Engine:
        """Map ``alias`` to ``root_path`` (which may contain ``{placeholders}``)."""
        self._shared.namespaces.register(alias, root_path)
        return self

    def mount(self, alias: str, data: Mapping[str, Any]) -> Engine:
        """Attach placeholder data to a namespace alias."""
        self._shared.mounts[alias] = dict(data)
        return self

    def set_global(self, key: str, value: Any) -> Engine:
        self.globals[key] = value
        return self

    def set_context(self, key: str, value: Any) -> Engine:
        self.context[key] = value
        return self

    def directive(self, definition: DirectiveDefinition | str | None = None, /, **options: Any):
        """Register a directive.

        Pass a ``DirectiveDefinition``, or use as a decorator::

            @engine.directive("upper", params=["text"])
            def upper(api):
                api.emit(f"str({api.param('text')}).upper()", escape=True)
        """
        if isinstance(definition, DirectiveDefinition):
            return self._shared.directives.register(definition)

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            name = definition or func.__name__
            self._shared.directives.register(DirectiveDefinition(name, func, **options))
            return func

        return decorator

    def element(self, definition: ElementDefinition | Any = None, /, **options: Any):
        """Register an element, from an ``ElementDefinition`` or as a decorator."""
        if isinstance(definition, ElementDefinition):
            return self._shared.elements.register(definition)

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            name = definition if definition is not None else func.__name__.replace("_", "-")
            self._shared.elements.register(ElementDefinition(name, func, **options))
            return func

        return decorator

    def plugin(self, plugin: Plugin | Any, options: Any = None) -> Engine:
        """Load a plugin into this engine (and everything sharing its state)."""
        if isinstance(plugin, tuple):
            plugin, options = plugin
        known = plugin_name(plugin)
        # Anonymous plugins (lambdas) cannot be told apart by name
        if known in self.loaded_plugins and not known.startswith("<"):
            return self
        name = load_plugin(self, plugin, options)
        self.loaded_plugins.append(name)
        logger.debug("Loaded plugin %s", name)
        return self

    def extend(self, name: str, func: Callable[..., Any]) -> Engine:
        """Attach ``func`` as a method named ``name`` on this engine and its forks."""
        if hasattr(type(self), name):
            raise ValueError(f"Cannot override Engine.{name} with an extension")
        self._shared.extensions[name] = func
        return self

    def schematic(self, kind: str, data: Mapping[str, Any]) -> Engine:
        """Record tooling metadata for ``package_schema()``.

        ``"attributes"`` merges per-element attribute docs,
        ``"attributes.global"`` documents attributes valid on any element,
        any other kind is stored as given.
        """
        schematics = self._shared.schematics
        if kind == "attributes":
            current = schematics.setdefault("attributes", {})
            for element, attributes in data.items():
                current.setdefault(element, {}).update(attributes)
        elif kind == "attributes.global":
            schematics.setdefault("attributes", {}).setdefault("global", {}).update(data)
        else:
            schematics[kind] = dict(data)
        return self

    def cached(self, namespace: str) -> dict[str, Any]:
        """Plugin-owned cache dict, shared across forks and cleared by ``cache_clear``."""
        return self._shared.plugin_cache.setdefault(namespace, {})

    def fork(self) -> Engine:
        """Engine sharing this one's state with layered globals and context."""
        child = type(self).__new__(type(self))
        child.config = self.config
        child._shared = self._shared
        child.globals = self.globals.new_child()
        child.context = self.context.new_child()
        child.resolver = self.resolver
        child.readdir = self.readdir
        child.parent = self
        return child

    def cache_clear(self) -> None:
        """Drop every compiled unit, file entry and plugin cache."""
        self._shared.cache.clear()
        for store in self._shared.plugin_cache.values():
            store.clear()
        logger.debug("Cleared template caches")

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def resolve_path(
        self,
        logical: str,
        locals: Mapping[str, Any] | None = None,
        *,
        extension: str | None = None,
    ) -> str:
        """Concrete path for a logical view path (see ``kiln.environment.paths``)."""
        return self._shared.namespaces.resolve(
            logical,
            extension=self.config.extension if extension is None else extension,
            defaults=ChainMap(self.context.flatten(), self.globals.flatten()),
            mounts=self._shared.mounts,
            values=locals,
        )

    def glob(self, pattern: str) -> Any:
        """Template paths matching ``pattern``, from ``readdir`` or the resolver."""
        if self.readdir is not None:
            return self.readdir(pattern)
        lister = getattr(self.resolver, "glob", None)
        if lister is None:
            raise TypeError(
                "glob() needs a readdir collaborator or a resolver with a glob() method"
            )
        return lister(pattern)

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def parse(self, source: str, *, name: str | None = None) -> list[Node]:
        return Parser(
            source,
            self._shared.directives,
            self._shared.elements,
            name=name,
            strict=self.config.strict,
            slot_tag=self.config.slot_tag,
        ).parse()

    def _versions(self) -> tuple[int, int]:
        return (self._shared.directives.version, self._shared.elements.version)

    def compile(
        self,
        source: str,
        cache_key: str | None = None,
        *,
        name: str | None = None,
    ) -> CompiledUnit:
        """Compiled unit for ``source``, from the cache when possible.

        With ``cache_key`` (a concrete path) the file entry is reused as
        long as the content hash and registry versions are unchanged. In
        production the entry is reused unconditionally until ``cache_clear()``.
        """
        if cache_key is not None:
            cached = self._production_hit(cache_key)
            if cached is not None:
                return cached
        digest = content_hash(source)
        versions = self._versions()
        cache = self._shared.cache
        if cache_key is not None:
            entry = cache.get_file(cache_key)
            if entry is not None and entry.content_hash == digest and entry.versions == versions:
                logger.debug("Cache hit for %s", cache_key)
                return entry.unit
        unit = self._unit(source, digest, name or cache_key)
        if cache_key is not None:
            cache.put_file(cache_key, digest, unit, versions)
        return unit

    def _unit(
        self, source: str, digest: str, name: str | None, *, streaming: bool = False
    ) -> CompiledUnit:
        key = (digest, *self._versions())
        return self._shared.cache.get_or_build(
            key,
            lambda: self._build(source, digest, name, streaming=streaming),
            streaming=streaming,
        )

    def _build(
        self, source: str, digest: str, name: str | None, *, streaming: bool
    ) -> CompiledUnit:
        started = time.perf_counter()
        nodes = self.parse(source, name=name)
        compiler = Compiler(self, name=name, source=source, source_hash=digest, streaming=streaming)
        generated = compiler.compile(nodes)
        filename = unit_filename(name, digest, streaming=streaming)
        code_obj = compiler.check(generated, filename)
        unit = build_unit(
            generated, code_obj, source=source, source_hash=digest, name=name, filename=filename
        )
        logger.debug(
            "Compiled %s in %.2fms",
            filename,
            (time.perf_counter() - started) * 1000,
        )
        return unit

    def compile_fn(self, source: str, *, name: str | None = None) -> Callable[..., Any]:
        """Compile ``source`` into a plain function of its locals.

        The function returns the rendered string (a coroutine for async
        templates) and propagates errors. ``fn.unit`` is the compiled unit.
        """
        unit = self._compile_in_context(source, name)

        if unit.is_async:

            async def render_async_fn(
                locals: Mapping[str, Any] | None = None, **kwargs: Any
            ) -> str:
                with render_context(name, source, max_include_depth=self.config.max_include_depth):
                    return await self._execute_async(unit, _merge(locals, kwargs))

            render_async_fn.unit = unit  # type: ignore[attr-defined]
            return render_async_fn

        def render_fn(locals: Mapping[str, Any] | None = None, **kwargs: Any) -> str:
            with render_context(name, source, max_include_depth=self.config.max_include_depth):
                return self._execute(unit, _merge(locals, kwargs))

        render_fn.unit = unit  # type: ignore[attr-defined]
        return render_fn

    def _compile_in_context(
        self, source: str, name: str | None, cache_key: str | None = None
    ) -> CompiledUnit:
        try:
            return self.compile(source, cache_key, name=name)
        except TemplateError as exc:
            ctx = get_render_context()
            exc.attach(
                template_name=name,
                source=source,
                template_stack=ctx.chain if ctx else None,
            )
            raise

    # ------------------------------------------------------------------
    # Reading sources
    # ------------------------------------------------------------------

    def _production_hit(self, path: str) -> CompiledUnit | None:
        if not self.config.production:
            return None
        entry = self._shared.cache.get_file(path)
        if entry is None:
            return None
        logger.debug("Production cache hit for %s", path)
        return entry.unit

    def _read(self, path: str) -> str:
        result = self.resolver(path)
        if inspect.isawaitable(result):
            close = getattr(result, "close", None)
            if close is not None:
                close()
            raise self._async_required(path, "The resolver is asynchronous")
        return result

    async def _read_async(self, path: str) -> str:
        result = self.resolver(path)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _async_required(self, name: str | None, reason: str) -> TemplateRuntimeError:
        err = TemplateRuntimeError(
            f"{reason}; '{name or '<string>'}' must be rendered asynchronously",
            template_name=name,
            suggestion="Use render_async(), view_async() or render_stream_async()",
        )
        err.code = ErrorCode.ASYNC_REQUIRED
        return err

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _attribute(
        self, exc: TemplateError, unit: CompiledUnit, cause: BaseException | None = None
    ) -> None:
        """Attach this unit's location to ``exc`` unless an inner unit already did."""
        ctx = get_render_context()
        exc.attach(
            template_name=ctx.template_name if ctx else unit.name,
            lineno=unit.locate((cause or exc).__traceback__),
            source=unit.source,
            template_stack=ctx.chain if ctx else None,
            generated_code=unit.code,
        )

    def _wrap(self, exc: Exception, unit: CompiledUnit) -> TemplateRuntimeError:
        err = TemplateRuntimeError(_describe(exc))
        self._attribute(err, unit, cause=exc)
        if err.lineno and unit.source:
            lines = unit.source.splitlines()
            if err.lineno <= len(lines):
                err.expression = lines[err.lineno - 1].strip()
        return err

    def _run(self, unit: CompiledUnit, invocation: Invocation) -> None:
        if unit.is_async:
            raise self._async_required(unit.name, "The template awaits")
        try:
            unit.routine(invocation)
        except TemplateError as exc:
            self._attribute(exc, unit)
            raise
        except Exception as exc:
            raise self._wrap(exc, unit) from exc

    async def _run_async(self, unit: CompiledUnit, invocation: Invocation) -> None:
        try:
            if unit.is_async:
                await unit.routine(invocation)
            else:
                unit.routine(invocation)
        except TemplateError as exc:
            self._attribute(exc, unit)
            raise
        except Exception as exc:
            raise self._wrap(exc, unit) from exc

    def _execute(self, unit: CompiledUnit, locals: Mapping[str, Any] | None) -> str:
        invocation = Invocation(self, locals)
        self._run(unit, invocation)
        return invocation.result()

    async def _execute_async(self, unit: CompiledUnit, locals: Mapping[str, Any] | None) -> str:
        invocation = Invocation(self, locals)
        await self._run_async(unit, invocation)
        return invocation.result()

    def _propagates(self) -> bool:
        return self.config.silent or self.config.strict

    def _fail(self, exc: TemplateError) -> str:
        logger.error("Template render failed: %s", exc.message, exc_info=exc)
        return self.render_error(exc)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(
        self,
        source: str,
        locals: Mapping[str, Any] | None = None,
        *,
        name: str | None = None,
    ) -> str:
        """Render template source with ``locals``.

        Raises:
            TemplateError: Only with ``silent`` or ``strict``; otherwise
                failures render as an error page.
        """
        try:
            with render_context(name, source, max_include_depth=self.config.max_include_depth):
                unit = self._compile_in_context(source, name)
                return self._execute(unit, locals)
        except TemplateError as exc:
            if self._propagates():
                raise
            return self._fail(exc)

    async def render_async(
        self,
        source: str,
        locals: Mapping[str, Any] | None = None,
        *,
        name: str | None = None,
    ) -> str:
        """Render template source, awaiting async routines and resolvers."""
        try:
            with render_context(name, source, max_include_depth=self.config.max_include_depth):
                unit = self._compile_in_context(source, name)
                return await self._execute_async(unit, locals)
        except TemplateError as exc:
            if self._propagates():
                raise
            return self._fail(exc)

    def view(self, logical: str, locals: Mapping[str, Any] | None = None) -> str:
        """Resolve, load and render a view.

        Raises:
            ResolutionError: The view path cannot be resolved or read.
        """
        path = self.resolve_path(logical, locals)
        cached = self._production_hit(path)
        source = cached.source if cached is not None else self._read(path)
        try:
            with render_context(path, source, max_include_depth=self.config.max_include_depth):
                unit = cached or self._compile_in_context(source, path, cache_key=path)
                return self._execute(unit, locals)
        except TemplateError as exc:
            if self._propagates():
                raise
            return self._fail(exc)

    async def view_async(self, logical: str, locals: Mapping[str, Any] | None = None) -> str:
        """Async form of ``view``; awaits async resolvers."""
        path = self.resolve_path(logical, locals)
        cached = self._production_hit(path)
        source = cached.source if cached is not None else await self._read_async(path)
        try:
            with render_context(path, source, max_include_depth=self.config.max_include_depth):
                unit = cached or self._compile_in_context(source, path, cache_key=path)
                return await self._execute_async(unit, locals)
        except TemplateError as exc:
            if self._propagates():
                raise
            return self._fail(exc)

    def render_stream(
        self,
        source: str,
        locals: Mapping[str, Any] | None = None,
        *,
        name: str | None = None,
    ) -> Iterator[str]:
        """Render as a generator of chunks, one per top-level node.

        Templates that need the whole document (``@stack``) yield a single
        chunk. Errors always propagate. The render context is current only
        while a chunk is being produced, never while the caller holds one.
        """
        ctx = new_render_context(name, source, max_include_depth=self.config.max_include_depth)
        with use_render_context(ctx):
            unit = self._compile_in_context(source, name)
            if unit.is_async:
                raise self._async_required(name, "The template awaits")
            if unit.streamable:
                stream = self._unit(source, unit.source_hash, name, streaming=True)
                chunks = stream.routine(Invocation(self, locals))
            else:
                whole = self._execute(unit, locals)
        if not unit.streamable:
            yield whole
            return
        while True:
            with use_render_context(ctx):
                try:
                    chunk = next(chunks)
                except StopIteration:
                    return
                except TemplateError as exc:
                    self._attribute(exc, stream)
                    raise
                except Exception as exc:
                    raise self._wrap(exc, stream) from exc
            yield chunk

    async def render_stream_async(
        self,
        source: str,
        locals: Mapping[str, Any] | None = None,
        *,
        name: str | None = None,
    ) -> AsyncIterator[str]:
        """Async generator of chunks; handles both sync and async templates."""
        ctx = new_render_context(name, source, max_include_depth=self.config.max_include_depth)
        with use_render_context(ctx):
            unit = self._compile_in_context(source, name)
            if unit.streamable:
                stream = self._unit(source, unit.source_hash, name, streaming=True)
                chunks = stream.routine(Invocation(self, locals))
            else:
                whole = await self._execute_async(unit, locals)
        if not unit.streamable:
            yield whole
            return
        while True:
            with use_render_context(ctx):
                try:
                    if stream.is_async:
                        chunk = await chunks.__anext__()
                    else:
                        chunk = next(chunks)
                except (StopIteration, StopAsyncIteration):
                    return
                except TemplateError as exc:
                    self._attribute(exc, stream)
                    raise
                except Exception as exc:
                    raise self._wrap(exc, stream) from exc
            yield chunk

    # ------------------------------------------------------------------
    # Nested templates (called through Invocation.include)
    # ------------------------------------------------------------------

    def include(self, parent: Invocation, logical: str, locals: Mapping[str, Any]) -> str:
        path = self.resolve_path(logical, locals)
        cached = self._production_hit(path)
        source = cached.source if cached is not None else self._read(path)
        with render_context(path, source):
            unit = cached or self._compile_in_context(source, path, cache_key=path)
            child = Invocation(self, locals, parent=parent)
            self._run(unit, child)
            return child.result(final=False)

    async def include_async(
        self, parent: Invocation, logical: str, locals: Mapping[str, Any]
    ) -> str:
        path = self.resolve_path(logical, locals)
        cached = self._production_hit(path)
        source = cached.source if cached is not None else await self._read_async(path)
        with render_context(path, source):
            unit = cached or self._compile_in_context(source, path, cache_key=path)
            child = Invocation(self, locals, parent=parent)
            await self._run_async(unit, child)
            return child.result(final=False)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def render_error(self, exc: BaseException) -> str:
        """Self-contained HTML diagnostic page for ``exc``."""
        return ErrorReport.from_exception(exc).to_html()

    def package_schema(
        self,
        name: str,
        version: str | None = None,
        repository: str | None = None,
    ) -> dict[str, Any]:
        """JSON-serializable inventory of directives, elements and globals."""
        from kiln.environment.schema import build_package_schema

        return build_package_schema(self, name, version=version, repository=repository)

    def __repr__(self) -> str:
        return (
            f"<Engine directives={len(self.directives)} elements={len(self.elements)} "
            f"namespaces={len(self.namespaces)} production={self.config.production}>"
        )


def _merge(locals: Mapping[str, Any] | None, extra: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(locals or {})
    merged.update(extra)
    return merged
