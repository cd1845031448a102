"""kiln: a just-in-time template compiler for Python.

Templates mix text, HTML, ``{{ expressions }}`` and ``@directives``.
Each template compiles once into a Python render routine, which is
cached by content hash and called with per-request data.

Quickstart:
    >>> from kiln import Engine
    >>> engine = Engine()
    >>> engine.render("Hello, {{ name }}!", {"name": "World"})
    'Hello, World!'

Views on disk:
    >>> engine = Engine()
    >>> engine.namespace("~", "templates/")
    >>> engine.view("pages.home", {"user": user})

Architecture:
Template Source → Parser → node tree → Compiler → Python source → exec()

Pipeline stages:
1. **Parser**: Builds the node tree (text, interpolations, directives, elements)
2. **Compiler**: Asks registered directive/element handlers to emit Python
3. **Cache**: Stores compiled units by SHA-256 of the source
4. **Engine**: Resolves view paths, runs units in an ``Invocation``

Directives and elements are plugins: ``@if``, ``@for``, ``@include`` and
the ``<x-*>`` component tags are registered by ``kiln.directives`` and
``kiln.elements`` like any third-party extension.

"""

from kiln.environment import (
    ChoiceResolver,
    CompileError,
    DictResolver,
    DirectiveDefinition,
    ElementDefinition,
    Engine,
    EngineConfig,
    ErrorCode,
    ErrorReport,
    FileSystemResolver,
    FunctionPlugin,
    FunctionResolver,
    LayeredMap,
    ResolutionError,
    SourceSnippet,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    UndefinedError,
    build_source_snippet,
    define_plugin,
)
from kiln.compiler import DirectiveContext, ElementContext
from kiln.parser import ParseError
from kiln.render_context import RenderContext, get_render_context, render_context
from kiln.template import CompiledUnit, Invocation, LoopContext, Markup, Undefined
from kiln.utils.html import html_escape

__version__ = "0.1.0"

__all__ = [
    "ChoiceResolver",
    "CompileError",
    "CompiledUnit",
    "DictResolver",
    "DirectiveContext",
    "DirectiveDefinition",
    "ElementContext",
    "ElementDefinition",
    "Engine",
    "EngineConfig",
    "ErrorCode",
    "ErrorReport",
    "FileSystemResolver",
    "FunctionPlugin",
    "FunctionResolver",
    "Invocation",
    "LayeredMap",
    "LoopContext",
    "Markup",
    "ParseError",
    "RenderContext",
    "ResolutionError",
    "SourceSnippet",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "Undefined",
    "UndefinedError",
    "__version__",
    "build_source_snippet",
    "define_plugin",
    "get_render_context",
    "html_escape",
    "render_context",
]
