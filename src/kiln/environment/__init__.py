"""Engine, configuration, registries, resolvers and errors for kiln.

Exceptions must be imported before the engine: the compiler and the
parser import them while ``kiln.environment.core`` is still loading.
"""

from kiln.environment.exceptions import (
    CompileError,
    ErrorCode,
    ResolutionError,
    SourceSnippet,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    UndefinedError,
    build_source_snippet,
    format_template_stack,
)
from kiln.environment.config import EngineConfig
from kiln.environment.layers import LayeredMap
from kiln.environment.loaders import (
    ChoiceResolver,
    DictResolver,
    FileSystemResolver,
    FunctionResolver,
)
from kiln.environment.paths import NamespaceMapping, NamespaceResolver, with_extension
from kiln.environment.registry import (
    DirectiveDefinition,
    DirectiveRegistry,
    ElementDefinition,
    ElementMatch,
    ElementRegistry,
    MatcherKind,
    ParamSpec,
)
from kiln.environment.plugins import FunctionPlugin, Plugin, define_plugin
from kiln.environment.reporter import ErrorReport
from kiln.environment.core import Engine, SharedState

__all__ = [
    "ChoiceResolver",
    "CompileError",
    "DictResolver",
    "DirectiveDefinition",
    "DirectiveRegistry",
    "ElementDefinition",
    "ElementMatch",
    "ElementRegistry",
    "Engine",
    "EngineConfig",
    "ErrorCode",
    "ErrorReport",
    "FileSystemResolver",
    "FunctionPlugin",
    "FunctionResolver",
    "LayeredMap",
    "MatcherKind",
    "NamespaceMapping",
    "NamespaceResolver",
    "ParamSpec",
    "Plugin",
    "ResolutionError",
    "SharedState",
    "SourceSnippet",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "UndefinedError",
    "build_source_snippet",
    "define_plugin",
    "format_template_stack",
    "with_extension",
]
