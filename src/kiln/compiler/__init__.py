"""Code generation for kiln.

``Compiler`` turns a node tree into the Python source of a render
routine; handlers registered for directives and elements contribute to
it through ``DirectiveContext`` and ``ElementContext``.
"""

from kiln.compiler.core import ROUTINE_NAME, Compiler, GeneratedRoutine
from kiln.compiler.handler import DirectiveContext, ElementContext, HandlerContext
from kiln.compiler.writer import CodeWriter

__all__ = [
    "ROUTINE_NAME",
    "CodeWriter",
    "Compiler",
    "DirectiveContext",
    "ElementContext",
    "GeneratedRoutine",
    "HandlerContext",
]
