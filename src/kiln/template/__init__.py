"""Compiled units, their cache and the runtime objects routines see."""

from kiln.template.cache import ResolvedFileCacheEntry, UnitCache, content_hash
from kiln.template.core import CompiledUnit, build_unit, unit_filename
from kiln.template.helpers import Props, Undefined, is_undefined
from kiln.template.invocation import Invocation
from kiln.template.loop_context import LoopContext
from kiln.utils.html import Markup

__all__ = [
    "CompiledUnit",
    "Invocation",
    "LoopContext",
    "Markup",
    "Props",
    "ResolvedFileCacheEntry",
    "Undefined",
    "UnitCache",
    "build_unit",
    "content_hash",
    "is_undefined",
    "unit_filename",
]
