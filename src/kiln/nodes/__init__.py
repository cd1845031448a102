"""Template node tree for kiln.

The parser produces a flat list of these nodes; block directives and
elements nest their children. Nodes are frozen dataclasses with source
positions for diagnostics.
"""

from kiln.nodes.base import Node
from kiln.nodes.directives import Directive
from kiln.nodes.elements import AttrValue, Element, ExpressionValue, LiteralValue, SpreadValue
from kiln.nodes.output import Interpolation, Text

__all__ = [
    "AttrValue",
    "Directive",
    "Element",
    "ExpressionValue",
    "Interpolation",
    "LiteralValue",
    "Node",
    "SpreadValue",
    "Text",
]
