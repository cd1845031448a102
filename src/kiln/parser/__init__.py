"""Template parser for kiln.

Converts template text into the node tree defined in ``kiln.nodes``.
"""

from kiln.parser.core import Parser
from kiln.parser.errors import ParseError
from kiln.parser.scanner import find_closing, split_arguments, split_named

__all__ = ["ParseError", "Parser", "find_closing", "split_arguments", "split_named"]
