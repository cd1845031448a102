"""Parser error handling for kiln.

Provides ParseError, which records the character offset of the problem
and renders a source line with a caret pointer.
"""

from __future__ import annotations

from kiln.environment.exceptions import ErrorCode, TemplateSyntaxError


def offset_to_location(source: str, offset: int) -> tuple[int, int]:
    """Convert a character offset into a 1-based line and 0-based column."""
    lineno = source.count("\n", 0, offset) + 1
    col = offset - (source.rfind("\n", 0, offset) + 1)
    return lineno, col


class ParseError(TemplateSyntaxError):
    """Malformed template text.

    Always fatal to the compilation that raised it.

    Attributes:
        position: Character offset into the template source.
    """

    code: ErrorCode | None = ErrorCode.UNCLOSED_BLOCK
    label = "Parse Error"

    def __init__(
        self,
        message: str,
        position: int,
        source: str,
        name: str | None = None,
        *,
        code: ErrorCode | None = None,
        suggestion: str | None = None,
    ):
        self.position = position
        lineno, col_offset = offset_to_location(source, position)
        super().__init__(
            message,
            lineno=lineno,
            name=name,
            source=source,
            col_offset=col_offset,
            suggestion=suggestion,
        )
        if code is not None:
            self.code = code
