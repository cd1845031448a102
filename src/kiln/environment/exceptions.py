"""Exceptions for the kiln template engine.

Exception Hierarchy:
TemplateError (base)
├── TemplateNotFoundError     # Template source could not be loaded
│   └── ResolutionError       # Logical path could not be resolved or read
├── TemplateSyntaxError       # Invalid template source
│   ├── ParseError            # Malformed template text (kiln.parser.errors)
│   └── CompileError          # Handler failure or invalid generated code
├── TemplateRuntimeError      # Exception raised while a routine executes
└── UndefinedError            # Attribute access on an undefined value

Error messages are assembled lazily from the attributes, so the engine
can attach location details (template name, line, source snippet,
template stack, generated code) after the error was raised deep inside
a generated routine.

Example:
    ```
    Runtime Error: 'NoneType' object has no attribute 'title'
      Location: views/article.kiln:15
       |
    >15 | <h1>{{ post.title }}</h1>
       |
    ```

"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from kiln.environment import terminal

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------


class ErrorCode(Enum):
    """Searchable error codes.

    Format: KL-{CATEGORY}-{NUMBER}
    Categories: PAR (parser), CMP (code generation), RUN (runtime),
    TPL (template loading).
    """

    # Parser errors (KL-PAR-xxx)
    UNCLOSED_BLOCK = "KL-PAR-001"
    UNCLOSED_INTERPOLATION = "KL-PAR-002"
    MALFORMED_TAG = "KL-PAR-003"
    UNEXPECTED_CLOSE = "KL-PAR-004"
    UNKNOWN_DIRECTIVE = "KL-PAR-005"

    # Code generation errors (KL-CMP-xxx)
    MISSING_PARAMETER = "KL-CMP-001"
    HANDLER_ERROR = "KL-CMP-002"
    INVALID_CODE = "KL-CMP-003"

    # Runtime errors (KL-RUN-xxx)
    UNDEFINED_VARIABLE = "KL-RUN-001"
    RUNTIME_ERROR = "KL-RUN-002"
    INCLUDE_DEPTH = "KL-RUN-003"
    ASYNC_REQUIRED = "KL-RUN-004"

    # Template loading errors (KL-TPL-xxx)
    TEMPLATE_NOT_FOUND = "KL-TPL-001"
    UNRESOLVED_PATH = "KL-TPL-002"
    SYNTAX_ERROR = "KL-TPL-003"

    @property
    def category(self) -> str:
        """Error category (e.g. 'runtime', 'parser')."""
        prefix = self.value.split("-")[1]
        return {
            "PAR": "parser",
            "CMP": "compiler",
            "RUN": "runtime",
            "TPL": "template",
        }.get(prefix, "unknown")


# ---------------------------------------------------------------------------
# Source snippets
# ---------------------------------------------------------------------------


def format_template_stack(stack: Sequence[str] | None) -> str:
    """Format the chain of nested templates, outermost first.

    Example:
        >>> print(terminal.strip_colors(format_template_stack(["page", "partials/nav"])))
        Template stack:
          • page
          • partials/nav
    """
    if not stack:
        return ""
    lines = [terminal.dim_text("Template stack:")]
    for name in stack:
        lines.append(f"  • {terminal.location(name)}")
    return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """Template source context around an error line.

    Attributes:
        lines: Tuple of (line_number, line_content) pairs around the error.
        error_line: The 1-based line number where the error occurred.
        column: Optional column offset for caret pointer.
    """

    lines: tuple[tuple[int, str], ...]
    error_line: int
    column: int | None = None

    def format(self) -> str:
        """Format snippet in a compiler-style diagnostic layout."""
        parts: list[str] = [terminal.dim_text("   |")]
        for lineno, content in self.lines:
            parts.append(
                terminal.format_source_line(lineno, content, is_error=lineno == self.error_line)
            )
        if self.column is not None:
            caret = " " * self.column + "^"
            parts.append(f"{terminal.dim_text('   |')} {terminal.error_line(caret)}")
        parts.append(terminal.dim_text("   |"))
        return "\n".join(parts)


def build_source_snippet(
    source: str,
    error_line: int,
    *,
    context_lines: int = 2,
    column: int | None = None,
) -> SourceSnippet:
    """Build a SourceSnippet from template source.

    Args:
        source: Full template source text.
        error_line: 1-based line number of the error.
        context_lines: Number of lines to show before/after the error line.
        column: Optional column offset for caret pointer.
    """
    all_lines = source.splitlines()
    start = max(0, error_line - 1 - context_lines)
    end = min(len(all_lines), error_line + context_lines)
    lines = tuple((i + 1, all_lines[i]) for i in range(start, end))
    return SourceSnippet(lines=lines, error_line=error_line, column=column)


class TemplateError(Exception):
    """Base exception for all kiln template errors.

    Enables broad exception handling:

        >>> try:
        ...     engine.view("pages.home")
        ... except TemplateError as e:
        ...     log.error("Template error: %s", e)

    Attributes:
        message: Error description without location decoration.
        template_name: Template the error is attributed to.
        lineno: 1-based template line, when known.
        source_snippet: Code frame around ``lineno``.
        template_stack: Chain of nested templates, outermost first.
        generated_code: Python source of the routine involved.
        suggestion: Optional hint for fixing the error.
    """

    code: ErrorCode | None = None
    label = "Template Error"

    def __init__(
        self,
        message: str,
        *,
        template_name: str | None = None,
        lineno: int | None = None,
        col_offset: int | None = None,
        source_snippet: SourceSnippet | None = None,
        template_stack: Sequence[str] | None = None,
        generated_code: str | None = None,
        suggestion: str | None = None,
    ):
        self.message = message
        self.template_name = template_name
        self.lineno = lineno
        self.col_offset = col_offset
        self.source_snippet = source_snippet
        self.template_stack = list(template_stack or ())
        self.generated_code = generated_code
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        return self._format_message()

    @property
    def location(self) -> str:
        loc = self.template_name or "<template>"
        if self.lineno:
            loc += f":{self.lineno}"
            if self.col_offset is not None:
                loc += f":{self.col_offset}"
        return loc

    def attach(
        self,
        *,
        template_name: str | None = None,
        lineno: int | None = None,
        source: str | None = None,
        template_stack: Sequence[str] | None = None,
        generated_code: str | None = None,
    ) -> None:
        """Fill in location details that are still missing.

        Details are only ever added once, so the innermost template that
        sees the error keeps the attribution.
        """
        if self.template_name is None and template_name is not None:
            self.template_name = template_name
        if self.lineno is None and lineno is not None:
            self.lineno = lineno
        if self.source_snippet is None and source and self.lineno:
            self.source_snippet = build_source_snippet(
                source, self.lineno, column=self.col_offset
            )
        if not self.template_stack and template_stack:
            self.template_stack = list(template_stack)
        if self.generated_code is None and generated_code is not None:
            self.generated_code = generated_code

    def _format_message(self) -> str:
        parts = [f"{self.label}: {self.message}"]
        if self.template_name or self.lineno:
            parts.append(f"  Location: {terminal.location(self.location)}")
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        if self.template_stack:
            parts.append("")
            parts.append(format_template_stack(self.template_stack))
        if self.suggestion:
            parts.append(f"  {terminal.hint('Hint:')} {self.suggestion}")
        return "\n".join(parts)

    def format_compact(self) -> str:
        """Format the error as a short terminal diagnostic with its code."""
        header = f"{self.message}"
        if self.code:
            header = f"{terminal.error_code(self.code.value)}: {header}"
        parts = [header, f"  --> {terminal.location(self.location)}"]
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        if self.suggestion:
            parts.append(f"  {terminal.hint('Hint:')} {self.suggestion}")
        return "\n".join(parts)


class TemplateNotFoundError(TemplateError):
    """Template source could not be found by the resolver."""

    code: ErrorCode | None = ErrorCode.TEMPLATE_NOT_FOUND
    label = "Template Not Found"


class ResolutionError(TemplateNotFoundError):
    """A logical view path could not be mapped to a location or read.

    Raised for unknown namespace aliases, unfilled root placeholders and
    missing files. Soft references (``@include``) swallow it; direct
    ``view()`` calls propagate it.

    Attributes:
        path: The logical or concrete path that failed.
    """

    code: ErrorCode | None = ErrorCode.UNRESOLVED_PATH
    label = "Resolution Error"

    def __init__(self, message: str, *, path: str | None = None, **kwargs):
        self.path = path
        super().__init__(message, **kwargs)


class TemplateSyntaxError(TemplateError):
    """Invalid template source.

    When ``source`` and ``lineno`` are provided, the message includes a
    snippet of the offending line, with a caret when ``col_offset`` is
    known.
    """

    code: ErrorCode | None = ErrorCode.SYNTAX_ERROR
    label = "Syntax Error"

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        name: str | None = None,
        source: str | None = None,
        col_offset: int | None = None,
        **kwargs,
    ):
        self.source = source
        super().__init__(
            message, template_name=name, lineno=lineno, col_offset=col_offset, **kwargs
        )
        if source and lineno and self.source_snippet is None:
            self.source_snippet = build_source_snippet(
                source, lineno, context_lines=0, column=col_offset
            )

    @property
    def name(self) -> str | None:
        return self.template_name


class CompileError(TemplateSyntaxError):
    """Code generation failed.

    Raised when a directive or element handler fails, or when the
    assembled routine is not valid Python. ``generated_code`` holds the
    routine source for the error page.
    """

    code: ErrorCode | None = ErrorCode.INVALID_CODE
    label = "Compile Error"


class TemplateRuntimeError(TemplateError):
    """An exception escaped a compiled routine while it was executing.

    The original exception is chained as ``__cause__``.

    Attributes:
        expression: Template expression that failed, when known.
    """

    code: ErrorCode | None = ErrorCode.RUNTIME_ERROR
    label = "Runtime Error"

    def __init__(self, message: str, *, expression: str | None = None, **kwargs):
        self.expression = expression
        super().__init__(message, **kwargs)

    def _format_message(self) -> str:
        text = super()._format_message()
        if self.expression:
            text += f"\n  Expression: {self.expression}"
        return text


class UndefinedError(TemplateError):
    """Attribute or item access on an undefined template value.

    Reading an undefined name is allowed (it renders as an empty string);
    dereferencing it is not.

    Example:
        >>> Engine(silent=True).render("{{ user.name }}")
        UndefinedError: Undefined variable 'user' (while accessing 'user.name')
    """

    code: ErrorCode | None = ErrorCode.UNDEFINED_VARIABLE
    label = "Undefined Error"

    def __init__(self, name: str, accessed: str | None = None, **kwargs):
        self.name = name
        self.accessed = accessed
        message = f"Undefined variable '{name}'"
        if accessed and accessed != name:
            message += f" (while accessing '{accessed}')"
        kwargs.setdefault("suggestion", f"Pass '{name}' in the render locals or guard it with @isset")
        super().__init__(message, **kwargs)
