"""Error reports for failed compilations and renders.

``ErrorReport`` collects everything known about a failure (type, message,
template, line, code frame, generated code, template chain, traceback)
and renders it either for a terminal (``format()``) or as a
self-contained HTML page (``to_html()``). The page carries the
``kiln-error`` marker so tests and proxies can detect it, and every
piece of user or template text on it is HTML-escaped.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field

from kiln.environment import terminal
from kiln.environment.exceptions import (
    SourceSnippet,
    TemplateError,
    TemplateRuntimeError,
    format_template_stack,
)
from kiln.utils.html import html_escape

ERROR_MARKER = "kiln-error"

_PAGE_STYLE = """
body{margin:0;font:14px/1.5 ui-monospace,SFMono-Regular,Menlo,monospace;background:#1e1e24;color:#e6e6e6}
.kiln-error{max-width:960px;margin:2rem auto;padding:0 1.5rem}
h1{color:#ff6b6b;font-size:1.3rem;margin-bottom:.25rem}
.kiln-location{color:#7aa2f7}
.kiln-code{color:#999;font-size:.85rem}
pre{background:#111118;padding:1rem;overflow:auto;border-radius:4px}
.kiln-line-error{background:#4a1f24;display:block}
.kiln-hint{color:#e0af68}
details{margin-top:1rem}
summary{cursor:pointer;color:#9ece6a}
"""


@dataclass(slots=True)
class ErrorReport:
    """A failure prepared for display."""

    error_type: str
    message: str
    code: str | None = None
    template_name: str | None = None
    lineno: int | None = None
    snippet: SourceSnippet | None = None
    generated_code: str | None = None
    template_stack: list[str] = field(default_factory=list)
    expression: str | None = None
    suggestion: str | None = None
    traceback_text: str = ""

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorReport:
        tb_text = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        if not isinstance(exc, TemplateError):
            return cls(
                error_type=type(exc).__name__,
                message=str(exc) or type(exc).__name__,
                traceback_text=tb_text,
            )
        return cls(
            error_type=type(exc).__name__,
            message=exc.message,
            code=exc.code.value if exc.code else None,
            template_name=exc.template_name,
            lineno=exc.lineno,
            snippet=exc.source_snippet,
            generated_code=exc.generated_code,
            template_stack=list(exc.template_stack),
            expression=exc.expression if isinstance(exc, TemplateRuntimeError) else None,
            suggestion=exc.suggestion,
            traceback_text=tb_text,
        )

    @property
    def location(self) -> str:
        loc = self.template_name or "<template>"
        if self.lineno:
            loc += f":{self.lineno}"
        return loc

    def format(self, *, include_traceback: bool = False) -> str:
        """Terminal rendering, colored when the terminal supports it."""
        header = f"{self.error_type}: {self.message}"
        if self.code:
            header = f"{terminal.error_code(self.code)} {header}"
        parts = [header, f"  --> {terminal.location(self.location)}"]
        if self.snippet:
            parts.append(self.snippet.format())
        if self.expression:
            parts.append(f"  Expression: {self.expression}")
        if self.template_stack:
            parts.append(format_template_stack(self.template_stack))
        if self.suggestion:
            parts.append(f"  {terminal.hint('Hint:')} {self.suggestion}")
        if include_traceback and self.traceback_text:
            parts.append(terminal.dim_text(self.traceback_text.rstrip()))
        return "\n".join(parts)

    def _snippet_html(self) -> str:
        if self.snippet is None:
            return ""
        rows = []
        width = len(str(self.snippet.lines[-1][0])) if self.snippet.lines else 1
        for lineno, content in self.snippet.lines:
            text = f"{lineno:>{width}} | {html_escape(content)}"
            if lineno == self.snippet.error_line:
                text = f'<span class="kiln-line-error">{text}</span>'
            rows.append(text)
        return "<pre>" + "\n".join(rows) + "</pre>"

    def to_html(self) -> str:
        """Self-contained HTML diagnostic page."""
        title = html_escape(f"{self.error_type}: {self.message}")
        sections = [
            f"<h1>{title}</h1>",
            f'<div class="kiln-location">{html_escape(self.location)}</div>',
        ]
        if self.code:
            sections.append(f'<div class="kiln-code">{html_escape(self.code)}</div>')
        sections.append(self._snippet_html())
        if self.expression:
            sections.append(f"<p>Expression: <code>{html_escape(self.expression)}</code></p>")
        if self.suggestion:
            sections.append(f'<p class="kiln-hint">{html_escape(self.suggestion)}</p>')
        if self.template_stack:
            items = "".join(f"<li>{html_escape(name)}</li>" for name in self.template_stack)
            sections.append(f"<h2>Template stack</h2><ol>{items}</ol>")
        if self.generated_code:
            sections.append(
                "<details><summary>Generated code</summary>"
                f"<pre>{html_escape(self.generated_code)}</pre></details>"
            )
        if self.traceback_text:
            sections.append(
                "<details><summary>Traceback</summary>"
                f"<pre>{html_escape(self.traceback_text)}</pre></details>"
            )
        body = "\n".join(part for part in sections if part)
        return (
            "<!DOCTYPE html>\n"
            f'<html lang="en" data-{ERROR_MARKER}="true">\n'
            f'<head><meta charset="utf-8"><title>{title}</title>'
            f"<style>{_PAGE_STYLE}</style></head>\n"
            f'<body><main class="{ERROR_MARKER}">\n{body}\n</main></body>\n'
            "</html>\n"
        )
