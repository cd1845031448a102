"""Tests for error attribution, policies and reports.

A failing render either returns an HTML diagnostic page (default) or
propagates (``silent``/``strict``). Errors carry the innermost template,
its line and the chain of templates that led to it.
"""

from __future__ import annotations

import logging

import pytest

from kiln import (
    DictResolver,
    Engine,
    ErrorCode,
    ErrorReport,
    ParseError,
    ResolutionError,
    TemplateRuntimeError,
    UndefinedError,
)
from kiln.environment.reporter import ERROR_MARKER


class TestErrorPolicy:
    """Error page by default, exceptions with silent or strict."""

    def test_default_returns_error_page(self, engine: Engine) -> None:
        page = engine.render("{{ user.name }}")
        assert ERROR_MARKER in page
        assert "user" in page
        assert page.startswith("<!DOCTYPE html>")

    def test_default_logs_the_error(self, engine: Engine, caplog) -> None:
        with caplog.at_level(logging.ERROR, logger="kiln.environment.core"):
            engine.render("{{ user.name }}")
        assert any("Template render failed" in r.getMessage() for r in caplog.records)

    def test_silent_propagates(self, silent_engine: Engine) -> None:
        with pytest.raises(UndefinedError, match="user"):
            silent_engine.render("{{ user.name }}")

    def test_strict_propagates(self, resolver: DictResolver) -> None:
        engine = Engine(resolver=resolver, strict=True)
        with pytest.raises(TemplateRuntimeError):
            engine.render("{{ 1 // zero }}", {"zero": 0})

    def test_parse_error_page(self, engine: Engine) -> None:
        page = engine.render("line one\n@if(x) never closed", name="broken")
        assert ERROR_MARKER in page
        assert "never closed" in page
        assert ErrorCode.UNCLOSED_BLOCK.value in page

    def test_missing_view_always_raises(self, engine: Engine) -> None:
        with pytest.raises(ResolutionError):
            engine.view("does.not.exist")

    def test_missing_view_in_strict_mode(self, resolver: DictResolver) -> None:
        engine = Engine(resolver=resolver, strict=True)
        engine.namespace("~", "/views")
        with pytest.raises(ResolutionError):
            engine.view("nope")


class TestAttribution:
    """Template name, line and chain of a runtime failure."""

    def test_runtime_error_line(self, silent_engine: Engine) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            silent_engine.render("ok\n{{ 1 // zero }}", {"zero": 0}, name="calc")
        err = exc_info.value
        assert err.template_name == "calc"
        assert err.lineno == 2
        assert "ZeroDivisionError" in err.message
        assert err.expression == "{{ 1 // zero }}"
        assert "_kl_render" in err.generated_code
        assert isinstance(err.__cause__, ZeroDivisionError)

    def test_innermost_template_is_reported(
        self, resolver: DictResolver, silent_engine: Engine
    ) -> None:
        resolver["/views/bad.kiln"] = "fine\n{{ 1 // zero }}"
        with pytest.raises(TemplateRuntimeError) as exc_info:
            silent_engine.render("top\n@include('bad')", {"zero": 0}, name="page")
        err = exc_info.value
        assert err.template_name == "/views/bad.kiln"
        assert err.lineno == 2
        assert err.template_stack == ["page", "/views/bad.kiln"]

    def test_parse_error_in_include(
        self, resolver: DictResolver, silent_engine: Engine
    ) -> None:
        resolver["/views/broken.kiln"] = "{{ oops"
        with pytest.raises(ParseError) as exc_info:
            silent_engine.render("@include('broken')", name="page")
        assert exc_info.value.template_name == "/views/broken.kiln"

    def test_include_depth(self, resolver: DictResolver) -> None:
        resolver["/views/loop.kiln"] = "x @include('loop')"
        engine = Engine(resolver=resolver, silent=True, max_include_depth=5)
        engine.namespace("~", "/views")
        with pytest.raises(TemplateRuntimeError) as exc_info:
            engine.view("loop")
        err = exc_info.value
        assert err.code is ErrorCode.INCLUDE_DEPTH
        assert len(err.template_stack) == 6

    def test_soft_include_of_missing_view(self, engine: Engine, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="kiln.template.invocation"):
            assert engine.render("[@include('nowhere')]") == "[]"
        assert "nowhere" in caplog.text

    def test_source_snippet(self, silent_engine: Engine) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            silent_engine.render("one\ntwo {{ 1 // zero }}\nthree", {"zero": 0})
        snippet = exc_info.value.source_snippet
        assert snippet.error_line == 2
        assert [line for line, _ in snippet.lines] == [1, 2, 3]


class TestErrorReport:
    """Terminal and HTML rendering of failures."""

    def _error(self) -> TemplateRuntimeError:
        err = TemplateRuntimeError(
            "bad <script>alert(1)</script>",
            template_name="pages/<home>.kiln",
            lineno=3,
            suggestion="Use <b>care</b>",
        )
        err.code = ErrorCode.RUNTIME_ERROR
        return err

    def test_html_escapes_everything(self) -> None:
        page = ErrorReport.from_exception(self._error()).to_html()
        assert "<script>" not in page
        assert "&lt;script&gt;" in page
        assert "pages/&lt;home&gt;.kiln:3" in page
        assert "&lt;b&gt;care&lt;/b&gt;" in page
        assert ErrorCode.RUNTIME_ERROR.value in page

    def test_terminal_format(self) -> None:
        text = ErrorReport.from_exception(self._error()).format()
        assert "TemplateRuntimeError: bad <script>" in text
        assert "pages/<home>.kiln:3" in text

    def test_plain_exception(self) -> None:
        report = ErrorReport.from_exception(KeyError("missing"))
        assert report.error_type == "KeyError"
        assert report.code is None
        assert ERROR_MARKER in report.to_html()

    def test_engine_render_error(self, engine: Engine) -> None:
        page = engine.render_error(ValueError("<nope>"))
        assert "&lt;nope&gt;" in page

    def test_error_code_category(self) -> None:
        assert ErrorCode.UNCLOSED_BLOCK.category == "parser"
        assert ErrorCode.INVALID_CODE.category == "compiler"
        assert ErrorCode.ASYNC_REQUIRED.category == "runtime"
        assert ErrorCode.UNRESOLVED_PATH.category == "template"

    def test_str_includes_location(self, silent_engine: Engine) -> None:
        with pytest.raises(TemplateRuntimeError) as exc_info:
            silent_engine.render("{{ 1 // zero }}", {"zero": 0}, name="calc")
        assert "calc:1" in str(exc_info.value)
