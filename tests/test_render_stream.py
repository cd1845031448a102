"""Tests for streaming rendering (render_stream).

Verifies that the generator produced by render_stream() yields the same
output as render(), one chunk per top-level node, and falls back to a
single chunk when the template needs the whole document.
"""

from __future__ import annotations

import re

import pytest

from kiln import DictResolver, Engine, ErrorCode, TemplateRuntimeError, UndefinedError
from kiln.render_context import get_render_context

# ---------------------------------------------------------------------------
# Basic streaming
# ---------------------------------------------------------------------------


class TestBasicStreaming:
    """render_stream() produces the same output as render()."""

    def test_plain_text(self, engine: Engine) -> None:
        assert "".join(engine.render_stream("Hello, world!")) == "Hello, world!"

    def test_expression(self, engine: Engine) -> None:
        source = "Hello, {{ name }}!"
        result = "".join(engine.render_stream(source, {"name": "<World>"}))
        assert result == "Hello, &lt;World&gt;!"
        assert result == engine.render(source, {"name": "<World>"})

    def test_empty_template(self, engine: Engine) -> None:
        assert list(engine.render_stream("")) == []

    def test_directives(self, engine: Engine) -> None:
        source = "@for(x in xs)[{{ x }}]@empty none@end @if(flag)on@else off@end"
        for values in ({"xs": [1, 2], "flag": True}, {"xs": [], "flag": False}):
            assert "".join(engine.render_stream(source, values)) == engine.render(source, values)

    def test_includes(self, engine: Engine) -> None:
        source = "@include('header')<p>body</p>"
        values = {"title": "T"}
        assert "".join(engine.render_stream(source, values)) == engine.render(source, values)


class TestStreamingYieldsChunks:
    """Chunks are yielded at top-level node boundaries."""

    def test_one_chunk_per_node(self, engine: Engine) -> None:
        chunks = list(engine.render_stream("Hello, {{ name }}!", {"name": "World"}))
        assert chunks == ["Hello, ", "World", "!"]

    def test_block_is_one_chunk(self, engine: Engine) -> None:
        chunks = list(engine.render_stream("a:@for(x in xs){{ x }}@end", {"xs": [1, 2, 3]}))
        assert chunks == ["a:", "123"]

    def test_nodes_without_output_yield_nothing(self, engine: Engine) -> None:
        chunks = list(engine.render_stream("a @let(x = 1)b"))
        assert chunks == ["a ", "b"]

    def test_stack_disables_streaming(self, engine: Engine) -> None:
        source = "<head>@stack('css')</head>@push('css')<link>@end<body></body>"
        chunks = list(engine.render_stream(source))
        assert chunks == ["<head><link></head><body></body>"]

    def test_streaming_unit_is_cached(self, engine: Engine) -> None:
        list(engine.render_stream("{{ a }}{{ b }}"))
        list(engine.render_stream("{{ a }}{{ b }}"))
        assert len(engine.cache.streams) == 1


class TestStreamingErrors:
    """Errors propagate out of the generator."""

    def test_error_after_first_chunk(self, engine: Engine) -> None:
        stream = engine.render_stream("ok\n{{ 1 // zero }}", {"zero": 0}, name="calc")
        assert next(stream) == "ok\n"
        with pytest.raises(TemplateRuntimeError) as exc_info:
            next(stream)
        assert exc_info.value.lineno == 2
        assert exc_info.value.template_name == "calc"

    def test_async_template_rejected(self, engine: Engine) -> None:
        @engine.directive("later")
        def later(api):
            api.mark_async()

        with pytest.raises(TemplateRuntimeError) as exc_info:
            list(engine.render_stream("@later"))
        assert exc_info.value.code is ErrorCode.ASYNC_REQUIRED

    def test_missing_include_in_stream(self) -> None:
        engine = Engine(resolver=DictResolver())
        engine.namespace("~", "/views")
        assert "".join(engine.render_stream("[@include('missing')]")) == "[]"


class TestStreamingRenderContext:
    """A paused stream does not leak its render context to the caller."""

    def test_no_context_between_chunks(self, engine: Engine) -> None:
        stream = engine.render_stream("a{{ 1 }}b{{ 2 }}", name="streamed")
        assert next(stream) == "a"
        assert get_render_context() is None
        assert "".join(stream) == "1b2"
        assert get_render_context() is None

    def test_render_while_streaming(self, silent_engine: Engine) -> None:
        stream = silent_engine.render_stream("a{{ 1 }}b{{ 2 }}", name="streamed")
        next(stream)
        with pytest.raises(UndefinedError) as exc_info:
            silent_engine.render("{{ missing.attr }}", name="other")
        assert exc_info.value.template_name == "other"
        assert exc_info.value.template_stack == ["other"]
        assert list(stream) == ["1", "b", "2"]

    def test_include_depth_is_not_inherited(self, resolver: DictResolver) -> None:
        engine = Engine(resolver=resolver, silent=True, max_include_depth=1)
        engine.namespace("~", "/views")
        stream = engine.render_stream("x{{ 1 }}", name="streamed")
        next(stream)
        assert engine.render("@include('header')", {"title": "T"}) == "<header>T</header>"

    def test_abandoned_stream(self, engine: Engine) -> None:
        stream = engine.render_stream("a{{ 1 }}", name="streamed")
        next(stream)
        del stream
        assert get_render_context() is None

    def test_errors_keep_the_stream_name(self, engine: Engine) -> None:
        stream = engine.render_stream("ok{{ 1 // zero }}", {"zero": 0}, name="streamed")
        next(stream)
        engine.render("fine", name="other")
        with pytest.raises(TemplateRuntimeError) as exc_info:
            next(stream)
        assert exc_info.value.template_stack == ["streamed"]


class TestDeferredBlocks:
    """@defer leaves a placeholder and sends its block after the page."""

    def test_placeholder_then_content(self, engine: Engine) -> None:
        source = "<main/>@defer<aside>{{ 1 + 1 }}</aside>@end<footer/>"
        chunks = list(engine.render_stream(source))
        page = "".join(chunks)
        placeholder = re.search(r'<div id="(defer-[0-9a-f]{12})"></div>', page)
        assert placeholder is not None
        defer_id = placeholder.group(1)
        assert chunks[-1].startswith(f'<template id="tpl-{defer_id}"><aside>2</aside></template>')
        assert f"getElementById('{defer_id}')" in chunks[-1]
        assert page.index("<footer/>") < page.index("<template")

    def test_block_sees_values_where_it_appeared(self, engine: Engine) -> None:
        source = "@for(x in xs)@defer[{{ x }}]@end@end"
        page = "".join(engine.render_stream(source, {"xs": [1, 2]}))
        assert page.count('<div id="defer-') == 2
        assert page.index("[1]") < page.index("[2]")
