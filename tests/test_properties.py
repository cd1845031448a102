"""Property-based tests for parsing, escaping and path resolution."""

from __future__ import annotations

from html import unescape

from hypothesis import given, settings
from hypothesis import strategies as st

from kiln import DictResolver, Engine, ParseError

from .strategies import (
    arbitrary_template_source,
    dotted_view_path,
    html_unsafe_text,
    path_segment,
    plain_text,
    scalar_values,
    slashed_view_path,
    template_fragment,
)

_engine = Engine(resolver=DictResolver(), silent=True)
_engine.namespace("~", "/v")


class TestTextProperties:
    """Text without template syntax is left alone."""

    @given(text=plain_text)
    def test_plain_text_renders_unchanged(self, text: str) -> None:
        assert _engine.render(text) == text

    @given(source=template_fragment)
    def test_stream_matches_render(self, source: str) -> None:
        assert "".join(_engine.render_stream(source)) == _engine.render(source)

    @given(source=arbitrary_template_source)
    @settings(max_examples=300)
    def test_parse_never_crashes(self, source: str) -> None:
        try:
            _engine.parse(source)
        except ParseError as exc:
            assert exc.lineno >= 1


class TestEscapingProperties:
    """Escaped output never carries markup through."""

    @given(value=html_unsafe_text)
    def test_escaped_interpolation(self, value: str) -> None:
        result = _engine.render("{{ value }}", {"value": value})
        assert "<" not in result
        assert ">" not in result
        assert unescape(result) == value

    @given(value=html_unsafe_text)
    def test_raw_interpolation(self, value: str) -> None:
        assert _engine.render("{{{ value }}}", {"value": value}) == value

    @given(value=scalar_values)
    def test_scalars_render_as_str(self, value: object) -> None:
        assert _engine.render("{{{ value }}}", {"value": value}) == str(value)


class TestPathProperties:
    """Dotted and slashed paths resolve under the default namespace."""

    @given(path=dotted_view_path.filter(lambda p: not p.endswith(".kiln")))
    def test_dotted_paths(self, path: str) -> None:
        assert _engine.resolve_path(path) == "/v/" + path.replace(".", "/") + ".kiln"

    @given(path=slashed_view_path)
    def test_slashed_paths(self, path: str) -> None:
        assert _engine.resolve_path(path) == f"/v/{path}.kiln"
        assert _engine.resolve_path("~/" + path) == f"/v/{path}.kiln"

    @given(segments=st.lists(path_segment, min_size=1, max_size=3))
    def test_absolute_paths_ignore_namespaces(self, segments: list[str]) -> None:
        path = "/" + "/".join(segments)
        assert _engine.resolve_path(path) == path + ".kiln"
