"""Tests for the kiln template parser.

Covers text and interpolation scanning, escapes, directive blocks with
sub-directives, element tags with attributes and slots, and the parse
errors raised for malformed input.
"""

from __future__ import annotations

import pytest

from kiln import DirectiveDefinition, ElementDefinition, Engine, ErrorCode, ParseError
from kiln.nodes import (
    Directive,
    Element,
    ExpressionValue,
    Interpolation,
    LiteralValue,
    SpreadValue,
    Text,
)


def _noop(api):
    return None


@pytest.fixture
def engine() -> Engine:
    return Engine()


class TestTextAndInterpolation:
    """Plain text, {{ }} and {{{ }}}."""

    def test_plain_text_is_one_node(self, engine: Engine) -> None:
        nodes = engine.parse("Hello, world!\nSecond line")
        assert nodes == [Text(1, 0, "Hello, world!\nSecond line")]

    def test_escaped_interpolation(self, engine: Engine) -> None:
        nodes = engine.parse("Hi {{ user.name }}!")
        assert isinstance(nodes[1], Interpolation)
        assert nodes[1].expr == "user.name"
        assert nodes[1].escaped is True

    def test_raw_interpolation(self, engine: Engine) -> None:
        nodes = engine.parse("{{{ html }}}")
        assert nodes == [Interpolation(1, 0, "html", False)]

    def test_braces_inside_expression(self, engine: Engine) -> None:
        nodes = engine.parse("{{ {'a': 1}['a'] }}")
        assert nodes[0].expr == "{'a': 1}['a']"

    def test_closer_inside_string_is_ignored(self, engine: Engine) -> None:
        nodes = engine.parse("{{ '}}' + x }}")
        assert nodes[0].expr == "'}}' + x"

    def test_comment_is_dropped(self, engine: Engine) -> None:
        nodes = engine.parse("a{{-- hidden {{ x }} --}}b")
        assert nodes == [Text(1, 0, "ab")]

    def test_positions_are_tracked(self, engine: Engine) -> None:
        nodes = engine.parse("line1\n  {{ x }}")
        assert nodes[1].lineno == 2
        assert nodes[1].col_offset == 2


class TestEscapes:
    """@@, @{{ and @verbatim."""

    def test_double_at_renders_literal_directive(self, engine: Engine) -> None:
        assert engine.parse("@@if(x)") == [Text(1, 0, "@if(x)")]

    def test_triple_at_keeps_two(self, engine: Engine) -> None:
        assert engine.parse("@@@if")[0].value == "@@if"

    def test_escaped_interpolation_opener(self, engine: Engine) -> None:
        nodes = engine.parse("@{{ name }}")
        assert nodes == [Text(1, 0, "{{ name }}")]

    def test_verbatim_region(self, engine: Engine) -> None:
        nodes = engine.parse("@verbatim{{ x }} @if(y)@endverbatim")
        assert nodes == [Text(1, 9, "{{ x }} @if(y)")]

    def test_email_address_is_text(self, engine: Engine) -> None:
        nodes = engine.parse("mail me at someone@if.com")
        assert len(nodes) == 1
        assert isinstance(nodes[0], Text)

    def test_directive_directly_after_end(self, engine: Engine) -> None:
        nodes = engine.parse("@if(a)x@end@if(b)y@end")
        assert [node.name for node in nodes] == ["if", "if"]


class TestDirectives:
    """Directive heads, blocks and sub-directives."""

    def test_inline_directive(self, engine: Engine) -> None:
        nodes = engine.parse("@include('header')")
        assert nodes == [Directive(1, 0, "include", "'header'")]

    def test_block_with_children(self, engine: Engine) -> None:
        (node,) = engine.parse("@if(x)yes@end")
        assert node.name == "if"
        assert node.raw_args == "x"
        assert node.children == (Text(1, 6, "yes"),)

    def test_named_closer(self, engine: Engine) -> None:
        (node,) = engine.parse("@if(x)yes@endif")
        assert node.children == (Text(1, 6, "yes"),)

    def test_related_segments(self, engine: Engine) -> None:
        (node,) = engine.parse("@if(a)A@elseif(b)B@else C@end")
        assert node.children == (Text(1, 6, "A"),)
        assert [rel.name for rel in node.related] == ["elseif", "else"]
        assert node.related[0].raw_args == "b"
        assert node.related[1].children[0].value == " C"

    def test_branch_name_prefix(self, engine: Engine) -> None:
        (node,) = engine.parse("@if(true)A@elseB@end")
        assert node.related[0].name == "else"
        assert node.related[0].children == (Text(1, 15, "B"),)

    def test_longest_branch_prefix_wins(self, engine: Engine) -> None:
        (node,) = engine.parse("@if(a)A@elseif(b)B@end")
        assert node.related[0].name == "elseif"

    def test_branch_alias(self, engine: Engine) -> None:
        (node,) = engine.parse("@if(a)A@elif(b)B@end")
        assert node.related[0].name == "elif"
        assert node.related[0].raw_args == "b"

    def test_directive_sharing_a_branch_name(self, engine: Engine) -> None:
        (node,) = engine.parse("@for(x in xs)@empty(x)a@end@empty b@end")
        assert node.children[0].name == "empty"
        assert node.children[0].raw_args == "x"
        assert node.related[0].name == "empty"
        assert node.related[0].children == (Text(1, 33, " b"),)

    def test_nested_blocks(self, engine: Engine) -> None:
        (outer,) = engine.parse("@for(x in xs)@if(x)[{{ x }}]@end@end")
        inner = outer.children[0]
        assert inner.name == "if"
        assert isinstance(inner.children[1], Interpolation)

    def test_arguments_with_nested_parentheses(self, engine: Engine) -> None:
        (node,) = engine.parse("@include(path('a)'), {'k': (1, 2)})")
        assert node.raw_args == "path('a)'), {'k': (1, 2)}"

    def test_unknown_directive_is_text(self, engine: Engine) -> None:
        nodes = engine.parse("@media (x) {}")
        assert all(isinstance(node, Text) for node in nodes)
        assert "".join(node.value for node in nodes) == "@media (x) {}"

    def test_stray_end_is_text(self, engine: Engine) -> None:
        assert engine.parse("a @end b") == [Text(1, 0, "a @end b")]

    def test_auto_children_with_end(self, bare_engine: Engine) -> None:
        bare_engine.directive(DirectiveDefinition("maybe", _noop, children="auto"))
        (node,) = bare_engine.parse("@maybe inside @end")
        assert node.children == (Text(1, 6, " inside "),)

    def test_auto_children_without_end(self, bare_engine: Engine) -> None:
        bare_engine.directive(DirectiveDefinition("maybe", _noop, children="auto"))
        nodes = bare_engine.parse("@maybe after")
        assert nodes[0] == Directive(1, 0, "maybe", None)
        assert nodes[1] == Text(1, 6, " after")


class TestElements:
    """Registered element tags."""

    @pytest.fixture
    def engine(self, bare_engine: Engine) -> Engine:
        bare_engine.element(ElementDefinition("ui-card", _noop))
        bare_engine.element(ElementDefinition("ui-icon", _noop, void=True))
        return bare_engine

    def test_unregistered_tags_are_text(self, engine: Engine) -> None:
        assert engine.parse("<div class='a'>x</div>") == [Text(1, 0, "<div class='a'>x</div>")]

    def test_element_with_inner_content(self, engine: Engine) -> None:
        (node,) = engine.parse("<ui-card>body</ui-card>")
        assert isinstance(node, Element)
        assert node.tag == "ui-card"
        assert node.inner == (Text(1, 9, "body"),)

    def test_attribute_forms(self, engine: Engine) -> None:
        (node,) = engine.parse(
            "<ui-card a=\"1\" b='2' c=three d e={x + 1} {...extra}></ui-card>"
        )
        assert node.attributes == (
            ("a", LiteralValue("1")),
            ("b", LiteralValue("2")),
            ("c", LiteralValue("three")),
            ("d", LiteralValue(True)),
            ("e", ExpressionValue("x + 1")),
            (None, SpreadValue("extra")),
        )

    def test_self_closing(self, engine: Engine) -> None:
        (node,) = engine.parse("<ui-card title='x' />")
        assert node.self_closing is True
        assert node.inner == ()

    def test_void_element(self, engine: Engine) -> None:
        nodes = engine.parse("<ui-icon name='star'>after")
        assert nodes[0].tag == "ui-icon"
        assert nodes[1] == Text(1, 21, "after")

    def test_named_slots(self, engine: Engine) -> None:
        (node,) = engine.parse(
            '<ui-card><x-slot name="head">H</x-slot>body</ui-card>'
        )
        assert node.slots == {"head": (Text(1, 29, "H"),)}
        assert node.inner == (Text(1, 39, "body"),)

    def test_directive_inside_element(self, engine: Engine) -> None:
        engine.directive(DirectiveDefinition("when", _noop, params=["cond"], children=True))
        (node,) = engine.parse("<ui-card>@when(x)y@end</ui-card>")
        assert node.inner[0].name == "when"

    def test_slot_inside_directive(self, engine: Engine) -> None:
        engine.directive(DirectiveDefinition("when", _noop, params=["cond"], children=True))
        (node,) = engine.parse('<ui-card>@when(c)<x-slot name="f">F</x-slot>@end</ui-card>')
        assert node.slots == {}
        (slot,) = node.inner[0].children
        assert isinstance(slot, Element)
        assert slot.tag == "x-slot"
        assert slot.get_attribute("name") == LiteralValue("f")
        assert slot.inner == (Text(1, 34, "F"),)

    def test_slot_outside_element_is_text(self, engine: Engine) -> None:
        source = '<x-slot name="f">F</x-slot>'
        assert engine.parse(source) == [Text(1, 0, source)]


class TestParseErrors:
    """Malformed input raises ParseError with a position."""

    def test_unclosed_block(self, engine: Engine) -> None:
        with pytest.raises(ParseError) as exc_info:
            engine.parse("line\n@if(x) never closed")
        err = exc_info.value
        assert "@if" in err.message
        assert err.lineno == 2
        assert err.position == 5
        assert err.code is ErrorCode.UNCLOSED_BLOCK

    def test_unclosed_interpolation(self, engine: Engine) -> None:
        with pytest.raises(ParseError) as exc_info:
            engine.parse("{{ x ")
        assert exc_info.value.code is ErrorCode.UNCLOSED_INTERPOLATION

    def test_empty_interpolation(self, engine: Engine) -> None:
        with pytest.raises(ParseError, match="Empty interpolation"):
            engine.parse("{{   }}")

    def test_unclosed_argument_list(self, engine: Engine) -> None:
        with pytest.raises(ParseError, match="argument list"):
            engine.parse("@if(x")

    def test_unterminated_verbatim(self, engine: Engine) -> None:
        with pytest.raises(ParseError, match="verbatim"):
            engine.parse("@verbatim {{ x }}")

    def test_mismatched_closer(self, engine: Engine) -> None:
        with pytest.raises(ParseError) as exc_info:
            engine.parse("@if(a)@for(x in y)@endif@end")
        assert exc_info.value.code is ErrorCode.UNEXPECTED_CLOSE

    def test_unclosed_element(self, bare_engine: Engine) -> None:
        bare_engine.element(ElementDefinition("ui-card", _noop))
        with pytest.raises(ParseError, match="Unclosed <ui-card>"):
            bare_engine.parse("<ui-card>body")

    def test_void_element_closing_tag(self, bare_engine: Engine) -> None:
        bare_engine.element(ElementDefinition("ui-icon", _noop, void=True))
        with pytest.raises(ParseError) as exc_info:
            bare_engine.parse("<ui-icon></ui-icon>")
        assert exc_info.value.code is ErrorCode.MALFORMED_TAG

    def test_slot_without_name(self, bare_engine: Engine) -> None:
        bare_engine.element(ElementDefinition("ui-card", _noop))
        with pytest.raises(ParseError, match="name attribute"):
            bare_engine.parse("<ui-card><x-slot>x</x-slot></ui-card>")

    def test_malformed_tag(self, bare_engine: Engine) -> None:
        bare_engine.element(ElementDefinition("ui-card", _noop))
        with pytest.raises(ParseError) as exc_info:
            bare_engine.parse('<ui-card title="open')
        assert exc_info.value.code is ErrorCode.MALFORMED_TAG


class TestStrictMode:
    """strict=True turns pass-through text into errors."""

    def test_unknown_directive_raises(self) -> None:
        engine = Engine(strict=True)
        with pytest.raises(ParseError) as exc_info:
            engine.parse("@media screen")
        assert exc_info.value.code is ErrorCode.UNKNOWN_DIRECTIVE

    def test_stray_end_raises(self) -> None:
        engine = Engine(strict=True)
        with pytest.raises(ParseError, match="no open block"):
            engine.parse("text @end")
