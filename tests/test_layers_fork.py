"""Tests for layered globals/context and engine forks."""

from __future__ import annotations

import pytest

from kiln import DictResolver, Engine, LayeredMap


class TestLayeredMap:
    """Read-through inheritance with local-only writes."""

    def test_reads_fall_through(self) -> None:
        parent = LayeredMap({"a": 1})
        child = parent.new_child({"b": 2})
        assert child["a"] == 1
        assert child["b"] == 2
        assert "b" not in parent

    def test_local_shadows_parent(self) -> None:
        parent = LayeredMap({"a": 1})
        child = parent.new_child()
        child["a"] = 2
        assert (parent["a"], child["a"]) == (1, 2)

    def test_later_parent_writes_are_visible(self) -> None:
        parent = LayeredMap()
        child = parent.new_child()
        parent["late"] = True
        assert child["late"] is True

    def test_delete_only_touches_local(self) -> None:
        parent = LayeredMap({"a": 1})
        child = parent.new_child()
        with pytest.raises(KeyError):
            del child["a"]
        child["a"] = 2
        del child["a"]
        assert child["a"] == 1

    def test_iteration_and_flatten(self) -> None:
        parent = LayeredMap({"a": 1, "b": 2})
        child = parent.new_child({"b": 3, "c": 4})
        assert sorted(child) == ["a", "b", "c"]
        assert len(child) == 3
        assert child.flatten() == {"a": 1, "b": 3, "c": 4}


class TestFork:
    """Forks share registries and caches, but not writes."""

    def test_fork_writes_do_not_leak(self, engine: Engine) -> None:
        engine.set_global("site", "kiln")
        fork = engine.fork()
        fork.set_global("user", "ann").set_context("page", "home")
        assert fork.render("{{ site }}/{{ user }}/{{ page }}") == "kiln/ann/home"
        assert engine.render("{{ site }}/{{ user }}/{{ page }}") == "kiln//"

    def test_parent_changes_visible_in_fork(self, engine: Engine) -> None:
        fork = engine.fork()
        engine.set_global("later", "yes")
        assert fork.render("{{ later }}") == "yes"

    def test_shared_state_is_identical(self, engine: Engine) -> None:
        fork = engine.fork()
        assert fork.shared is engine.shared
        assert fork.directives is engine.directives
        assert fork.elements is engine.elements
        assert fork.cache is engine.cache
        assert fork.namespaces is engine.namespaces
        assert fork.parent is engine

    def test_registration_in_fork_is_shared(self, engine: Engine) -> None:
        fork = engine.fork()

        @fork.directive("hello")
        def hello(api):
            api.text("hi")

        assert engine.render("@hello") == "hi"

    def test_namespace_in_fork_is_shared(self, engine: Engine) -> None:
        engine.fork().namespace("mail", "/mail")
        assert engine.resolve_path("mail.welcome") == "/mail/welcome.kiln"

    def test_nested_forks(self, engine: Engine) -> None:
        engine.set_global("level", 0)
        child = engine.fork().set_global("level", 1)
        grandchild = child.fork()
        assert grandchild.render("{{ level }}") == "1"
        grandchild.set_global("level", 2)
        assert (engine.render("{{ level }}"), child.render("{{ level }}")) == ("0", "1")

    def test_render_context_layer_is_per_render(
        self, resolver: DictResolver, engine: Engine
    ) -> None:
        resolver["/views/seen.kiln"] = "[{{ seen }}]"

        @engine.directive("remember", params=["value"])
        def remember(api):
            api.raw(f"{api.ctx}.set('seen', {api.param('value')})")

        assert engine.render("@remember(1)@include('seen')") == "[1]"
        assert engine.render("@include('seen')") == "[]"
        assert "seen" not in engine.context

    def test_extension_methods(self, engine: Engine) -> None:
        engine.extend("shout", lambda self, text: text.upper())
        assert engine.shout("hi") == "HI"
        assert engine.fork().shout("yo") == "YO"

    def test_extension_cannot_override(self, engine: Engine) -> None:
        with pytest.raises(ValueError):
            engine.extend("render", lambda self: None)

    def test_unknown_attribute(self, engine: Engine) -> None:
        with pytest.raises(AttributeError):
            engine.nothing_here  # noqa: B018
