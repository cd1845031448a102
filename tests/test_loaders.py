"""Tests for template resolvers and Engine.glob()."""

from __future__ import annotations

from pathlib import Path

import pytest

from kiln import (
    ChoiceResolver,
    DictResolver,
    Engine,
    FileSystemResolver,
    FunctionResolver,
    ResolutionError,
)


@pytest.fixture
def views(tmp_path: Path) -> Path:
    (tmp_path / "partials").mkdir()
    (tmp_path / "home.kiln").write_text("<h1>{{ title }}</h1>@include('partials.footer')")
    (tmp_path / "partials" / "footer.kiln").write_text("<footer>kiln</footer>")
    (tmp_path / "notes.txt").write_text("not a template")
    return tmp_path


class TestFileSystemResolver:
    """Reading views from disk."""

    def test_view_from_disk(self, views: Path) -> None:
        engine = Engine()
        engine.namespace("~", str(views))
        assert engine.view("home", {"title": "Hi"}) == "<h1>Hi</h1><footer>kiln</footer>"

    def test_relative_paths_use_base(self, views: Path) -> None:
        resolver = FileSystemResolver(views)
        assert resolver("partials/footer.kiln") == "<footer>kiln</footer>"

    def test_missing_file(self, views: Path) -> None:
        with pytest.raises(ResolutionError) as exc_info:
            FileSystemResolver()(str(views / "nope.kiln"))
        assert exc_info.value.path.endswith("nope.kiln")

    def test_directory_is_not_a_view(self, views: Path) -> None:
        with pytest.raises(ResolutionError):
            FileSystemResolver()(str(views / "partials"))

    def test_glob(self, views: Path) -> None:
        engine = Engine(resolver=FileSystemResolver(views))
        found = engine.glob("**/*.kiln")
        assert [Path(path).name for path in found] == ["home.kiln", "footer.kiln"]

    def test_file_changes_are_picked_up(self, views: Path) -> None:
        engine = Engine()
        engine.namespace("~", str(views))
        assert engine.view("partials.footer") == "<footer>kiln</footer>"
        (views / "partials" / "footer.kiln").write_text("<footer>v2</footer>")
        assert engine.view("partials.footer") == "<footer>v2</footer>"


class TestOtherResolvers:
    """Dict, function and choice resolvers."""

    def test_dict_resolver(self) -> None:
        resolver = DictResolver({"/a.kiln": "A"})
        assert resolver("/a.kiln") == "A"
        with pytest.raises(ResolutionError):
            resolver("/b.kiln")
        assert resolver.reads == 2

    def test_dict_resolver_glob(self) -> None:
        resolver = DictResolver({"/v/a.kiln": "", "/v/b.kiln": "", "/w/c.kiln": ""})
        assert resolver.glob("/v/*.kiln") == ["/v/a.kiln", "/v/b.kiln"]

    def test_function_resolver(self) -> None:
        resolver = FunctionResolver({"/x.kiln": "X"}.get)
        assert resolver("/x.kiln") == "X"
        with pytest.raises(ResolutionError):
            resolver("/y.kiln")

    def test_choice_resolver(self) -> None:
        theme = DictResolver({"/v/page.kiln": "themed"})
        base = DictResolver({"/v/page.kiln": "base", "/v/other.kiln": "other"})
        resolver = ChoiceResolver([theme, base])
        assert resolver("/v/page.kiln") == "themed"
        assert resolver("/v/other.kiln") == "other"
        assert resolver.glob("/v/*") == ["/v/other.kiln", "/v/page.kiln"]
        with pytest.raises(ResolutionError, match="any of 2 resolvers"):
            resolver("/v/missing.kiln")

    def test_plain_callable(self) -> None:
        engine = Engine(resolver=lambda path: f"[{path}]")
        engine.namespace("~", "/v")
        assert engine.view("page") == "[/v/page.kiln]"


class TestGlob:
    """Engine.glob() prefers the readdir collaborator."""

    def test_readdir(self) -> None:
        engine = Engine(resolver=DictResolver(), readdir=lambda pattern: [pattern.upper()])
        assert engine.glob("a*") == ["A*"]

    def test_resolver_without_glob(self) -> None:
        engine = Engine(resolver=lambda path: "")
        with pytest.raises(TypeError, match="readdir"):
            engine.glob("*")
