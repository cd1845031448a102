"""Tests for EngineConfig and environment-driven defaults."""

from __future__ import annotations

import dataclasses

import pytest

from kiln import Engine, EngineConfig


class TestFromEnv:
    """KILN_* variables and keyword overrides."""

    def test_defaults(self) -> None:
        config = EngineConfig.from_env({})
        assert config == EngineConfig()
        assert config.extension == "kiln"
        assert config.var_locals == "it"
        assert config.slot_tag == "x-slot"

    def test_environment_values(self) -> None:
        config = EngineConfig.from_env(
            {"KILN_ENV": "Production", "KILN_SILENT": "yes", "KILN_STRICT": "0", "KILN_EXTENSION": ".html"}
        )
        assert config.production is True
        assert config.silent is True
        assert config.strict is False
        assert config.extension == "html"

    def test_overrides_win(self) -> None:
        config = EngineConfig.from_env({"KILN_ENV": "production"}, production=False, silent=None)
        assert config.production is False
        assert config.silent is False

    def test_unknown_option(self) -> None:
        with pytest.raises(TypeError, match="Unknown engine option"):
            EngineConfig.from_env({}, colour=True)

    def test_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KILN_ENV", "production")
        assert Engine().production is True


class TestValidation:
    """Invalid values are rejected early."""

    def test_var_locals_must_be_identifier(self) -> None:
        with pytest.raises(ValueError, match="var_locals"):
            EngineConfig(var_locals="not valid")

    def test_include_depth_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            EngineConfig(max_include_depth=0)

    def test_config_is_frozen(self) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            EngineConfig().silent = True  # type: ignore[misc]


class TestConfigEffects:
    """Options change engine behavior."""

    def test_custom_var_locals(self) -> None:
        engine = Engine(natives=False, var_locals="props")
        assert engine.render("{{ props.title }}", {"title": "T"}) == "T"

    def test_custom_slot_tag(self) -> None:
        engine = Engine(slot_tag="x-part")
        engine.resolver = lambda path: "@yield('head')|@yield('default')"
        engine.namespace("~", "/v")
        assert engine.render('<x-box><x-part name="head">H</x-part>B</x-box>') == "H|B"

    def test_config_object(self) -> None:
        config = EngineConfig(extension="tpl")
        engine = Engine(config=config, natives=False)
        engine.namespace("~", "/v")
        assert engine.config is config
        assert engine.resolve_path("page") == "/v/page.tpl"

    def test_forks_share_config(self) -> None:
        engine = Engine(silent=True)
        assert engine.fork().config is engine.config
