"""Engine configuration.

``EngineConfig`` is immutable and shared by an engine and its forks.
Defaults can come from the process environment:

- ``KILN_ENV=production`` enables production caching
- ``KILN_SILENT=1`` / ``KILN_STRICT=1`` set the error policies
- ``KILN_EXTENSION`` changes the template file extension

Keyword arguments always win over the environment.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _flag(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUTHY


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Options controlling parsing, caching and error reporting.

    Attributes:
        production: Serve cached file units without re-reading sources.
        extension: Template file extension, without the dot.
        silent: Propagate errors instead of rendering an error page.
        strict: Unknown directives are parse errors; render errors propagate.
        var_locals: Name under which render locals are exposed (``it``).
        max_include_depth: Nesting limit for includes and components.
        slot_tag: Tag collecting named slots inside elements.
        default_namespace: Alias used when a path names no namespace.
    """

    production: bool = False
    extension: str = "kiln"
    silent: bool = False
    strict: bool = False
    var_locals: str = "it"
    max_include_depth: int = 50
    slot_tag: str = "x-slot"
    default_namespace: str = "~"

    def __post_init__(self) -> None:
        if not self.var_locals.isidentifier():
            raise ValueError(f"var_locals must be an identifier, got {self.var_locals!r}")
        if self.max_include_depth < 1:
            raise ValueError("max_include_depth must be at least 1")

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: Any
    ) -> EngineConfig:
        """Build a config from ``environ`` (default ``os.environ``) and overrides.

        Overrides set to None are ignored, so callers can pass optional
        keyword arguments straight through.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {
            "production": env.get("KILN_ENV", "").strip().lower() == "production",
            "silent": _flag(env.get("KILN_SILENT")),
            "strict": _flag(env.get("KILN_STRICT")),
        }
        if env.get("KILN_EXTENSION"):
            values["extension"] = env["KILN_EXTENSION"].lstrip(".")

        known = {f.name for f in fields(cls)}
        for key, value in overrides.items():
            if key not in known:
                raise TypeError(f"Unknown engine option {key!r}")
            if value is None:
                continue
            values[key] = value.lstrip(".") if key == "extension" else value
        return cls(**values)
