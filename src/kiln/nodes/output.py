"""Text and interpolation nodes for kiln templates."""

from __future__ import annotations

from dataclasses import dataclass

from kiln.nodes.base import Node


@dataclass(frozen=True, slots=True)
class Text(Node):
    """Literal text between template constructs."""

    value: str


@dataclass(frozen=True, slots=True)
class Interpolation(Node):
    """Output expression: ``{{ expr }}`` (escaped) or ``{{{ expr }}}`` (raw)."""

    expr: str
    escaped: bool = True
